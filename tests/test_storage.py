import os
from dataclasses import replace

import pytest

from bookrecommender import database
from bookrecommender.config import Settings
from bookrecommender.errors import CapacityError, DuplicateKeyError, StorageError
from bookrecommender.models import Library, Rating, Recommendation
from bookrecommender.storage import FlatFileStorage, SqliteStorage, open_storage, read_with_retry


def rating(owner="u1", library="classics", book_id=1):
    return Rating(owner, library, book_id, (5, 4, 5, 4, 5), ("a", "b", "c", "d", "e"), 4.6, "f")


def test_load_all_returns_catalog(storage):
    books = storage.load_all()
    assert [b.id for b in books] == [1, 2, 3, 4, 5]
    assert books[0].title == "Il nome della rosa"


def test_duplicate_library_raises(storage):
    storage.insert_library(Library("u1", "classics", frozenset({1})))
    with pytest.raises(DuplicateKeyError):
        storage.insert_library(Library("u1", "classics", frozenset({2})))


def test_duplicate_rating_raises(storage):
    storage.insert_rating(rating())
    with pytest.raises(DuplicateKeyError):
        storage.insert_rating(rating())


def test_recommendation_batch_is_capped(storage):
    recs = [Recommendation("u1", "classics", 1, b) for b in (2, 3)]
    storage.insert_recommendations(recs, limit=3)
    with pytest.raises(CapacityError):
        storage.insert_recommendations([Recommendation("u1", "classics", 1, b) for b in (4, 5)], limit=3)
    assert len(storage.recommendations_for("u1", "classics", 1)) == 2


def test_duplicate_recommendation_raises(storage):
    storage.insert_recommendations([Recommendation("u1", "classics", 1, 2)], limit=3)
    with pytest.raises(DuplicateKeyError):
        storage.insert_recommendations([Recommendation("u1", "classics", 1, 2)], limit=3)


def test_flat_files_use_legacy_layout(tmp_path, books_csv):
    storage = FlatFileStorage(str(tmp_path), books_csv)
    storage.insert_library(Library("u1", "classics", frozenset({2, 1})))
    storage.insert_rating(rating())
    storage.insert_recommendations([Recommendation("u1", "classics", 1, 3)], limit=3)

    assert (tmp_path / "Librerie.dati.csv").read_text(encoding="utf-8") == "u1;classics;[1, 2]\n"
    assert (tmp_path / "ValutazioniLibri.dati.csv").read_text(encoding="utf-8") == \
        "u1;1;5;a;4;b;5;c;4;d;5;e;4.600000;f\n"
    assert (tmp_path / "ConsigliLibri.dati.csv").read_text(encoding="utf-8") == "u1;1;3\n"


def test_flat_keys_ignore_library(tmp_path, books_csv):
    storage = FlatFileStorage(str(tmp_path), books_csv)
    assert storage.rating_key("u1", "classics", 1) == storage.rating_key("u1", "altro", 1)
    storage.insert_rating(rating(library="classics"))
    with pytest.raises(DuplicateKeyError):
        storage.insert_rating(rating(library="altro"))
    assert storage.get_rating("u1", "", 1).library_id == ""


def test_flat_malformed_lines_are_skipped(tmp_path, books_csv):
    (tmp_path / "Librerie.dati.csv").write_text("rotta\nu1;classics;[1]\n", encoding="utf-8")
    storage = FlatFileStorage(str(tmp_path), books_csv)
    assert [lib.name for lib in storage.list_libraries("u1")] == ["classics"]


def test_sqlite_keeps_library_per_rating(tmp_path):
    db_file = str(tmp_path / "keys.db")
    storage = SqliteStorage(db_file)
    assert storage.rating_key("u1", "classics", 1) != storage.rating_key("u1", "altro", 1)


def test_sqlite_requires_registered_owner(tmp_path, sample_books):
    db_file = str(tmp_path / "fk.db")
    storage = SqliteStorage(db_file)
    database.import_books(sample_books, db_file)
    with pytest.raises(StorageError):
        storage.insert_library(Library("ghost", "classics", frozenset({1})))
    assert storage.get_library("ghost", "classics") is None


def test_sqlite_import_skips_existing_ids(tmp_path, sample_books):
    db_file = str(tmp_path / "import.db")
    database.initialize_database(db_file)
    assert database.import_books(sample_books, db_file) == 5
    assert database.import_books(sample_books, db_file) == 0
    assert database.import_books([], db_file) == 0


def test_open_storage_selects_backend(tmp_path):
    base = Settings()
    flat = open_storage(replace(base, backend="file", data_dir=str(tmp_path)))
    assert isinstance(flat, FlatFileStorage)
    sql = open_storage(replace(base, backend="SQLite", data_dir=str(tmp_path), db_file="x.db"))
    assert isinstance(sql, SqliteStorage)
    assert os.path.exists(tmp_path / "x.db")
    with pytest.raises(ValueError):
        open_storage(replace(base, backend="mongo"))


def test_read_with_retry_gives_up():
    calls = []

    def always_fails():
        calls.append(1)
        raise StorageError("locked")

    with pytest.raises(StorageError):
        read_with_retry(always_fails, retries=2)
    assert len(calls) == 3
