import threading

import pytest

from bookrecommender.errors import ErrorKind, StorageError
from bookrecommender.ratings import normalize_note, validate_score

NOTES = ["scorrevole", "denso", "piacevole", "unico", "curata"]


def test_overall_is_mean_of_scores(service, classics):
    rating = service.ratings.rate_book("u1", "classics", 1, [5, 4, 5, 4, 5], NOTES, "capolavoro").unwrap()
    assert rating.overall == pytest.approx(4.6)
    assert rating.scores == (5, 4, 5, 4, 5)
    assert rating.notes == tuple(NOTES)
    assert rating.overall_note == "capolavoro"


def test_second_rating_is_refused(service, classics):
    service.ratings.rate_book("u1", "classics", 1, [5, 4, 5, 4, 5], NOTES).unwrap()
    again = service.ratings.rate_book("u1", "classics", 1, [1, 1, 1, 1, 1], NOTES)
    assert again.error.code == "AlreadyRated"
    assert again.error.kind is ErrorKind.CONFLICT
    stored = service.aggregation.full_rating_detail(1)
    assert len(stored) == 1
    assert stored[0].scores == (5, 4, 5, 4, 5)


def test_book_must_be_owned(service, classics):
    result = service.ratings.rate_book("u1", "classics", 3, [3, 3, 3, 3, 3], NOTES)
    assert result.error.kind is ErrorKind.NOT_OWNED
    assert result.error.code == "NotOwned"


def test_unknown_book_and_library(service, classics):
    assert service.ratings.rate_book("u1", "classics", 999, [3] * 5, NOTES).error.kind is ErrorKind.NOT_FOUND
    missing = service.ratings.rate_book("u1", "nessuna", 1, [3] * 5, NOTES)
    assert missing.error.kind is ErrorKind.NOT_FOUND
    assert missing.error.field == "library_id"
    # another user's library is not visible
    assert service.ratings.rate_book("u2", "classics", 1, [3] * 5, NOTES).error.kind is ErrorKind.NOT_FOUND


def test_score_out_of_range_names_the_criterion(service, classics):
    result = service.ratings.rate_book("u1", "classics", 1, [5, 4, 5, 4, 6], NOTES)
    assert result.error.code == "InvalidScore"
    assert result.error.field == "edizione"
    assert result.error.value == 6
    assert service.aggregation.full_rating_detail(1) == []


@pytest.mark.parametrize("score", [0, 6, True, 3.5, "4", None])
def test_validate_score_rejects(score):
    assert not validate_score(score, "stile").ok


def test_wrong_number_of_scores(service, classics):
    result = service.ratings.rate_book("u1", "classics", 1, [5, 4, 5], NOTES)
    assert result.error.code == "InvalidScore"


def test_note_with_delimiter_rejected(service, classics):
    notes = ["ok", "uno;due", "ok", "ok", "ok"]
    result = service.ratings.rate_book("u1", "classics", 1, [3] * 5, notes)
    assert result.error.code == "InvalidNote"
    assert result.error.field == "contenuto"


@pytest.mark.parametrize("note", ["uno\ndue", "uno\rdue"])
def test_note_with_line_break_rejected(service, classics, note):
    result = service.ratings.rate_book("u1", "classics", 1, [3] * 5, NOTES, note)
    assert result.error.code == "InvalidNote"
    assert result.error.field == "overall"
    assert service.aggregation.full_rating_detail(1) == []
    service.ratings.rate_book("u1", "classics", 1, [3] * 5, NOTES, "uno due").unwrap()
    assert service.ratings.rate_book("u1", "classics", 1, [4] * 5, NOTES).error.code == "AlreadyRated"


def test_note_length_limit():
    assert normalize_note("x" * 256, "stile").ok
    too_long = normalize_note("x" * 257, "stile")
    assert too_long.error.code == "InvalidNote"


def test_blank_notes_become_slash(service, classics):
    rating = service.ratings.rate_book("u1", "classics", 2, [2, 3, 4, 5, 1], ["", " ", None, "ok", ""]).unwrap()
    assert rating.notes == ("/", "/", "/", "ok", "/")
    assert rating.overall_note == "/"


def test_rating_is_persisted(service, classics):
    service.ratings.rate_book("u1", "classics", 1, [5, 4, 5, 4, 5], NOTES, "bello").unwrap()
    stored = service.aggregation.full_rating_detail(1)[0]
    assert stored.owner_id == "u1"
    assert stored.overall == pytest.approx(4.6)
    assert stored.overall_note == "bello"


def test_storage_failure_is_reported(service, classics, monkeypatch):
    def broken(rating):
        raise StorageError("disk full")

    monkeypatch.setattr(service.storage, "insert_rating", broken)
    result = service.ratings.rate_book("u1", "classics", 1, [3] * 5, NOTES)
    assert result.error.kind is ErrorKind.STORAGE_FAILURE


def test_concurrent_ratings_write_once(service, classics):
    results = []

    def rate():
        results.append(service.ratings.rate_book("u1", "classics", 1, [4] * 5, NOTES))

    threads = [threading.Thread(target=rate) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r.ok) == 1
    assert all(r.error.code == "AlreadyRated" for r in results if not r.ok)
    assert len(service.aggregation.full_rating_detail(1)) == 1


def test_rating_accessors(service, classics):
    rating = service.ratings.rate_book("u1", "classics", 1, [5, 4, 3, 2, 1], NOTES).unwrap()
    assert rating.key == ("u1", "classics", 1)
    assert rating.score("gradevolezza") == 3
    assert rating.note("edizione") == "curata"
    assert rating.to_dict()["originalita"] == 2
