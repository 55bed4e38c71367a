import random

import pytest

from bookrecommender import database
from bookrecommender.book import Book
from bookrecommender.catalog import Catalog
from bookrecommender.models import User
from bookrecommender.service import BookRecommenderService
from bookrecommender.storage import FlatFileStorage, SqliteStorage

SAMPLE_BOOKS = [
    Book(1, "Il nome della rosa", "Umberto Eco", "1980", "Un giallo in un'abbazia", "Fiction", "Bompiani", "12.00", "October"),
    Book(2, "Il pendolo di Foucault", "Umberto Eco", "1988", "Complotti, templari", "Fiction", "Bompiani", "14.00", "September"),
    Book(3, "Se una notte d'inverno un viaggiatore", "Italo Calvino", "1979", "Un romanzo sul leggere", "Fiction", "Einaudi", "11.00", "June"),
    Book(4, "Il barone rampante", "Italo Calvino", "1957", "Cosimo sugli alberi", "Fiction", "Einaudi", "10.00", "May"),
    Book(5, "La coscienza di Zeno", "Italo Svevo", "1923", "Le confessioni di Zeno Cosini", "Fiction", "Cappelli", "9.50", "May"),
]

USERS = [
    User("u1", "Mario", "Rossi", "RSSMRA80A01H501U", "mario.rossi@example.com", "secret1"),
    User("u2", "Luigi", "Verdi", "VRDLGU85B02F205X", "luigi.verdi@example.com", "secret2"),
]


def catalog_line(book: Book) -> str:
    return (f'{book.id},{book.title},"{book.authors}","{book.description}","{book.categories}",'
            f'"{book.publisher}",{book.price},{book.month},{book.year}')


def write_catalog(path, books=SAMPLE_BOOKS) -> str:
    path.write_text("".join(catalog_line(b) + "\n" for b in books), encoding="utf-8")
    return str(path)


@pytest.fixture
def books_csv(tmp_path):
    return write_catalog(tmp_path / "Libri.dati.csv")


@pytest.fixture
def sample_books():
    return list(SAMPLE_BOOKS)


@pytest.fixture
def catalog(sample_books):
    return Catalog(sample_books)


@pytest.fixture(params=["file", "sqlite"])
def storage(request, tmp_path, books_csv):
    """Each backend in its own temporary directory, with u1 and u2 registered."""
    if request.param == "sqlite":
        db_file = str(tmp_path / f"test_{request.node.name}.db".replace("[", "_").replace("]", ""))
        store = SqliteStorage(db_file)
        database.import_books(SAMPLE_BOOKS, db_file)
    else:
        store = FlatFileStorage(str(tmp_path), books_csv)
    for user in USERS:
        store.insert_user(user)
    yield store
    store.close()


@pytest.fixture
def service(catalog, storage):
    svc = BookRecommenderService(catalog, storage, rng=random.Random(0))
    yield svc
    svc.close()


@pytest.fixture
def classics(service):
    """u1 owns library 'classics' with books 1 and 2."""
    return service.libraries.create_library("u1", "classics", [1, 2]).unwrap()
