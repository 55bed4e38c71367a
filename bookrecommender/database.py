import logging
import sqlite3
from typing import Iterable

from .book import Book
from .config import settings

logger = logging.getLogger(__name__)

# Default database file; callers and tests pass their own path.
DATABASE_FILE = settings.db_file

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS UtentiRegistrati (
        user_id        TEXT PRIMARY KEY,
        password       TEXT NOT NULL,
        nome           TEXT NOT NULL,
        cognome        TEXT NOT NULL,
        codice_fiscale CHAR(16) UNIQUE,
        email          TEXT UNIQUE NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Libri (
        id          INTEGER PRIMARY KEY,
        titolo      TEXT NOT NULL,
        autori      TEXT,
        anno        TEXT,
        descrizione TEXT,
        categorie   TEXT,
        editore     TEXT,
        prezzo      TEXT,
        mese        TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Librerie (
        libreria_id    INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id        TEXT NOT NULL REFERENCES UtentiRegistrati(user_id) ON DELETE CASCADE,
        nome_libreria  TEXT NOT NULL,
        data_creazione TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, nome_libreria)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Libreria_Libro (
        libreria_id      INTEGER NOT NULL,
        libro_id         INTEGER NOT NULL,
        data_inserimento TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (libreria_id, libro_id),
        FOREIGN KEY (libreria_id) REFERENCES Librerie(libreria_id) ON DELETE CASCADE,
        FOREIGN KEY (libro_id) REFERENCES Libri(id) ON DELETE RESTRICT
    )
    """,
    # Ratings and recommendations keep the library by name, as a weak
    # reference: deleting a library leaves them in place.
    """
    CREATE TABLE IF NOT EXISTS ValutazioniLibri (
        user_id           TEXT NOT NULL REFERENCES UtentiRegistrati(user_id) ON DELETE CASCADE,
        nome_libreria     TEXT NOT NULL,
        libro_id          INTEGER NOT NULL REFERENCES Libri(id) ON DELETE RESTRICT,
        stile_score       INTEGER NOT NULL CHECK (stile_score BETWEEN 1 AND 5),
        stile_note        VARCHAR(256),
        contenuto_score   INTEGER NOT NULL CHECK (contenuto_score BETWEEN 1 AND 5),
        contenuto_note    VARCHAR(256),
        gradevolezza_score INTEGER NOT NULL CHECK (gradevolezza_score BETWEEN 1 AND 5),
        gradevolezza_note VARCHAR(256),
        originalita_score INTEGER NOT NULL CHECK (originalita_score BETWEEN 1 AND 5),
        originalita_note  VARCHAR(256),
        edizione_score    INTEGER NOT NULL CHECK (edizione_score BETWEEN 1 AND 5),
        edizione_note     VARCHAR(256),
        voto_complessivo  REAL NOT NULL CHECK (voto_complessivo BETWEEN 1 AND 5),
        nota_finale       VARCHAR(256),
        data_valutazione  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, nome_libreria, libro_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ConsigliLibri (
        user_id              TEXT NOT NULL REFERENCES UtentiRegistrati(user_id) ON DELETE CASCADE,
        nome_libreria        TEXT NOT NULL,
        libro_letto_id       INTEGER NOT NULL REFERENCES Libri(id) ON DELETE RESTRICT,
        libro_consigliato_id INTEGER NOT NULL REFERENCES Libri(id) ON DELETE RESTRICT,
        commento             VARCHAR(256),
        data_consiglio       TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, nome_libreria, libro_letto_id, libro_consigliato_id),
        CHECK (libro_letto_id <> libro_consigliato_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_libri_titolo ON Libri(titolo)",
    "CREATE INDEX IF NOT EXISTS idx_valutazioni_libro ON ValutazioniLibri(libro_id)",
    "CREATE INDEX IF NOT EXISTS idx_consigli_letto ON ConsigliLibri(libro_letto_id)",
]


def get_db_connection(db_file: str = DATABASE_FILE) -> sqlite3.Connection:
    """Open a connection with row access by name and foreign keys enforced."""
    conn = sqlite3.connect(db_file, timeout=10, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # sqlite leaves foreign keys off unless asked, per connection
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables(db_file: str = DATABASE_FILE) -> None:
    """Creates the necessary tables in the database if they don't exist."""
    conn = get_db_connection(db_file)
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


def import_books(books: Iterable[Book], db_file: str = DATABASE_FILE) -> int:
    """Load cataloged books into the Libri table, skipping ids already present."""
    rows = [
        (b.id, b.title, b.authors, b.year, b.description, b.categories, b.publisher, b.price, b.month)
        for b in books
    ]
    if not rows:
        return 0
    conn = get_db_connection(db_file)
    try:
        before = conn.execute("SELECT COUNT(*) FROM Libri").fetchone()[0]
        conn.executemany(
            "INSERT OR IGNORE INTO Libri (id, titolo, autori, anno, descrizione, categorie, editore, prezzo, mese) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        conn.commit()
        after = conn.execute("SELECT COUNT(*) FROM Libri").fetchone()[0]
    finally:
        conn.close()
    inserted = after - before
    logger.info("Imported %d of %d books into %s", inserted, len(rows), db_file)
    return inserted


def initialize_database(db_file: str = DATABASE_FILE) -> None:
    """Initializes the database, creating tables if needed."""
    create_tables(db_file)
