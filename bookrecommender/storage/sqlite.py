import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from ..book import Book
from ..database import get_db_connection, initialize_database
from ..errors import CapacityError, DuplicateKeyError, StorageError
from ..models import Library, Rating, Recommendation, User
from .base import Storage

logger = logging.getLogger(__name__)

_RATING_COLUMNS = (
    "user_id, nome_libreria, libro_id, "
    "stile_score, stile_note, contenuto_score, contenuto_note, "
    "gradevolezza_score, gradevolezza_note, originalita_score, originalita_note, "
    "edizione_score, edizione_note, voto_complessivo, nota_finale, data_valutazione"
)
_RECOMMENDATION_COLUMNS = (
    "user_id, nome_libreria, libro_letto_id, libro_consigliato_id, commento, data_consiglio"
)


def _timestamp(value: datetime) -> str:
    return value.isoformat(sep=" ")


def _parse_timestamp(raw: Optional[str]) -> datetime:
    if not raw:
        return datetime.now().replace(microsecond=0)
    return datetime.fromisoformat(str(raw))


def _translate(exc: sqlite3.Error) -> StorageError:
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError) and "UNIQUE" in message.upper():
        return DuplicateKeyError(message)
    return StorageError(message)


class SqliteStorage(Storage):
    """Relational layout (``Librerie``, ``Libreria_Libro``, ``ValutazioniLibri``,
    ``ConsigliLibri``) on top of sqlite, with primary keys doing the
    uniqueness checks."""

    def __init__(self, db_file: str) -> None:
        self.db_file = db_file
        initialize_database(db_file)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open {self.db_file}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise _translate(exc) from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Immediate write transaction: committed on success, rolled back otherwise."""
        with self._connection() as conn:
            conn.isolation_level = None
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # ------------------------- Books ------------------------- #
    def load_all(self) -> List[Book]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT id, titolo, autori, anno, descrizione, categorie, editore, prezzo, mese FROM Libri ORDER BY id"
            ).fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    # ------------------------- Users ------------------------- #
    def insert_user(self, user: User) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO UtentiRegistrati (user_id, password, nome, cognome, codice_fiscale, email) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user.user_id, user.password, user.name, user.surname, user.tax_code, user.email),
            )

    def find_user(self, handle: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT user_id, password, nome, cognome, codice_fiscale, email FROM UtentiRegistrati "
                "WHERE user_id = ? OR email = ? OR codice_fiscale = ?",
                (handle, handle, handle),
            ).fetchone()
        if row is None:
            return None
        return User(user_id=row["user_id"], name=row["nome"], surname=row["cognome"],
                    tax_code=row["codice_fiscale"], email=row["email"], password=row["password"])

    def delete_user(self, user_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM UtentiRegistrati WHERE user_id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------- Libraries ------------------------- #
    def insert_library(self, library: Library) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO Librerie (user_id, nome_libreria, data_creazione) VALUES (?, ?, ?)",
                (library.owner_id, library.name, _timestamp(library.created_at)),
            )
            library_pk = cursor.lastrowid
            conn.executemany(
                "INSERT INTO Libreria_Libro (libreria_id, libro_id) VALUES (?, ?)",
                [(library_pk, book_id) for book_id in sorted(library.book_ids)],
            )

    def _load_libraries(self, conn: sqlite3.Connection, where: str, params: tuple) -> List[Library]:
        rows = conn.execute(
            f"SELECT libreria_id, user_id, nome_libreria, data_creazione FROM Librerie WHERE {where} "
            "ORDER BY libreria_id",
            params,
        ).fetchall()
        libraries = []
        for row in rows:
            ids = conn.execute(
                "SELECT libro_id FROM Libreria_Libro WHERE libreria_id = ?", (row["libreria_id"],)
            ).fetchall()
            libraries.append(Library(
                owner_id=row["user_id"],
                name=row["nome_libreria"],
                book_ids=frozenset(r["libro_id"] for r in ids),
                created_at=_parse_timestamp(row["data_creazione"]),
            ))
        return libraries

    def get_library(self, owner_id: str, name: str) -> Optional[Library]:
        with self._connection() as conn:
            found = self._load_libraries(conn, "user_id = ? AND nome_libreria = ?", (owner_id, name))
        return found[0] if found else None

    def list_libraries(self, owner_id: str) -> List[Library]:
        with self._connection() as conn:
            return self._load_libraries(conn, "user_id = ?", (owner_id,))

    def delete_library(self, owner_id: str, name: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM Librerie WHERE user_id = ? AND nome_libreria = ?", (owner_id, name)
            )
            return cursor.rowcount > 0

    def owned_book_ids(self, owner_id: str) -> set:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT ll.libro_id FROM Libreria_Libro ll "
                "JOIN Librerie l ON l.libreria_id = ll.libreria_id WHERE l.user_id = ?",
                (owner_id,),
            ).fetchall()
        return {row["libro_id"] for row in rows}

    # ------------------------- Ratings ------------------------- #
    def insert_rating(self, rating: Rating) -> None:
        params: list = [rating.owner_id, rating.library_id, rating.book_id]
        for score, note in zip(rating.scores, rating.notes):
            params.extend([score, note])
        params.extend([rating.overall, rating.overall_note, _timestamp(rating.created_at)])
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO ValutazioniLibri ({_RATING_COLUMNS}) VALUES ({', '.join('?' * len(params))})",
                params,
            )

    @staticmethod
    def _rating_from_row(row: sqlite3.Row) -> Rating:
        return Rating(
            owner_id=row["user_id"],
            library_id=row["nome_libreria"],
            book_id=row["libro_id"],
            scores=(row["stile_score"], row["contenuto_score"], row["gradevolezza_score"],
                    row["originalita_score"], row["edizione_score"]),
            notes=(row["stile_note"], row["contenuto_note"], row["gradevolezza_note"],
                   row["originalita_note"], row["edizione_note"]),
            overall=row["voto_complessivo"],
            overall_note=row["nota_finale"],
            created_at=_parse_timestamp(row["data_valutazione"]),
        )

    def get_rating(self, owner_id: str, library_id: str, book_id: int) -> Optional[Rating]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_RATING_COLUMNS} FROM ValutazioniLibri "
                "WHERE user_id = ? AND nome_libreria = ? AND libro_id = ?",
                (owner_id, library_id, int(book_id)),
            ).fetchone()
        return self._rating_from_row(row) if row else None

    def ratings_for_book(self, book_id: int) -> List[Rating]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_RATING_COLUMNS} FROM ValutazioniLibri WHERE libro_id = ? ORDER BY rowid",
                (int(book_id),),
            ).fetchall()
        return [self._rating_from_row(row) for row in rows]

    # ------------------------- Recommendations ------------------------- #
    def insert_recommendations(self, recommendations: Sequence[Recommendation], limit: int) -> None:
        if not recommendations:
            return
        first = recommendations[0]
        with self._transaction() as conn:
            existing = conn.execute(
                "SELECT COUNT(*) FROM ConsigliLibri WHERE user_id = ? AND nome_libreria = ? AND libro_letto_id = ?",
                (first.owner_id, first.library_id, first.read_book_id),
            ).fetchone()[0]
            if existing + len(recommendations) > limit:
                raise CapacityError(f"at most {limit} recommendations per read book")
            conn.executemany(
                f"INSERT INTO ConsigliLibri ({_RECOMMENDATION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (r.owner_id, r.library_id, r.read_book_id, r.recommended_book_id, r.comment,
                     _timestamp(r.created_at))
                    for r in recommendations
                ],
            )

    @staticmethod
    def _recommendation_from_row(row: sqlite3.Row) -> Recommendation:
        return Recommendation(
            owner_id=row["user_id"],
            library_id=row["nome_libreria"],
            read_book_id=row["libro_letto_id"],
            recommended_book_id=row["libro_consigliato_id"],
            comment=row["commento"] or "",
            created_at=_parse_timestamp(row["data_consiglio"]),
        )

    def recommendations_for(self, owner_id: str, library_id: str, read_book_id: int) -> List[Recommendation]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_RECOMMENDATION_COLUMNS} FROM ConsigliLibri "
                "WHERE user_id = ? AND nome_libreria = ? AND libro_letto_id = ? ORDER BY rowid",
                (owner_id, library_id, int(read_book_id)),
            ).fetchall()
        return [self._recommendation_from_row(row) for row in rows]

    def recommendations_for_read_book(self, read_book_id: int) -> List[Recommendation]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_RECOMMENDATION_COLUMNS} FROM ConsigliLibri WHERE libro_letto_id = ? ORDER BY rowid",
                (int(read_book_id),),
            ).fetchall()
        return [self._recommendation_from_row(row) for row in rows]
