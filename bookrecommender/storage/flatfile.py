import logging
import os
import tempfile
import threading
from typing import Callable, List, Optional, Sequence, TypeVar

from ..book import Book
from ..errors import CapacityError, DuplicateKeyError, StorageError
from ..models import Library, Rating, Recommendation, User
from ..records import (
    RecordFormatError,
    decode_library,
    decode_rating,
    decode_recommendation,
    decode_user,
    encode_library,
    encode_rating,
    encode_recommendation,
    encode_user,
    read_catalog,
)
from .base import RatingKey, RecommendationKey, Storage

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOOKS_FILE = "Libri.dati.csv"
USERS_FILE = "UtentiRegistrati.dati.csv"
LIBRARIES_FILE = "Librerie.dati.csv"
RATINGS_FILE = "ValutazioniLibri.dati.csv"
RECOMMENDATIONS_FILE = "ConsigliLibri.dati.csv"


class FlatFileStorage(Storage):
    """Semicolon-delimited files in the legacy layout, one file per record type.

    Every read parses the whole file. All writes go through one process-wide
    lock and each batch lands with a single ``write`` call.
    """

    def __init__(self, data_dir: str, books_file: Optional[str] = None, encoding: str = "utf-8") -> None:
        self.data_dir = data_dir
        self.books_file = books_file or os.path.join(data_dir, BOOKS_FILE)
        self.encoding = encoding
        self._lock = threading.RLock()
        os.makedirs(data_dir, exist_ok=True)

    # ------------------------- Key narrowing ------------------------- #
    def rating_key(self, owner_id: str, library_id: str, book_id: int) -> RatingKey:
        return (owner_id, "", int(book_id))

    def recommendation_key(self, owner_id: str, library_id: str, read_book_id: int) -> RecommendationKey:
        return (owner_id, "", int(read_book_id))

    # ------------------------- File helpers ------------------------- #
    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, name)

    def _read_lines(self, name: str) -> List[str]:
        path = self._path(name)
        if not os.path.exists(path):
            return []
        try:
            with open(path, "r", encoding=self.encoding) as f:
                return [line.rstrip("\r\n") for line in f if line.strip()]
        except OSError as exc:
            raise StorageError(f"Could not read {path}: {exc}") from exc

    def _read_records(self, name: str, decode: Callable[[str], T]) -> List[T]:
        records: List[T] = []
        for line in self._read_lines(name):
            try:
                records.append(decode(line))
            except RecordFormatError as exc:
                logger.warning("Skipping malformed line in %s: %s", name, exc)
        return records

    def _append(self, name: str, lines: Sequence[str]) -> None:
        if not lines:
            return
        path = self._path(name)
        payload = "".join(line + "\n" for line in lines)
        try:
            with open(path, "a", encoding=self.encoding) as f:
                f.write(payload)
        except OSError as exc:
            raise StorageError(f"Could not write {path}: {exc}") from exc

    def _rewrite(self, name: str, lines: Sequence[str]) -> None:
        path = self._path(name)
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".tmp_", suffix=".csv")
        try:
            with os.fdopen(fd, "w", encoding=self.encoding) as f:
                f.write("".join(line + "\n" for line in lines))
            os.replace(tmp, path)
        except OSError as exc:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise StorageError(f"Could not rewrite {path}: {exc}") from exc

    # ------------------------- Books ------------------------- #
    def load_all(self) -> List[Book]:
        if not os.path.exists(self.books_file):
            logger.warning("Catalog file %s does not exist", self.books_file)
            return []
        try:
            with open(self.books_file, "r", encoding=self.encoding) as f:
                return list(read_catalog(f))
        except OSError as exc:
            raise StorageError(f"Could not read {self.books_file}: {exc}") from exc

    # ------------------------- Users ------------------------- #
    def insert_user(self, user: User) -> None:
        with self._lock:
            for existing in self._read_records(USERS_FILE, decode_user):
                if existing.user_id == user.user_id:
                    raise DuplicateKeyError(f"user id {user.user_id} already registered")
                if existing.email == user.email or existing.tax_code == user.tax_code:
                    raise DuplicateKeyError("email or tax code already registered")
            self._append(USERS_FILE, [encode_user(user)])

    def find_user(self, handle: str) -> Optional[User]:
        for user in self._read_records(USERS_FILE, decode_user):
            if handle in (user.user_id, user.email, user.tax_code):
                return user
        return None

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            users = self._read_records(USERS_FILE, decode_user)
            kept = [u for u in users if u.user_id != user_id]
            if len(kept) == len(users):
                return False
            self._rewrite(USERS_FILE, [encode_user(u) for u in kept])
            return True

    # ------------------------- Libraries ------------------------- #
    def insert_library(self, library: Library) -> None:
        with self._lock:
            if self.get_library(library.owner_id, library.name) is not None:
                raise DuplicateKeyError(f"library {library.name!r} already exists for {library.owner_id}")
            self._append(LIBRARIES_FILE, [encode_library(library)])

    def get_library(self, owner_id: str, name: str) -> Optional[Library]:
        for library in self._read_records(LIBRARIES_FILE, decode_library):
            if library.owner_id == owner_id and library.name == name:
                return library
        return None

    def list_libraries(self, owner_id: str) -> List[Library]:
        return [lib for lib in self._read_records(LIBRARIES_FILE, decode_library) if lib.owner_id == owner_id]

    def delete_library(self, owner_id: str, name: str) -> bool:
        with self._lock:
            lines = self._read_lines(LIBRARIES_FILE)
            kept: List[str] = []
            removed = False
            for line in lines:
                fields = line.split(";")
                if len(fields) >= 2 and fields[0].strip() == owner_id and fields[1].strip() == name:
                    removed = True
                    continue
                kept.append(line)
            if removed:
                self._rewrite(LIBRARIES_FILE, kept)
            return removed

    # ------------------------- Ratings ------------------------- #
    def insert_rating(self, rating: Rating) -> None:
        with self._lock:
            if self.get_rating(rating.owner_id, rating.library_id, rating.book_id) is not None:
                raise DuplicateKeyError(f"book {rating.book_id} already rated by {rating.owner_id}")
            self._append(RATINGS_FILE, [encode_rating(rating)])

    def get_rating(self, owner_id: str, library_id: str, book_id: int) -> Optional[Rating]:
        for rating in self._read_records(RATINGS_FILE, decode_rating):
            if rating.owner_id == owner_id and rating.book_id == int(book_id):
                return rating
        return None

    def ratings_for_book(self, book_id: int) -> List[Rating]:
        return [r for r in self._read_records(RATINGS_FILE, decode_rating) if r.book_id == int(book_id)]

    # ------------------------- Recommendations ------------------------- #
    def insert_recommendations(self, recommendations: Sequence[Recommendation], limit: int) -> None:
        if not recommendations:
            return
        with self._lock:
            first = recommendations[0]
            existing = self.recommendations_for(first.owner_id, first.library_id, first.read_book_id)
            if len(existing) + len(recommendations) > limit:
                raise CapacityError(f"at most {limit} recommendations per read book")
            seen = {r.recommended_book_id for r in existing}
            for rec in recommendations:
                if rec.recommended_book_id in seen:
                    raise DuplicateKeyError(f"book {rec.recommended_book_id} already recommended")
                seen.add(rec.recommended_book_id)
            self._append(RECOMMENDATIONS_FILE, [encode_recommendation(r) for r in recommendations])

    def recommendations_for(self, owner_id: str, library_id: str, read_book_id: int) -> List[Recommendation]:
        return [
            r for r in self._read_records(RECOMMENDATIONS_FILE, decode_recommendation)
            if r.owner_id == owner_id and r.read_book_id == int(read_book_id)
        ]

    def recommendations_for_read_book(self, read_book_id: int) -> List[Recommendation]:
        return [
            r for r in self._read_records(RECOMMENDATIONS_FILE, decode_recommendation)
            if r.read_book_id == int(read_book_id)
        ]
