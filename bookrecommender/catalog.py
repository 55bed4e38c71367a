from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional

from .book import Book
from .errors import Result, not_found
from .records import read_catalog

logger = logging.getLogger(__name__)


class Catalog:
    """Read-only index of the books known to the application.

    Built once and then shared by every component that needs to validate or
    resolve a book id. Nothing mutates it after construction, so reads need
    no locking.
    """

    def __init__(self, books: Iterable[Book] = ()) -> None:
        self._by_id: Dict[int, Book] = {}
        duplicates = 0
        for book in books:
            if book.id in self._by_id:
                duplicates += 1
            else:
                self._by_id[book.id] = book
        if duplicates:
            logger.warning("Ignored %d books with an already cataloged id", duplicates)
        self._books: List[Book] = list(self._by_id.values())

    # ------------------------- Construction ------------------------- #
    @classmethod
    def from_books(cls, books: Iterable[Book]) -> "Catalog":
        return cls(books)

    @classmethod
    def from_csv(cls, path: str, encoding: str = "utf-8") -> "Catalog":
        with open(path, "r", encoding=encoding) as f:
            catalog = cls(read_catalog(f))
        logger.info("Loaded %d books from %s", len(catalog), path)
        return catalog

    @classmethod
    def from_lookup(cls, lookup) -> "Catalog":
        """Build from any object exposing ``load_all()`` (e.g. a sqlite backend)."""
        return cls(lookup.load_all())

    # ------------------------- Lookup ------------------------- #
    def find_by_id(self, book_id: int) -> Result[Book]:
        book = self.get(book_id)
        if book is None:
            return not_found("Book", book_id, field="book_id")
        return Result.success(book)

    def get(self, book_id: int) -> Optional[Book]:
        try:
            return self._by_id.get(int(book_id))
        except (TypeError, ValueError):
            return None

    def title_of(self, book_id: int) -> Optional[str]:
        book = self.get(book_id)
        return book.title if book else None

    # ------------------------- Search ------------------------- #
    @staticmethod
    def _by_title(matches: Iterable[Book]) -> List[Book]:
        # Matches sharing an exact title collapse to the last inserted one.
        by_title: Dict[str, Book] = {}
        for book in matches:
            by_title[book.title] = book
        return [by_title[t] for t in sorted(by_title)]

    def search_by_title(self, substring: str) -> List[Book]:
        needle = (substring or "").lower()
        return self._by_title(b for b in self._books if needle in b.title.lower())

    def search_by_author(self, substring: str) -> List[Book]:
        needle = (substring or "").lower()
        return self._by_title(b for b in self._books if needle in b.authors.lower())

    def search_by_author_and_year(self, substring: str, year: str) -> List[Book]:
        needle = (substring or "").lower()
        year = (year or "").strip()
        return self._by_title(b for b in self._books if needle in b.authors.lower() and year in b.year)

    # ------------------------- Container protocol ------------------------- #
    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, book_id: object) -> bool:
        return self.get(book_id) is not None  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[Book]:
        return iter(self._by_id.values())
