"""Storage port: abstract interface implemented by the persistence backends."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple, TypeVar

from ..book import Book
from ..errors import StorageError
from ..models import Library, Rating, Recommendation, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

RatingKey = Tuple[str, str, int]
RecommendationKey = Tuple[str, str, int]


class Storage(ABC):
    """Abstraction over the flat-file and relational layouts.

    Inserts enforce their own uniqueness and raise ``DuplicateKeyError``;
    any other I/O or constraint problem surfaces as ``StorageError``.
    """

    # The legacy flat files have no library column; backends narrow keys
    # to what they can actually tell apart.
    def rating_key(self, owner_id: str, library_id: str, book_id: int) -> RatingKey:
        return (owner_id, library_id, int(book_id))

    def recommendation_key(self, owner_id: str, library_id: str, read_book_id: int) -> RecommendationKey:
        return (owner_id, library_id, int(read_book_id))

    # ------------------------- Books ------------------------- #
    @abstractmethod
    def load_all(self) -> List[Book]:
        """Return every cataloged book (``BookLookup`` contract)."""
        ...

    # ------------------------- Users ------------------------- #
    @abstractmethod
    def insert_user(self, user: User) -> None:
        ...

    @abstractmethod
    def find_user(self, handle: str) -> Optional[User]:
        """Match ``handle`` against user id, email or tax code."""
        ...

    @abstractmethod
    def delete_user(self, user_id: str) -> bool:
        ...

    # ------------------------- Libraries ------------------------- #
    @abstractmethod
    def insert_library(self, library: Library) -> None:
        ...

    @abstractmethod
    def get_library(self, owner_id: str, name: str) -> Optional[Library]:
        ...

    @abstractmethod
    def list_libraries(self, owner_id: str) -> List[Library]:
        ...

    @abstractmethod
    def delete_library(self, owner_id: str, name: str) -> bool:
        ...

    def owned_book_ids(self, owner_id: str) -> Set[int]:
        owned: Set[int] = set()
        for library in self.list_libraries(owner_id):
            owned.update(library.book_ids)
        return owned

    # ------------------------- Ratings ------------------------- #
    @abstractmethod
    def insert_rating(self, rating: Rating) -> None:
        ...

    @abstractmethod
    def get_rating(self, owner_id: str, library_id: str, book_id: int) -> Optional[Rating]:
        ...

    @abstractmethod
    def ratings_for_book(self, book_id: int) -> List[Rating]:
        """All ratings of a book, in storage order."""
        ...

    # ------------------------- Recommendations ------------------------- #
    @abstractmethod
    def insert_recommendations(self, recommendations: Sequence[Recommendation], limit: int) -> None:
        """Append the batch atomically.

        Raises ``CapacityError`` if the key would exceed ``limit`` records and
        ``DuplicateKeyError`` if a target is already recorded for the key.
        """
        ...

    @abstractmethod
    def recommendations_for(self, owner_id: str, library_id: str, read_book_id: int) -> List[Recommendation]:
        ...

    @abstractmethod
    def recommendations_for_read_book(self, read_book_id: int) -> List[Recommendation]:
        ...

    def close(self) -> None:
        return None


def read_with_retry(read: Callable[..., T], *args: Any, retries: int = 2) -> T:
    """Run an idempotent read, retrying transient ``StorageError``s."""
    attempt = 0
    while True:
        try:
            return read(*args)
        except StorageError as exc:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning("Storage read %s failed (%s), retry %d/%d",
                           getattr(read, "__name__", read), exc, attempt, retries)
