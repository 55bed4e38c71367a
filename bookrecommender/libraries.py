import logging
from typing import Iterable, List, Optional, Set

from .catalog import Catalog
from .config import settings
from .errors import (
    DUPLICATE_NAME,
    EMPTY_LIBRARY,
    INVALID_NAME,
    DuplicateKeyError,
    ErrorKind,
    Result,
    StorageError,
    not_found,
    storage_failure,
)
from .locks import KeyedLock
from .models import Library
from .storage.base import Storage, read_with_retry

logger = logging.getLogger(__name__)

# Characters that would break the ";" record layout or the "name: ids" listing
FORBIDDEN_NAME_CHARS = (";", ":", "\n", "\r")


def validate_library_name(name: Optional[str]) -> Result[str]:
    cleaned = (name or "").strip()
    if not cleaned:
        return Result.failure(ErrorKind.VALIDATION, INVALID_NAME, "Library name cannot be empty.",
                              field="name", value=name)
    for ch in FORBIDDEN_NAME_CHARS:
        if ch in cleaned:
            return Result.failure(ErrorKind.VALIDATION, INVALID_NAME,
                                  f"Library name cannot contain {ch!r}.", field="name", value=name)
    return Result.success(cleaned)


class LibraryDraft:
    """A library being assembled, book by book, before it is committed."""

    def __init__(self, store: "LibraryStore", owner_id: str, name: str) -> None:
        self._store = store
        self.owner_id = owner_id
        self.name = name
        self.book_ids: Set[int] = set()

    def add_book(self, book_id: int) -> Result[bool]:
        """Add a cataloged book; ``ok(False)`` when it was already in the draft."""
        found = self._store.catalog.find_by_id(book_id)
        if not found.ok:
            return Result(error=found.error)
        book = found.value
        if book.id in self.book_ids:
            logger.warning("Book %s is already in draft library %r", book.id, self.name)
            return Result.success(False)
        self.book_ids.add(book.id)
        return Result.success(True)

    def commit(self) -> Result[Library]:
        return self._store.commit(self)

    def __len__(self) -> int:
        return len(self.book_ids)


class LibraryStore:
    """Per-user named collections of book ids."""

    def __init__(self, catalog: Catalog, storage: Storage, locks: Optional[KeyedLock] = None) -> None:
        self.catalog = catalog
        self.storage = storage
        self._locks = locks or KeyedLock()

    # ------------------------- Creation ------------------------- #
    def new_draft(self, owner_id: str, name: str) -> LibraryDraft:
        return LibraryDraft(self, owner_id, name)

    def commit(self, draft: LibraryDraft) -> Result[Library]:
        return self.create_library(draft.owner_id, draft.name, draft.book_ids)

    def create_library(self, owner_id: str, name: str, book_ids: Iterable[int]) -> Result[Library]:
        checked = validate_library_name(name)
        if not checked.ok:
            return Result(error=checked.error)
        name = checked.value

        ids: Set[int] = set()
        for book_id in book_ids or ():
            book = self.catalog.get(book_id)
            if book is None:
                return not_found("Book", book_id, field="book_ids")
            ids.add(book.id)
        if not ids:
            return Result.failure(ErrorKind.VALIDATION, EMPTY_LIBRARY,
                                  "A library must contain at least one book.", field="book_ids", value=[])

        library = Library(owner_id=owner_id, name=name, book_ids=frozenset(ids))
        with self._locks.hold(("library", owner_id, name)):
            try:
                self.storage.insert_library(library)
            except DuplicateKeyError:
                logger.info("Library %r already exists for %s", name, owner_id)
                return Result.failure(ErrorKind.CONFLICT, DUPLICATE_NAME,
                                      f"You already have a library named {name!r}.", field="name", value=name)
            except StorageError as exc:
                logger.error("Could not save library %r for %s: %s", name, owner_id, exc)
                return storage_failure(exc)
        logger.info("Created library %r for %s with %d books", name, owner_id, len(ids))
        return Result.success(library)

    # ------------------------- Queries ------------------------- #
    def list_libraries(self, owner_id: str) -> List[Library]:
        return read_with_retry(self.storage.list_libraries, owner_id, retries=settings.storage_read_retries)

    def get_library(self, owner_id: str, name: str) -> Optional[Library]:
        return read_with_retry(self.storage.get_library, owner_id, (name or "").strip(),
                               retries=settings.storage_read_retries)

    def is_book_owned(self, owner_id: str, book_id: int) -> bool:
        """True when the book sits in any library of the owner."""
        try:
            book_id = int(book_id)
        except (TypeError, ValueError):
            return False
        owned = read_with_retry(self.storage.owned_book_ids, owner_id, retries=settings.storage_read_retries)
        return book_id in owned

    # ------------------------- Removal ------------------------- #
    def delete_library(self, owner_id: str, name: str) -> bool:
        """Remove a library. Ratings and recommendations made through it stay.

        Writes are not retried: a backend failure raises ``StorageError``, which
        the API answers with 503.
        """
        name = (name or "").strip()
        with self._locks.hold(("library", owner_id, name)):
            removed = self.storage.delete_library(owner_id, name)
        if removed:
            logger.info("Deleted library %r of %s", name, owner_id)
        return removed
