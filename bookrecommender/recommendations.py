import logging
from typing import Iterable, List, Optional, Set

from .catalog import Catalog
from .config import settings
from .errors import (
    DUPLICATE_TARGET,
    LIMIT_REACHED,
    NOT_OWNED,
    CapacityError,
    DuplicateKeyError,
    ErrorKind,
    Result,
    StorageError,
    not_found,
    storage_failure,
)
from .libraries import LibraryStore
from .locks import KeyedLock
from .models import Recommendation, RecommendationOutcome, RejectedCandidate
from .ratings import normalize_note
from .storage.base import Storage, read_with_retry

logger = logging.getLogger(__name__)

REJECT_SELF = "self"
REJECT_DUPLICATE = "duplicate"
REJECT_NOT_FOUND = "not_found"
REJECT_LIMIT = "limit"


class RecommendationEngine:
    """Suggest up to ``max_recommendations`` titles for a book the user owns."""

    def __init__(self, catalog: Catalog, libraries: LibraryStore, storage: Storage,
                 locks: Optional[KeyedLock] = None, limit: Optional[int] = None) -> None:
        self.catalog = catalog
        self.libraries = libraries
        self.storage = storage
        self.limit = limit if limit is not None else settings.max_recommendations
        self._locks = locks or KeyedLock()

    def existing_count(self, owner_id: str, library_id: str, read_book_id: int) -> int:
        stored = read_with_retry(self.storage.recommendations_for, owner_id, library_id, read_book_id,
                                 retries=settings.storage_read_retries)
        return len(stored)

    def _limit_reached(self, read_book_id: int) -> Result[RecommendationOutcome]:
        return Result.failure(ErrorKind.CONFLICT, LIMIT_REACHED,
                              f"You have already suggested {self.limit} books for this title.",
                              field="read_book_id", value=read_book_id)

    def recommend(self, owner_id: str, library_id: str, read_book_id: int,
                  recommended_book_ids: Iterable[int], comment: str = "") -> Result[RecommendationOutcome]:
        try:
            library = self.libraries.get_library(owner_id, library_id)
            if library is None:
                return not_found("Library", library_id, field="library_id")
            found = self.catalog.find_by_id(read_book_id)
            if not found.ok:
                return Result(error=found.error)
            read_book_id = found.value.id
            owned = self.libraries.is_book_owned(owner_id, read_book_id)
        except StorageError as exc:
            return storage_failure(exc)
        if not owned:
            return Result.failure(ErrorKind.NOT_OWNED, NOT_OWNED,
                                  "You can only suggest books for titles in your libraries.",
                                  field="read_book_id", value=read_book_id)
        checked_comment = normalize_note(comment, "comment")
        if not checked_comment.ok:
            return Result(error=checked_comment.error)
        comment = checked_comment.value if (comment or "").strip() else ""
        library_id = library.name

        key = self.storage.recommendation_key(owner_id, library_id, read_book_id)
        with self._locks.hold(("recommendation",) + key):
            try:
                existing = self.storage.recommendations_for(owner_id, library_id, read_book_id)
            except StorageError as exc:
                return storage_failure(exc)
            if len(existing) >= self.limit:
                logger.info("%s reached the suggestion limit for book %s", owner_id, read_book_id)
                return self._limit_reached(read_book_id)

            slots = self.limit - len(existing)
            taken: Set[int] = {r.recommended_book_id for r in existing}
            accepted: List[Recommendation] = []
            rejected: List[RejectedCandidate] = []
            for candidate in recommended_book_ids or ():
                book = self.catalog.get(candidate)
                if book is None:
                    rejected.append(RejectedCandidate(candidate, REJECT_NOT_FOUND))
                elif book.id == read_book_id:
                    rejected.append(RejectedCandidate(book.id, REJECT_SELF))
                elif book.id in taken:
                    rejected.append(RejectedCandidate(book.id, REJECT_DUPLICATE))
                elif len(accepted) >= slots:
                    rejected.append(RejectedCandidate(book.id, REJECT_LIMIT))
                else:
                    taken.add(book.id)
                    accepted.append(Recommendation(
                        owner_id=owner_id,
                        library_id=library_id,
                        read_book_id=read_book_id,
                        recommended_book_id=book.id,
                        comment=comment,
                    ))

            try:
                self.storage.insert_recommendations(accepted, self.limit)
            except CapacityError:
                return self._limit_reached(read_book_id)
            except DuplicateKeyError as exc:
                return Result.failure(ErrorKind.CONFLICT, DUPLICATE_TARGET, f"Duplicate suggestion: {exc}",
                                      field="recommended_book_ids")
            except StorageError as exc:
                logger.error("Could not save suggestions for book %s by %s: %s", read_book_id, owner_id, exc)
                return storage_failure(exc)

        if rejected:
            logger.info("Skipped %d suggestion candidates for book %s", len(rejected), read_book_id)
        logger.info("%s suggested %d books for book %s", owner_id, len(accepted), read_book_id)
        return Result.success(RecommendationOutcome(accepted=accepted, rejected=rejected, existing=len(existing)))
