import logging
from typing import Optional, Sequence, Tuple

from .catalog import Catalog
from .config import settings
from .errors import (
    ALREADY_RATED,
    INVALID_NOTE,
    INVALID_SCORE,
    NOT_OWNED,
    DuplicateKeyError,
    ErrorKind,
    Result,
    StorageError,
    not_found,
    storage_failure,
)
from .libraries import LibraryStore
from .locks import KeyedLock
from .models import CRITERIA, Rating
from .records import FIELD_DELIMITER
from .storage.base import Storage

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5
BLANK_NOTE = "/"


def validate_score(score: object, field: str) -> Result[int]:
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        return Result.failure(ErrorKind.VALIDATION, INVALID_SCORE,
                              f"The {field} score must be an integer between {MIN_SCORE} and {MAX_SCORE}.",
                              field=field, value=score)
    return Result.success(score)


def normalize_note(note: Optional[str], field: str, max_length: Optional[int] = None) -> Result[str]:
    """Reject notes that are too long or contain a field or line delimiter; blank becomes ``/``."""
    max_length = max_length if max_length is not None else settings.note_max_length
    note = "" if note is None else str(note)
    if len(note) > max_length:
        return Result.failure(ErrorKind.VALIDATION, INVALID_NOTE,
                              f"The {field} note cannot exceed {max_length} characters.",
                              field=field, value=note)
    for ch in (FIELD_DELIMITER, "\n", "\r"):
        if ch in note:
            return Result.failure(ErrorKind.VALIDATION, INVALID_NOTE,
                                  f"The {field} note cannot contain the {ch!r} character.",
                                  field=field, value=note)
    if not note.strip():
        return Result.success(BLANK_NOTE)
    return Result.success(note)


def overall_score(scores: Sequence[int]) -> float:
    return sum(scores) / 5.0


class RatingEngine:
    """Five-criterion ratings of owned books. Append-only: no update path."""

    def __init__(self, catalog: Catalog, libraries: LibraryStore, storage: Storage,
                 locks: Optional[KeyedLock] = None) -> None:
        self.catalog = catalog
        self.libraries = libraries
        self.storage = storage
        self._locks = locks or KeyedLock()

    def _validate_inputs(self, scores: Sequence[int], notes: Sequence[Optional[str]],
                         final_note: Optional[str]) -> Result[Tuple[tuple, tuple, str]]:
        if scores is None or len(scores) != len(CRITERIA):
            return Result.failure(ErrorKind.VALIDATION, INVALID_SCORE,
                                  f"Exactly {len(CRITERIA)} scores are required.", field="scores", value=scores)
        if notes is None or len(notes) != len(CRITERIA):
            return Result.failure(ErrorKind.VALIDATION, INVALID_NOTE,
                                  f"Exactly {len(CRITERIA)} notes are required.", field="notes", value=notes)
        checked_scores = []
        for criterion, score in zip(CRITERIA, scores):
            checked = validate_score(score, criterion)
            if not checked.ok:
                return Result(error=checked.error)
            checked_scores.append(checked.value)
        checked_notes = []
        for criterion, note in zip(CRITERIA, notes):
            checked = normalize_note(note, criterion)
            if not checked.ok:
                return Result(error=checked.error)
            checked_notes.append(checked.value)
        final = normalize_note(final_note, "overall")
        if not final.ok:
            return Result(error=final.error)
        return Result.success((tuple(checked_scores), tuple(checked_notes), final.value))

    def rate_book(self, owner_id: str, library_id: str, book_id: int, scores: Sequence[int],
                  notes: Sequence[Optional[str]], final_note: Optional[str] = "") -> Result[Rating]:
        found = self.catalog.find_by_id(book_id)
        if not found.ok:
            return Result(error=found.error)
        book_id = found.value.id
        try:
            library = self.libraries.get_library(owner_id, library_id)
            owned = library is not None and self.libraries.is_book_owned(owner_id, book_id)
        except StorageError as exc:
            return storage_failure(exc)
        if library is None:
            return not_found("Library", library_id, field="library_id")
        library_id = library.name
        if not owned:
            return Result.failure(ErrorKind.NOT_OWNED, NOT_OWNED,
                                  "You can only rate books that are in one of your libraries.",
                                  field="book_id", value=book_id)

        key = self.storage.rating_key(owner_id, library_id, book_id)
        with self._locks.hold(("rating",) + key):
            try:
                if self.storage.get_rating(owner_id, library_id, book_id) is not None:
                    return self._already_rated(owner_id, book_id)
                checked = self._validate_inputs(scores, notes, final_note)
                if not checked.ok:
                    return Result(error=checked.error)
                checked_scores, checked_notes, final = checked.value
                rating = Rating(
                    owner_id=owner_id,
                    library_id=library_id,
                    book_id=book_id,
                    scores=checked_scores,
                    notes=checked_notes,
                    overall=overall_score(checked_scores),
                    overall_note=final,
                )
                self.storage.insert_rating(rating)
            except DuplicateKeyError:
                return self._already_rated(owner_id, book_id)
            except StorageError as exc:
                logger.error("Could not save rating of book %s by %s: %s", book_id, owner_id, exc)
                return storage_failure(exc)
        logger.info("%s rated book %s (overall %.2f)", owner_id, book_id, rating.overall)
        return Result.success(rating)

    @staticmethod
    def _already_rated(owner_id: str, book_id: int) -> Result[Rating]:
        logger.info("%s already rated book %s", owner_id, book_id)
        return Result.failure(ErrorKind.CONFLICT, ALREADY_RATED, "You have already rated this book.",
                              field="book_id", value=book_id)
