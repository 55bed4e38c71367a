"""Read-only statistics over ratings and recommendations."""

import logging
import random
from collections import Counter
from typing import Dict, List, Optional, Tuple

from .book import Book
from .catalog import Catalog
from .config import settings
from .errors import Result, StorageError, storage_failure
from .models import CRITERIA, BookDetail, Rating, RatingSummary
from .storage.base import Storage, read_with_retry

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Means, sampled notes and suggestion tallies for a book.

    Means are deterministic. Each sample note is drawn independently and
    uniformly from the book's ratings, so two runs over the same data may
    show different notes; pass a seeded ``random.Random`` to pin them.
    """

    def __init__(self, catalog: Catalog, storage: Storage, rng: Optional[random.Random] = None) -> None:
        self.catalog = catalog
        self.storage = storage
        self.rng = rng or random.Random(settings.seed)

    def _read(self, read, *args):
        return read_with_retry(read, *args, retries=settings.storage_read_retries)

    # ------------------------- Ratings ------------------------- #
    def full_rating_detail(self, book_id: int) -> List[Rating]:
        return self._read(self.storage.ratings_for_book, int(book_id))

    def aggregate_ratings(self, book_id: int) -> Optional[RatingSummary]:
        """Return ``None`` when the book has never been rated."""
        ratings = self.full_rating_detail(book_id)
        if not ratings:
            return None
        count = len(ratings)
        means: Dict[str, float] = {}
        samples: Dict[str, str] = {}
        for index, criterion in enumerate(CRITERIA):
            means[criterion] = sum(r.scores[index] for r in ratings) / count
            samples[criterion] = self.rng.choice(ratings).notes[index]
        overall = sum(r.overall for r in ratings) / count
        overall_note = self.rng.choice(ratings).overall_note
        return RatingSummary(
            book_id=int(book_id),
            count=count,
            means=means,
            overall=overall,
            sample_notes=samples,
            overall_note=overall_note,
        )

    # ------------------------- Recommendations ------------------------- #
    def recommendation_frequency(self, read_book_id: int) -> Dict[int, int]:
        records = self._read(self.storage.recommendations_for_read_book, int(read_book_id))
        return dict(Counter(r.recommended_book_id for r in records))

    def most_recommended(self, read_book_id: int, limit: Optional[int] = None) -> List[Tuple[Book, int]]:
        tally = self.recommendation_frequency(read_book_id)
        ranked = sorted(tally.items(), key=lambda item: (-item[1], item[0]))
        result: List[Tuple[Book, int]] = []
        for book_id, count in ranked:
            book = self.catalog.get(book_id)
            if book is None:
                logger.warning("Suggested book %s is no longer cataloged", book_id)
                continue
            result.append((book, count))
        return result[:limit] if limit is not None else result

    # ------------------------- Detail view ------------------------- #
    def book_detail(self, book_id: int) -> Result[BookDetail]:
        found = self.catalog.find_by_id(book_id)
        if not found.ok:
            return Result(error=found.error)
        book = found.value
        try:
            summary = self.aggregate_ratings(book.id)
            recommended = self.most_recommended(book.id)
        except StorageError as exc:
            logger.error("Could not load detail of book %s: %s", book.id, exc)
            return storage_failure(exc)
        return Result.success(BookDetail(book=book, summary=summary, recommended=recommended))
