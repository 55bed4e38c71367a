"""Plain records shared by the engines and the storage backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

from .book import Book

CRITERIA: Tuple[str, ...] = ("stile", "contenuto", "gradevolezza", "originalita", "edizione")


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


@dataclass(frozen=True)
class User:
    user_id: str
    name: str
    surname: str
    tax_code: str
    email: str
    password: str

    def to_dict(self, include_password: bool = False) -> dict:
        data = {
            "user_id": self.user_id,
            "name": self.name,
            "surname": self.surname,
            "tax_code": self.tax_code,
            "email": self.email,
        }
        if include_password:
            data["password"] = self.password
        return data


@dataclass(frozen=True)
class Library:
    owner_id: str
    name: str
    book_ids: FrozenSet[int]
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "book_ids", frozenset(int(b) for b in self.book_ids))

    def contains(self, book_id: int) -> bool:
        return int(book_id) in self.book_ids

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "name": self.name,
            "book_ids": sorted(self.book_ids),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Rating:
    owner_id: str
    library_id: str
    book_id: int
    scores: Tuple[int, int, int, int, int]
    notes: Tuple[str, str, str, str, str]
    overall: float
    overall_note: str
    created_at: datetime = field(default_factory=_now)

    @property
    def key(self) -> Tuple[str, str, int]:
        return (self.owner_id, self.library_id, self.book_id)

    def score(self, criterion: str) -> int:
        return self.scores[CRITERIA.index(criterion)]

    def note(self, criterion: str) -> str:
        return self.notes[CRITERIA.index(criterion)]

    def to_dict(self) -> dict:
        data: dict = {
            "owner_id": self.owner_id,
            "library_id": self.library_id,
            "book_id": self.book_id,
        }
        for name, score, note in zip(CRITERIA, self.scores, self.notes):
            data[name] = score
            data[f"{name}_note"] = note
        data["overall"] = self.overall
        data["overall_note"] = self.overall_note
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class Recommendation:
    owner_id: str
    library_id: str
    read_book_id: int
    recommended_book_id: int
    comment: str = ""
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "library_id": self.library_id,
            "read_book_id": self.read_book_id,
            "recommended_book_id": self.recommended_book_id,
            "comment": self.comment,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RejectedCandidate:
    book_id: int
    reason: str  # "self", "duplicate", "not_found" or "limit"


@dataclass(frozen=True)
class RecommendationOutcome:
    accepted: List[Recommendation]
    rejected: List[RejectedCandidate]
    existing: int

    @property
    def accepted_ids(self) -> List[int]:
        return [r.recommended_book_id for r in self.accepted]


@dataclass(frozen=True)
class RatingSummary:
    book_id: int
    count: int
    means: Dict[str, float]
    overall: float
    sample_notes: Dict[str, str]
    overall_note: str

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "count": self.count,
            "means": dict(self.means),
            "overall": self.overall,
            "sample_notes": dict(self.sample_notes),
            "overall_note": self.overall_note,
        }


@dataclass(frozen=True)
class BookDetail:
    book: Book
    summary: Optional[RatingSummary]
    recommended: List[Tuple[Book, int]]
