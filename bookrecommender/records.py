"""Line formats of the legacy data files.

Catalog: ``id,title,"authors","description","categories","publisher",price,month,year``
(commas inside double quotes do not split; quotes are dropped; no other escaping).

Libraries, ratings and recommendations are ``;`` separated records with no
escaping at all, which is why notes and names may not contain ``;``.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional

from .book import Book
from .models import Library, Rating, Recommendation, User

logger = logging.getLogger(__name__)

FIELD_DELIMITER = ";"
CATALOG_FIELDS = 9
RATING_FIELDS = 14


class RecordFormatError(ValueError):
    pass


# ------------------------- Catalog ------------------------- #
def split_catalog_line(line: str) -> List[str]:
    """Split on commas that are outside double quotes."""
    fields: List[str] = []
    current: List[str] = []
    quoted = False
    for ch in line:
        if ch == '"':
            quoted = not quoted
        elif ch == "," and not quoted:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
    fields.append("".join(current))
    return fields


def parse_catalog_line(line: str) -> Optional[Book]:
    fields = split_catalog_line(line.rstrip("\r\n"))
    if len(fields) != CATALOG_FIELDS:
        return None
    try:
        book_id = int(fields[0].strip())
    except ValueError:
        return None
    return Book(
        id=book_id,
        title=fields[1],
        authors=fields[2],
        description=fields[3],
        categories=fields[4],
        publisher=fields[5],
        price=fields[6],
        month=fields[7],
        year=fields[8],
    )


def read_catalog(lines: Iterable[str]) -> Iterator[Book]:
    skipped = 0
    for line in lines:
        if not line.strip():
            continue
        book = parse_catalog_line(line)
        if book is None:
            skipped += 1
            continue
        yield book
    if skipped:
        logger.warning("Skipped %d malformed catalog rows", skipped)


# ------------------------- Libraries ------------------------- #
def format_id_list(book_ids: Iterable[int]) -> str:
    return "[" + ", ".join(str(i) for i in sorted(book_ids)) + "]"


def parse_id_list(raw: str) -> List[int]:
    ids: List[int] = []
    for part in raw.split(","):
        part = part.replace("[", "").replace("]", "").strip()
        if part:
            ids.append(int(part))
    return ids


def encode_library(library: Library) -> str:
    return FIELD_DELIMITER.join([library.owner_id, library.name, format_id_list(library.book_ids)])


def decode_library(line: str) -> Library:
    fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
    if len(fields) != 3:
        raise RecordFormatError(f"library record needs 3 fields, got {len(fields)}")
    try:
        book_ids = parse_id_list(fields[2])
    except ValueError as exc:
        raise RecordFormatError(f"bad book id list {fields[2]!r}") from exc
    return Library(owner_id=fields[0].strip(), name=fields[1].strip(), book_ids=frozenset(book_ids))


# ------------------------- Ratings ------------------------- #
def encode_rating(rating: Rating) -> str:
    parts = [rating.owner_id, str(rating.book_id)]
    for score, note in zip(rating.scores, rating.notes):
        parts.append(str(score))
        parts.append(note)
    parts.append(f"{rating.overall:f}")
    parts.append(rating.overall_note)
    return FIELD_DELIMITER.join(parts)


def decode_rating(line: str, library_id: str = "") -> Rating:
    fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
    if len(fields) != RATING_FIELDS:
        raise RecordFormatError(f"rating record needs {RATING_FIELDS} fields, got {len(fields)}")
    try:
        scores = tuple(int(fields[i]) for i in range(2, 12, 2))
        notes = tuple(fields[i] for i in range(3, 12, 2))
        # Older files were written with a locale decimal comma
        overall = float(fields[12].replace(",", "."))
        book_id = int(fields[1])
    except ValueError as exc:
        raise RecordFormatError(f"bad numeric field in rating record: {exc}") from exc
    return Rating(
        owner_id=fields[0].strip(),
        library_id=library_id,
        book_id=book_id,
        scores=scores,  # type: ignore[arg-type]
        notes=notes,  # type: ignore[arg-type]
        overall=overall,
        overall_note=fields[13],
    )


# ------------------------- Recommendations ------------------------- #
def encode_recommendation(rec: Recommendation) -> str:
    return FIELD_DELIMITER.join([rec.owner_id, str(rec.read_book_id), str(rec.recommended_book_id)])


def decode_recommendation(line: str, library_id: str = "") -> Recommendation:
    fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
    if len(fields) != 3:
        raise RecordFormatError(f"recommendation record needs 3 fields, got {len(fields)}")
    try:
        read_id = int(fields[1].strip())
        rec_id = int(fields[2].strip())
    except ValueError as exc:
        raise RecordFormatError(f"bad book id in recommendation record: {exc}") from exc
    return Recommendation(owner_id=fields[0].strip(), library_id=library_id,
                          read_book_id=read_id, recommended_book_id=rec_id)


# ------------------------- Users ------------------------- #
def encode_user(user: User) -> str:
    return FIELD_DELIMITER.join([user.name, user.surname, user.tax_code, user.email,
                                 user.user_id, user.password])


def decode_user(line: str) -> User:
    fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
    if len(fields) != 6:
        raise RecordFormatError(f"user record needs 6 fields, got {len(fields)}")
    return User(name=fields[0], surname=fields[1], tax_code=fields[2], email=fields[3],
                user_id=fields[4], password=fields[5])
