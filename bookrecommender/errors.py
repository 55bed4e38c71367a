"""Typed failures returned by the domain engines.

Engines never raise for domain problems: they hand back a ``Result`` holding
either the committed value or a ``Failure`` describing what went wrong, so
the presentation layer can render a specific message for the offending field.
Storage backends raise ``StorageError`` which the engines convert.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_OWNED = "not_owned"
    STORAGE_FAILURE = "storage_failure"


# Failure codes
NOT_FOUND = "NotFound"
INVALID_NAME = "InvalidName"
EMPTY_LIBRARY = "EmptyLibrary"
DUPLICATE_NAME = "DuplicateName"
INVALID_SCORE = "InvalidScore"
INVALID_NOTE = "InvalidNote"
ALREADY_RATED = "AlreadyRated"
LIMIT_REACHED = "LimitReached"
DUPLICATE_TARGET = "DuplicateTarget"
NOT_OWNED = "NotOwned"
INVALID_USER = "InvalidUser"
DUPLICATE_USER = "DuplicateUser"
STORAGE_FAILURE = "StorageFailure"


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    code: str
    message: str
    field: Optional[str] = None
    value: Any = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "value": self.value,
        }


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising ``ResultError`` when the result is a failure."""
        if self.error is not None:
            raise ResultError(self.error)
        return self.value  # type: ignore[return-value]

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(value=value)

    @staticmethod
    def failure(kind: ErrorKind, code: str, message: str, *, field: Optional[str] = None,
                value: Any = None) -> "Result[Any]":
        return Result(error=Failure(kind=kind, code=code, message=message, field=field, value=value))


def not_found(what: str, value: Any, field: Optional[str] = None) -> Result[Any]:
    return Result.failure(ErrorKind.NOT_FOUND, NOT_FOUND, f"{what} {value} not found.",
                          field=field, value=value)


def storage_failure(exc: Exception) -> Result[Any]:
    return Result.failure(ErrorKind.STORAGE_FAILURE, STORAGE_FAILURE, f"Storage failure: {exc}")


class ResultError(Exception):
    """Raised by ``Result.unwrap`` for callers that prefer exceptions."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure


class StorageError(Exception):
    """I/O or constraint-engine failure inside a storage backend."""


class DuplicateKeyError(StorageError):
    """A uniqueness constraint rejected an insert."""


class CapacityError(StorageError):
    """A batch insert would push a capped key past its limit."""
