import logging
from typing import Optional

from .config import settings
from .errors import (
    DUPLICATE_USER,
    INVALID_USER,
    DuplicateKeyError,
    ErrorKind,
    Result,
    StorageError,
    not_found,
    storage_failure,
)
from .models import User
from .records import FIELD_DELIMITER
from .storage.base import Storage, read_with_retry

logger = logging.getLogger(__name__)

TAX_CODE_LENGTH = 16
MIN_PASSWORD_LENGTH = 6


class UserValidator:
    """Registration checks for the account fields."""

    @staticmethod
    def _invalid(field: str, message: str, value: object = None) -> Result[User]:
        return Result.failure(ErrorKind.VALIDATION, INVALID_USER, message, field=field, value=value)

    @classmethod
    def validate(cls, user: User) -> Result[User]:
        fields = {
            "user_id": user.user_id,
            "name": user.name,
            "surname": user.surname,
            "tax_code": user.tax_code,
            "email": user.email,
            "password": user.password,
        }
        for field, value in fields.items():
            if not (value or "").strip():
                return cls._invalid(field, f"The {field} field is required.", value)
            for ch in (FIELD_DELIMITER, "\n", "\r"):
                if ch in value:
                    return cls._invalid(field, f"The {field} field cannot contain {ch!r}.", value)
        if len(user.tax_code.strip()) != TAX_CODE_LENGTH:
            return cls._invalid("tax_code", f"The tax code must be {TAX_CODE_LENGTH} characters long.",
                                user.tax_code)
        if "@" not in user.email:
            return cls._invalid("email", "The email address is not valid.", user.email)
        if len(user.password) < MIN_PASSWORD_LENGTH:
            # never echo the password back
            return cls._invalid("password",
                                f"The password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        return Result.success(User(
            user_id=user.user_id.strip(),
            name=user.name.strip(),
            surname=user.surname.strip(),
            tax_code=user.tax_code.strip().upper(),
            email=user.email.strip(),
            password=user.password,
        ))


class UserDirectory:
    """Registered accounts: sign up, sign in and lookup by handle."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def register(self, user: User) -> Result[User]:
        checked = UserValidator.validate(user)
        if not checked.ok:
            return checked
        user = checked.value
        try:
            self.storage.insert_user(user)
        except DuplicateKeyError:
            logger.info("Registration refused for %s: already registered", user.user_id)
            return Result.failure(ErrorKind.CONFLICT, DUPLICATE_USER,
                                  "User id, email or tax code is already registered.",
                                  field="user_id", value=user.user_id)
        except StorageError as exc:
            logger.error("Could not register %s: %s", user.user_id, exc)
            return storage_failure(exc)
        logger.info("Registered user %s", user.user_id)
        return Result.success(user)

    def find_by_handle(self, handle: str) -> Optional[User]:
        """Look a user up by user id, email or tax code."""
        handle = (handle or "").strip()
        if not handle:
            return None
        return read_with_retry(self.storage.find_user, handle, retries=settings.storage_read_retries)

    def exists(self, handle: str) -> bool:
        return self.find_by_handle(handle) is not None

    def authenticate(self, handle: str, password: str) -> Result[User]:
        try:
            user = self.find_by_handle(handle)
        except StorageError as exc:
            return storage_failure(exc)
        if user is None:
            return not_found("User", handle, field="handle")
        if user.password != password:
            logger.info("Wrong password for %s", user.user_id)
            return Result.failure(ErrorKind.VALIDATION, INVALID_USER, "Wrong password.", field="password")
        return Result.success(user)

    def delete(self, user_id: str) -> bool:
        removed = self.storage.delete_user(user_id)
        if removed:
            logger.info("Deleted user %s", user_id)
        return removed
