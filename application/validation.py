from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from domain.errors import ValidationError
from domain.models import Credential, User

USERNAME_MAX_LENGTH = 30
EMAIL_MAX_LENGTH = 120
PASSWORD_HASH_MAX_LENGTH = 255
SALT_MAX_LENGTH = 64

_USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_]+")
_EMAIL_PATTERN = re.compile(r"[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def _require_text(value: Optional[str], field: str, max_length: int) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, "must not be empty.")
    if len(value) > max_length:
        raise ValidationError(field, f"must be at most {max_length} characters.")
    return value


def _require_not_future(value: Optional[datetime], field: str, now: datetime) -> None:
    if value is None:
        return
    # Stored timestamps are naive local time.
    if value.tzinfo is not None and value.utcoffset() is not None:
        raise ValidationError(field, "must be a naive local timestamp.")
    if value > now:
        raise ValidationError(field, "must not be in the future.")


def validate_user(
    user: Optional[User],
    now: Optional[datetime] = None,
    require_credential: bool = True,
) -> None:
    """
    Check a user's fields. Raises `ValidationError` naming the first bad field.

    Uniqueness needs a query and is left to `AccountService`.
    """

    if user is None:
        raise ValidationError("user", "must not be null.")
    now = now or datetime.now()

    username = _require_text(user.username, "username", USERNAME_MAX_LENGTH)
    if not _USERNAME_PATTERN.fullmatch(username):
        raise ValidationError("username", "may only contain letters, digits and underscores.")

    email = _require_text(user.email, "email", EMAIL_MAX_LENGTH)
    if not _EMAIL_PATTERN.fullmatch(email):
        raise ValidationError("email", "is not a valid address.")

    _require_not_future(user.registered_at, "registered_at", now)

    if require_credential and user.credential is None:
        raise ValidationError("credential", "a user must own a credential.")


def validate_credential(credential: Optional[Credential], now: Optional[datetime] = None) -> None:
    """Check a credential's fields. Raises `ValidationError` naming the first bad field."""

    if credential is None:
        raise ValidationError("credential", "must not be null.")
    now = now or datetime.now()

    _require_text(credential.password_hash, "password_hash", PASSWORD_HASH_MAX_LENGTH)
    _require_text(credential.salt, "salt", SALT_MAX_LENGTH)
    _require_not_future(credential.last_changed, "last_changed", now)
