from __future__ import annotations


class AccountError(Exception):
    """Base class for every failure surfaced by the account layer."""


class ValidationError(AccountError):
    """A field failed a format, length or presence rule. Raised before any store access."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ConflictError(AccountError):
    """
    The request clashes with existing state: a duplicate username/email,
    a credential still owned by a live user, or a database constraint.
    """


class NotFoundError(AccountError):
    """No live row exists for the requested id."""


class PersistenceError(AccountError):
    """The database driver failed. The unit of work was rolled back."""


class DataIntegrityError(PersistenceError):
    """A stored user could not be paired with a live credential."""
