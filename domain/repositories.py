from __future__ import annotations

from typing import Any, ContextManager, List, Optional, Protocol, Type, TypeVar

from .models import Credential, User

T = TypeVar("T")


class Database(Protocol):
    """
    Connection-scoped persistence backend.

    `transaction()` yields a connection inside an open transaction; it
    commits when the block exits cleanly, rolls back when it raises, and
    closes the connection either way. `connection()` yields a connection
    for reads only and always closes it.

    `integrity_error` and `database_error` name the driver's exception
    classes so the application layer can classify failures without
    importing a driver.
    """

    integrity_error: Type[Exception]
    database_error: Type[Exception]

    def transaction(self) -> ContextManager[Any]:
        ...

    def connection(self) -> ContextManager[Any]:
        ...


class Repository(Protocol[T]):
    """
    The five persistence operations every entity store offers.

    Each call runs on the connection passed in, so several stores can take
    part in the same transaction. Reads skip soft-deleted rows.
    """

    def create(self, conn: Any, entity: T) -> int:
        """Insert `entity`, return the generated id and assign it to the entity."""

        ...

    def update(self, conn: Any, entity: T) -> bool:
        """Persist `entity`. Return False when no live row matched its id."""

        ...

    def soft_delete(self, conn: Any, entity_id: int) -> bool:
        """Flag the row as deleted. Return False when no live row matched."""

        ...

    def get_by_id(self, conn: Any, entity_id: int, include_deleted: bool = False) -> Optional[T]:
        ...

    def get_all(self, conn: Any) -> List[T]:
        ...


class CredentialRepository(Repository[Credential], Protocol):
    def is_referenced(self, conn: Any, credential_id: int) -> bool:
        """Return True when a live user owns the credential."""

        ...


class UserRepository(Repository[User], Protocol):
    """
    User persistence. Every user returned carries its credential; a user
    whose credential cannot be resolved is reported as an integrity error.
    """

    def find_by_username(self, conn: Any, username: str) -> Optional[User]:
        ...

    def find_by_email(self, conn: Any, email: str) -> Optional[User]:
        ...

    def exists_username(self, conn: Any, username: str) -> bool:
        ...

    def exists_email(self, conn: Any, email: str) -> bool:
        ...
