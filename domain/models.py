from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class RecordMeta:
    """
    Identity and soft-delete state shared by every persisted record.

    Embedded in each entity rather than inherited, so the entities stay
    plain dataclasses with no common base type.
    """

    id: Optional[int] = None
    deleted: bool = False


@dataclass
class Credential:
    """
    Access credential owned by exactly one user.

    `password_hash` and `salt` are opaque, already-computed values supplied
    by the caller; nothing here hashes or verifies passwords. The credential
    holds no reference back to its owner.
    """

    password_hash: str
    salt: str
    last_changed: Optional[datetime] = None
    reset_required: bool = False
    meta: RecordMeta = field(default_factory=RecordMeta)

    @property
    def id(self) -> Optional[int]:
        return self.meta.id

    @property
    def deleted(self) -> bool:
        return self.meta.deleted


@dataclass
class User:
    """
    Account identity. Holds the foreign key to its `Credential`, which is
    always resolved eagerly when read from a store.
    """

    username: str
    email: str
    active: bool = False
    registered_at: Optional[datetime] = None
    credential: Optional[Credential] = None
    meta: RecordMeta = field(default_factory=RecordMeta)

    @property
    def id(self) -> Optional[int]:
        return self.meta.id

    @property
    def deleted(self) -> bool:
        return self.meta.deleted
