from __future__ import annotations

from contextlib import closing
from datetime import datetime
from typing import Any, List, Optional, Sequence

from domain.errors import DataIntegrityError
from domain.models import RecordMeta, User
from domain.repositories import UserRepository
from infrastructure.db.credential_repository_base import BaseCredentialRepository, from_db_time


class BaseUserRepository(UserRepository):
    """
    Driver-neutral part of the user stores.

    Maps joined user/credential rows to the `User` domain model. The
    credential reference is written once, on insert. Backends supply the
    same `_ensure_table`, `_sql`, `_insert` and `_to_db_time` hooks as
    `BaseCredentialRepository`.
    """

    INSERT_SQL = """
        INSERT INTO users (username, email, active, registered_at, credential_id, deleted)
        VALUES (?, ?, ?, ?, ?, ?)
    """
    UPDATE_SQL = """
        UPDATE users
        SET username = ?, email = ?, active = ?, registered_at = ?
        WHERE id = ? AND deleted = FALSE
    """
    SOFT_DELETE_SQL = "UPDATE users SET deleted = TRUE WHERE id = ? AND deleted = FALSE"
    SELECT_BASE = """
        SELECT u.id, u.deleted, u.username, u.email, u.active, u.registered_at, u.credential_id,
               c.id, c.deleted, c.password_hash, c.salt, c.last_changed, c.reset_required
        FROM users u
        LEFT JOIN credentials c ON u.credential_id = c.id
    """
    SELECT_BY_ID_SQL = SELECT_BASE + " WHERE u.id = ? AND u.deleted = FALSE"
    SELECT_ANY_BY_ID_SQL = SELECT_BASE + " WHERE u.id = ?"
    SELECT_ALL_SQL = SELECT_BASE + " WHERE u.deleted = FALSE ORDER BY u.id"
    SELECT_BY_USERNAME_SQL = SELECT_BASE + " WHERE u.username = ? AND u.deleted = FALSE"
    SELECT_BY_EMAIL_SQL = SELECT_BASE + " WHERE u.email = ? AND u.deleted = FALSE"
    COUNT_USERNAME_SQL = "SELECT COUNT(*) FROM users WHERE username = ? AND deleted = FALSE"
    COUNT_EMAIL_SQL = "SELECT COUNT(*) FROM users WHERE email = ? AND deleted = FALSE"

    def _ensure_table(self) -> None:
        raise NotImplementedError

    def _sql(self, sql: str) -> str:
        raise NotImplementedError

    def _insert(self, conn: Any, sql: str, params: Sequence[Any]) -> int:
        raise NotImplementedError

    def _to_db_time(self, value: datetime) -> Any:
        raise NotImplementedError

    @staticmethod
    def to_domain(row: Sequence[Any]) -> User:
        user_id, user_deleted, credential_id = int(row[0]), bool(row[1]), row[6]
        if row[7] is None:
            raise DataIntegrityError(
                f"User {user_id} references credential {credential_id}, which does not exist."
            )
        credential = BaseCredentialRepository.to_domain(row[7:13])
        if credential.deleted and not user_deleted:
            raise DataIntegrityError(
                f"User {user_id} references credential {credential_id}, which is deleted."
            )
        return User(
            username=row[2],
            email=row[3],
            active=bool(row[4]),
            registered_at=from_db_time(row[5]),
            credential=credential,
            meta=RecordMeta(id=user_id, deleted=user_deleted),
        )

    def _fetch_one(self, conn: Any, sql: str, params: Sequence[Any]) -> Optional[User]:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(sql), params)
            row = cur.fetchone()
            if not row:
                return None
            return self.to_domain(row)

    def _count(self, conn: Any, sql: str, params: Sequence[Any]) -> int:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(sql), params)
            row = cur.fetchone()
            return int(row[0]) if row else 0

    def create(self, conn: Any, user: User) -> int:
        if user.credential is None or user.credential.id is None:
            raise ValueError("A user can only be stored with an already stored credential.")
        if user.registered_at is None:
            user.registered_at = datetime.now()
        new_id = self._insert(
            conn,
            self.INSERT_SQL,
            (
                user.username,
                user.email,
                user.active,
                self._to_db_time(user.registered_at),
                user.credential.id,
                user.deleted,
            ),
        )
        user.meta.id = new_id
        return new_id

    def update(self, conn: Any, user: User) -> bool:
        with closing(conn.cursor()) as cur:
            cur.execute(
                self._sql(self.UPDATE_SQL),
                (
                    user.username,
                    user.email,
                    user.active,
                    self._to_db_time(user.registered_at),
                    user.id,
                ),
            )
            return cur.rowcount > 0

    def soft_delete(self, conn: Any, user_id: int) -> bool:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(self.SOFT_DELETE_SQL), (user_id,))
            return cur.rowcount > 0

    def get_by_id(self, conn: Any, user_id: int, include_deleted: bool = False) -> Optional[User]:
        sql = self.SELECT_ANY_BY_ID_SQL if include_deleted else self.SELECT_BY_ID_SQL
        return self._fetch_one(conn, sql, (user_id,))

    def get_all(self, conn: Any) -> List[User]:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(self.SELECT_ALL_SQL))
            return [self.to_domain(row) for row in cur.fetchall()]

    def find_by_username(self, conn: Any, username: str) -> Optional[User]:
        return self._fetch_one(conn, self.SELECT_BY_USERNAME_SQL, (username,))

    def find_by_email(self, conn: Any, email: str) -> Optional[User]:
        return self._fetch_one(conn, self.SELECT_BY_EMAIL_SQL, (email,))

    def exists_username(self, conn: Any, username: str) -> bool:
        return self._count(conn, self.COUNT_USERNAME_SQL, (username,)) > 0

    def exists_email(self, conn: Any, email: str) -> bool:
        return self._count(conn, self.COUNT_EMAIL_SQL, (email,)) > 0
