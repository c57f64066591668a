from __future__ import annotations

from contextlib import closing
from datetime import datetime
from typing import Any, List, Optional, Sequence

from domain.models import Credential, RecordMeta
from domain.repositories import CredentialRepository


def to_db_time(value: datetime) -> str:
    return value.isoformat(sep=" ")


def from_db_time(value: Any) -> datetime:
    # SQLite hands back the ISO text we stored; other drivers return datetimes.
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class BaseCredentialRepository(CredentialRepository):
    """
    Driver-neutral part of the credential stores: statements, row mapping
    and the operations themselves.

    Statements use `?` placeholders; a backend adapts them in `_sql`,
    reads generated ids back in `_insert`, converts timestamps in
    `_to_db_time` and creates its own table in `_ensure_table`.
    Deletes are soft: the row is flagged and kept, and every read except
    the include-deleted lookup skips it.
    """

    INSERT_SQL = """
        INSERT INTO credentials (password_hash, salt, last_changed, reset_required, deleted)
        VALUES (?, ?, ?, ?, ?)
    """
    UPDATE_SQL = """
        UPDATE credentials
        SET password_hash = ?, salt = ?, last_changed = ?, reset_required = ?
        WHERE id = ? AND deleted = FALSE
    """
    SOFT_DELETE_SQL = "UPDATE credentials SET deleted = TRUE WHERE id = ? AND deleted = FALSE"
    SELECT_BASE = "SELECT id, deleted, password_hash, salt, last_changed, reset_required FROM credentials "
    SELECT_BY_ID_SQL = SELECT_BASE + "WHERE id = ? AND deleted = FALSE"
    SELECT_ANY_BY_ID_SQL = SELECT_BASE + "WHERE id = ?"
    SELECT_ALL_SQL = SELECT_BASE + "WHERE deleted = FALSE ORDER BY id"
    COUNT_REFERENCES_SQL = "SELECT COUNT(*) FROM users WHERE credential_id = ? AND deleted = FALSE"

    def _ensure_table(self) -> None:
        raise NotImplementedError

    def _sql(self, sql: str) -> str:
        raise NotImplementedError

    def _insert(self, conn: Any, sql: str, params: Sequence[Any]) -> int:
        raise NotImplementedError

    def _to_db_time(self, value: datetime) -> Any:
        raise NotImplementedError

    @staticmethod
    def to_domain(row: Sequence[Any]) -> Credential:
        """Map `id, deleted, password_hash, salt, last_changed, reset_required`."""

        return Credential(
            password_hash=row[2],
            salt=row[3],
            last_changed=from_db_time(row[4]),
            reset_required=bool(row[5]),
            meta=RecordMeta(id=int(row[0]), deleted=bool(row[1])),
        )

    def create(self, conn: Any, credential: Credential) -> int:
        if credential.last_changed is None:
            credential.last_changed = datetime.now()
        new_id = self._insert(
            conn,
            self.INSERT_SQL,
            (
                credential.password_hash,
                credential.salt,
                self._to_db_time(credential.last_changed),
                credential.reset_required,
                credential.deleted,
            ),
        )
        credential.meta.id = new_id
        return new_id

    def update(self, conn: Any, credential: Credential) -> bool:
        with closing(conn.cursor()) as cur:
            cur.execute(
                self._sql(self.UPDATE_SQL),
                (
                    credential.password_hash,
                    credential.salt,
                    self._to_db_time(credential.last_changed),
                    credential.reset_required,
                    credential.id,
                ),
            )
            return cur.rowcount > 0

    def soft_delete(self, conn: Any, credential_id: int) -> bool:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(self.SOFT_DELETE_SQL), (credential_id,))
            return cur.rowcount > 0

    def get_by_id(self, conn: Any, credential_id: int, include_deleted: bool = False) -> Optional[Credential]:
        sql = self.SELECT_ANY_BY_ID_SQL if include_deleted else self.SELECT_BY_ID_SQL
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(sql), (credential_id,))
            row = cur.fetchone()
            if not row:
                return None
            return self.to_domain(row)

    def get_all(self, conn: Any) -> List[Credential]:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(self.SELECT_ALL_SQL))
            return [self.to_domain(row) for row in cur.fetchall()]

    def is_referenced(self, conn: Any, credential_id: int) -> bool:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(self.COUNT_REFERENCES_SQL), (credential_id,))
            row = cur.fetchone()
            return bool(row and row[0] > 0)
