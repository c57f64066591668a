from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from infrastructure.db.credential_repository_base import BaseCredentialRepository
from infrastructure.db.database_postgres import PostgresDatabase


class PostgresCredentialRepository(BaseCredentialRepository):
    """
    Postgres-backed implementation of `CredentialRepository`.

    Statements are translated to the psycopg2 `%s` parameter style,
    generated ids are read back through `RETURNING id` and timestamps are
    stored in native TIMESTAMP columns.
    """

    def __init__(self, database: PostgresDatabase) -> None:
        self._database = database
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._database.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS credentials (
                        id BIGSERIAL PRIMARY KEY,
                        deleted BOOLEAN NOT NULL DEFAULT FALSE,
                        password_hash VARCHAR(255) NOT NULL,
                        salt VARCHAR(64) NOT NULL,
                        last_changed TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                        reset_required BOOLEAN NOT NULL DEFAULT FALSE
                    )
                    """
                )

    def _sql(self, sql: str) -> str:
        return sql.replace("?", "%s")

    def _insert(self, conn: Any, sql: str, params: Sequence[Any]) -> int:
        with conn.cursor() as cur:
            cur.execute(self._sql(sql.rstrip()) + " RETURNING id", params)
            return int(cur.fetchone()[0])

    def _to_db_time(self, value: datetime) -> Any:
        return value
