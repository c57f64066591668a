from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from infrastructure.db.database_postgres import PostgresDatabase
from infrastructure.db.user_repository_base import BaseUserRepository


class PostgresUserRepository(BaseUserRepository):
    """
    Postgres-backed implementation of `UserRepository`.

    Uses the psycopg2 `%s` parameter style and `RETURNING id`. The
    credentials table must exist first because of the foreign key.
    """

    def __init__(self, database: PostgresDatabase) -> None:
        self._database = database
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._database.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS users (
                        id BIGSERIAL PRIMARY KEY,
                        deleted BOOLEAN NOT NULL DEFAULT FALSE,
                        username VARCHAR(30) NOT NULL UNIQUE,
                        email VARCHAR(120) NOT NULL UNIQUE,
                        active BOOLEAN NOT NULL DEFAULT FALSE,
                        registered_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                        credential_id BIGINT NOT NULL UNIQUE,
                        CONSTRAINT fk_users_credentials FOREIGN KEY (credential_id)
                            REFERENCES credentials (id) ON DELETE CASCADE ON UPDATE CASCADE
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
