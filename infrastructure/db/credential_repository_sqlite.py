from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime
from typing import Any, Sequence

from infrastructure.db.credential_repository_base import BaseCredentialRepository, to_db_time
from infrastructure.db.database_sqlite import SqliteDatabase


class SqliteCredentialRepository(BaseCredentialRepository):
    """
    SQLite-backed implementation of `CredentialRepository`.

    Owns the `credentials` table and is self-initialising. Timestamps are
    stored as ISO-8601 text.
    """

    def __init__(self, database: SqliteDatabase) -> None:
        self._database = database
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._database.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS credentials (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    deleted BOOLEAN NOT NULL DEFAULT FALSE,
                    password_hash VARCHAR(255) NOT NULL,
                    salt VARCHAR(64) NOT NULL,
                    last_changed TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    reset_required BOOLEAN NOT NULL DEFAULT FALSE
                )
                """
            )

    def _sql(self, sql: str) -> str:
        return sql

    def _insert(self, conn: sqlite3.Connection, sql: str, params: Sequence[Any]) -> int:
        with closing(conn.cursor()) as cur:
            cur.execute(sql, params)
            return int(cur.lastrowid)

    def _to_db_time(self, value: datetime) -> Any:
        return to_db_time(value)
