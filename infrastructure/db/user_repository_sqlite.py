from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime
from typing import Any, Sequence

from infrastructure.db.credential_repository_base import to_db_time
from infrastructure.db.database_sqlite import SqliteDatabase
from infrastructure.db.user_repository_base import BaseUserRepository


class SqliteUserRepository(BaseUserRepository):
    """
    SQLite-backed implementation of `UserRepository`.

    Owns the `users` table and is self-initialising. The credentials table
    must exist first because of the foreign key.
    """

    def __init__(self, database: SqliteDatabase) -> None:
        self._database = database
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._database.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    deleted BOOLEAN NOT NULL DEFAULT FALSE,
                    username VARCHAR(30) NOT NULL UNIQUE,
                    email VARCHAR(120) NOT NULL UNIQUE,
                    active BOOLEAN NOT NULL DEFAULT FALSE,
                    registered_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    credential_id INTEGER NOT NULL UNIQUE
                        REFERENCES credentials (id) ON DELETE CASCADE ON UPDATE CASCADE
                )
                """
            )

    def _sql(self, sql: str) -> str:
        return sql

    def _insert(self, conn: sqlite3.Connection, sql: str, params: Sequence[Any]) -> int:
        with closing(conn.cursor()) as cur:
            cur.execute(self._sql(sql), params)
            return int(cur.lastrowid)

    def _to_db_time(self, value: datetime) -> Any:
        return to_db_time(value)
