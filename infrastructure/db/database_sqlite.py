from __future__ import annotations

import logging
import sqlite3
from contextlib import closing, contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class SqliteDatabase:
    """
    SQLite-backed connection source for the account stores.

    A fresh connection is opened per unit of work with foreign keys
    enforced. The `sqlite3` module opens the transaction implicitly on the
    first write; this class decides whether it is committed or rolled back.
    """

    integrity_error = sqlite3.IntegrityError
    database_error = sqlite3.Error

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with closing(self.connect()) as conn:
            logger.debug("begin transaction on %s", self._db_path)
            try:
                yield conn
            except BaseException:
                conn.rollback()
                logger.debug("rolled back transaction on %s", self._db_path)
                raise
            conn.commit()
            logger.debug("committed transaction on %s", self._db_path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        with closing(self.connect()) as conn:
            yield conn
