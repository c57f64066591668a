from __future__ import annotations

import logging
from contextlib import closing, contextmanager
from typing import Iterator

import psycopg2

logger = logging.getLogger(__name__)


class PostgresDatabase:
    """
    Postgres-backed connection source for the account stores.

    psycopg2 opens a transaction on the first statement of a connection, so
    a unit of work is simply one connection that is committed or rolled
    back and then closed.
    """

    integrity_error = psycopg2.IntegrityError
    database_error = psycopg2.Error

    def __init__(self, db_params: dict) -> None:
        self._db_params = db_params

    def connect(self):
        return psycopg2.connect(**self._db_params)

    @contextmanager
    def transaction(self) -> Iterator["psycopg2.extensions.connection"]:
        with closing(self.connect()) as conn:
            logger.debug("begin transaction on %s", self._db_params.get("dbname"))
            try:
                yield conn
            except BaseException:
                conn.rollback()
                logger.debug("rolled back transaction on %s", self._db_params.get("dbname"))
                raise
            conn.commit()
            logger.debug("committed transaction on %s", self._db_params.get("dbname"))

    @contextmanager
    def connection(self) -> Iterator["psycopg2.extensions.connection"]:
        # Closing discards the implicit read transaction.
        with closing(self.connect()) as conn:
            yield conn
