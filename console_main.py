import logging
import os

from dotenv import load_dotenv

from application.services import AccountService
from infrastructure.db.credential_repository_postgres import PostgresCredentialRepository
from infrastructure.db.credential_repository_sqlite import SqliteCredentialRepository
from infrastructure.db.database_postgres import PostgresDatabase
from infrastructure.db.database_sqlite import SqliteDatabase
from infrastructure.db.user_repository_postgres import PostgresUserRepository
from infrastructure.db.user_repository_sqlite import SqliteUserRepository
from interfaces.console.menu import create_console_menu


load_dotenv()

DB_BACKEND = os.environ.get("DB_BACKEND", "sqlite")
DB_PATH = os.environ.get("DB_PATH", "accounts.db")
PG_PARAMS = {
    "host": os.environ.get("PG_HOST", "localhost"),
    "port": int(os.environ.get("PG_PORT", "5432")),
    "dbname": os.environ.get("PG_DBNAME", "accounts"),
    "user": os.environ.get("PG_USER", "postgres"),
    "password": os.environ.get("PG_PASSWORD", ""),
}
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_account_service(backend: str = DB_BACKEND) -> AccountService:
    """Wire database, stores and service for the selected backend."""

    if backend == "sqlite":
        sqlite_db = SqliteDatabase(DB_PATH)
        return AccountService(
            sqlite_db,
            SqliteCredentialRepository(sqlite_db),
            SqliteUserRepository(sqlite_db),
        )
    if backend == "postgres":
        postgres_db = PostgresDatabase(PG_PARAMS)
        return AccountService(
            postgres_db,
            PostgresCredentialRepository(postgres_db),
            PostgresUserRepository(postgres_db),
        )
    raise RuntimeError(f"Unsupported DB_BACKEND {backend!r}; expected 'sqlite' or 'postgres'.")


def main() -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    service = build_account_service()
    menu = create_console_menu(service)
    menu.run()


if __name__ == "__main__":
    main()
