import os
import sqlite3
import tempfile
import unittest
from datetime import datetime

from application.services import AccountService
from domain.errors import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from domain.models import Credential, User
from infrastructure.db.credential_repository_sqlite import SqliteCredentialRepository
from infrastructure.db.database_sqlite import SqliteDatabase
from infrastructure.db.user_repository_sqlite import SqliteUserRepository

NOW = datetime(2024, 5, 1, 12, 0, 0)
LATER = datetime(2024, 6, 1, 9, 30, 0)


class FailingUserRepository:
    """Delegates to a real repository but fails every insert like a broken disk would."""

    def __init__(self, inner: SqliteUserRepository) -> None:
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def create(self, conn, user):
        raise sqlite3.OperationalError("disk I/O error")


class AccountServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.database = SqliteDatabase(os.path.join(self._tmp.name, "accounts.db"))
        self.credential_repo = SqliteCredentialRepository(self.database)
        self.user_repo = SqliteUserRepository(self.database)
        self.now = NOW
        self.service = AccountService(
            self.database, self.credential_repo, self.user_repo, clock=lambda: self.now
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _create(self, username="alice", email="alice@example.com", password_hash="h1", salt="s1"):
        return self.service.create_with_credential(
            User(username=username, email=email),
            Credential(password_hash=password_hash, salt=salt),
        )

    def _count_rows(self, table: str) -> int:
        with self.database.connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    # --- creation ---

    def test_create_returns_stored_pair(self):
        user = self._create()

        self.assertIsNotNone(user.id)
        self.assertIsNotNone(user.credential.id)
        self.assertFalse(user.active)
        self.assertEqual(user.registered_at, NOW)
        self.assertEqual(user.credential.last_changed, NOW)

        stored = self.service.get_user(user.id)
        self.assertEqual(stored.username, "alice")
        self.assertEqual(stored.email, "alice@example.com")
        self.assertEqual(stored.credential.id, user.credential.id)
        self.assertEqual(stored.credential.password_hash, "h1")
        self.assertEqual(stored.credential.salt, "s1")

    def test_duplicate_username_is_rejected_without_new_rows(self):
        self._create()

        with self.assertRaises(ConflictError):
            self._create(email="other@example.com")

        self.assertEqual(len(self.service.list_users()), 1)
        self.assertEqual(len(self.service.list_credentials()), 1)

    def test_duplicate_email_is_rejected(self):
        self._create()

        with self.assertRaises(ConflictError):
            self._create(username="alice2")

        self.assertEqual(self._count_rows("credentials"), 1)

    def test_invalid_input_never_reaches_the_store(self):
        with self.assertRaises(ValidationError) as ctx:
            self._create(username="not valid!")
        self.assertEqual(ctx.exception.field, "username")

        with self.assertRaises(ValidationError) as ctx:
            self._create(password_hash="")
        self.assertEqual(ctx.exception.field, "password_hash")

        self.assertEqual(self._count_rows("credentials"), 0)
        self.assertEqual(self._count_rows("users"), 0)

    def test_failed_user_insert_rolls_back_credential(self):
        service = AccountService(
            self.database,
            self.credential_repo,
            FailingUserRepository(self.user_repo),
            clock=lambda: self.now,
        )
        user = User(username="alice", email="alice@example.com")
        credential = Credential(password_hash="h1", salt="s1")

        with self.assertRaises(PersistenceError):
            service.create_with_credential(user, credential)

        self.assertEqual(self.service.list_credentials(), [])
        self.assertEqual(self._count_rows("credentials"), 0)
        self.assertIsNone(credential.id)
        self.assertIsNone(user.id)

    def test_database_constraint_backs_up_the_uniqueness_check(self):
        # A soft-deleted user no longer counts as taken, but still holds the
        # UNIQUE username in the table.
        first = self._create()
        self.service.delete_cascading(first.id)

        with self.assertRaises(ConflictError):
            self._create(email="new@example.com")

        self.assertEqual(self.service.list_credentials(), [])
        self.assertEqual(self._count_rows("credentials"), 1)
        self.assertEqual(self._count_rows("users"), 1)

    # --- update ---

    def test_update_may_keep_own_username_and_email(self):
        user = self._create()
        user.active = True

        updated = self.service.update(user)

        self.assertTrue(updated.active)
        self.assertEqual(updated.username, "alice")

    def test_update_into_another_users_username_is_rejected(self):
        self._create()
        bob = self._create(username="bob", email="bob@example.com", password_hash="h2", salt="s2")
        bob.username = "alice"

        with self.assertRaises(ConflictError):
            self.service.update(bob)

        self.assertEqual(self.service.get_user(bob.id).username, "bob")

    def test_update_into_another_users_email_is_rejected(self):
        self._create()
        bob = self._create(username="bob", email="bob@example.com", password_hash="h2", salt="s2")
        bob.email = "alice@example.com"

        with self.assertRaises(ConflictError):
            self.service.update(bob)

    def test_update_requires_existing_id(self):
        orphan = User(
            username="ghost",
            email="ghost@example.com",
            credential=Credential(password_hash="h", salt="s"),
        )
        with self.assertRaises(ValidationError):
            self.service.update(orphan)

        orphan.meta.id = 999
        with self.assertRaises(NotFoundError):
            self.service.update(orphan)

    # --- deletion ---

    def test_delete_cascading_hides_both_rows_but_keeps_history(self):
        user = self._create()
        credential_id = user.credential.id

        self.service.delete_cascading(user.id)

        self.assertIsNone(self.service.get_user(user.id))
        self.assertIsNone(self.service.get_credential(credential_id))
        self.assertEqual(self.service.list_users(), [])
        self.assertIsNone(self.service.find_by_username("alice"))

        archived = self.service.get_user(user.id, include_deleted=True)
        self.assertTrue(archived.deleted)
        self.assertEqual(archived.username, "alice")
        self.assertEqual(archived.email, "alice@example.com")
        archived_credential = self.service.get_credential(credential_id, include_deleted=True)
        self.assertTrue(archived_credential.deleted)
        self.assertEqual(archived_credential.password_hash, "h1")

    def test_delete_cascading_unknown_user(self):
        with self.assertRaises(NotFoundError):
            self.service.delete_cascading(42)

    def test_deleting_an_owned_credential_directly_is_refused(self):
        user = self._create()

        with self.assertRaises(ConflictError):
            self.service.delete_credential(user.credential.id)

        self.assertIsNotNone(self.service.get_credential(user.credential.id))
        self.assertIsNotNone(self.service.get_user(user.id))

    def test_unowned_credential_can_be_deleted(self):
        credential = self.service.create_credential(Credential(password_hash="h9", salt="s9"))

        self.service.delete_credential(credential.id)

        self.assertIsNone(self.service.get_credential(credential.id))
        with self.assertRaises(NotFoundError):
            self.service.delete_credential(credential.id)

    # --- activation and passwords ---

    def test_activate_and_deactivate(self):
        user = self._create()

        self.assertTrue(self.service.activate(user.id).active)
        self.assertTrue(self.service.get_user(user.id).active)
        self.assertFalse(self.service.deactivate(user.id).active)
        self.assertFalse(self.service.get_user(user.id).active)

        with self.assertRaises(NotFoundError):
            self.service.set_active(999, True)

    def test_change_password_clears_reset_flag(self):
        user = self.service.create_with_credential(
            User(username="alice", email="alice@example.com"),
            Credential(password_hash="h1", salt="s1", reset_required=True),
        )
        self.now = LATER

        self.service.change_password(user.credential.id, "h2", "s2")

        credential = self.service.get_user(user.id).credential
        self.assertEqual(credential.password_hash, "h2")
        self.assertEqual(credential.salt, "s2")
        self.assertFalse(credential.reset_required)
        self.assertEqual(credential.last_changed, LATER)

    def test_change_password_validates_and_requires_credential(self):
        user = self._create()

        with self.assertRaises(ValidationError):
            self.service.change_password(user.credential.id, "", "s2")
        with self.assertRaises(NotFoundError):
            self.service.change_password(999, "h2", "s2")

        self.assertEqual(self.service.get_credential(user.credential.id).password_hash, "h1")

    def test_update_credential_with_new_hash_is_a_rotation(self):
        credential = self.service.create_credential(
            Credential(password_hash="h1", salt="s1", reset_required=True)
        )
        self.now = LATER
        credential.password_hash = "h2"

        self.service.update_credential(credential)

        stored = self.service.get_credential(credential.id)
        self.assertEqual(stored.password_hash, "h2")
        self.assertFalse(stored.reset_required)
        self.assertEqual(stored.last_changed, LATER)

    def test_update_credential_with_new_salt_is_a_rotation(self):
        credential = self.service.create_credential(
            Credential(password_hash="h1", salt="s1", reset_required=True)
        )
        self.now = LATER
        credential.salt = "s2"

        self.service.update_credential(credential)

        stored = self.service.get_credential(credential.id)
        self.assertFalse(stored.reset_required)
        self.assertEqual(stored.last_changed, LATER)

    def test_update_credential_flag_only_keeps_last_changed(self):
        credential = self.service.create_credential(Credential(password_hash="h1", salt="s1"))
        self.now = LATER
        credential.reset_required = True
        credential.last_changed = None

        self.service.update_credential(credential)

        stored = self.service.get_credential(credential.id)
        self.assertTrue(stored.reset_required)
        self.assertEqual(stored.last_changed, NOW)

    # --- lookups ---

    def test_lookup_by_username_and_email_is_exact(self):
        user = self._create()

        self.assertEqual(self.service.find_by_username("alice").id, user.id)
        self.assertEqual(self.service.find_by_email("alice@example.com").id, user.id)
        self.assertIsNone(self.service.find_by_username("ali"))
        self.assertIsNone(self.service.find_by_email("example.com"))

    def test_user_with_deleted_credential_is_an_integrity_error(self):
        user = self._create()
        # Bypass the service, the way a careless direct store call would.
        with self.database.transaction() as conn:
            self.credential_repo.soft_delete(conn, user.credential.id)

        with self.assertRaises(DataIntegrityError):
            self.service.get_user(user.id)


if __name__ == "__main__":
    unittest.main()
