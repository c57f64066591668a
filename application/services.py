from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional

from application.validation import validate_credential, validate_user
from domain.errors import (
    AccountError,
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from domain.models import Credential, User
from domain.repositories import CredentialRepository, Database, UserRepository

logger = logging.getLogger(__name__)


class AccountService:
    """
    Owns every operation that touches users and credentials.

    Each public method runs as one unit of work on a single connection:
    validation happens before the store is touched, invariant checks and
    writes share the transaction, and any failure rolls the whole unit
    back before the error reaches the caller. Driver exceptions leave this
    class as `ConflictError` (constraint violations) or `PersistenceError`.

    The uniqueness pre-checks are best-effort; the UNIQUE constraints on
    `users.username` and `users.email` are what actually enforce them.
    """

    def __init__(
        self,
        database: Database,
        credential_repo: CredentialRepository,
        user_repo: UserRepository,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._database = database
        self._credential_repo = credential_repo
        self._user_repo = user_repo
        self._clock = clock

    @contextmanager
    def _unit_of_work(self, operation: str, write: bool = True) -> Iterator[Any]:
        scope = self._database.transaction() if write else self._database.connection()
        try:
            with scope as conn:
                yield conn
        except AccountError:
            raise
        except self._database.integrity_error as exc:
            logger.warning("%s rejected by a database constraint: %s", operation, exc)
            raise ConflictError(f"{operation} rejected by a database constraint: {exc}") from exc
        except self._database.database_error as exc:
            logger.error("%s failed", operation, exc_info=True)
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    # --- Users ---

    def create_with_credential(self, user: User, credential: Credential) -> User:
        """
        Store a new user together with the credential it owns.

        The credential is inserted first, its id becomes the user's foreign
        key, then the user is inserted. Either both rows are committed or
        neither is.
        """

        now = self._clock()
        validate_credential(credential, now)
        if user is not None:
            user.credential = credential
        validate_user(user, now)

        if credential.last_changed is None:
            credential.last_changed = now
        if user.registered_at is None:
            user.registered_at = now

        try:
            with self._unit_of_work("Create user") as conn:
                if self._user_repo.exists_username(conn, user.username):
                    raise ConflictError(f"Username '{user.username}' is already taken.")
                if self._user_repo.exists_email(conn, user.email):
                    raise ConflictError(f"Email '{user.email}' is already registered.")

                self._credential_repo.create(conn, credential)
                self._user_repo.create(conn, user)
        except AccountError:
            # The rows were rolled back; do not hand out their ids.
            credential.meta.id = None
            user.meta.id = None
            raise

        logger.info("Created user %s with credential %s", user.id, credential.id)
        return user

    def update(self, user: User) -> User:
        """Persist username, email, active flag and registration time of an existing user."""

        validate_user(user, self._clock())
        if user.id is None:
            raise ValidationError("id", "an existing user id is required.")

        with self._unit_of_work("Update user") as conn:
            existing = self._user_repo.get_by_id(conn, user.id)
            if existing is None:
                raise NotFoundError(f"No user with id {user.id}.")

            other = self._user_repo.find_by_username(conn, user.username)
            if other is not None and other.id != user.id:
                raise ConflictError(f"Username '{user.username}' is already taken.")
            other = self._user_repo.find_by_email(conn, user.email)
            if other is not None and other.id != user.id:
                raise ConflictError(f"Email '{user.email}' is already registered.")

            if user.registered_at is None:
                user.registered_at = existing.registered_at
            if not self._user_repo.update(conn, user):
                raise NotFoundError(f"No user with id {user.id}.")
            updated = self._user_repo.get_by_id(conn, user.id)

        logger.info("Updated user %s", user.id)
        return updated

    def delete_cascading(self, user_id: int) -> None:
        """
        Soft-delete a user and the credential it owns in one transaction.

        The user goes first, so by the time the credential is flagged no
        live user references it.
        """

        with self._unit_of_work("Delete user") as conn:
            user = self._user_repo.get_by_id(conn, user_id)
            if user is None:
                raise NotFoundError(f"No user with id {user_id}.")
            if user.credential is None or user.credential.id is None:
                raise DataIntegrityError(f"User {user_id} does not own a credential.")

            if not self._user_repo.soft_delete(conn, user_id):
                raise NotFoundError(f"No user with id {user_id}.")
            if not self._credential_repo.soft_delete(conn, user.credential.id):
                raise DataIntegrityError(
                    f"Credential {user.credential.id} of user {user_id} was already deleted."
                )

        logger.info("Deleted user %s and credential %s", user_id, user.credential.id)

    def set_active(self, user_id: int, active: bool) -> User:
        operation = "Activate user" if active else "Deactivate user"
        with self._unit_of_work(operation) as conn:
            user = self._user_repo.get_by_id(conn, user_id)
            if user is None:
                raise NotFoundError(f"No user with id {user_id}.")
            user.active = active
            if not self._user_repo.update(conn, user):
                raise NotFoundError(f"No user with id {user_id}.")

        logger.info("%s %s", operation, user_id)
        return user

    def activate(self, user_id: int) -> User:
        return self.set_active(user_id, True)

    def deactivate(self, user_id: int) -> User:
        return self.set_active(user_id, False)

    def get_user(self, user_id: int, include_deleted: bool = False) -> Optional[User]:
        """Return the user, or None. `include_deleted` also returns soft-deleted rows."""

        with self._unit_of_work("Read user", write=False) as conn:
            return self._user_repo.get_by_id(conn, user_id, include_deleted=include_deleted)

    def list_users(self) -> List[User]:
        with self._unit_of_work("List users", write=False) as conn:
            return self._user_repo.get_all(conn)

    def find_by_username(self, username: str) -> Optional[User]:
        with self._unit_of_work("Find user by username", write=False) as conn:
            return self._user_repo.find_by_username(conn, username)

    def find_by_email(self, email: str) -> Optional[User]:
        with self._unit_of_work("Find user by email", write=False) as conn:
            return self._user_repo.find_by_email(conn, email)

    # --- Credentials ---

    def create_credential(self, credential: Credential) -> Credential:
        now = self._clock()
        validate_credential(credential, now)
        if credential.last_changed is None:
            credential.last_changed = now

        try:
            with self._unit_of_work("Create credential") as conn:
                self._credential_repo.create(conn, credential)
        except AccountError:
            credential.meta.id = None
            raise

        logger.info("Created credential %s", credential.id)
        return credential

    def update_credential(self, credential: Credential) -> Credential:
        """
        Overwrite a stored credential. A new hash or salt counts as a
        password rotation: the change time is stamped and the reset flag
        cleared, exactly as `change_password` does.
        """

        now = self._clock()
        validate_credential(credential, now)
        if credential.id is None:
            raise ValidationError("id", "an existing credential id is required.")

        with self._unit_of_work("Update credential") as conn:
            existing = self._credential_repo.get_by_id(conn, credential.id)
            if existing is None:
                raise NotFoundError(f"No credential with id {credential.id}.")
            rotated = (
                credential.password_hash != existing.password_hash
                or credential.salt != existing.salt
            )
            if rotated:
                credential.last_changed = now
                credential.reset_required = False
            elif credential.last_changed is None:
                credential.last_changed = existing.last_changed
            if not self._credential_repo.update(conn, credential):
                raise NotFoundError(f"No credential with id {credential.id}.")

        logger.info("Updated credential %s", credential.id)
        return credential

    def change_password(self, credential_id: int, new_hash: str, new_salt: str) -> Credential:
        """
        Replace hash and salt, stamp the change time and clear the reset flag.
        """

        now = self._clock()
        validate_credential(Credential(password_hash=new_hash, salt=new_salt), now)

        with self._unit_of_work("Change password") as conn:
            credential = self._credential_repo.get_by_id(conn, credential_id)
            if credential is None:
                raise NotFoundError(f"No credential with id {credential_id}.")

            credential.password_hash = new_hash
            credential.salt = new_salt
            credential.last_changed = now
            credential.reset_required = False
            if not self._credential_repo.update(conn, credential):
                raise NotFoundError(f"No credential with id {credential_id}.")

        logger.info("Changed password of credential %s", credential_id)
        return credential

    def delete_credential(self, credential_id: int) -> None:
        """
        Soft-delete a credential nobody uses. A credential owned by a live
        user is refused with `ConflictError`; use `delete_cascading` instead.
        """

        with self._unit_of_work("Delete credential") as conn:
            if self._credential_repo.get_by_id(conn, credential_id) is None:
                raise NotFoundError(f"No credential with id {credential_id}.")
            if self._credential_repo.is_referenced(conn, credential_id):
                logger.warning("Refused to delete credential %s: still owned by a user", credential_id)
                raise ConflictError(
                    f"Credential {credential_id} belongs to a user; delete the user instead."
                )
            if not self._credential_repo.soft_delete(conn, credential_id):
                raise NotFoundError(f"No credential with id {credential_id}.")

        logger.info("Deleted credential %s", credential_id)

    def get_credential(self, credential_id: int, include_deleted: bool = False) -> Optional[Credential]:
        with self._unit_of_work("Read credential", write=False) as conn:
            return self._credential_repo.get_by_id(conn, credential_id, include_deleted=include_deleted)

    def list_credentials(self) -> List[Credential]:
        with self._unit_of_work("List credentials", write=False) as conn:
            return self._credential_repo.get_all(conn)
