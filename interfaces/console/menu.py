from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

from application.services import AccountService
from domain.errors import AccountError, NotFoundError, ValidationError
from domain.models import Credential, User
from interfaces.console.prompts import Prompter

MENU_TEXT = """
=== USER ACCOUNTS ===
 1. Create user with credential
 2. List users
 3. Find user by id
 4. Find user by username
 5. Find user by email
 6. Update user
 7. Delete user
 8. Activate user
 9. Deactivate user
=== CREDENTIALS ===
10. Create credential
11. List credentials
12. Find credential by id
13. Update credential
14. Delete credential
15. Change password
 0. Exit
"""


def format_credential(credential: Credential) -> str:
    # Hash and salt are never echoed.
    return (
        f"Credential #{credential.id}: last changed {credential.last_changed}, "
        f"reset required: {'yes' if credential.reset_required else 'no'}"
    )


def format_user(user: User) -> str:
    credential_id = user.credential.id if user.credential else None
    return (
        f"User #{user.id}: {user.username} <{user.email}>, "
        f"active: {'yes' if user.active else 'no'}, registered {user.registered_at}, "
        f"credential #{credential_id}"
    )


class ConsoleMenu:
    """
    Text menu over `AccountService`.

    This is the only place an `AccountError` becomes a message; the error
    kind decides the prefix but is never reinterpreted.
    """

    def __init__(
        self,
        service: AccountService,
        read_line: Callable[[str], str] = input,
        write: Callable[[str], None] = print,
    ) -> None:
        self._service = service
        self._write = write
        self._prompt = Prompter(read_line, write)
        self._actions: Dict[str, Tuple[str, Callable[[], None]]] = {
            "1": ("create user", self.create_user),
            "2": ("list users", self.list_users),
            "3": ("find user", self.find_user_by_id),
            "4": ("find user", self.find_user_by_username),
            "5": ("find user", self.find_user_by_email),
            "6": ("update user", self.update_user),
            "7": ("delete user", self.delete_user),
            "8": ("activate user", lambda: self.set_active(True)),
            "9": ("deactivate user", lambda: self.set_active(False)),
            "10": ("create credential", self.create_credential),
            "11": ("list credentials", self.list_credentials),
            "12": ("find credential", self.find_credential_by_id),
            "13": ("update credential", self.update_credential),
            "14": ("delete credential", self.delete_credential),
            "15": ("change password", self.change_password),
        }

    def run(self) -> None:
        while True:
            self._write(MENU_TEXT)
            try:
                choice = self._prompt.read_optional("Choose an option: ")
                if choice == "0":
                    self._write("Bye.")
                    return
                if not self.dispatch(choice):
                    self._write(f"Unknown option: {choice}")
            except EOFError:
                # Input closed mid-session.
                return

    def dispatch(self, choice: str) -> bool:
        """Run the action bound to `choice`. Return False for an unknown option."""

        entry = self._actions.get(choice)
        if entry is None:
            return False
        label, action = entry
        try:
            action()
        except AccountError as exc:
            self._report(label, exc)
        return True

    def _report(self, label: str, exc: AccountError) -> None:
        if isinstance(exc, ValidationError):
            self._write(f"Validation: {exc}")
        elif isinstance(exc, NotFoundError):
            self._write(f"Warning: {exc}")
        else:
            self._write(f"Error: could not {label}: {exc}")

    def _show_user(self, user: Optional[User], missing: str) -> None:
        if user is None:
            self._write(f"Warning: {missing}")
        else:
            self._write(format_user(user))

    # --- Users ---

    def create_user(self) -> None:
        username = self._prompt.read_text("Username: ")
        email = self._prompt.read_text("Email: ")
        active = self._prompt.read_bool("Active?")
        self._write("--- Credential ---")
        password_hash = self._prompt.read_text("Password hash: ")
        salt = self._prompt.read_text("Salt: ")
        reset_required = self._prompt.read_bool("Require password reset?")

        user = self._service.create_with_credential(
            User(username=username, email=email, active=active),
            Credential(password_hash=password_hash, salt=salt, reset_required=reset_required),
        )
        self._write(f"Created user #{user.id}.")
        self._write(format_user(user))

    def list_users(self) -> None:
        users = self._service.list_users()
        if not users:
            self._write("No users registered.")
            return
        self._write(f"Total users: {len(users)}")
        for user in users:
            self._write(format_user(user))

    def find_user_by_id(self) -> None:
        user_id = self._prompt.read_int("User id: ")
        self._show_user(self._service.get_user(user_id), f"no user with id {user_id}.")

    def find_user_by_username(self) -> None:
        username = self._prompt.read_text("Username: ")
        self._show_user(self._service.find_by_username(username), f"no user named {username}.")

    def find_user_by_email(self) -> None:
        email = self._prompt.read_text("Email: ")
        self._show_user(self._service.find_by_email(email), f"no user with email {email}.")

    def update_user(self) -> None:
        user_id = self._prompt.read_int("User id: ")
        user = self._service.get_user(user_id)
        if user is None:
            self._write(f"Warning: no user with id {user_id}.")
            return

        self._write(format_user(user))
        self._write("Enter new values (blank keeps the current one).")
        username = self._prompt.read_optional(f"Username [{user.username}]: ")
        if username:
            user.username = username
        email = self._prompt.read_optional(f"Email [{user.email}]: ")
        if email:
            user.email = email
        if self._prompt.confirm("Change activation?"):
            user.active = self._prompt.read_bool("Active?")

        if not self._prompt.confirm("Save changes?"):
            self._write("Update cancelled.")
            return
        self._write(format_user(self._service.update(user)))
        self._write("User updated.")

    def delete_user(self) -> None:
        user_id = self._prompt.read_int("User id: ")
        if not self._prompt.confirm(f"Delete user #{user_id} and its credential?"):
            self._write("Delete cancelled.")
            return
        self._service.delete_cascading(user_id)
        self._write(f"User #{user_id} deleted.")

    def set_active(self, active: bool) -> None:
        user_id = self._prompt.read_int("User id: ")
        user = self._service.set_active(user_id, active)
        self._write(f"User #{user.id} is now {'active' if user.active else 'inactive'}.")

    # --- Credentials ---

    def create_credential(self) -> None:
        password_hash = self._prompt.read_text("Password hash: ")
        salt = self._prompt.read_text("Salt: ")
        reset_required = self._prompt.read_bool("Require password reset?")
        credential = self._service.create_credential(
            Credential(password_hash=password_hash, salt=salt, reset_required=reset_required)
        )
        self._write(f"Created credential #{credential.id}.")

    def list_credentials(self) -> None:
        credentials = self._service.list_credentials()
        if not credentials:
            self._write("No credentials stored.")
            return
        self._write(f"Total credentials: {len(credentials)}")
        for credential in credentials:
            self._write(format_credential(credential))

    def find_credential_by_id(self) -> None:
        credential_id = self._prompt.read_int("Credential id: ")
        credential = self._service.get_credential(credential_id)
        if credential is None:
            self._write(f"Warning: no credential with id {credential_id}.")
        else:
            self._write(format_credential(credential))

    def update_credential(self) -> None:
        credential_id = self._prompt.read_int("Credential id: ")
        credential = self._service.get_credential(credential_id)
        if credential is None:
            self._write(f"Warning: no credential with id {credential_id}.")
            return

        self._write(format_credential(credential))
        password_hash = self._prompt.read_optional("Password hash (blank keeps it): ")
        if password_hash:
            credential.password_hash = password_hash
        salt = self._prompt.read_optional("Salt (blank keeps it): ")
        if salt:
            credential.salt = salt
        if not password_hash and not salt:
            credential.reset_required = self._prompt.read_bool("Require password reset?")
        # A new hash or salt is a rotation; the service clears the reset flag.
        self._service.update_credential(credential)
        self._write("Credential updated.")

    def delete_credential(self) -> None:
        credential_id = self._prompt.read_int("Credential id: ")
        self._service.delete_credential(credential_id)
        self._write(f"Credential #{credential_id} deleted.")

    def change_password(self) -> None:
        credential_id = self._prompt.read_int("Credential id: ")
        password_hash = self._prompt.read_text("New password hash: ")
        salt = self._prompt.read_text("New salt: ")
        self._service.change_password(credential_id, password_hash, salt)
        self._write("Password changed.")


def create_console_menu(
    service: AccountService,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> ConsoleMenu:
    """Build the console menu bound to the given service and I/O functions."""

    return ConsoleMenu(service, read_line=read_line, write=write)
