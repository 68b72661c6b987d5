"""Repository for user accounts."""
import logging
from concurrent.futures import Future
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union

from qingnote.exceptions import RegistrationFailure
from qingnote.models.schema import User
from qingnote.passwords import hash_password, verify_password
from qingnote.storage.attachment_storage import AttachmentStorage
from qingnote.storage.database import Database, get_database
from qingnote.storage.live_query import LiveQuery
from qingnote.storage.serial_executor import (Dispatcher, SerialExecutor,
                                              capture_dispatcher)

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "example.com"
PLACEHOLDER_PASSWORD = "password"


class UserRepository:
    """User access with all writes serialized on one background worker.

    Reads returning ``LiveQuery`` bypass the worker. ``register`` and
    ``update_password`` run on the worker too and block for the outcome, so
    they must not be called from inside a task of this repository.

    Args:
        database: Store to use; defaults to the shared database.
        storage: File storage for avatars.
        main_dispatcher: Runs callbacks when the caller has no asyncio loop.
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        storage: Optional[AttachmentStorage] = None,
        main_dispatcher: Optional[Dispatcher] = None,
    ):
        self.database = database or get_database()
        self.dao = self.database.users
        self._storage = storage
        self._main_dispatcher = main_dispatcher
        self._worker = SerialExecutor("qingnote-users")
        logger.info("UserRepository initialized")

    @property
    def storage(self) -> AttachmentStorage:
        if self._storage is None:
            self._storage = AttachmentStorage()
        return self._storage

    # -- writes ------------------------------------------------------------

    def insert(self, user: User) -> "Future[int]":
        return self._worker.submit(self.dao.insert, user, operation="user.insert")

    def update(self, user: User) -> "Future[bool]":
        return self._worker.submit(self.dao.update, user, operation="user.update")

    def delete(self, user: User) -> "Future[bool]":
        return self._worker.submit(self.dao.delete, user, operation="user.delete")

    def update_user(self, user: User, callback: Optional[Callable[[bool], None]] = None) -> Future:
        """Persist ``user`` and report success to ``callback`` in the caller's context."""
        dispatch = capture_dispatcher(self._main_dispatcher)

        def task() -> bool:
            try:
                ok = self.dao.update(user)
            except Exception as e:
                logger.error(f"Failed to update user {user.id}: {e}", exc_info=True)
                ok = False
            if callback is not None:
                dispatch(lambda: callback(ok))
            return ok

        return self._worker.submit(task, operation="user.update_user")

    def upload_avatar(
        self,
        source: Union[str, Path, BinaryIO],
        callback: Optional[Callable[[Optional[str]], None]] = None,
    ) -> Future:
        """Store an avatar image; ``callback`` gets its path or None on failure."""
        dispatch = capture_dispatcher(self._main_dispatcher)

        def task() -> Optional[str]:
            stored = self.storage.store_avatar(source)
            if callback is not None:
                dispatch(lambda: callback(stored))
            return stored

        return self._worker.submit(task, operation="user.upload_avatar")

    def ensure_user_exists(self, user_id: int, username: Optional[str] = None) -> "Future[bool]":
        """Insert a placeholder user with ``user_id`` unless one exists.

        The future resolves to True when a placeholder was created.
        """
        def task() -> bool:
            if self.dao.get_by_id(user_id) is not None:
                return False
            name = username or f"user{user_id}"
            self.dao.insert(User(
                id=user_id,
                username=name,
                email=f"{name}@{PLACEHOLDER_EMAIL_DOMAIN}",
                password=hash_password(PLACEHOLDER_PASSWORD) or "",
            ))
            logger.info(f"Created placeholder user {user_id} ({name})")
            return True

        return self._worker.submit(task, operation="user.ensure_exists")

    def register_async(self, user: User) -> "Future[Union[int, RegistrationFailure]]":
        """Queue a registration; resolves to the new id or a ``RegistrationFailure``.

        ``user.password`` is the plaintext password; it is hashed before storage.
        """
        return self._worker.submit(self._register, user, operation="user.register")

    def register(self, user: User) -> Union[int, RegistrationFailure]:
        return self.register_async(user).result()

    def _register(self, user: User) -> Union[int, RegistrationFailure]:
        try:
            if self.dao.get_by_username(user.username) is not None:
                logger.info(f"Registration rejected, username taken: {user.username}")
                return RegistrationFailure.USERNAME_TAKEN
            if self.dao.get_by_email(user.email) is not None:
                logger.info(f"Registration rejected, email taken for {user.username}")
                return RegistrationFailure.EMAIL_TAKEN
            if not user.password:
                return RegistrationFailure.EMPTY_PASSWORD

            hashed = hash_password(user.password)
            if hashed is None:
                return RegistrationFailure.HASH_FAILURE

            user_id = self.dao.insert(user.model_copy(update={"id": None, "password": hashed}))
            logger.info(f"Registered user {user.username} with id {user_id}")
            return user_id
        except Exception as e:
            logger.error(f"Registration of {user.username} failed: {e}", exc_info=True)
            return RegistrationFailure.UNKNOWN_ERROR

    def update_password(self, username: str, new_password: str) -> bool:
        """Hash and store a new password; False if the user is missing or hashing fails."""
        return self._worker.submit(
            self._update_password, username, new_password, operation="user.update_password"
        ).result()

    def _update_password(self, username: str, new_password: str) -> bool:
        user = self.dao.get_by_username(username)
        if user is None:
            logger.info(f"Password update for unknown user {username}")
            return False
        hashed = hash_password(new_password)
        if hashed is None:
            return False
        return self.dao.update(user.model_copy(update={"password": hashed}))

    # -- reads -------------------------------------------------------------

    def login(self, username: str, password: str) -> Optional[User]:
        """Return the user if ``password`` verifies against the stored hash."""
        user = self.get_by_username(username)
        if user is None:
            return None
        if verify_password(password, user.password):
            return user
        logger.info(f"Login failed for {username}")
        return None

    def get_by_id_live(self, user_id: int) -> LiveQuery[Optional[User]]:
        return self.dao.observe_by_id(user_id)

    def get_by_username_live(self, username: str) -> LiveQuery[Optional[User]]:
        return self.dao.observe_by_username(username)

    def get_by_email_live(self, email: str) -> LiveQuery[Optional[User]]:
        return self.dao.observe_by_email(email)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.dao.get_by_id(user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        try:
            return self.dao.get_by_username(username)
        except Exception as e:
            logger.error(f"Lookup of user {username} failed: {e}", exc_info=True)
            return None

    def get_by_email(self, email: str) -> Optional[User]:
        try:
            return self.dao.get_by_email(email)
        except Exception as e:
            logger.error(f"Lookup by email failed: {e}", exc_info=True)
            return None

    @staticmethod
    def hash_password_for_user(password: str) -> Optional[str]:
        return hash_password(password)

    # -- lifecycle ---------------------------------------------------------

    def drain(self, timeout: Optional[float] = 10.0) -> None:
        """Wait for every queued write to finish."""
        self._worker.drain(timeout)

    def close(self) -> None:
        self._worker.shutdown()
