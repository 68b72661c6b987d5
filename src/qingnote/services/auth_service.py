"""Account flows: login, registration, password management and profile edits.

Usage:
    auth = AuthService(UserRepository(), SessionStore())
    result = auth.register("alice", "pw123456", "alice@x.com")
    if isinstance(result, RegistrationFailure):
        print(result.message)
    user = auth.login("alice", "pw123456")
"""
import logging
from pathlib import Path
from typing import BinaryIO, Optional, Union

from qingnote.exceptions import (ErrorCode, PasswordChangeResult,
                                 RegistrationFailure, ValidationError)
from qingnote.models.schema import User
from qingnote.observability import traced
from qingnote.passwords import verify_password
from qingnote.storage.session_store import SessionStore
from qingnote.storage.user_repository import UserRepository
from qingnote.validation import is_email_valid, is_username_valid

logger = logging.getLogger(__name__)


def _check_username(username: str) -> None:
    if not is_username_valid(username):
        raise ValidationError(
            "Username must be 3-20 letters, digits or underscores",
            field="username",
            value=username,
            code=ErrorCode.INVALID_USERNAME,
        )


def _check_email(email: str) -> None:
    if not is_email_valid(email):
        raise ValidationError(
            "Invalid email address",
            field="email",
            value=email,
            code=ErrorCode.INVALID_EMAIL,
        )


class AuthService:
    """Account operations on top of the user repository and session store."""

    def __init__(self, users: UserRepository, session: SessionStore):
        self.users = users
        self.session = session

    @traced("auth.login")
    def login(self, username: str, password: str) -> Optional[User]:
        """Verify credentials and record the session. None on failure."""
        if not username or not password:
            return None
        user = self.users.login(username, password)
        if user is None:
            return None
        self.session.save_user(user)
        logger.info(f"User {user.id} logged in")
        return user

    @traced("auth.register")
    def register(self, username: str, password: str, email: str) -> Union[int, RegistrationFailure]:
        """Create an account.

        Raises:
            ValidationError: If the username or email is malformed.

        Returns:
            The new user id, or the ``RegistrationFailure`` explaining the rejection.
        """
        _check_username(username)
        _check_email(email)
        return self.users.register(User(username=username, email=email, password=password or ""))

    @traced("auth.reset_password")
    def reset_password(self, username: str, email: str, new_password: str) -> bool:
        """Set a new password when ``username`` and ``email`` belong to the same account."""
        if not username or not email or not new_password:
            return False
        user = self.users.get_by_username(username)
        if user is None or user.email != email:
            logger.info(f"Password reset rejected for {username}")
            return False
        return self.users.update_password(username, new_password)

    @traced("auth.change_password")
    def change_password(self, current_password: str, new_password: str) -> PasswordChangeResult:
        """Change the logged-in user's password and end the session.

        The current password is not checked when none is stored yet.
        """
        session_user = self.session.get_current_user()
        if session_user is None:
            return PasswordChangeResult.USER_NOT_FOUND
        user = self.users.get_by_username(session_user.username)
        if user is None:
            return PasswordChangeResult.USER_NOT_FOUND

        if user.password and not verify_password(current_password, user.password):
            return PasswordChangeResult.INCORRECT_PASSWORD

        if not self.users.update_password(user.username, new_password):
            return PasswordChangeResult.UPDATE_FAILED

        self.session.logout()
        logger.info(f"Password changed for user {user.id}")
        return PasswordChangeResult.CHANGED

    @traced("auth.update_profile")
    def update_profile(
        self,
        username: str,
        email: str,
        full_name: Optional[str],
        avatar_source: Optional[Union[str, Path, BinaryIO]] = None,
    ) -> bool:
        """Edit the logged-in user's profile, optionally replacing the avatar."""
        _check_username(username)
        _check_email(email)

        current = self.session.get_current_user()
        if current is None or current.id is None:
            return False
        user = self.users.get_by_id(current.id)
        if user is None:
            return False

        changes = {"username": username, "email": email, "full_name": full_name}
        if avatar_source is not None:
            avatar_path = self.users.upload_avatar(avatar_source).result()
            if avatar_path is None:
                return False
            changes["avatar_url"] = avatar_path

        updated = user.model_copy(update=changes)
        if not self.users.update_user(updated).result():
            return False
        self.session.save_user(updated)
        return True

    def logout(self) -> None:
        self.session.logout()

    def is_logged_in(self) -> bool:
        return self.session.is_logged_in()

    def current_user(self) -> Optional[User]:
        return self.session.get_current_user()
