"""Durable record of the logged-in user.

The record keeps a full JSON snapshot of the ``User`` next to flattened
fields (id, username, email, full name). If the snapshot cannot be parsed
the flattened fields still rebuild a partial user.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from qingnote.config import config
from qingnote.models.schema import User

logger = logging.getLogger(__name__)

KEY_IS_LOGGED_IN = "is_logged_in"
KEY_USER_ID = "user_id"
KEY_USERNAME = "username"
KEY_EMAIL = "email"
KEY_FULL_NAME = "full_name"
KEY_USER = "user"

NO_USER_ID = -1


class SessionStore:
    """JSON file backed key-value record for the session.

    Writes go to a temporary file that then replaces the record, so a crash
    leaves either the old or the new state.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else config.get_session_path()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Session record unreadable, treating as logged out: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=".session_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def create_login_session(
        self,
        user_id: int,
        username: str,
        email: str,
        full_name: Optional[str] = None,
    ) -> None:
        """Record a login from individual fields (no user snapshot)."""
        with self._lock:
            data = self._read()
            data.update({
                KEY_IS_LOGGED_IN: True,
                KEY_USER_ID: user_id,
                KEY_USERNAME: username,
                KEY_EMAIL: email,
                KEY_FULL_NAME: full_name,
            })
            self._write(data)
        logger.info(f"Session created for user {user_id}")

    def save_user(self, user: User) -> None:
        """Record ``user`` as logged in, snapshot and flattened fields."""
        with self._lock:
            self._write({
                KEY_IS_LOGGED_IN: True,
                KEY_USER_ID: user.id if user.id is not None else NO_USER_ID,
                KEY_USERNAME: user.username,
                KEY_EMAIL: user.email,
                KEY_FULL_NAME: user.full_name,
                KEY_USER: user.model_dump_json(),
            })
        logger.debug(f"Session saved for user {user.id}")

    def get_current_user(self) -> Optional[User]:
        with self._lock:
            data = self._read()
        if not data.get(KEY_IS_LOGGED_IN):
            return None

        snapshot = data.get(KEY_USER)
        if snapshot:
            try:
                return User.model_validate_json(snapshot)
            except PydanticValidationError as e:
                logger.warning(f"Session user snapshot invalid, using stored fields: {e}")

        user_id = data.get(KEY_USER_ID, NO_USER_ID)
        username = data.get(KEY_USERNAME)
        if user_id == NO_USER_ID or username is None:
            return None
        return User(
            id=user_id,
            username=username,
            email=data.get(KEY_EMAIL) or "",
            full_name=data.get(KEY_FULL_NAME),
        )

    def is_logged_in(self) -> bool:
        with self._lock:
            return bool(self._read().get(KEY_IS_LOGGED_IN, False))

    def get_user_id(self) -> int:
        with self._lock:
            return self._read().get(KEY_USER_ID, NO_USER_ID)

    def get_username(self) -> Optional[str]:
        with self._lock:
            return self._read().get(KEY_USERNAME)

    def get_email(self) -> Optional[str]:
        with self._lock:
            return self._read().get(KEY_EMAIL)

    def get_full_name(self) -> Optional[str]:
        with self._lock:
            return self._read().get(KEY_FULL_NAME)

    def logout(self) -> None:
        """Clear the whole record."""
        with self._lock:
            self._write({})
        logger.info("Session cleared")
