"""Configuration module for the QingNote data layer."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from qingnote import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the user's data
_USER_ENV = Path.home() / ".qingnote" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class QingNoteConfig(BaseModel):
    """Configuration for the QingNote data layer."""

    # Base directory for all application-private storage
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("QINGNOTE_BASE_DIR", "."))
    )
    # Relational store
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("QINGNOTE_DATABASE_PATH", "data/db/qingnote.db")
        )
    )
    # Note-scoped attachment directories live under here: <dir>/<note_id>/<file>
    attachments_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("QINGNOTE_ATTACHMENTS_DIR", "data/files/attachments")
        )
    )
    # Process-private staging area for attachments of unsaved notes
    staging_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("QINGNOTE_STAGING_DIR", "data/cache/staging")
        )
    )
    avatars_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("QINGNOTE_AVATARS_DIR", "data/files/avatars")
        )
    )
    # Key-value record for the logged-in session
    session_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("QINGNOTE_SESSION_PATH", "data/prefs/session.json")
        )
    )
    # Paging: page size and how many pages ahead to prefetch
    page_size: int = Field(
        default_factory=lambda: int(os.getenv("QINGNOTE_PAGE_SIZE", "20"))
    )
    prefetch_pages: int = Field(
        default_factory=lambda: int(os.getenv("QINGNOTE_PREFETCH_PAGES", "3"))
    )
    # Default admin account inserted when the database file is first created
    bootstrap_admin: bool = Field(
        default_factory=lambda: _env_flag("QINGNOTE_BOOTSTRAP_ADMIN", "true")
    )
    admin_username: str = Field(
        default_factory=lambda: os.getenv("QINGNOTE_ADMIN_USERNAME", "admin")
    )
    admin_password: str = Field(
        default_factory=lambda: os.getenv("QINGNOTE_ADMIN_PASSWORD", "admin123")
    )
    admin_email: str = Field(
        default_factory=lambda: os.getenv("QINGNOTE_ADMIN_EMAIL", "admin@example.com")
    )
    admin_full_name: str = Field(
        default_factory=lambda: os.getenv("QINGNOTE_ADMIN_FULL_NAME", "Administrator")
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("QINGNOTE_LOG_LEVEL", "INFO")
    )
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_paging(self) -> "QingNoteConfig":
        """Validate paging settings."""
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.prefetch_pages < 0:
            raise ValueError("prefetch_pages must be >= 0")
        return self

    @property
    def prefetch_distance(self) -> int:
        """Number of rows to keep loaded ahead of the consumer."""
        return self.page_size * self.prefetch_pages

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_attachments_dir(self) -> Path:
        return self.get_absolute_path(self.attachments_dir)

    def get_staging_dir(self) -> Path:
        return self.get_absolute_path(self.staging_dir)

    def get_avatars_dir(self) -> Path:
        return self.get_absolute_path(self.avatars_dir)

    def get_session_path(self) -> Path:
        return self.get_absolute_path(self.session_path)


# Create a global config instance
config = QingNoteConfig()
