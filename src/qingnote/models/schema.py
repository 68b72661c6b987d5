"""Data models for the QingNote data layer."""

import datetime
import mimetypes
import os
from datetime import timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Extension -> MIME type for the formats the capture and picker flows produce
MIME_TYPES: Dict[str, str] = {
    # Images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    # Audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "flac": "audio/flac",
    # Video
    "mp4": "video/mp4",
    "3gp": "video/3gpp",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    # Documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    # Archives
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "gz": "application/gzip",
    "7z": "application/x-7z-compressed",
}

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "webp"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "m4a", "aac", "flac"})

UNKNOWN_MIME_TYPE = "*/*"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands DateTime columns back without tzinfo; the stored values
    are always UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def get_file_extension(path: Optional[str]) -> Optional[str]:
    """Extension without the dot, or None when the name has none.

    A leading dot (hidden file) and a trailing dot do not count.
    """
    if not path:
        return None
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    # Drop URI query/fragment suffixes
    name = name.split("?", 1)[0].split("#", 1)[0]
    dot = name.rfind(".")
    if 0 < dot < len(name) - 1:
        return name[dot + 1:]
    return None


def detect_mime_type(path: Optional[str]) -> str:
    """Derive a MIME type from a path or file name's extension."""
    extension = get_file_extension(path)
    if extension is None:
        return UNKNOWN_MIME_TYPE
    extension = extension.lower()
    if extension in MIME_TYPES:
        return MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(f"file.{extension}")
    return guessed or UNKNOWN_MIME_TYPE


class AttachmentType(IntEnum):
    """Kinds of attachment a note can carry."""

    IMAGE = 1
    AUDIO = 2
    FILE = 3

    @property
    def description(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_filename(cls, filename: str) -> "AttachmentType":
        """Classify a file by its extension (images, audio, everything else)."""
        extension = (get_file_extension(filename) or "").lower()
        if extension in IMAGE_EXTENSIONS:
            return cls.IMAGE
        if extension in AUDIO_EXTENSIONS:
            return cls.AUDIO
        return cls.FILE


class User(BaseModel):
    """A registered account."""

    id: Optional[int] = Field(default=None, description="Surrogate key, assigned on insert")
    username: str = Field(..., description="Login name (unique by application check)")
    email: str = Field(default="", description="Contact email (unique by application check)")
    password: str = Field(
        default="", description="Stored credential in base64(salt):base64(hash) form"
    )
    full_name: Optional[str] = Field(default=None, description="Display name")
    avatar_url: Optional[str] = Field(
        default=None, description="URI or local path of the avatar image"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v: Optional[str]) -> str:
        """Normalise a missing password to the empty string."""
        return v if v is not None else ""


class Note(BaseModel):
    """A text note owned by a user."""

    id: Optional[int] = Field(default=None, description="Surrogate key, assigned on insert")
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Free-text body")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last modified (UTC)"
    )
    user_id: int = Field(..., description="Owning user")
    image_path: Optional[str] = Field(
        default=None, description="Legacy single-image field"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def check_update_order(self) -> "Note":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be earlier than created_at")
        return self

    def touch(self) -> None:
        """Mark the note as modified now."""
        self.updated_at = max(utc_now(), self.created_at)


class Attachment(BaseModel):
    """Metadata for a file attached to a note.

    The row does not guarantee the file exists; call ``exists()`` to stat it.
    """

    id: Optional[int] = Field(default=None, description="Surrogate key, assigned on insert")
    note_id: Optional[int] = Field(
        default=None, description="Owning note; None while staged for an unsaved note"
    )
    name: str = Field(..., description="Display file name")
    path: str = Field(..., description="Absolute filesystem path or URI string")
    mime_type: str = Field(default=UNKNOWN_MIME_TYPE, description="Derived from the extension")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    type: AttachmentType = Field(default=AttachmentType.FILE, description="Attachment kind")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def derive_mime_type(cls, data: Any) -> Any:
        """Fill mime_type from the path (or the name for URIs) when absent."""
        if isinstance(data, dict) and not data.get("mime_type"):
            path = data.get("path") or ""
            source = data.get("name") if "://" in path else path
            data = {**data, "mime_type": detect_mime_type(source or data.get("name"))}
        return data

    @classmethod
    def from_file(
        cls,
        path: Path,
        type: Optional[AttachmentType] = None,
        note_id: Optional[int] = None,
    ) -> "Attachment":
        """Build metadata for a file already on disk."""
        return cls(
            note_id=note_id,
            name=path.name,
            path=str(path.resolve()),
            size=path.stat().st_size,
            type=type if type is not None else AttachmentType.from_filename(path.name),
        )

    @property
    def formatted_size(self) -> str:
        """Human readable size, e.g. ``512B``, ``2.5KB``, ``1.0MB``."""
        if self.size < 1024:
            return f"{self.size}B"
        if self.size < 1024 * 1024:
            return f"{self.size / 1024.0:.1f}KB"
        return f"{self.size / (1024.0 * 1024.0):.1f}MB"

    @property
    def type_description(self) -> str:
        return self.type.description

    def exists(self) -> bool:
        """Whether the backing file is present on disk.

        URI paths cannot be checked locally and report False.
        """
        if not self.path or "://" in self.path:
            return False
        return os.path.isfile(self.path)


class NoteWithAttachments(BaseModel):
    """A note together with all of its attachments, ordered by attachment id."""

    note: Note
    attachments: List[Attachment] = Field(default_factory=list)
