"""Custom exceptions for the QingNote data layer.

Provides a structured exception hierarchy with error codes and
machine-readable error information, plus the sentinel result types
returned by flows whose callers render one message per failure reason.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_TITLE_REQUIRED = 1004

    # Attachment errors (2xxx)
    ATTACHMENT_NOT_FOUND = 2001
    ATTACHMENT_COPY_FAILED = 2002
    ATTACHMENT_DELETE_FAILED = 2003
    ATTACHMENT_SOURCE_MISSING = 2004

    # User / auth errors (3xxx)
    USER_NOT_FOUND = 3001
    USERNAME_TAKEN = 3002
    EMAIL_TAKEN = 3003
    PASSWORD_EMPTY = 3004
    PASSWORD_HASH_FAILED = 3005
    PASSWORD_INCORRECT = 3006

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    WORKER_SHUT_DOWN = 4008

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_ATTACHMENT_TYPE = 7002
    INVALID_USERNAME = 7003
    INVALID_EMAIL = 7004
    PATH_TRAVERSAL_DETECTED = 7005


class QingNoteError(Exception):
    """Base exception for all QingNote errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(QingNoteError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID {note_id} not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class NoteValidationError(QingNoteError):
    """Raised when note data fails validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(QingNoteError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class AttachmentError(StorageError):
    """Raised when attachment bytes cannot be staged, committed or removed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        note_id: Optional[int] = None,
        code: ErrorCode = ErrorCode.ATTACHMENT_COPY_FAILED,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="attachment",
            path=path,
            code=code,
            original_error=original_error
        )
        self.note_id = note_id
        if note_id is not None:
            self.details["note_id"] = note_id


class ConfigurationError(QingNoteError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(QingNoteError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class RegistrationFailure(Enum):
    """Reasons a registration was rejected.

    Returned by ``register`` in place of a user id. ``legacy_code`` keeps the
    negative numbers older callers compare against.
    """

    USERNAME_TAKEN = (-1, "This username is already taken")
    EMAIL_TAKEN = (-2, "This email address is already registered")
    EMPTY_PASSWORD = (-3, "Password must not be empty")
    HASH_FAILURE = (-4, "Password could not be processed")
    UNKNOWN_ERROR = (-5, "Registration failed, please try again")

    def __init__(self, legacy_code: int, message: str):
        self.legacy_code = legacy_code
        self.message = message


class PasswordChangeResult(Enum):
    """Outcome of a password change requested by a logged-in user."""

    CHANGED = "Password changed"
    USER_NOT_FOUND = "User not found"
    INCORRECT_PASSWORD = "Current password is incorrect"
    UPDATE_FAILED = "Password could not be updated"

    @property
    def ok(self) -> bool:
        return self is PasswordChangeResult.CHANGED
