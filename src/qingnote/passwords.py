"""Salted password hashing for stored user credentials.

Stored credentials use the form ``base64(salt):base64(digest)`` where the
digest is SHA-256 over ``salt || password``. Hashing fails with ``None``
instead of raising so registration can map it to a dedicated result code;
verification fails closed and never raises.
"""

import base64
import binascii
import hashlib
import logging
import secrets
from typing import Optional

logger = logging.getLogger(__name__)

SALT_LENGTH = 16
SEPARATOR = ":"


def _digest(salt: bytes, password: str) -> bytes:
    md = hashlib.sha256()
    md.update(salt)
    md.update(password.encode("utf-8"))
    return md.digest()


def constant_time_equals(expected: bytes, actual: bytes) -> bool:
    """Compare two byte strings without exiting early on the first mismatch.

    Lengths are compared first; a length mismatch is an immediate ``False``.
    """
    if len(expected) != len(actual):
        return False
    diff = 0
    for a, b in zip(expected, actual):
        diff |= a ^ b
    return diff == 0


def hash_password(password: Optional[str]) -> Optional[str]:
    """Hash a password with a fresh random salt.

    Args:
        password: The plaintext password.

    Returns:
        ``"<salt_b64>:<hash_b64>"``, or None if the password is empty or
        hashing failed.
    """
    if not password:
        logger.error("Refusing to hash an empty password")
        return None
    try:
        salt = secrets.token_bytes(SALT_LENGTH)
        hashed = _digest(salt, password)
        salt_str = base64.b64encode(salt).decode("ascii")
        hash_str = base64.b64encode(hashed).decode("ascii")
        return f"{salt_str}{SEPARATOR}{hash_str}"
    except (UnicodeEncodeError, ValueError) as e:
        logger.error(f"Password hashing failed: {e}")
        return None


def verify_password(candidate: Optional[str], stored: Optional[str]) -> bool:
    """Check a candidate password against a stored ``salt:hash`` string.

    Returns False (never raises) for empty inputs, a stored value that does
    not split into exactly two parts, or parts that are not valid base64.
    """
    if not candidate:
        logger.debug("Candidate password is empty")
        return False
    if not stored:
        logger.debug("Stored password hash is empty")
        return False

    parts = stored.split(SEPARATOR)
    if len(parts) != 2:
        logger.warning("Stored password is not in salt:hash form")
        return False

    try:
        salt = base64.b64decode(parts[0], validate=True)
        stored_hash = base64.b64decode(parts[1], validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Stored password hash is not valid base64")
        return False

    try:
        candidate_hash = _digest(salt, candidate)
    except UnicodeEncodeError:
        return False

    return constant_time_equals(stored_hash, candidate_hash)


def is_hashed(value: Optional[str]) -> bool:
    """Whether a stored password value already has the ``salt:hash`` shape."""
    if not value:
        return False
    parts = value.split(SEPARATOR)
    if len(parts) != 2:
        return False
    try:
        base64.b64decode(parts[0], validate=True)
        base64.b64decode(parts[1], validate=True)
    except (binascii.Error, ValueError):
        return False
    return True
