"""Format checks for account fields entered by users."""

import re
from typing import Optional

MIN_PASSWORD_LENGTH = 8

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[0-9])(?=.*[a-zA-Z]).{%d,}$" % MIN_PASSWORD_LENGTH
)
# Close to the pattern mobile platforms ship for EMAIL_ADDRESS
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9+._%\-]{1,256}"
    r"@[a-zA-Z0-9][a-zA-Z0-9\-]{0,64}"
    r"(\.[a-zA-Z0-9][a-zA-Z0-9\-]{0,25})+$"
)


def is_username_valid(username: Optional[str]) -> bool:
    """3 to 20 characters of letters, digits and underscores."""
    if not username:
        return False
    return USERNAME_PATTERN.match(username) is not None


def is_email_valid(email: Optional[str]) -> bool:
    if not email:
        return False
    return EMAIL_PATTERN.match(email) is not None


def is_password_valid(password: Optional[str]) -> bool:
    """At least 8 characters with at least one letter and one digit."""
    if not password:
        return False
    return PASSWORD_PATTERN.match(password) is not None
