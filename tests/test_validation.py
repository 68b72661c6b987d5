# tests/test_validation.py
"""Tests for account field format checks."""
import pytest

from qingnote.utils import escape_like_pattern
from qingnote.validation import (is_email_valid, is_password_valid,
                                 is_username_valid)


@pytest.mark.parametrize("username,valid", [
    ("alice", True),
    ("a_b_9", True),
    ("ab", False),
    ("a" * 21, False),
    ("a b", False),
    (None, False),
])
def test_username(username, valid):
    assert is_username_valid(username) is valid


@pytest.mark.parametrize("email,valid", [
    ("alice@x.com", True),
    ("first.last+tag@mail.example.org", True),
    ("not-an-email", False),
    ("a@b", False),
    ("", False),
])
def test_email(email, valid):
    assert is_email_valid(email) is valid


@pytest.mark.parametrize("password,valid", [
    ("pw123456", True),
    ("short1", False),
    ("lettersonly", False),
    ("12345678", False),
    (None, False),
])
def test_password_policy(password, valid):
    assert is_password_valid(password) is valid


def test_escape_like_pattern():
    assert escape_like_pattern("100% done_now") == "100\\% done\\_now"
    assert escape_like_pattern("a\\b") == "a\\\\b"
