"""Utility functions for the QingNote data layer."""


def safe_filename(name: str, default: str = "file") -> str:
    """Reduce a user-supplied file name to a single safe path component.

    Keeps the extension, drops any directory part, and replaces characters
    outside alphanumerics, ``-``, ``_`` and ``.`` with underscores.

    Examples:
        "../../etc/passwd" -> "passwd"
        "My Photo (1).JPG" -> "My_Photo_1.JPG"
        "" -> "file"

    Args:
        name: The file name to sanitize.
        default: Returned when nothing usable is left.

    Returns:
        A name that cannot escape its directory.
    """
    if not name:
        return default

    # Keep only the last path segment
    base = name.replace("\\", "/").rsplit("/", 1)[-1]

    words = base.split()
    sanitized_words = []
    for word in words:
        sanitized_word = "".join(c if c.isalnum() or c in "-_." else "" for c in word)
        if sanitized_word:
            sanitized_words.append(sanitized_word)

    result = "_".join(sanitized_words).lstrip(".")
    return result or default


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Prevents SQL LIKE pattern injection where user input containing
    '%' or '_' could match unintended patterns.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\% complete'
        >>> escape_like_pattern("file_name")
        'file\\_name'
    """
    # Use str.translate() for single-pass efficiency
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
