"""
Utility functions for filename sanitization and form value parsing.

This module provides helper functions for:
- Reducing user-provided filenames to a safe base name
- Parsing loosely typed multipart form values (booleans, integers)
- Substituting defaults for blank values
- Ensuring directory creation
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from .errors import InvalidArgumentError

TRUE_VALUES = {"1", "true", "yes", "y"}
FALSE_VALUES = {"0", "false", "no", "n"}
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def safe_filename(filename: Optional[str]) -> str:
    """
    Reduce a client-declared filename to its base name.

    Both POSIX and Windows separators are treated as directory boundaries, so
    a name like ``..\\..\\boot.ini`` is handled the same way as
    ``../../etc/passwd``.

    Args:
        filename: The filename as declared in the multipart part (may be None)

    Returns:
        The last path component, or an empty string when nothing usable is left

    Example:
        >>> safe_filename("../../etc/passwd")
        'passwd'
        >>> safe_filename("..")
        ''
    """
    if not filename:
        return ""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    # Drop NUL bytes which no filesystem accepts
    name = name.replace("\x00", "")
    if name in {".", ".."}:
        return ""
    return name


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_if_blank(value: Optional[str], default: str) -> str:
    if value is None or not value.strip():
        return default
    return value


def parse_boolean(value: Optional[str], default: bool = False) -> bool:
    """
    Parse a form flag.

    Accepts 1/true/yes/y and 0/false/no/n in any case; anything else,
    including an absent value, yields the default.
    """
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    return default


def parse_int(value: Optional[str], default: int) -> int:
    """
    Parse an integer form value.

    Raises:
        InvalidArgumentError: If a non-blank value is not an integer
    """
    if value is None or not value.strip():
        return default
    # Plain decimal digits only; int() also accepts "1_0"
    if not INTEGER_PATTERN.fullmatch(value.strip()):
        raise InvalidArgumentError(f"Invalid integer: {value}")
    return int(value.strip())
