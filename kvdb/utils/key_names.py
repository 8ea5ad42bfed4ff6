"""Key name rules and generation."""

from __future__ import annotations

import uuid

_EXTRA_NAME_CHARS = frozenset("_-.")


def is_valid_key_name(name: str) -> bool:
    """Check the key name charset.

    A name must be non-empty and contain only alphanumeric characters,
    underscores, dashes and dots.

    Examples:
        >>> is_valid_key_name("session_42.backup-1")
        True
        >>> is_valid_key_name("has space")
        False
        >>> is_valid_key_name("")
        False
    """
    if not name:
        return False
    return all(char.isalnum() or char in _EXTRA_NAME_CHARS for char in name)


def generate_key_name() -> str:
    """Generate a random name (UUID4, which satisfies the name charset)."""
    return str(uuid.uuid4())


def byte_length(text: str) -> int:
    return len(text.encode("utf-8"))
