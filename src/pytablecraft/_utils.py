"""Validation helpers, escaping, and value coercion utilities."""

from __future__ import annotations

import re
from datetime import date, datetime

from pytablecraft._errors import ConfigError, ValidationError

MAX_IDENTIFIER_LENGTH = 63

IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")


def validate_identifier(name: str, context: str = "identifier") -> None:
    """Validate a config-supplied SQL identifier (one segment, no dots)."""
    if not name:
        raise ConfigError(
            f"{context} cannot be empty",
            f"empty {context} provided",
        )
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ConfigError(
            f"{context} too long",
            f"{context} '{name}' exceeds {MAX_IDENTIFIER_LENGTH} characters",
        )
    if not IDENTIFIER_RE.match(name):
        raise ConfigError(
            f"invalid {context} format",
            f"{context} '{name}' contains invalid characters",
        )


def split_qualified(name: str) -> tuple[str | None, str]:
    """Split ``table.column`` into its parts; bare names have no qualifier."""
    if "." not in name:
        return None, name
    qualifier, _, column = name.partition(".")
    return qualifier, column


def escape_like_pattern(value: str) -> str:
    """Escape the LIKE metacharacters ``\\``, ``%`` and ``_``."""
    result = value.replace("\\", "\\\\")
    result = result.replace("%", "\\%")
    result = result.replace("_", "\\_")
    return result


def validate_no_null_bytes(field: str, value: str) -> None:
    """Reject request strings containing null bytes."""
    if "\x00" in value:
        raise ValidationError(
            field,
            "string without null bytes",
            value,
            f"null byte found in value for {field!r}",
        )


def is_valid_uuid(value: str) -> bool:
    return bool(UUID_RE.match(value))


def parse_iso_value(value: str) -> date | datetime | None:
    """Parse an ISO-8601 date or datetime string.

    Date-only strings become :class:`date`; anything with a time part
    becomes :class:`datetime`. Returns None when the string is not ISO.
    """
    if _ISO_DATE_RE.match(value):
        try:
            return date.fromisoformat(value)
        except ValueError:
            return None
    if _ISO_DATETIME_PREFIX_RE.match(value):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None
