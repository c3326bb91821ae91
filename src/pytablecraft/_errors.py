"""Exception hierarchy for table query compilation."""

from __future__ import annotations

from typing import Any


class TableCraftError(Exception):
    """Base exception for all pytablecraft errors.

    Provides dual messaging: a sanitized user-facing message and
    internal details for logging (CWE-209 prevention). Every error
    carries a stable machine-readable ``code`` and an HTTP-style
    ``status_code`` hint.
    """

    code = "TABLECRAFT_ERROR"
    status_code = 500

    def __init__(
        self,
        user_message: str,
        internal_details: str = "",
        wrapped: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.internal_details = internal_details or user_message
        self.wrapped = wrapped
        self.details = details or {}

    def internal(self) -> str:
        return self.internal_details

    def to_dict(self) -> dict[str, Any]:
        """Serializable error body, safe to return to an API client."""
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
                "details": dict(self.details),
            }
        }


class ConfigError(TableCraftError):
    """Raised at startup when a table configuration is invalid."""

    code = "CONFIG_ERROR"
    status_code = 500


class FieldError(TableCraftError):
    """Raised when a request references a field that is unknown or lacks a capability."""

    code = "FIELD_ERROR"
    status_code = 400

    def __init__(
        self,
        field: str,
        reason: str,
        internal_details: str = "",
    ) -> None:
        super().__init__(
            f"field '{field}': {reason}",
            internal_details,
            details={"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason


class ValidationError(TableCraftError):
    """Raised when a filter value does not match its column type or operator shape."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        field: str,
        expected: str,
        received: Any = None,
        internal_details: str = "",
    ) -> None:
        message = f"invalid value for '{field}': expected {expected}"
        if received is not None:
            message = f"{message}, got {type(received).__name__}"
        super().__init__(
            message,
            internal_details or f"field {field!r} received {received!r}",
            details={"field": field, "expected": expected},
        )
        self.field = field
        self.expected = expected


class DialectError(TableCraftError):
    """Raised when a feature is not supported by the active SQL dialect."""

    code = "DIALECT_ERROR"
    status_code = 400

    def __init__(self, feature: str, dialect: str) -> None:
        super().__init__(
            f"'{feature}' is not supported on {dialect}",
            f"feature {feature!r} requested on dialect {dialect!r}",
            details={"feature": feature, "dialect": dialect},
        )
        self.feature = feature
        self.dialect = dialect


class AccessDeniedError(TableCraftError):
    """Raised when the caller's roles or permissions fail the access rule."""

    code = "ACCESS_DENIED"
    status_code = 403

    def __init__(self, resource: str, reason: str = "") -> None:
        message = f"access denied to '{resource}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"resource": resource, "reason": reason})
        self.resource = resource


class NotFoundError(TableCraftError):
    """Raised when a requested table configuration does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str) -> None:
        super().__init__(
            f"resource '{resource}' not found", details={"resource": resource}
        )
        self.resource = resource


class QueryError(TableCraftError):
    """Raised when the external executor fails to run a compiled statement."""

    code = "QUERY_ERROR"
    status_code = 500


# Sanitized user-facing error message constants
ERR_MSG_QUERY_FAILED = "query execution failed"
ERR_MSG_INVALID_CONFIG = "invalid table configuration"
ERR_MSG_UNKNOWN_FIELD = "does not exist or is not accessible"
ERR_MSG_NOT_FILTERABLE = "is not filterable"
ERR_MSG_NOT_SORTABLE = "is not sortable"
ERR_MSG_NOT_SELECTABLE = "is not selectable"
ERR_MSG_NOT_SEARCHABLE = "is not searchable"
ERR_MSG_NO_SORT_SOURCE = "has no underlying column or expression to sort by"
ERR_MSG_OUTPUT_TOO_LONG = "maximum SQL output length exceeded"
