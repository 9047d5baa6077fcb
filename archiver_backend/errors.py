"""
Archiver error types.

Every failure a caller can act on is raised as a subclass of ArchiverError
carrying a stable ``code`` that the HTTP layer maps onto a status code.
"""

from __future__ import annotations

from typing import Any, Optional


class ArchiverError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class InvalidName(ArchiverError):
    """A session id or filename that cannot be used as a path segment."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("invalid_name", message, details)


class InvalidSize(ArchiverError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("invalid_size", message, details)


class StateConflict(ArchiverError):
    """The operation is not allowed in the session's current status."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("state_conflict", message, details)


class PayloadTooLarge(ArchiverError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("payload_too_large", message, details)


class NotFound(ArchiverError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("not_found", message, details)


class Unavailable(ArchiverError):
    """The archive has not been built (or was already downloaded)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("unavailable", message, details)


class IOFailure(ArchiverError):
    """Unexpected filesystem or stream error. The OSError is chained as __cause__."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("io_failure", message, details)


class InvariantViolation(ArchiverError):
    """Internal state this package never produces itself, e.g. a nested directory."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("invariant_violation", message, details)
