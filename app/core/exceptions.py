"""
Base exception classes for application-wide error handling.

Every domain error raised by a service inherits from BaseApplicationError,
which carries a machine-readable error code and optional details. Views
never build error payloads by hand: they either call ``to_dict()`` or let
``core.exception_handlers.api_exception_handler`` map it to a DRF Response.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts, replayed actions (409)
    └── ExternalServiceError - Third-party service failures (502)

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Rejection reason is required",
        error_code="REJECTION_REASON_REQUIRED",
    )

Note:
    Only the human-readable message reaches API clients. Details and
    upstream payloads are kept for server-side logs.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (logged, not exposed)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = HTTPStatus.BAD_REQUEST

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to the public API error payload.

        Returns:
            Dict with ``error`` and ``error_code`` keys
        """
        return {
            "error": self.message,
            "error_code": self.error_code,
        }

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Raised when input or a business rule check fails."""

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = HTTPStatus.BAD_REQUEST


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = HTTPStatus.NOT_FOUND


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks the role required for an operation.

    For missing or invalid tokens, DRF's authentication layer answers
    with 401 before any service code runs.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = HTTPStatus.FORBIDDEN


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current resource state.

    Covers invalid state transitions and replayed actions on records that
    already left their initial state.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = HTTPStatus.CONFLICT


class ExternalServiceError(BaseApplicationError):
    """Raised when a third-party service call fails or answers unexpectedly."""

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = HTTPStatus.BAD_GATEWAY


def http_status_for(exc: BaseApplicationError) -> int:
    """Return the HTTP status code an application error maps to."""
    return getattr(exc, "http_status", HTTPStatus.BAD_REQUEST)


__all__ = [
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
    "http_status_for",
]
