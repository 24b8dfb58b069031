"""
Base service layer patterns for business logic encapsulation.

Services hold the business rules; views handle HTTP concerns and models
hold data. Expected outcomes that are not errors (a payment still pending,
a lost race for an idempotency claim) are returned as values. Failures
are raised as ``core.exceptions.BaseApplicationError`` subclasses so the
API layer can map them to status codes in one place.

Usage:
    from core.services import BaseService, ServiceResult

    class ReconciliationService(BaseService):
        def reconcile(self, pending_id):
            self.get_logger().info("Reconciling", extra={"pending_id": pending_id})
            ...
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Result wrapper for operations whose failure is an expected outcome.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful
        error: Error message if failed
        error_code: Machine-readable error code
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Build a failed result from a caught exception.

        Application errors keep their own error code unless one is given.
        """
        code = error_code or getattr(exc, "error_code", None) or exc.__class__.__name__.upper()
        message = getattr(exc, "message", None) or str(exc)
        return cls(success=False, error=message, error_code=code)

    def to_response(self) -> dict[str, Any]:
        """Convert to an API response body."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides a per-class logger and a transaction helper. Subclasses may
    be stateless (classmethods only) or carry injected collaborators such
    as provider client factories and platform configuration.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Return a logger named after the concrete service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Run the enclosed block inside a database transaction."""
        with transaction.atomic():
            yield


__all__ = [
    "ServiceResult",
    "BaseService",
]
