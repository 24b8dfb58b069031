"""
Core Application - Infrastructure & Base Classes

Generic base classes shared by the domain apps (stores, payments,
notifications). No business rules live here.

Models (import from core.models / core.model_mixins):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Result wrapper for expected failures

Exceptions (import from core.exceptions):
    - BaseApplicationError and its HTTP-mapped subclasses
    - api_exception_handler: DRF hook translating them into responses

Note:
    Models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them from their modules.
"""

from .services import BaseService, ServiceResult

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
]
