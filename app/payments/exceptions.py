"""
Payment-specific exceptions for reconciliation and refund operations.

This module provides a hierarchy of exceptions for provider calls and the
refund workflow. Every exception carries the HTTP status the API layer
answers with, through ``core.exceptions.http_status_for``.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── ProviderError - Base for all provider-side failures (502)
    │   ├── ProviderAuthError - Token exchange rejected
    │   ├── PaymentNotFoundError - Provider does not know the reference
    │   ├── NotRefundableError - Payment is not in a refundable status
    │   ├── AlreadyRefundedError - Provider reports an earlier refund
    │   ├── ProviderRejectedError - Provider refused the request
    │   └── ProviderUnavailableError - Network failure or timeout
    ├── CredentialsMissingError - Tenant/platform credential not configured
    └── OrderMaterializationError - Order creation failed after a won claim (500)

    AlreadyProcessedError - Request already left PENDING (inherits ConflictError)
    ForbiddenError - Caller lacks the required role (inherits PermissionDeniedError)
    RefundValidationError - Bad action or input (inherits ValidationError)
    RefundRequestNotFoundError - Unknown request id (inherits NotFoundError)

    ConcurrentWinnerSignal - Not an error: another writer won the claim

Usage:
    from payments.exceptions import ProviderRejectedError

    raise ProviderRejectedError(
        body.get("message", "Refund rejected"),
        details={"status_code": response.status_code},
    )

Note:
    Provider messages are kept verbatim in ``message``: they end up in
    RefundRequest.error_message for operators. Raw provider payloads only
    ever go into ``details`` and logs.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Example:
        try:
            orchestrator.process_refund_request(request_id, "approve", actor=admin)
        except PaymentError as e:
            logger.error("Refund failed", extra={"error_code": e.error_code})
    """

    default_error_code: str = "PAYMENT_ERROR"


class CredentialsMissingError(PaymentError):
    """
    Raised when the credential needed for a provider call is not configured.

    For tenant credentials this means the provider is disabled or its
    fields are blank in PaymentSettings. For subscription refunds it means
    the platform token is not set.
    """

    default_error_code: str = "CREDENTIALS_MISSING"
    http_status: int = HTTPStatus.BAD_REQUEST


class OrderMaterializationError(PaymentError):
    """
    Raised when creating an Order fails after the idempotency claim was won.

    The PendingPayment is left in PROCESSING for manual reconciliation.
    The public message is generic; the cause is in the logs.
    """

    default_error_code: str = "ORDER_MATERIALIZATION_FAILED"
    http_status: int = HTTPStatus.INTERNAL_SERVER_ERROR


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(PaymentError):
    """
    Base exception for failures reported by, or talking to, a provider.

    Attributes:
        provider: Provider kind ('mercadopago', 'picpay') when known
    """

    default_error_code: str = "PROVIDER_ERROR"
    http_status: int = HTTPStatus.BAD_GATEWAY

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider


class ProviderAuthError(ProviderError):
    """
    Token exchange failed.

    PicPay only; Mercado Pago uses a static token. Not retried silently:
    a rejected client id/secret will not fix itself.
    """

    default_error_code: str = "PROVIDER_AUTH_FAILED"


class PaymentNotFoundError(ProviderError):
    """Provider answered 404 for the payment reference."""

    default_error_code: str = "PAYMENT_NOT_FOUND"


class NotRefundableError(ProviderError):
    """
    Payment is not in a refundable status.

    Attributes:
        current_status: Raw provider status at the time of the check
    """

    default_error_code: str = "NOT_REFUNDABLE"

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["current_status"] = current_status
        super().__init__(message, provider=provider, details=details)
        self.current_status = current_status


class AlreadyRefundedError(ProviderError):
    """Provider reports the payment was already refunded or cancelled."""

    default_error_code: str = "ALREADY_REFUNDED"


class ProviderRejectedError(ProviderError):
    """Provider refused the request. ``message`` is the provider's own text."""

    default_error_code: str = "PROVIDER_REJECTED"


class RefundExceedsPaymentError(ProviderError):
    """Requested refund is larger than the amount the provider charged."""

    default_error_code: str = "REFUND_EXCEEDS_PAYMENT"
    http_status: int = HTTPStatus.BAD_REQUEST


class ProviderUnavailableError(ProviderError):
    """
    Network failure, timeout or 5xx.

    IMPORTANT: For refunds the operation may have succeeded on the
    provider's side. The request is still marked FAILED and operators
    check the provider dashboard before filing a new one.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"


# =============================================================================
# Refund Workflow Exceptions
# =============================================================================


class AlreadyProcessedError(ConflictError):
    """
    Raised when a refund request is no longer PENDING.

    Also raised to the loser of a concurrent approve/reject race.
    """

    default_error_code: str = "ALREADY_PROCESSED"


class ForbiddenError(PermissionDeniedError):
    """Raised when the caller is not allowed to act on the resource."""

    default_error_code: str = "FORBIDDEN"


class RefundValidationError(ValidationError):
    """Raised for an unknown action, a missing reason or an invalid amount."""

    default_error_code: str = "REFUND_VALIDATION_ERROR"


class RefundRequestNotFoundError(NotFoundError):
    """Raised when a refund request (or the order it targets) does not exist."""

    default_error_code: str = "REFUND_REQUEST_NOT_FOUND"


# =============================================================================
# Signals
# =============================================================================


class ConcurrentWinnerSignal(Exception):
    """
    Another writer already holds the idempotency claim.

    Not an error and never surfaced to HTTP clients. Raised internally so
    the losing path can unwind and report the winner's result instead.

    Attributes:
        pending_id: The PendingPayment both writers raced for
    """

    def __init__(self, pending_id):
        self.pending_id = pending_id
        super().__init__(f"PendingPayment {pending_id} claimed by another writer")


__all__ = [
    # Payment domain
    "PaymentError",
    "CredentialsMissingError",
    "OrderMaterializationError",
    # Provider
    "ProviderError",
    "ProviderAuthError",
    "PaymentNotFoundError",
    "NotRefundableError",
    "AlreadyRefundedError",
    "ProviderRejectedError",
    "RefundExceedsPaymentError",
    "ProviderUnavailableError",
    # Refund workflow
    "AlreadyProcessedError",
    "ForbiddenError",
    "RefundValidationError",
    "RefundRequestNotFoundError",
    # Signals
    "ConcurrentWinnerSignal",
]
