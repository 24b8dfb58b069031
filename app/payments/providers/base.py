"""
Base provider protocol and shared HTTP plumbing.

Defines the interface both payment providers implement and the value
objects they return. All provider HTTP goes through
``BaseProviderClient._request`` so timeouts, error translation and
structured logging are uniform.

Usage:
    from payments.providers import get_provider_client

    client = get_provider_client("mercadopago")
    token = client.authenticate(credential)
    payload = client.get_payment_status(token, "1234567890")
    result = client.issue_refund(
        token,
        "1234567890",
        amount=Decimal("40.00"),
        original_amount=Decimal("100.00"),
        idempotency_key=build_refund_idempotency_key(request.id),
    )
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import requests
from django.conf import settings

from payments.exceptions import (
    PaymentNotFoundError,
    ProviderAuthError,
    ProviderRejectedError,
    ProviderUnavailableError,
)

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class ProviderCredential:
    """
    Credential for one provider account.

    Mercado Pago uses ``access_token``; PicPay uses ``client_id`` and
    ``client_secret`` exchanged for a short-lived token.

    Attributes:
        provider: Provider kind ('mercadopago', 'picpay')
        access_token: Static bearer token (Mercado Pago)
        client_id/client_secret: OAuth client credentials (PicPay)
        owner: 'platform' or the company id, for logs only
    """

    provider: str
    access_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    owner: str = ""

    def __repr__(self) -> str:
        return f"ProviderCredential(provider={self.provider!r}, owner={self.owner!r})"


@dataclass
class RawStatusPayload:
    """
    Provider answer to a status lookup, before normalization.

    Attributes:
        provider: Provider kind
        reference: Provider reference that was queried
        raw_status: Status string as the provider sent it (None if absent)
        amount: Charged amount when the provider reports it
        body: Full response body (logged at DEBUG only)
        strategy: Which extraction strategy found the status
    """

    provider: str
    reference: str
    raw_status: str | None
    amount: Decimal | None = None
    body: dict[str, Any] = field(default_factory=dict)
    strategy: str | None = None


@dataclass
class RefundResult:
    """
    Provider confirmation of a refund.

    Attributes:
        provider: Provider kind
        refund_id: Provider-assigned refund identifier
        amount: Amount refunded
        status: Provider's status for the refund, when reported
        body: Full response body
    """

    provider: str
    refund_id: str
    amount: Decimal
    status: str | None = None
    body: dict[str, Any] = field(default_factory=dict)


def build_refund_idempotency_key(refund_request_id, now: datetime | None = None) -> str:
    """
    Build the idempotency key sent with a refund call.

    Format: ``refund-{refund_request_id}-{epoch_millis}``.
    """
    timestamp = now.timestamp() if now is not None else time.time()
    return f"refund-{refund_request_id}-{int(timestamp * 1000)}"


def to_decimal(value: Any) -> Decimal | None:
    """Parse a provider amount, returning None when absent or malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


# =============================================================================
# Protocol
# =============================================================================


@runtime_checkable
class PaymentProviderClient(Protocol):
    """
    Protocol for payment provider clients.

    Required Methods:
        authenticate: Credential -> bearer token
        get_payment_status: Look up a payment by reference
        issue_refund: Refund a payment fully or partially
    """

    provider: str

    def authenticate(self, credential: ProviderCredential) -> str:
        """
        Return a bearer token for the credential.

        Raises:
            CredentialsMissingError: Credential fields are blank
            ProviderAuthError: Token exchange rejected
        """
        ...

    def get_payment_status(self, token: str, reference: str) -> RawStatusPayload:
        """
        Look up the current status of a payment.

        Raises:
            PaymentNotFoundError: Unknown reference
            ProviderUnavailableError: Network failure or 5xx
        """
        ...

    def issue_refund(
        self,
        token: str,
        reference: str,
        amount: Decimal,
        original_amount: Decimal,
        idempotency_key: str,
    ) -> RefundResult:
        """
        Refund ``amount`` of the payment.

        Raises:
            NotRefundableError: Payment not in a refundable status
            AlreadyRefundedError: Payment already refunded
            ProviderRejectedError: Provider refused the refund
        """
        ...


# =============================================================================
# Shared Implementation
# =============================================================================


class BaseProviderClient:
    """
    Shared HTTP handling for provider clients.

    Subclasses set ``provider`` and call ``_request``. Network errors and
    5xx answers become ProviderUnavailableError; 401/403 become
    ProviderAuthError; 404 becomes PaymentNotFoundError. Other non-2xx
    answers are returned to the caller, which knows how to read the
    provider's error body.

    Attributes:
        timeout: Seconds per HTTP call (PAYMENT_PROVIDER_TIMEOUT_SECONDS)
        session: requests session (injectable for tests)
    """

    provider: str = ""

    def __init__(
        self,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.timeout = timeout or getattr(settings, "PAYMENT_PROVIDER_TIMEOUT_SECONDS", 15)
        self.session = session or requests.Session()

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        raise_for_not_found: bool = True,
        log_context: dict[str, Any] | None = None,
    ) -> requests.Response:
        """
        Perform one HTTP call with uniform error translation.

        Args:
            method: HTTP verb
            url: Absolute URL
            operation: Short name for logs ('get_payment_status', ...)
            token: Bearer token, if the call is authenticated
            json: JSON body
            headers: Extra headers
            raise_for_not_found: Translate 404 to PaymentNotFoundError
            log_context: Extra structured log fields

        Returns:
            The response (2xx, or 4xx other than 401/403/404)
        """
        logger = self.get_logger()
        log_context = {
            "operation": operation,
            "provider": self.provider,
            "method": method,
            **(log_context or {}),
        }

        request_headers = {"Accept": "application/json"}
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        if headers:
            request_headers.update(headers)

        start_time = time.time()
        logger.info("Starting provider operation", extra=log_context)

        try:
            response = self.session.request(
                method,
                url,
                json=json,
                headers=request_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "Connection error to provider",
                extra={**log_context, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise ProviderUnavailableError(
                f"Could not reach {self.provider}: {e.__class__.__name__}",
                provider=self.provider,
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log_context = {
            **log_context,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        logger.info("Provider operation completed", extra=log_context)
        logger.debug(
            "Provider response body",
            extra={**log_context, "body": response.text[:2000]},
        )

        status_code = response.status_code
        if status_code in (401, 403):
            logger.error("Provider rejected credentials", extra=log_context)
            raise ProviderAuthError(
                f"{self.provider} rejected the credentials",
                provider=self.provider,
                details={"status_code": status_code},
            )
        if status_code == 404 and raise_for_not_found:
            raise PaymentNotFoundError(
                f"Payment not found at {self.provider}",
                provider=self.provider,
                details={"status_code": status_code},
            )
        if status_code >= 500:
            logger.error("Provider server error", extra=log_context)
            raise ProviderUnavailableError(
                f"{self.provider} service error ({status_code})",
                provider=self.provider,
                details={"status_code": status_code},
            )
        return response

    def _json(self, response: requests.Response) -> dict[str, Any]:
        """Decode a JSON body; non-object or malformed bodies become {}."""
        try:
            body = response.json()
        except ValueError:
            return {}
        if isinstance(body, dict):
            return body
        if isinstance(body, list):
            return {"items": body}
        return {}

    def _rejected(self, response: requests.Response, default_message: str) -> ProviderRejectedError:
        """Build a rejection error carrying the provider's own message."""
        body = self._json(response)
        message = body.get("message") or body.get("error_description") or body.get("error")
        if not isinstance(message, str) or not message:
            message = default_message
        return ProviderRejectedError(
            message,
            provider=self.provider,
            details={"status_code": response.status_code},
        )


__all__ = [
    "BaseProviderClient",
    "PaymentProviderClient",
    "ProviderCredential",
    "RawStatusPayload",
    "RefundResult",
    "build_refund_idempotency_key",
    "to_decimal",
]
