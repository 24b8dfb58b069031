"""
Mercado Pago provider client.

Uses the Payments API with a static access token. Tenants configure
their own token in PaymentSettings; subscription charges use the
platform token (PLATFORM_MERCADOPAGO_ACCESS_TOKEN).

Endpoints:
    GET  {MERCADOPAGO_API_BASE}/v1/payments/{id}
    POST {MERCADOPAGO_API_BASE}/v1/payments/{id}/refunds
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from payments.exceptions import (
    AlreadyRefundedError,
    CredentialsMissingError,
    NotRefundableError,
    RefundExceedsPaymentError,
)
from payments.providers.base import (
    BaseProviderClient,
    RawStatusPayload,
    RefundResult,
    to_decimal,
)
from payments.state_machines import PaymentProvider

if TYPE_CHECKING:
    from payments.providers.base import ProviderCredential

REFUNDABLE_STATUS = "approved"
ALREADY_REFUNDED_MARKER = "already refunded"


class MercadoPagoClient(BaseProviderClient):
    """
    Mercado Pago Payments API client.

    Refund rules:
        - The payment must currently be ``approved`` (case-insensitive)
        - The amount may not exceed the charged ``transaction_amount``
        - Full refunds send an empty body; partial refunds send
          ``{"amount": x}`` only when x is below the original amount
        - Every refund carries an ``X-Idempotency-Key`` header
    """

    provider = PaymentProvider.MERCADOPAGO

    @property
    def api_base(self) -> str:
        return getattr(settings, "MERCADOPAGO_API_BASE", "https://api.mercadopago.com").rstrip("/")

    def authenticate(self, credential: ProviderCredential) -> str:
        """Return the static access token."""
        if not credential.access_token:
            raise CredentialsMissingError(
                "Mercado Pago access token is not configured",
                details={"owner": credential.owner},
            )
        return credential.access_token

    def get_payment_status(self, token: str, reference: str) -> RawStatusPayload:
        response = self._request(
            "GET",
            f"{self.api_base}/v1/payments/{reference}",
            operation="get_payment_status",
            token=token,
            log_context={"reference": reference},
        )
        body = self._json(response)
        if not response.ok:
            raise self._rejected(response, "Could not fetch payment from Mercado Pago")

        raw_status = body.get("status")
        return RawStatusPayload(
            provider=self.provider,
            reference=reference,
            raw_status=raw_status if isinstance(raw_status, str) else None,
            amount=to_decimal(body.get("transaction_amount")),
            body=body,
            strategy="status" if isinstance(raw_status, str) else None,
        )

    def issue_refund(
        self,
        token: str,
        reference: str,
        amount: Decimal,
        original_amount: Decimal,
        idempotency_key: str,
    ) -> RefundResult:
        payment = self.get_payment_status(token, reference)
        if (payment.raw_status or "").strip().lower() != REFUNDABLE_STATUS:
            raise NotRefundableError(
                f"Payment cannot be refunded. Current status: {payment.raw_status}",
                current_status=payment.raw_status,
                provider=self.provider,
            )
        if payment.amount is not None and amount > payment.amount:
            raise RefundExceedsPaymentError(
                "Refund amount cannot exceed the amount paid",
                provider=self.provider,
                details={"amount": str(amount), "transaction_amount": str(payment.amount)},
            )

        refund_body: dict = {}
        if amount < original_amount:
            refund_body["amount"] = float(amount)

        response = self._request(
            "POST",
            f"{self.api_base}/v1/payments/{reference}/refunds",
            operation="issue_refund",
            token=token,
            json=refund_body,
            headers={"X-Idempotency-Key": idempotency_key},
            log_context={
                "reference": reference,
                "amount": str(amount),
                "partial": "amount" in refund_body,
                "idempotency_key": idempotency_key,
            },
        )
        body = self._json(response)

        if not response.ok:
            message = body.get("message")
            if isinstance(message, str) and ALREADY_REFUNDED_MARKER in message.lower():
                raise AlreadyRefundedError(
                    "This payment was already refunded",
                    provider=self.provider,
                    details={"status_code": response.status_code},
                )
            raise self._rejected(response, "Mercado Pago rejected the refund")

        return RefundResult(
            provider=self.provider,
            refund_id=str(body.get("id", "")),
            amount=to_decimal(body.get("amount")) or amount,
            status=body.get("status"),
            body=body,
        )
