"""
Reconciliation service for checkout payments.

This module turns a confirmed provider payment into exactly one Order.
It is called by the browser poller (read-mostly, every few seconds while
the customer waits on the payment screen) and by the provider webhooks.

Flow (poller):
    1. Load the PendingPayment; COMPLETED/CANCELLED short-circuit
    2. Resolve the tenant credential; missing -> "pending"
    3. Ask the provider for the payment status and normalize it
    4. pending/cancelled -> report the raw status, write nothing
    5. approved -> win the idempotency claim and materialize the Order,
       or defer to the writer that won it

Two-phase shape:
    The provider lookup runs outside any transaction. Only the order
    materialization (Order + OrderItems + PendingPayment completion) runs
    inside one, after the claim was won.

Usage:
    from payments.services import ReconciliationService

    outcome = ReconciliationService().reconcile(pending_id, company_id)
    outcome.to_response()  # {"approved": True, "orderId": "...", "status": "completed"}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService

from payments.credentials import get_tenant_credential
from payments.exceptions import (
    CredentialsMissingError,
    OrderMaterializationError,
    ProviderError,
)
from payments.idempotency import (
    cancel_pending_payment,
    claim_pending_payment,
    wait_for_winner,
)
from payments.models import PendingPayment
from payments.models.refund_request import (
    MERCADOPAGO_REFERENCE_PREFIX,
    PICPAY_REFERENCE_PREFIX,
)
from payments.normalizer import normalize_status
from payments.providers import get_provider_client
from payments.state_machines import (
    NormalizedStatus,
    PaymentProvider,
    PendingPaymentStatus,
)
from stores.models import (
    Coupon,
    Customer,
    Order,
    OrderItem,
    OrderPaymentStatus,
    OrderSource,
    OrderStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.providers import PaymentProviderClient


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

REFERENCE_PREFIXES = {
    PaymentProvider.PICPAY: PICPAY_REFERENCE_PREFIX,
    PaymentProvider.MERCADOPAGO: MERCADOPAGO_REFERENCE_PREFIX,
}

# Orders materialized here were paid by PIX checkout
ORDER_PAYMENT_METHOD = "pix"

TWO_PLACES = Decimal("0.01")

# Errors that leave a claimed PendingPayment in PROCESSING
MATERIALIZATION_ERRORS = (
    DatabaseError,
    InvalidOperation,
    KeyError,
    TypeError,
    ValueError,
)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ReconciliationOutcome:
    """
    Result of one reconciliation attempt.

    Attributes:
        approved: True once an Order exists for the checkout
        status: Internal status ('completed', 'cancelled', 'pending',
            'processing') or the provider's raw status
        order_id: Materialized Order id when approved
    """

    approved: bool
    status: str
    order_id: Any = None

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {"approved": self.approved, "status": self.status}
        if self.order_id is not None:
            response["orderId"] = str(self.order_id)
        return response


# =============================================================================
# Order Materialization
# =============================================================================


def _money(value: Any, default: Decimal | None = None) -> Decimal:
    if value is None or value == "":
        if default is None:
            raise ValueError("Missing required amount in order payload")
        return default
    return Decimal(str(value)).quantize(TWO_PLACES)


def _find_or_create_customer(company_id, payload: dict[str, Any]) -> Customer | None:
    phone = (payload.get("customer_phone") or "").strip()
    if not phone:
        return None
    customer = Customer.objects.filter(company_id=company_id, phone=phone).first()
    if customer is not None:
        return customer
    return Customer.objects.create(
        company_id=company_id,
        name=payload.get("customer_name") or "",
        phone=phone,
        email=(payload.get("customer_email") or "").lower(),
    )


def build_order_from_payload(pending: PendingPayment, reference: str) -> Order:
    """
    Create the Order and OrderItems described by ``pending.order_payload``.

    Must run inside the caller's transaction. Raises on malformed
    payloads; nothing is defaulted for the required amounts.
    """
    payload = pending.order_payload or {}
    now = timezone.now()
    prep_window = getattr(settings, "ORDER_PREP_WINDOW_MINUTES", 45)
    prefix = REFERENCE_PREFIXES.get(pending.provider, "")

    coupon_id = payload.get("coupon_id") or None
    source = payload.get("source") or OrderSource.ONLINE

    order = Order.objects.create(
        company_id=pending.company_id,
        customer=_find_or_create_customer(pending.company_id, payload),
        customer_name=payload.get("customer_name") or "",
        customer_phone=payload.get("customer_phone") or "",
        customer_email=(payload.get("customer_email") or "").lower(),
        delivery_address_id=payload.get("delivery_address_id"),
        status=OrderStatus.CONFIRMED,
        payment_status=OrderPaymentStatus.PAID,
        payment_method=ORDER_PAYMENT_METHOD,
        payment_provider=pending.provider,
        payment_reference=f"{prefix}{reference}",
        subtotal=_money(payload.get("subtotal")),
        delivery_fee=_money(payload.get("delivery_fee"), Decimal("0.00")),
        discount_amount=_money(payload.get("discount_amount"), Decimal("0.00")),
        total=_money(payload.get("total")),
        coupon_id=coupon_id,
        notes=payload.get("notes") or "",
        estimated_delivery_time=now + timedelta(minutes=prep_window),
        table_session_id=payload.get("table_session_id"),
        source=source,
    )

    items = []
    for item in payload.get("items") or []:
        quantity = int(item["quantity"])
        unit_price = _money(item["unit_price"])
        total_price = _money(item.get("total_price"), unit_price * quantity)
        items.append(
            OrderItem(
                order=order,
                product_id=str(item["product_id"]),
                product_name=item.get("product_name") or "",
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
                options=item.get("options") or [],
                notes=item.get("notes") or "",
            )
        )
    if items:
        OrderItem.objects.bulk_create(items)

    if coupon_id:
        Coupon.increment_usage(coupon_id)

    return order


# =============================================================================
# Service
# =============================================================================


class ReconciliationService(BaseService):
    """
    Reconciles checkout payments against the provider.

    Read-only paths never raise for provider trouble: credential, auth,
    lookup and network failures are logged and reported as "pending" so
    the poller simply tries again. The one loud path is a failure after
    the idempotency claim was won: the row stays PROCESSING and
    OrderMaterializationError propagates.

    Attributes:
        client_factory: provider kind -> client (injectable for tests)
    """

    def __init__(self, client_factory: Callable[[str], PaymentProviderClient] | None = None):
        self.client_factory = client_factory or get_provider_client

    # =========================================================================
    # Public API
    # =========================================================================

    def reconcile(
        self,
        pending_id,
        company_id,
        provider_reference: str | None = None,
        allow_cancel: bool = False,
    ) -> ReconciliationOutcome:
        """
        Reconcile one checkout.

        Args:
            pending_id: PendingPayment id
            company_id: Company the checkout belongs to
            provider_reference: Reference supplied by the client, used
                when the row does not carry one yet
            allow_cancel: Persist a provider cancellation. Only webhook
                callers pass True; the poller never writes CANCELLED

        Returns:
            ReconciliationOutcome

        Raises:
            NotFoundError: Unknown checkout for this company
            OrderMaterializationError: Order creation failed after the claim
        """
        log = self.get_logger()
        pending = PendingPayment.objects.filter(pk=pending_id, company_id=company_id).first()
        if pending is None:
            raise NotFoundError(
                "Pending payment not found",
                error_code="PENDING_PAYMENT_NOT_FOUND",
                details={"pending_id": str(pending_id), "company_id": str(company_id)},
            )

        if pending.status == PendingPaymentStatus.COMPLETED:
            return ReconciliationOutcome(True, PendingPaymentStatus.COMPLETED, pending.order_id)
        if pending.status == PendingPaymentStatus.CANCELLED:
            return ReconciliationOutcome(False, PendingPaymentStatus.CANCELLED)
        if pending.status == PendingPaymentStatus.PROCESSING:
            return self._defer_to_winner(pending.id)

        reference = pending.provider_reference or provider_reference or ""
        if provider_reference and not pending.provider_reference:
            PendingPayment.objects.filter(pk=pending.id, provider_reference="").update(
                provider_reference=provider_reference
            )

        credential = get_tenant_credential(company_id, pending.provider)
        if credential is None or not reference:
            log.info(
                "Reconciliation skipped: credential or reference missing",
                extra={
                    "pending_id": str(pending.id),
                    "provider": pending.provider,
                    "has_credential": credential is not None,
                    "has_reference": bool(reference),
                },
            )
            return ReconciliationOutcome(False, PendingPaymentStatus.PENDING)

        client = self.client_factory(pending.provider)
        try:
            token = client.authenticate(credential)
            payload = client.get_payment_status(token, reference)
        except (ProviderError, CredentialsMissingError) as e:
            log.warning(
                "Provider lookup failed during reconciliation",
                extra={
                    "pending_id": str(pending.id),
                    "provider": pending.provider,
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return ReconciliationOutcome(False, PendingPaymentStatus.PENDING)

        raw_status = payload.raw_status
        self.record_check(pending.id, raw_status)
        normalized = normalize_status(pending.provider, raw_status)

        log.info(
            "Provider status checked",
            extra={
                "pending_id": str(pending.id),
                "provider": pending.provider,
                "raw_status": raw_status,
                "normalized": normalized,
                "strategy": payload.strategy,
            },
        )

        if normalized == NormalizedStatus.APPROVED:
            return self._settle_approved(pending.id, reference)
        if normalized == NormalizedStatus.CANCELLED:
            if allow_cancel:
                return self._cancel(pending.id, raw_status)
            return ReconciliationOutcome(False, raw_status or PendingPaymentStatus.CANCELLED)
        return ReconciliationOutcome(False, raw_status or PendingPaymentStatus.PENDING)

    def apply_webhook_status(
        self,
        pending_id,
        raw_status: str | None,
        charge_id: str | None = None,
    ) -> ReconciliationOutcome:
        """
        Apply a status pushed by a provider webhook.

        The webhook is the authoritative writer of CANCELLED. Approved
        statuses take the same claim/materialize path as the poller.

        Args:
            pending_id: PendingPayment the notification refers to
            raw_status: Status as sent in the notification
            charge_id: Provider charge id, when the row has no reference
        """
        pending = PendingPayment.objects.filter(pk=pending_id).first()
        if pending is None:
            raise NotFoundError(
                "Pending payment not found",
                error_code="PENDING_PAYMENT_NOT_FOUND",
                details={"pending_id": str(pending_id)},
            )

        if pending.status == PendingPaymentStatus.COMPLETED:
            return ReconciliationOutcome(True, PendingPaymentStatus.COMPLETED, pending.order_id)
        if pending.status == PendingPaymentStatus.CANCELLED:
            return ReconciliationOutcome(False, PendingPaymentStatus.CANCELLED)

        self.record_check(pending.id, raw_status)
        normalized = normalize_status(pending.provider, raw_status)
        reference = pending.provider_reference or charge_id or ""

        self.get_logger().info(
            "Webhook status received",
            extra={
                "pending_id": str(pending.id),
                "provider": pending.provider,
                "raw_status": raw_status,
                "normalized": normalized,
            },
        )

        if normalized == NormalizedStatus.APPROVED:
            if pending.status == PendingPaymentStatus.PROCESSING:
                return self._defer_to_winner(pending.id)
            return self._settle_approved(pending.id, reference)
        if normalized == NormalizedStatus.CANCELLED:
            return self._cancel(pending.id, raw_status)
        return ReconciliationOutcome(False, raw_status or PendingPaymentStatus.PENDING)

    @staticmethod
    def record_check(pending_id, raw_status: str | None) -> None:
        """Stamp polling diagnostics without touching the status column."""
        PendingPayment.objects.filter(pk=pending_id).update(
            check_count=F("check_count") + 1,
            last_checked_at=timezone.now(),
            last_provider_status=(raw_status or "")[:50],
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _defer_to_winner(self, pending_id) -> ReconciliationOutcome:
        order_id = wait_for_winner(pending_id)
        if order_id is not None:
            return ReconciliationOutcome(True, PendingPaymentStatus.COMPLETED, order_id)

        # The claim may have been lost to a cancellation rather than a winner
        current = PendingPayment.objects.filter(pk=pending_id).values_list("status", flat=True).first()
        if current == PendingPaymentStatus.CANCELLED:
            return ReconciliationOutcome(False, PendingPaymentStatus.CANCELLED)
        return ReconciliationOutcome(False, PendingPaymentStatus.PROCESSING)

    def _cancel(self, pending_id, raw_status: str | None) -> ReconciliationOutcome:
        if cancel_pending_payment(pending_id):
            self.get_logger().info(
                "Pending payment cancelled by provider",
                extra={"pending_id": str(pending_id), "raw_status": raw_status},
            )
            return ReconciliationOutcome(False, PendingPaymentStatus.CANCELLED)

        # Someone else moved the row first; report what it is now
        current = PendingPayment.objects.filter(pk=pending_id).values("status", "order_id").first()
        if current and current["order_id"] is not None:
            return ReconciliationOutcome(True, PendingPaymentStatus.COMPLETED, current["order_id"])
        return ReconciliationOutcome(False, current["status"] if current else PendingPaymentStatus.CANCELLED)

    def _settle_approved(self, pending_id, reference: str) -> ReconciliationOutcome:
        if not claim_pending_payment(pending_id):
            return self._defer_to_winner(pending_id)

        try:
            order = self._materialize(pending_id, reference)
        except MATERIALIZATION_ERRORS as e:
            self.get_logger().error(
                "Order materialization failed; pending payment left in processing",
                extra={
                    "pending_id": str(pending_id),
                    "reference": reference,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise OrderMaterializationError(
                "Could not create the order for this payment",
                details={"pending_id": str(pending_id)},
            ) from e

        self.get_logger().info(
            "Order materialized",
            extra={"pending_id": str(pending_id), "order_id": str(order.id)},
        )
        return ReconciliationOutcome(True, PendingPaymentStatus.COMPLETED, order.id)

    def _materialize(self, pending_id, reference: str) -> Order:
        with transaction.atomic():
            pending = PendingPayment.objects.select_for_update().get(pk=pending_id)
            order = build_order_from_payload(pending, reference)
            pending.complete(order)
            pending.save()
        return order


__all__ = [
    "ReconciliationOutcome",
    "ReconciliationService",
    "build_order_from_payload",
]
