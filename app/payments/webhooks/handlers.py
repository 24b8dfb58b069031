"""
Webhook handlers for Mercado Pago and PicPay notifications.

This module provides a handler registry keyed by provider and the two
handler implementations. Handlers never talk HTTP: they receive the
stored WebhookEvent, route it to the reconciliation engine and return a
ServiceResult whose data becomes part of the acknowledgement body.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("someprovider")
    def handle_someprovider(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Callable

from django.db import DatabaseError

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from payments.models import PendingPayment
from payments.services import ReconciliationService
from payments.state_machines import PaymentProvider, PendingPaymentStatus

if TYPE_CHECKING:
    from payments.models import WebhookEvent


logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps provider kind to handler function
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(provider: str) -> Callable:
    """
    Decorator to register the webhook handler of a provider.

    Args:
        provider: Provider kind (e.g. "picpay")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[provider] = func
        logger.debug(f"Registered webhook handler for {provider}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its provider handler.

    Unknown providers are acknowledged with an empty success.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.provider)

    if not handler:
        logger.info(
            f"No handler registered for provider: {webhook_event.provider}",
            extra={"webhook_event_id": str(webhook_event.id)},
        )
        return ServiceResult.ok({})

    logger.info(
        f"Dispatching {webhook_event.provider} webhook to handler",
        extra={
            "webhook_event_id": str(webhook_event.id),
            "event_type": webhook_event.event_type,
        },
    )
    return handler(webhook_event)


def process_stored_event(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Run a stored WebhookEvent through its handler and record the outcome.

    Used by the webhook views and by the retry task. Application and
    database errors become a FAILED row and a failed result.
    """
    webhook_event.mark_processing()
    webhook_event.save(update_fields=["status", "retry_count", "updated_at"])

    try:
        result = dispatch_webhook(webhook_event)
    except (BaseApplicationError, DatabaseError) as e:
        logger.error(
            f"Webhook processing failed: {type(e).__name__}",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "provider": webhook_event.provider,
            },
            exc_info=True,
        )
        result = ServiceResult.from_exception(e)

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save(update_fields=["status", "processed_at", "error_message", "updated_at"])
        logger.info(
            "Webhook processed successfully",
            extra={"webhook_event_id": str(webhook_event.id)},
        )
    else:
        webhook_event.mark_failed(result.error or "Handler returned failure")
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {result.error}",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "error_code": result.error_code,
            },
        )
    return result


# =============================================================================
# Payload Extraction
# =============================================================================


def _nested(payload: dict[str, Any], *path: str) -> Any:
    value: Any = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_uuid(text: Any) -> str | None:
    """First UUID found in free text, or None."""
    if not text:
        return None
    match = UUID_PATTERN.search(str(text))
    return match.group(0) if match else None


def extract_picpay_status(payload: dict[str, Any]) -> str:
    """Charge status from the first populated location, upper-cased."""
    for path in (("data", "status"), ("status",), ("charge", "status"), ("payment", "status"), ("transaction", "status")):
        value = _nested(payload, *path)
        if value:
            return str(value).upper()
    return ""


def extract_merchant_charge_id(payload: dict[str, Any]) -> str | None:
    """
    PendingPayment id the notification refers to.

    Explicit reference fields win; otherwise the first UUID found in a
    description field is used.
    """
    for path in (
        ("data", "merchantChargeId"),
        ("merchantChargeId",),
        ("referenceId",),
        ("reference_id",),
        ("externalReference",),
        ("external_reference",),
        ("data", "referenceId"),
        ("charge", "merchantChargeId"),
    ):
        value = _nested(payload, *path)
        if value:
            return str(value)

    for path in (("data", "description"), ("description",), ("charge", "description")):
        found = extract_uuid(_nested(payload, *path))
        if found:
            return found
    return None


def extract_picpay_charge_id(payload: dict[str, Any]) -> str | None:
    for path in (("id",), ("chargeId",), ("charge_id",), ("data", "id"), ("charge", "id")):
        value = _nested(payload, *path)
        if value:
            return str(value)
    return None


# =============================================================================
# Provider Handlers
# =============================================================================


@register_handler(PaymentProvider.PICPAY)
def handle_picpay_notification(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Apply a PicPay charge notification.

    The notification's own status is authoritative: approved statuses
    materialize the order, cancelled ones cancel the pending payment.
    """
    payload = webhook_event.payload or {}
    merchant_charge_id = extract_merchant_charge_id(payload)
    charge_id = extract_picpay_charge_id(payload)
    raw_status = extract_picpay_status(payload)

    logger.info(
        "Processing PicPay notification",
        extra={
            "webhook_event_id": str(webhook_event.id),
            "merchant_charge_id": merchant_charge_id,
            "charge_id": charge_id,
            "raw_status": raw_status,
        },
    )

    if not merchant_charge_id or extract_uuid(merchant_charge_id) != merchant_charge_id:
        logger.warning(
            "PicPay notification without a usable merchantChargeId",
            extra={"webhook_event_id": str(webhook_event.id), "fields": sorted(payload)},
        )
        return ServiceResult.ok({"warning": "No merchantChargeId found"})

    pending = PendingPayment.objects.filter(pk=merchant_charge_id).first()
    if pending is None:
        logger.warning(
            "PicPay notification for unknown pending payment",
            extra={"merchant_charge_id": merchant_charge_id},
        )
        return ServiceResult.failure("Order not found", error_code="PENDING_PAYMENT_NOT_FOUND")

    if pending.status == PendingPaymentStatus.COMPLETED:
        return ServiceResult.ok({"already_processed": True, "order_id": str(pending.order_id)})

    try:
        outcome = ReconciliationService().apply_webhook_status(
            pending.id,
            raw_status,
            charge_id=charge_id,
        )
    except BaseApplicationError as e:
        return ServiceResult.from_exception(e)

    if outcome.approved and outcome.order_id:
        return ServiceResult.ok({"order_id": str(outcome.order_id)})
    return ServiceResult.ok({"status": outcome.status})


@register_handler(PaymentProvider.MERCADOPAGO)
def handle_mercadopago_notification(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Apply a Mercado Pago payment notification.

    Mercado Pago only sends the payment id, so the pending payment is
    looked up by its provider reference and reconciled through a fresh
    provider lookup.
    """
    payload = webhook_event.payload or {}
    event_type = payload.get("type") or payload.get("topic") or ""
    payment_id = _nested(payload, "data", "id") or (payload.get("resource") if event_type == "payment" else None)

    if event_type != "payment" or not payment_id:
        logger.info(
            "Ignoring Mercado Pago notification",
            extra={"webhook_event_id": str(webhook_event.id), "event_type": event_type},
        )
        return ServiceResult.ok({"ignored": True})

    pending = PendingPayment.objects.filter(
        provider=PaymentProvider.MERCADOPAGO,
        provider_reference=str(payment_id),
    ).first()
    if pending is None:
        logger.warning(
            "Mercado Pago notification for unknown payment",
            extra={"payment_id": str(payment_id)},
        )
        return ServiceResult.failure("Order not found", error_code="PENDING_PAYMENT_NOT_FOUND")

    try:
        outcome = ReconciliationService().reconcile(
            pending.id,
            pending.company_id,
            allow_cancel=True,
        )
    except BaseApplicationError as e:
        return ServiceResult.from_exception(e)

    if outcome.approved and outcome.order_id:
        return ServiceResult.ok({"order_id": str(outcome.order_id)})
    return ServiceResult.ok({"status": outcome.status})


__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "extract_merchant_charge_id",
    "extract_picpay_status",
    "extract_uuid",
    "handle_mercadopago_notification",
    "handle_picpay_notification",
    "process_stored_event",
    "register_handler",
]
