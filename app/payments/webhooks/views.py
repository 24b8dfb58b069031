"""
Webhook endpoint views for Mercado Pago and PicPay.

Each view:
1. Parses the JSON body
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Dispatches the event to its provider handler
4. Answers 200 with ``{"received": true, ...}``

Every response is 200, including failures, so providers stop retrying.
Failures are kept on the WebhookEvent row and in the logs.

Usage:
    # In urls.py
    from payments.webhooks.views import mercadopago_webhook, picpay_webhook

    urlpatterns = [
        path("webhooks/picpay/", picpay_webhook, name="picpay_webhook"),
        path("webhooks/mercadopago/", mercadopago_webhook, name="mercadopago_webhook"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.models import WebhookEvent
from payments.state_machines import PaymentProvider
from payments.webhooks.handlers import process_stored_event

logger = logging.getLogger(__name__)


def _acknowledge(**extra) -> JsonResponse:
    return JsonResponse({"received": True, **extra}, status=200)


def _receive(request: HttpRequest, provider: str) -> JsonResponse:
    try:
        payload = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError):
        logger.warning(
            "Webhook body is not valid JSON",
            extra={"provider": provider},
        )
        return _acknowledge(error="Invalid payload")

    if not isinstance(payload, dict):
        return _acknowledge(error="Invalid payload")

    event_type = str(
        payload.get("type")
        or payload.get("topic")
        or request.headers.get("event_type")
        or request.headers.get("X-Event-Type")
        or ""
    )[:100]

    logger.info(
        f"Received {provider} webhook",
        extra={"provider": provider, "event_type": event_type},
    )
    logger.debug("Webhook payload", extra={"provider": provider, "payload": payload})

    webhook_event, created = WebhookEvent.objects.get_or_create(
        event_key=WebhookEvent.build_event_key(provider, payload),
        defaults={
            "provider": provider,
            "event_type": event_type,
            "payload": payload,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"webhook_event_id": str(webhook_event.id)},
        )
        return _acknowledge(already_processed=True)

    result = process_stored_event(webhook_event)
    if result.success:
        return _acknowledge(**(result.data or {}))
    return _acknowledge(error=result.error)


@csrf_exempt
@require_POST
def picpay_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive PicPay charge notifications.

    The pending payment is found through ``merchantChargeId`` (or a
    reference/description field carrying its UUID).
    """
    return _receive(request, PaymentProvider.PICPAY)


@csrf_exempt
@require_POST
def mercadopago_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive Mercado Pago ``{"type": "payment", "data": {"id": ...}}`` notifications.
    """
    return _receive(request, PaymentProvider.MERCADOPAGO)
