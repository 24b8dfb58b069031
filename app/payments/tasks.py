"""
Celery tasks for payment processing.

This module provides async tasks for:
- Reporting pending payments stuck in PROCESSING
- Retrying failed webhook events
- Periodic cleanup of old webhook events

Usage:
    # Typically scheduled via celery-beat (see config/celery.py)
    from payments.tasks import report_stuck_pending_payments

    report_stuck_pending_payments.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.models import PendingPayment, WebhookEvent
from payments.state_machines import PendingPaymentStatus, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5


# =============================================================================
# Reconciliation Sweep
# =============================================================================


@shared_task
def report_stuck_pending_payments() -> dict:
    """
    Log pending payments stuck in PROCESSING.

    A row stays PROCESSING when order creation failed after the claim
    was won. Such rows need manual reconciliation: this task only
    reports them and never changes their status.

    Returns:
        Dict with the number of stuck rows found
    """
    threshold_minutes = getattr(settings, "PENDING_PAYMENT_STUCK_MINUTES", 10)
    threshold = timezone.now() - timedelta(minutes=threshold_minutes)

    stuck = PendingPayment.objects.filter(
        status=PendingPaymentStatus.PROCESSING,
        updated_at__lt=threshold,
    ).order_by("updated_at")

    stuck_count = 0
    for pending in stuck.iterator():
        stuck_count += 1
        logger.error(
            "Pending payment stuck in processing, manual reconciliation required",
            extra={
                "pending_id": str(pending.id),
                "company_id": str(pending.company_id),
                "provider": pending.provider,
                "provider_reference": pending.provider_reference,
                "stuck_since": pending.updated_at.isoformat(),
            },
        )

    if stuck_count:
        logger.warning(
            f"Found {stuck_count} pending payments stuck in processing",
            extra={"stuck_count": stuck_count, "threshold_minutes": threshold_minutes},
        )

    return {"stuck_count": stuck_count}


# =============================================================================
# Webhook Tasks
# =============================================================================


@shared_task(
    bind=True,
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Re-run a stored webhook event.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status
    """
    # Import here to avoid circular imports
    from payments.webhooks.handlers import process_stored_event

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    result = process_stored_event(webhook_event)
    return {
        "status": "processed" if result.success else "handler_failed",
        "webhook_event_id": str(webhook_event_id),
        "error": result.error,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded max retries and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={
                "webhook_event_id": str(webhook.id),
                "provider": webhook.provider,
                "retry_count": webhook.retry_count,
            },
        )

    return {"queued_count": queued_count}


@shared_task
def cleanup_old_webhooks(days: int = 90) -> dict:
    """
    Delete processed webhook events older than ``days``.

    Failed events are kept for debugging.
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}
