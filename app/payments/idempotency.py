"""
Compare-and-swap guards for shared payment rows.

PendingPayment, RefundRequest and SubscriptionPayment rows are written by
more than one actor (browser poller, provider webhook, admin UI). Each
state change that must happen at most once is a single conditional
UPDATE: exactly one concurrent caller sees a non-zero row count.

No lock manager is involved; the database's atomic single-row update is
the whole mechanism.

Usage:
    from payments.idempotency import claim_pending_payment, wait_for_winner

    if claim_pending_payment(pending.id):
        ...  # this caller materializes the order
    else:
        order_id = wait_for_winner(pending.id)
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from payments.models import PendingPayment, RefundRequest, SubscriptionPayment
from payments.state_machines import PendingPaymentStatus, RefundRequestStatus

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# PendingPayment
# =============================================================================


def claim_pending_payment(pending_id) -> bool:
    """
    Move a PendingPayment from PENDING to PROCESSING.

    Returns:
        True if this caller won the claim and must materialize the order
    """
    updated = PendingPayment.objects.filter(
        pk=pending_id,
        status=PendingPaymentStatus.PENDING,
    ).update(
        status=PendingPaymentStatus.PROCESSING,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    won = updated == 1
    logger.info(
        "Pending payment claim attempted",
        extra={"pending_id": str(pending_id), "won": won},
    )
    return won


def cancel_pending_payment(pending_id) -> bool:
    """
    Move a PendingPayment from PENDING to CANCELLED.

    Only the webhook path calls this; pollers never write CANCELLED.

    Returns:
        True if the row was cancelled by this call
    """
    now = timezone.now()
    updated = PendingPayment.objects.filter(
        pk=pending_id,
        status=PendingPaymentStatus.PENDING,
    ).update(
        status=PendingPaymentStatus.CANCELLED,
        cancelled_at=now,
        version=F("version") + 1,
        updated_at=now,
    )
    return updated == 1


def wait_for_winner(
    pending_id,
    attempts: int | None = None,
    delay: float | None = None,
):
    """
    Re-read a claimed PendingPayment until the winner attaches its order.

    Bounded: after ``attempts`` reads the caller gives up and reports
    "not yet" so the client polls again.

    Args:
        pending_id: The contested PendingPayment
        attempts: Number of reads (RECONCILE_WINNER_WAIT_ATTEMPTS)
        delay: Seconds between reads (RECONCILE_WINNER_WAIT_SECONDS)

    Returns:
        The winner's order id, or None if it is not available yet
    """
    if attempts is None:
        attempts = getattr(settings, "RECONCILE_WINNER_WAIT_ATTEMPTS", 3)
    if delay is None:
        delay = getattr(settings, "RECONCILE_WINNER_WAIT_SECONDS", 0.5)

    for attempt in range(max(attempts, 1)):
        row = (
            PendingPayment.objects.filter(pk=pending_id)
            .values("status", "order_id")
            .first()
        )
        if row is None:
            return None
        if row["order_id"] is not None:
            return row["order_id"]
        if row["status"] != PendingPaymentStatus.PROCESSING:
            return None
        if attempt < attempts - 1:
            time.sleep(delay)

    logger.info(
        "Winner has not finished materializing yet",
        extra={"pending_id": str(pending_id), "attempts": attempts},
    )
    return None


# =============================================================================
# RefundRequest
# =============================================================================


def claim_refund_request(request_id, target_status: str, **fields: Any) -> bool:
    """
    Move a RefundRequest out of PENDING.

    Args:
        request_id: RefundRequest id
        target_status: PROCESSING (approve) or REJECTED (reject)
        **fields: Extra columns written in the same UPDATE
            (reviewed_by, reviewed_at, rejection_reason)

    Returns:
        True if this caller won; False means the request was already
        processed by someone else
    """
    if target_status not in (RefundRequestStatus.PROCESSING, RefundRequestStatus.REJECTED):
        raise ValueError(f"Cannot claim refund request into {target_status!r}")

    updated = RefundRequest.objects.filter(
        pk=request_id,
        status=RefundRequestStatus.PENDING,
    ).update(
        status=target_status,
        version=F("version") + 1,
        updated_at=timezone.now(),
        **fields,
    )
    return updated == 1


# =============================================================================
# SubscriptionPayment
# =============================================================================


def transition_subscription_payment(
    payment_id,
    from_status: str,
    to_status: str,
    **fields: Any,
) -> bool:
    """
    Conditionally move a SubscriptionPayment between payment statuses.

    Returns:
        True if the row was in ``from_status`` and is now ``to_status``
    """
    updated = SubscriptionPayment.objects.filter(
        pk=payment_id,
        payment_status=from_status,
    ).update(
        payment_status=to_status,
        updated_at=timezone.now(),
        **fields,
    )
    return updated == 1


__all__ = [
    "cancel_pending_payment",
    "claim_pending_payment",
    "claim_refund_request",
    "transition_subscription_payment",
    "wait_for_winner",
]
