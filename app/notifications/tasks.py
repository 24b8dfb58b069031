"""
Celery tasks for notification delivery.

Tasks:
    send_refund_receipt_email: E-mail a refund receipt to the customer

Design:
    - Tasks receive ids (strings), never model instances
    - SMTP failures retry with backoff; a receipt is best-effort and its
      failure never affects the refund that triggered it
"""

from __future__ import annotations

import logging
from decimal import Decimal

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from core.helpers import format_brl

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(OSError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_refund_receipt_email(self, order_id: str, amount: str, refund_id: str) -> bool:
    """
    Send the refund receipt e-mail for an order.

    Args:
        order_id: UUID string of the refunded Order
        amount: Refunded amount as a decimal string
        refund_id: Provider refund identifier

    Returns:
        True if sent, False if skipped (order gone or no e-mail)
    """
    from stores.models import Order

    order = Order.objects.select_related("company").filter(pk=order_id).first()
    if order is None or not order.customer_email:
        logger.info(
            "Refund receipt skipped",
            extra={"order_id": order_id, "refund_id": refund_id},
        )
        return False

    value = format_brl(Decimal(amount))
    subject = f"Refund processed - {order.company.name}"
    body = (
        f"Hello {order.customer_name or 'customer'},\n\n"
        f"Your refund of {value} for order #{str(order.id)[:8]} at "
        f"{order.company.name} has been processed.\n"
        f"Refund reference: {refund_id}\n\n"
        "Depending on your bank, the amount may take a few business days "
        "to show up on your statement.\n"
    )

    send_mail(
        subject=subject,
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[order.customer_email],
        fail_silently=False,
    )
    logger.info(
        "Refund receipt sent",
        extra={"order_id": order_id, "refund_id": refund_id},
    )
    return True
