"""
Notification service layer.

Services:
    NotificationService: In-app notifications and customer refund receipts

Design Principles:
    - Services are stateless (class methods)
    - In-app notifications are written synchronously; customer e-mail is
      enqueued to Celery and never blocks or fails the caller

Usage:
    from notifications.services import NotificationService

    NotificationService.notify_company_owner(
        company,
        title="Refund approved",
        message="The refund of R$ 50.00 was processed.",
        notification_type=NotificationType.SUCCESS,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService

from notifications.models import Notification, NotificationType

if TYPE_CHECKING:
    from decimal import Decimal

    from authentication.models import User
    from stores.models import Company, Order

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        create_notification: Persist an in-app notification for a user
        notify_company_owner: Shortcut addressing a company's owner
        send_refund_receipt: Enqueue the customer refund e-mail
    """

    @classmethod
    def create_notification(
        cls,
        recipient: User,
        title: str,
        message: str = "",
        notification_type: str = NotificationType.INFO,
        company: Company | None = None,
        data: dict | None = None,
        idempotency_key: str | None = None,
    ) -> Notification:
        """
        Create an in-app notification.

        When ``idempotency_key`` is given and a notification with that key
        already exists, the existing row is returned instead.
        """
        if idempotency_key:
            existing = Notification.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                return existing

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient=recipient,
                    company=company,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    data=data or {},
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Concurrent create with the same key
            return Notification.objects.get(idempotency_key=idempotency_key)

        cls.get_logger().info(
            "Notification created",
            extra={
                "notification_id": str(notification.id),
                "recipient_id": recipient.pk,
                "notification_type": notification_type,
            },
        )
        return notification

    @classmethod
    def notify_company_owner(
        cls,
        company: Company,
        title: str,
        message: str,
        notification_type: str = NotificationType.INFO,
        data: dict | None = None,
        idempotency_key: str | None = None,
    ) -> Notification:
        """Notify the owner of ``company``."""
        return cls.create_notification(
            recipient=company.owner,
            title=title,
            message=message,
            notification_type=notification_type,
            company=company,
            data=data,
            idempotency_key=idempotency_key,
        )

    @classmethod
    def send_refund_receipt(cls, order: Order, amount: Decimal, refund_id: str) -> bool:
        """
        Enqueue the customer refund receipt e-mail.

        Best-effort: a missing address or a broker failure is logged and
        reported as False, never raised.

        Returns:
            True if the e-mail task was enqueued
        """
        if not order.customer_email:
            cls.get_logger().info(
                "Refund receipt skipped: order has no customer email",
                extra={"order_id": str(order.id)},
            )
            return False

        from notifications.tasks import send_refund_receipt_email

        try:
            send_refund_receipt_email.delay(str(order.id), str(amount), refund_id)
        except Exception:
            logger.exception(
                "Failed to enqueue refund receipt email",
                extra={"order_id": str(order.id), "refund_id": refund_id},
            )
            return False
        return True


__all__ = ["NotificationService"]
