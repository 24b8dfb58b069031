"""
Tests for NotificationService and the refund receipt task.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.core import mail

from core.helpers import format_brl
from notifications.models import Notification, NotificationType
from notifications.services import NotificationService
from notifications.tasks import send_refund_receipt_email
from notifications.tests.factories import NotificationFactory
from stores.tests.factories import OrderFactory


@pytest.mark.django_db
class TestCreateNotification:
    def test_notify_company_owner_targets_owner(self, company):
        notification = NotificationService.notify_company_owner(
            company,
            title="Refund approved",
            message="R$ 50,00 refunded",
            notification_type=NotificationType.SUCCESS,
        )

        assert notification.recipient == company.owner
        assert notification.company == company
        assert notification.notification_type == NotificationType.SUCCESS

    def test_idempotency_key_returns_existing(self, company):
        """Retrying with the same key does not duplicate the message."""
        first = NotificationService.notify_company_owner(
            company, title="A", message="B", idempotency_key="refund:1:approved"
        )
        second = NotificationService.notify_company_owner(
            company, title="A", message="B", idempotency_key="refund:1:approved"
        )

        assert first.pk == second.pk
        assert Notification.objects.filter(idempotency_key="refund:1:approved").count() == 1

    def test_notifications_without_key_are_independent(self):
        NotificationFactory()
        NotificationFactory()
        assert Notification.objects.count() == 2


@pytest.mark.django_db
class TestSendRefundReceipt:
    def test_enqueues_task_with_order_details(self, refunded_order):
        with patch("notifications.tasks.send_refund_receipt_email.delay") as mock_delay:
            queued = NotificationService.send_refund_receipt(
                refunded_order, Decimal("50.00"), "rf-123"
            )

        assert queued is True
        mock_delay.assert_called_once_with(str(refunded_order.id), "50.00", "rf-123")

    def test_skips_order_without_email(self, company):
        order = OrderFactory(company=company, customer_email="")
        with patch("notifications.tasks.send_refund_receipt_email.delay") as mock_delay:
            queued = NotificationService.send_refund_receipt(order, Decimal("10.00"), "rf-1")

        assert queued is False
        mock_delay.assert_not_called()

    def test_broker_failure_is_swallowed(self, refunded_order):
        """A receipt failure must never reach the refund caller."""
        with patch(
            "notifications.tasks.send_refund_receipt_email.delay",
            side_effect=ConnectionError("broker down"),
        ):
            queued = NotificationService.send_refund_receipt(
                refunded_order, Decimal("50.00"), "rf-123"
            )

        assert queued is False


@pytest.mark.django_db
class TestRefundReceiptTask:
    def test_sends_email_to_customer(self, refunded_order):
        sent = send_refund_receipt_email.run(str(refunded_order.id), "50.00", "rf-123")

        assert sent is True
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ["ana@example.com"]
        assert "R$ 50,00" in mail.outbox[0].body
        assert "rf-123" in mail.outbox[0].body

    def test_missing_order_is_skipped(self, db):
        sent = send_refund_receipt_email.run(
            "00000000-0000-0000-0000-000000000000", "1.00", "rf"
        )
        assert sent is False
        assert mail.outbox == []


class TestFormatBrl:
    def test_thousands_and_cents(self):
        assert format_brl(Decimal("1234.5")) == "R$ 1.234,50"

    def test_small_amount(self):
        assert format_brl(Decimal("40")) == "R$ 40,00"
