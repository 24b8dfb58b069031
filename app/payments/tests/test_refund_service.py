"""
Tests for RefundOrchestrator.

Tests cover:
1. Review guards (role, action, existence, state)
2. Rejection
3. Approval with credential routing per refund kind
4. Provider and configuration failures
5. Best-effort side effects (receipt e-mail, local bookkeeping)
6. Direct refunds by store staff
7. Refund request intake
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from notifications.models import Notification, NotificationType
from payments.credentials import PlatformPaymentConfig
from payments.exceptions import (
    AlreadyProcessedError,
    CredentialsMissingError,
    ForbiddenError,
    NotRefundableError,
    ProviderUnavailableError,
    RefundRequestNotFoundError,
    RefundValidationError,
)
from payments.models import RefundRequest, SubscriptionPayment
from payments.providers import RefundResult
from payments.services import RefundOrchestrator
from payments.state_machines import (
    PaymentProvider,
    RefundKind,
    RefundRequestStatus,
    SubscriptionPaymentStatus,
)
from payments.tests.factories import RefundRequestFactory, SubscriptionPaymentFactory
from stores.models import ActivityLog, Order, OrderPaymentStatus, OrderStatus, PaymentSettings
from stores.tests.factories import OrderFactory


def reload(refund_request) -> RefundRequest:
    return RefundRequest.objects.get(pk=refund_request.pk)


@pytest.fixture
def subscription_refund_request(company, paid_subscription):
    return RefundRequestFactory(
        company=company,
        order=None,
        subscription_payment=paid_subscription,
        refund_kind=RefundKind.SUBSCRIPTION,
        payment_id=paid_subscription.payment_reference,
        requested_amount=paid_subscription.amount,
        original_amount=paid_subscription.amount,
        customer_name="Subscription - Pro",
    )


# =============================================================================
# Review Guards
# =============================================================================


@pytest.mark.django_db
class TestReviewGuards:
    def test_owner_cannot_review(self, orchestrator, refund_request, owner):
        with pytest.raises(ForbiddenError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=owner)

        assert reload(refund_request).status == RefundRequestStatus.PENDING

    def test_anonymous_cannot_review(self, orchestrator, refund_request):
        with pytest.raises(ForbiddenError):
            orchestrator.process_refund_request(refund_request.id, "approve")

    def test_unknown_action(self, orchestrator, refund_request, platform_admin):
        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.process_refund_request(refund_request.id, "refund", actor=platform_admin)

        assert exc_info.value.error_code == "INVALID_REFUND_ACTION"

    def test_unknown_request(self, orchestrator, platform_admin):
        with pytest.raises(RefundRequestNotFoundError):
            orchestrator.process_refund_request(
                "00000000-0000-0000-0000-000000000000", "approve", actor=platform_admin
            )

    @pytest.mark.parametrize(
        "status",
        [
            RefundRequestStatus.PROCESSING,
            RefundRequestStatus.COMPLETED,
            RefundRequestStatus.FAILED,
            RefundRequestStatus.REJECTED,
        ],
    )
    def test_only_pending_requests_are_reviewed(self, orchestrator, company, platform_admin, provider_client, status):
        refund_request = RefundRequestFactory(company=company, status=status)

        with pytest.raises(AlreadyProcessedError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        provider_client.issue_refund.assert_not_called()


# =============================================================================
# Rejection
# =============================================================================


@pytest.mark.django_db
class TestReject:
    def test_reject(self, orchestrator, refund_request, platform_admin, provider_client):
        outcome = orchestrator.process_refund_request(
            refund_request.id,
            "reject",
            rejection_reason="  Outside the refund window ",
            actor=platform_admin,
        )

        assert outcome.to_response() == {"success": True, "message": "Refund request rejected"}
        stored = reload(refund_request)
        assert stored.status == RefundRequestStatus.REJECTED
        assert stored.rejection_reason == "Outside the refund window"
        assert stored.reviewed_by == platform_admin
        assert stored.reviewed_at is not None
        provider_client.issue_refund.assert_not_called()

    def test_reject_notifies_owner(self, orchestrator, refund_request, platform_admin, owner):
        orchestrator.process_refund_request(
            refund_request.id, "reject", rejection_reason="Duplicate", actor=platform_admin
        )

        notification = Notification.objects.get(recipient=owner)
        assert notification.notification_type == NotificationType.ALERT
        assert notification.idempotency_key == f"refund:{refund_request.id}:rejected"
        assert "R$ 50,00" in notification.message
        assert "Duplicate" in notification.message

    def test_reject_is_audited(self, orchestrator, refund_request, platform_admin):
        orchestrator.process_refund_request(
            refund_request.id, "reject", rejection_reason="Duplicate", actor=platform_admin
        )

        entry = ActivityLog.objects.get(action="refund_rejected")
        assert entry.user == platform_admin
        assert entry.entity_id == str(refund_request.id)
        assert entry.details["rejection_reason"] == "Duplicate"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_is_required(self, orchestrator, refund_request, platform_admin, reason):
        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.process_refund_request(
                refund_request.id, "reject", rejection_reason=reason, actor=platform_admin
            )

        assert exc_info.value.error_code == "REJECTION_REASON_REQUIRED"
        assert reload(refund_request).status == RefundRequestStatus.PENDING

    def test_second_review_fails(self, orchestrator, refund_request, platform_admin):
        orchestrator.process_refund_request(
            refund_request.id, "reject", rejection_reason="No", actor=platform_admin
        )

        with pytest.raises(AlreadyProcessedError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert reload(refund_request).status == RefundRequestStatus.REJECTED


# =============================================================================
# Approval
# =============================================================================


@pytest.mark.django_db
class TestApproveOrderRefund:
    def test_full_refund(self, orchestrator, refund_request, platform_admin, paid_order, provider_client):
        outcome = orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert outcome.to_response() == {
            "success": True,
            "refund_id": "rf-001",
            "amount": Decimal("50.00"),
            "provider": "mercadopago",
            "message": "Refund of R$ 50,00 processed successfully",
        }
        stored = reload(refund_request)
        assert stored.status == RefundRequestStatus.COMPLETED
        assert stored.refund_id == "rf-001"
        assert stored.reviewed_by == platform_admin

        order = Order.objects.get(pk=paid_order.pk)
        assert order.payment_status == OrderPaymentStatus.REFUNDED
        assert order.status == OrderStatus.CANCELLED

    def test_provider_call(self, orchestrator, refund_request, platform_admin, provider_client, client_factory):
        orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        client_factory.assert_called_once_with(PaymentProvider.MERCADOPAGO)
        credential = provider_client.authenticate.call_args.args[0]
        assert credential.access_token == PaymentSettings.objects.get(
            company=refund_request.company
        ).mercadopago_access_token

        call = provider_client.issue_refund.call_args
        assert call.args == ("test-token", "123456")
        assert call.kwargs["amount"] == Decimal("50.00")
        assert call.kwargs["original_amount"] == Decimal("50.00")
        assert call.kwargs["idempotency_key"].startswith(f"refund-{refund_request.id}-")

    def test_partial_refund(self, orchestrator, company, paid_order, platform_admin, provider_client):
        refund_request = RefundRequestFactory(company=company, order=paid_order, requested_amount=Decimal("20.00"))

        outcome = orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert outcome.amount == Decimal("20.00")
        assert outcome.message == "Refund of R$ 20,00 processed successfully"
        assert provider_client.issue_refund.call_args.kwargs["amount"] == Decimal("20.00")
        order = Order.objects.get(pk=paid_order.pk)
        assert order.payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED
        assert order.status == OrderStatus.CANCELLED

    def test_picpay_order_uses_picpay(self, orchestrator, company, platform_admin, provider_client, client_factory):
        order = OrderFactory(company=company, payment_provider="picpay", payment_reference="picpay_link-1")
        refund_request = RefundRequestFactory(
            company=company,
            order=order,
            payment_provider=PaymentProvider.PICPAY,
        )
        provider_client.issue_refund.return_value = RefundResult(
            provider=PaymentProvider.PICPAY,
            refund_id="link-1",
            amount=order.total,
        )

        outcome = orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        client_factory.assert_called_once_with(PaymentProvider.PICPAY)
        assert provider_client.authenticate.call_args.args[0].client_id.startswith("picpay-client-")
        assert provider_client.issue_refund.call_args.args == ("test-token", "link-1")
        assert outcome.provider == "picpay"
        assert outcome.refund_id == "link-1"

    def test_owner_is_notified(self, orchestrator, refund_request, platform_admin, owner):
        orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        notification = Notification.objects.get(recipient=owner)
        assert notification.notification_type == NotificationType.SUCCESS
        assert notification.idempotency_key == f"refund:{refund_request.id}:completed"

    def test_audit_entry(self, orchestrator, refund_request, platform_admin, paid_order):
        orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        entry = ActivityLog.objects.get(action="refund_approved")
        assert entry.company_id == refund_request.company_id
        assert entry.details == {
            "request_id": str(refund_request.id),
            "payment_id": "123456",
            "order_id": str(paid_order.id),
            "refund_id": "rf-001",
            "refund_amount": "50.00",
            "provider": "mercadopago",
            "subscription_refund": False,
            "approved_by": str(platform_admin.pk),
        }

    def test_receipt_is_enqueued(self, orchestrator, refund_request, platform_admin, paid_order):
        with patch("notifications.tasks.send_refund_receipt_email.delay") as mock_delay:
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        mock_delay.assert_called_once_with(str(paid_order.id), "50.00", "rf-001")

    def test_receipt_failure_does_not_fail_refund(self, orchestrator, refund_request, platform_admin):
        with patch(
            "notifications.tasks.send_refund_receipt_email.delay",
            side_effect=ConnectionError("broker down"),
        ):
            outcome = orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert outcome.success is True
        assert reload(refund_request).status == RefundRequestStatus.COMPLETED

    def test_bookkeeping_failure_does_not_fail_refund(self, orchestrator, refund_request, platform_admin):
        with patch.object(Order, "apply_refund", side_effect=DatabaseError("deadlock")):
            outcome = orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert outcome.success is True
        assert outcome.refund_id == "rf-001"

    def test_concurrent_approval_refunds_once(self, orchestrator, refund_request, platform_admin, provider_client):
        orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        with pytest.raises(AlreadyProcessedError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert provider_client.issue_refund.call_count == 1


@pytest.mark.django_db
class TestApproveSubscriptionRefund:
    def test_uses_platform_credential(
        self, orchestrator, subscription_refund_request, platform_admin, provider_client, client_factory
    ):
        outcome = orchestrator.process_refund_request(
            subscription_refund_request.id, "approve", actor=platform_admin
        )

        client_factory.assert_called_once_with(PaymentProvider.MERCADOPAGO)
        credential = provider_client.authenticate.call_args.args[0]
        assert credential.access_token == "APP_USR-platform"
        assert provider_client.issue_refund.call_args.args == ("test-token", "555000")
        assert outcome.provider == "mercadopago"

    def test_marks_subscription_refunded(
        self, orchestrator, subscription_refund_request, platform_admin, paid_subscription
    ):
        orchestrator.process_refund_request(subscription_refund_request.id, "approve", actor=platform_admin)

        assert SubscriptionPayment.objects.get(pk=paid_subscription.pk).payment_status == (
            SubscriptionPaymentStatus.REFUNDED
        )
        assert reload(subscription_refund_request).status == RefundRequestStatus.COMPLETED
        entry = ActivityLog.objects.get(action="refund_approved")
        assert entry.details["subscription_refund"] is True
        assert entry.details["order_id"] is None

    def test_legacy_row_is_matched_by_reference(self, orchestrator, company, paid_subscription, platform_admin):
        refund_request = RefundRequestFactory(
            company=company,
            order=None,
            refund_kind=RefundKind.SUBSCRIPTION,
            payment_id=paid_subscription.payment_reference,
            requested_amount=paid_subscription.amount,
            original_amount=paid_subscription.amount,
            customer_name="Subscription - Pro",
        )

        orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert SubscriptionPayment.objects.get(pk=paid_subscription.pk).payment_status == (
            SubscriptionPaymentStatus.REFUNDED
        )

    def test_missing_platform_credential(
        self, subscription_refund_request, platform_admin, client_factory, provider_client
    ):
        orchestrator = RefundOrchestrator(platform_config=PlatformPaymentConfig(), client_factory=client_factory)

        with pytest.raises(CredentialsMissingError):
            orchestrator.process_refund_request(subscription_refund_request.id, "approve", actor=platform_admin)

        stored = reload(subscription_refund_request)
        assert stored.status == RefundRequestStatus.FAILED
        assert stored.error_message == "Platform Mercado Pago credentials are not configured"
        provider_client.issue_refund.assert_not_called()

    def test_tenant_credential_is_never_used(
        self, subscription_refund_request, platform_admin, client_factory, provider_client
    ):
        """A configured tenant token must not stand in for the platform one."""
        orchestrator = RefundOrchestrator(platform_config=PlatformPaymentConfig(), client_factory=client_factory)

        with pytest.raises(CredentialsMissingError):
            orchestrator.process_refund_request(subscription_refund_request.id, "approve", actor=platform_admin)

        provider_client.authenticate.assert_not_called()


# =============================================================================
# Failures
# =============================================================================


@pytest.mark.django_db
class TestRefundFailures:
    def test_missing_tenant_credential(self, orchestrator, refund_request, platform_admin, provider_client):
        PaymentSettings.objects.filter(company=refund_request.company).update(mercadopago_access_token="")

        with pytest.raises(CredentialsMissingError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        stored = reload(refund_request)
        assert stored.status == RefundRequestStatus.FAILED
        assert stored.error_message == "Mercado Pago credentials are not configured for this store"
        provider_client.issue_refund.assert_not_called()

    def test_not_refundable(self, orchestrator, refund_request, platform_admin, provider_client, paid_order, owner):
        provider_client.issue_refund.side_effect = NotRefundableError(
            "Payment cannot be refunded. Current status: pending",
            current_status="pending",
        )

        with pytest.raises(NotRefundableError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        stored = reload(refund_request)
        assert stored.status == RefundRequestStatus.FAILED
        assert stored.error_message == "Payment cannot be refunded. Current status: pending"
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PAID

        notification = Notification.objects.get(recipient=owner)
        assert notification.notification_type == NotificationType.ALERT
        assert notification.idempotency_key == f"refund:{refund_request.id}:failed"

    def test_provider_unavailable(self, orchestrator, refund_request, platform_admin, provider_client):
        provider_client.issue_refund.side_effect = ProviderUnavailableError("mercadopago service error (503)")

        with pytest.raises(ProviderUnavailableError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert reload(refund_request).status == RefundRequestStatus.FAILED

    def test_failed_request_is_terminal(self, orchestrator, refund_request, platform_admin, provider_client):
        provider_client.issue_refund.side_effect = ProviderUnavailableError("down")
        with pytest.raises(ProviderUnavailableError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        with pytest.raises(AlreadyProcessedError):
            orchestrator.process_refund_request(refund_request.id, "approve", actor=platform_admin)

        assert provider_client.issue_refund.call_count == 1


# =============================================================================
# Direct Refund
# =============================================================================


@pytest.mark.django_db
class TestDirectRefund:
    def test_owner_refunds_order(self, orchestrator, paid_order, owner, provider_client):
        outcome = orchestrator.direct_refund(paid_order.id, reason="Cliente desistiu", actor=owner)

        assert outcome.success is True
        assert outcome.refund_id == "rf-001"
        refund_request = RefundRequest.objects.get(order=paid_order)
        assert refund_request.status == RefundRequestStatus.COMPLETED
        assert refund_request.requested_by == owner
        assert refund_request.reviewed_by == owner
        assert refund_request.payment_id == "123456"
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.REFUNDED
        assert ActivityLog.objects.filter(action="direct_refund").count() == 1

    def test_direct_refund_is_always_full(self, orchestrator, paid_order, owner, provider_client):
        orchestrator.direct_refund(paid_order.id, actor=owner)

        kwargs = provider_client.issue_refund.call_args.kwargs
        assert kwargs["amount"] == kwargs["original_amount"] == Decimal("50.00")

    def test_owner_is_not_notified(self, orchestrator, paid_order, owner):
        orchestrator.direct_refund(paid_order.id, actor=owner)

        assert Notification.objects.count() == 0

    def test_staff_can_refund(self, orchestrator, paid_order, staff_member):
        outcome = orchestrator.direct_refund(paid_order.id, actor=staff_member)

        assert outcome.success is True

    def test_outsider_cannot_refund(self, orchestrator, paid_order, outsider, provider_client):
        with pytest.raises(ForbiddenError):
            orchestrator.direct_refund(paid_order.id, actor=outsider)

        provider_client.issue_refund.assert_not_called()
        assert RefundRequest.objects.count() == 0

    def test_unknown_order(self, orchestrator, owner):
        with pytest.raises(RefundRequestNotFoundError) as exc_info:
            orchestrator.direct_refund("00000000-0000-0000-0000-000000000000", actor=owner)

        assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    def test_unpaid_order(self, orchestrator, company, owner):
        order = OrderFactory(company=company, payment_status=OrderPaymentStatus.PENDING)

        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.direct_refund(order.id, actor=owner)

        assert exc_info.value.error_code == "ORDER_NOT_PAID"

    def test_open_request_blocks_direct_refund(self, orchestrator, refund_request, paid_order, owner, provider_client):
        with pytest.raises(AlreadyProcessedError):
            orchestrator.direct_refund(paid_order.id, actor=owner)

        provider_client.issue_refund.assert_not_called()

    def test_missing_credential_creates_nothing(self, orchestrator, paid_order, owner):
        PaymentSettings.objects.filter(company=paid_order.company).update(mercadopago_enabled=False)

        with pytest.raises(CredentialsMissingError):
            orchestrator.direct_refund(paid_order.id, actor=owner)

        assert RefundRequest.objects.count() == 0

    def test_provider_failure_is_recorded(self, orchestrator, paid_order, owner, provider_client):
        provider_client.issue_refund.side_effect = NotRefundableError("Payment cannot be refunded. Current status: in_process")

        with pytest.raises(NotRefundableError):
            orchestrator.direct_refund(paid_order.id, actor=owner)

        refund_request = RefundRequest.objects.get(order=paid_order)
        assert refund_request.status == RefundRequestStatus.FAILED
        assert refund_request.error_message == "Payment cannot be refunded. Current status: in_process"


# =============================================================================
# Intake
# =============================================================================


@pytest.mark.django_db
class TestCreateRefundRequest:
    def test_full_amount_by_default(self, orchestrator, paid_order, owner):
        refund_request = orchestrator.create_refund_request(owner, order_id=paid_order.id, reason=" Frio ")

        assert refund_request.status == RefundRequestStatus.PENDING
        assert refund_request.refund_kind == RefundKind.ORDER
        assert refund_request.payment_provider == PaymentProvider.MERCADOPAGO
        assert refund_request.payment_id == "123456"
        assert refund_request.requested_amount == Decimal("50.00")
        assert refund_request.original_amount == Decimal("50.00")
        assert refund_request.reason == "Frio"
        assert refund_request.requested_by == owner

    def test_partial_amount(self, orchestrator, paid_order, owner):
        refund_request = orchestrator.create_refund_request(owner, order_id=paid_order.id, amount="12.5")

        assert refund_request.requested_amount == Decimal("12.50")
        assert refund_request.is_partial is True

    @pytest.mark.parametrize("amount", ["0", "-1", "50.01", "abc"])
    def test_invalid_amount(self, orchestrator, paid_order, owner, amount):
        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.create_refund_request(owner, order_id=paid_order.id, amount=amount)

        assert exc_info.value.error_code == "INVALID_REFUND_AMOUNT"

    def test_second_request_is_capped_by_previous_refunds(self, orchestrator, paid_order, owner, platform_admin):
        first = orchestrator.create_refund_request(owner, order_id=paid_order.id, amount="25.00")
        orchestrator.process_refund_request(first.id, "approve", actor=platform_admin)
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED

        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.create_refund_request(owner, order_id=paid_order.id, amount="50.00")

        assert exc_info.value.error_code == "INVALID_REFUND_AMOUNT"
        assert RefundRequest.objects.count() == 1

    def test_second_request_defaults_to_remaining_amount(self, orchestrator, paid_order, owner, platform_admin):
        first = orchestrator.create_refund_request(owner, order_id=paid_order.id, amount="20.00")
        orchestrator.process_refund_request(first.id, "approve", actor=platform_admin)

        second = orchestrator.create_refund_request(owner, order_id=paid_order.id)

        assert second.requested_amount == Decimal("30.00")
        assert second.original_amount == Decimal("50.00")

    def test_remaining_refund_marks_order_refunded(self, orchestrator, paid_order, owner, platform_admin):
        first = orchestrator.create_refund_request(owner, order_id=paid_order.id, amount="20.00")
        orchestrator.process_refund_request(first.id, "approve", actor=platform_admin)
        second = orchestrator.create_refund_request(owner, order_id=paid_order.id)

        orchestrator.process_refund_request(second.id, "approve", actor=platform_admin)

        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.REFUNDED

    def test_fully_refunded_payment_is_rejected(self, orchestrator, paid_order, owner, company):
        RefundRequestFactory(company=company, order=paid_order, status=RefundRequestStatus.COMPLETED)
        Order.objects.filter(pk=paid_order.pk).update(payment_status=OrderPaymentStatus.PARTIALLY_REFUNDED)

        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.create_refund_request(owner, order_id=paid_order.id)

        assert exc_info.value.error_code == "ALREADY_REFUNDED"

    def test_target_is_required(self, orchestrator, owner):
        with pytest.raises(RefundValidationError):
            orchestrator.create_refund_request(owner)

    def test_only_one_target(self, orchestrator, paid_order, paid_subscription, owner):
        with pytest.raises(RefundValidationError):
            orchestrator.create_refund_request(
                owner, order_id=paid_order.id, subscription_payment_id=paid_subscription.id
            )

    def test_outsider_cannot_request(self, orchestrator, paid_order, outsider):
        with pytest.raises(ForbiddenError):
            orchestrator.create_refund_request(outsider, order_id=paid_order.id)

    def test_picpay_partial_is_rejected(self, orchestrator, company, owner):
        order = OrderFactory(
            company=company,
            payment_provider=PaymentProvider.PICPAY,
            payment_reference="picpay_link-9",
            total=Decimal("50.00"),
        )

        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.create_refund_request(owner, order_id=order.id, amount="20.00")

        assert exc_info.value.error_code == "PARTIAL_REFUND_UNSUPPORTED"
        assert not RefundRequest.objects.exists()

    def test_picpay_full_refund(self, orchestrator, company, owner):
        order = OrderFactory(
            company=company,
            payment_provider=PaymentProvider.PICPAY,
            payment_reference="picpay_link-9",
            total=Decimal("50.00"),
        )

        refund_request = orchestrator.create_refund_request(owner, order_id=order.id, amount="50.00")

        assert refund_request.payment_provider == PaymentProvider.PICPAY
        assert refund_request.payment_id == "link-9"

    def test_refunded_order(self, orchestrator, company, owner):
        order = OrderFactory(company=company, payment_status=OrderPaymentStatus.REFUNDED)

        with pytest.raises(RefundValidationError) as exc_info:
            orchestrator.create_refund_request(owner, order_id=order.id)

        assert exc_info.value.error_code == "ORDER_NOT_REFUNDABLE"

    def test_one_open_request_per_payment(self, orchestrator, refund_request, paid_order, owner):
        with pytest.raises(AlreadyProcessedError) as exc_info:
            orchestrator.create_refund_request(owner, order_id=paid_order.id)

        assert exc_info.value.error_code == "REFUND_REQUEST_OPEN"

    def test_new_request_after_failure(self, orchestrator, company, paid_order, owner):
        RefundRequestFactory(company=company, order=paid_order, status=RefundRequestStatus.FAILED)

        refund_request = orchestrator.create_refund_request(owner, order_id=paid_order.id)

        assert refund_request.status == RefundRequestStatus.PENDING

    def test_subscription_request(self, orchestrator, paid_subscription, owner):
        refund_request = orchestrator.create_refund_request(owner, subscription_payment_id=paid_subscription.id)

        assert refund_request.refund_kind == RefundKind.SUBSCRIPTION
        assert refund_request.subscription_payment == paid_subscription
        assert refund_request.payment_provider == PaymentProvider.MERCADOPAGO
        assert refund_request.payment_id == "555000"
        assert refund_request.customer_name == "Subscription - Pro"
        assert refund_request.order is None

    def test_staff_cannot_request_subscription_refund(self, orchestrator, paid_subscription, staff_member):
        with pytest.raises(ForbiddenError):
            orchestrator.create_refund_request(staff_member, subscription_payment_id=paid_subscription.id)

    def test_pending_subscription_is_not_refundable(self, orchestrator, company, owner):
        payment = SubscriptionPaymentFactory(company=company)

        with pytest.raises(RefundValidationError):
            orchestrator.create_refund_request(owner, subscription_payment_id=payment.id)
