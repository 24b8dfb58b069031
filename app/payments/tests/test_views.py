"""
Tests for the payments REST API.

Provider clients are replaced at the service modules' factory lookup so
the views run the real services end to end.
"""

from unittest.mock import patch

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from payments.models import PendingPayment, RefundRequest
from payments.providers import PaymentLink
from payments.state_machines import (
    PendingPaymentStatus,
    RefundKind,
    RefundRequestStatus,
    SubscriptionPaymentStatus,
)
from payments.tests.factories import (
    PendingPaymentFactory,
    RefundRequestFactory,
    SubscriptionPaymentFactory,
    checkout_payload,
    status_payload,
)
from stores.models import Order


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def patched_provider(provider_client):
    """Route every service's provider lookup to the mock client."""
    with (
        patch("payments.services.reconciliation_service.get_provider_client", return_value=provider_client),
        patch("payments.services.subscription_service.get_provider_client", return_value=provider_client),
        patch("payments.services.refund_service.get_provider_client", return_value=provider_client),
    ):
        yield provider_client


@pytest.fixture(autouse=True)
def _platform_token(settings):
    settings.PLATFORM_MERCADOPAGO_ACCESS_TOKEN = "APP_USR-platform"


# =============================================================================
# Checkout
# =============================================================================


def checkout_body(company_id, **overrides):
    body = {
        "companyId": str(company_id),
        "customerName": "Ana",
        "customerPhone": "11999990000",
        "items": [
            {"product_id": "burger-1", "product_name": "X-Burger", "quantity": 2, "unit_price": "20.00"},
        ],
        "subtotal": "40.00",
        "deliveryFee": "5.00",
        "total": "45.00",
    }
    body.update(overrides)
    return body


@pytest.mark.django_db
class TestCheckoutView:
    url = reverse("payments:picpay_checkout")

    @pytest.fixture
    def picpay_client(self, provider_client):
        provider_client.create_payment_link.return_value = PaymentLink(
            link_id="link-77",
            payment_url="https://picpay.me/pay/link-77",
            brcode="00020101021226",
        )
        with patch("payments.services.checkout_service.get_provider_client", return_value=provider_client):
            yield provider_client

    def test_creates_checkout(self, api_client, company, picpay_client):
        response = api_client.post(self.url, checkout_body(company.id), format="json")

        assert response.status_code == 200
        body = response.json()
        assert body["paymentLinkId"] == "link-77"
        assert body["mode"] == "embedded"
        pending = PendingPayment.objects.get(pk=body["pendingId"])
        assert pending.provider_reference == "link-77"
        assert pending.order_payload["items"][0]["unit_price"] == "20.00"
        assert pending.order_payload["delivery_fee"] == "5.00"

    def test_empty_cart_is_400(self, api_client, company, picpay_client):
        response = api_client.post(self.url, checkout_body(company.id, items=[]), format="json")

        assert response.status_code == 400
        assert response.json()["error"].startswith("items: ")
        assert not PendingPayment.objects.exists()

    def test_provider_refusal_is_502_and_leaves_nothing(self, api_client, company, picpay_client):
        from payments.exceptions import ProviderRejectedError

        picpay_client.create_payment_link.side_effect = ProviderRejectedError("Invalid expired_at")

        response = api_client.post(self.url, checkout_body(company.id), format="json")

        assert response.status_code == 502
        assert response.json()["error"] == "Invalid expired_at"
        assert not PendingPayment.objects.exists()

    def test_unknown_company_is_404(self, api_client, db, picpay_client):
        response = api_client.post(
            self.url,
            checkout_body("00000000-0000-0000-0000-000000000000"),
            format="json",
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Company not found", "error_code": "COMPANY_NOT_FOUND"}


# =============================================================================
# Reconcile
# =============================================================================


@pytest.mark.django_db
class TestReconcileView:
    url = reverse("payments:reconcile")

    def test_public_endpoint_materializes_order(self, api_client, pending_payment, patched_provider):
        response = api_client.post(
            self.url,
            {"pendingId": str(pending_payment.id), "companyId": str(pending_payment.company_id)},
            format="json",
        )

        assert response.status_code == 200
        body = response.json()
        assert body["approved"] is True
        assert body["status"] == "completed"
        assert body["orderId"] == str(Order.objects.get().id)

    def test_pending_status(self, api_client, pending_payment, patched_provider):
        patched_provider.get_payment_status.return_value = status_payload("in_process")

        response = api_client.post(
            self.url,
            {"pendingId": str(pending_payment.id), "companyId": str(pending_payment.company_id)},
            format="json",
        )

        assert response.json() == {"approved": False, "status": "in_process"}

    def test_bearer_token_is_ignored(self, api_client, pending_payment, patched_provider):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer not-a-jwt")

        response = api_client.post(
            self.url,
            {"pendingId": str(pending_payment.id), "companyId": str(pending_payment.company_id)},
            format="json",
        )

        assert response.status_code == 200

    def test_invalid_body(self, api_client, db):
        response = api_client.post(self.url, {"pendingId": "nope"}, format="json")

        assert response.status_code == 400
        assert response.json()["approved"] is False
        assert "error" in response.json()

    def test_unknown_checkout(self, api_client, company):
        response = api_client.post(
            self.url,
            {"pendingId": "00000000-0000-0000-0000-000000000000", "companyId": str(company.id)},
            format="json",
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Pending payment not found", "approved": False}

    def test_materialization_failure_is_500(self, api_client, company, patched_provider):
        payload = checkout_payload()
        del payload["total"]
        pending = PendingPaymentFactory(company=company, order_payload=payload)

        response = api_client.post(
            self.url,
            {"pendingId": str(pending.id), "companyId": str(company.id)},
            format="json",
        )

        assert response.status_code == 500
        assert response.json()["approved"] is False
        assert PendingPayment.objects.get(pk=pending.pk).status == PendingPaymentStatus.PROCESSING

    def test_provider_reference_from_client(self, api_client, company, patched_provider):
        pending = PendingPaymentFactory(company=company, provider_reference="")

        api_client.post(
            self.url,
            {
                "pendingId": str(pending.id),
                "companyId": str(company.id),
                "providerReference": "4242",
            },
            format="json",
        )

        patched_provider.get_payment_status.assert_called_once_with("test-token", "4242")


# =============================================================================
# Subscription Reconcile
# =============================================================================


@pytest.mark.django_db
class TestSubscriptionReconcileView:
    url = reverse("payments:subscription_reconcile")

    def test_owner_reconciles(self, api_client, company, owner, patched_provider):
        payment = SubscriptionPaymentFactory(company=company)
        api_client.force_authenticate(owner)

        response = api_client.post(self.url, {"subscriptionPaymentId": str(payment.id)}, format="json")

        assert response.status_code == 200
        assert response.json()["paid"] is True
        assert response.json()["clear_reference"] is True

    def test_other_owner_is_forbidden(self, api_client, company, outsider, patched_provider):
        payment = SubscriptionPaymentFactory(company=company)
        api_client.force_authenticate(outsider)

        response = api_client.post(self.url, {"subscriptionPaymentId": str(payment.id)}, format="json")

        assert response.status_code == 403
        patched_provider.get_payment_status.assert_not_called()

    def test_unknown_payment(self, api_client, owner):
        api_client.force_authenticate(owner)

        response = api_client.post(
            self.url,
            {"subscriptionPaymentId": "00000000-0000-0000-0000-000000000000"},
            format="json",
        )

        assert response.status_code == 404

    def test_requires_authentication(self, api_client, db):
        response = api_client.post(self.url, {}, format="json")

        assert response.status_code == 401


# =============================================================================
# Refund Requests
# =============================================================================


@pytest.mark.django_db
class TestRefundRequestListCreateView:
    url = reverse("payments:refund_requests")

    def test_owner_creates_request(self, api_client, owner, paid_order):
        api_client.force_authenticate(owner)

        response = api_client.post(
            self.url,
            {"order_id": str(paid_order.id), "amount": "20.00", "reason": "Item faltando"},
            format="json",
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["refund_kind"] == "order"
        assert RefundRequest.objects.get(pk=body["id"]).requested_amount == 20

    def test_both_targets_are_rejected(self, api_client, owner, paid_order, paid_subscription):
        api_client.force_authenticate(owner)

        response = api_client.post(
            self.url,
            {"order_id": str(paid_order.id), "subscription_payment_id": str(paid_subscription.id)},
            format="json",
        )

        assert response.status_code == 400

    def test_duplicate_open_request_is_409(self, api_client, owner, refund_request, paid_order):
        api_client.force_authenticate(owner)

        response = api_client.post(self.url, {"order_id": str(paid_order.id)}, format="json")

        assert response.status_code == 409
        assert response.json()["error_code"] == "REFUND_REQUEST_OPEN"

    def test_owner_lists_own_requests(self, api_client, owner, refund_request):
        RefundRequestFactory()
        api_client.force_authenticate(owner)

        response = api_client.get(self.url)

        assert response.status_code == 200
        assert [row["id"] for row in response.json()] == [str(refund_request.id)]

    def test_admin_lists_everything(self, api_client, platform_admin, refund_request):
        RefundRequestFactory()
        api_client.force_authenticate(platform_admin)

        response = api_client.get(self.url)

        assert len(response.json()) == 2

    def test_status_filter(self, api_client, platform_admin, refund_request):
        RefundRequestFactory(status=RefundRequestStatus.REJECTED)
        api_client.force_authenticate(platform_admin)

        response = api_client.get(self.url, {"status": "rejected"})

        assert [row["status"] for row in response.json()] == ["rejected"]

    def test_kind_filter(self, api_client, platform_admin, refund_request, company, paid_subscription):
        RefundRequestFactory(
            company=company,
            order=None,
            subscription_payment=paid_subscription,
            refund_kind=RefundKind.SUBSCRIPTION,
            payment_id="555000",
            requested_amount=paid_subscription.amount,
            original_amount=paid_subscription.amount,
            customer_name="Subscription - Pro",
        )
        api_client.force_authenticate(platform_admin)

        response = api_client.get(self.url, {"refund_kind": "subscription"})

        assert [row["refund_kind"] for row in response.json()] == ["subscription"]

    def test_invalid_filter_is_400(self, api_client, platform_admin):
        api_client.force_authenticate(platform_admin)

        response = api_client.get(self.url, {"status": "archived"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("status: ")


@pytest.mark.django_db
class TestProcessRefundRequestView:
    url = reverse("payments:process_refund")

    def test_admin_approves(self, api_client, platform_admin, refund_request, patched_provider):
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "approve"},
            format="json",
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "refund_id": "rf-001",
            "amount": 50.0,
            "provider": "mercadopago",
            "message": "Refund of R$ 50,00 processed successfully",
        }

    def test_admin_rejects(self, api_client, platform_admin, refund_request):
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "reject", "rejection_reason": "Fora do prazo"},
            format="json",
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Refund request rejected"}

    def test_owner_is_forbidden(self, api_client, owner, refund_request, patched_provider):
        api_client.force_authenticate(owner)

        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "approve"},
            format="json",
        )

        assert response.status_code == 403
        patched_provider.issue_refund.assert_not_called()

    def test_unauthenticated_is_401(self, api_client, refund_request):
        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "approve"},
            format="json",
        )

        assert response.status_code == 401
        assert response.json() == {
            "error": "Authentication credentials were not provided.",
            "error_code": "NOT_AUTHENTICATED",
        }

    def test_malformed_request_id_is_400_with_error_message(self, api_client, platform_admin):
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": "not-a-uuid", "action": "approve"},
            format="json",
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "request_id: Must be a valid UUID."
        assert body["error_code"] == "INVALID"

    def test_invalid_action_is_400(self, api_client, platform_admin, refund_request):
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "refund"},
            format="json",
        )

        assert response.status_code == 400

    def test_already_processed_is_409(self, api_client, platform_admin, company):
        refund_request = RefundRequestFactory(company=company, status=RefundRequestStatus.COMPLETED)
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "approve"},
            format="json",
        )

        assert response.status_code == 409

    def test_unknown_request_is_404(self, api_client, platform_admin):
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": "00000000-0000-0000-0000-000000000000", "action": "approve"},
            format="json",
        )

        assert response.status_code == 404

    def test_provider_rejection_is_502(self, api_client, platform_admin, refund_request, patched_provider):
        from payments.exceptions import ProviderRejectedError

        patched_provider.issue_refund.side_effect = ProviderRejectedError("Insufficient balance")
        api_client.force_authenticate(platform_admin)

        response = api_client.post(
            self.url,
            {"request_id": str(refund_request.id), "action": "approve"},
            format="json",
        )

        assert response.status_code == 502
        assert response.json()["error"] == "Insufficient balance"
        assert RefundRequest.objects.get(pk=refund_request.pk).status == RefundRequestStatus.FAILED

    def test_subscription_refund_through_api(self, api_client, platform_admin, owner, company, patched_provider):
        payment = SubscriptionPaymentFactory(company=company, payment_status=SubscriptionPaymentStatus.PAID)
        api_client.force_authenticate(owner)
        created = api_client.post(
            reverse("payments:refund_requests"),
            {"subscription_payment_id": str(payment.id)},
            format="json",
        ).json()

        api_client.force_authenticate(platform_admin)
        response = api_client.post(self.url, {"request_id": created["id"], "action": "approve"}, format="json")

        assert response.status_code == 200
        assert patched_provider.authenticate.call_args.args[0].access_token == "APP_USR-platform"


@pytest.mark.django_db
class TestDirectRefundView:
    url = reverse("payments:direct_refund")

    def test_staff_refunds(self, api_client, staff_member, paid_order, patched_provider):
        api_client.force_authenticate(staff_member)

        response = api_client.post(self.url, {"order_id": str(paid_order.id)}, format="json")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert Order.objects.get(pk=paid_order.pk).payment_status == "refunded"

    def test_outsider_is_forbidden(self, api_client, outsider, paid_order, patched_provider):
        api_client.force_authenticate(outsider)

        response = api_client.post(self.url, {"order_id": str(paid_order.id)}, format="json")

        assert response.status_code == 403
