"""
Pytest fixtures for payment tests.

Provider clients are MagicMocks injected through the services'
``client_factory`` argument, so no test talks HTTP unless it builds a
real client around a mocked ``requests`` session.

Usage:
    def test_approved(pending_payment, provider_client, reconciliation_service):
        provider_client.get_payment_status.return_value = status_payload("approved")
        outcome = reconciliation_service.reconcile(pending_payment.id, pending_payment.company_id)
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from authentication.tests.factories import StaffFactory, SuperAdminFactory
from payments.credentials import PlatformPaymentConfig
from payments.providers import RefundResult
from payments.services import (
    ReconciliationService,
    RefundOrchestrator,
    SubscriptionReconciliationService,
)
from payments.state_machines import PaymentProvider, SubscriptionPaymentStatus
from payments.tests.factories import (
    PendingPaymentFactory,
    RefundRequestFactory,
    SubscriptionPaymentFactory,
    status_payload,
)
from stores.tests.factories import CompanyFactory, OrderFactory, PaymentSettingsFactory


# =============================================================================
# Tenant Fixtures
# =============================================================================


@pytest.fixture
def company(db):
    """Company with both providers configured."""
    company = CompanyFactory()
    PaymentSettingsFactory(company=company)
    return company


@pytest.fixture
def owner(company):
    return company.owner


@pytest.fixture
def staff_member(company):
    staff = StaffFactory()
    company.members.add(staff)
    return staff


@pytest.fixture
def platform_admin(db):
    return SuperAdminFactory()


@pytest.fixture
def outsider(db):
    """Store owner of an unrelated company."""
    return CompanyFactory().owner


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def pending_payment(company):
    """Mercado Pago checkout awaiting confirmation."""
    return PendingPaymentFactory(company=company)


@pytest.fixture
def paid_order(company):
    """R$ 50,00 order paid through Mercado Pago."""
    return OrderFactory(company=company, payment_reference="mp_123456", total=Decimal("50.00"))


@pytest.fixture
def refund_request(company, paid_order):
    """Pending full refund of ``paid_order``."""
    return RefundRequestFactory(company=company, order=paid_order)


@pytest.fixture
def paid_subscription(company):
    return SubscriptionPaymentFactory(
        company=company,
        payment_status=SubscriptionPaymentStatus.PAID,
        payment_reference="555000",
    )


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def provider_client():
    """Mock provider client answering 'approved' and refunding successfully."""
    client = MagicMock()
    client.authenticate.return_value = "test-token"
    client.get_payment_status.return_value = status_payload("approved")
    client.issue_refund.return_value = RefundResult(
        provider=PaymentProvider.MERCADOPAGO,
        refund_id="rf-001",
        amount=Decimal("50.00"),
        status="approved",
    )
    return client


@pytest.fixture
def client_factory(provider_client):
    """Records the provider kinds requested and hands out ``provider_client``."""
    factory = MagicMock(return_value=provider_client)
    return factory


@pytest.fixture
def platform_config():
    return PlatformPaymentConfig(mercadopago_access_token="APP_USR-platform")


@pytest.fixture
def reconciliation_service(client_factory):
    return ReconciliationService(client_factory=client_factory)


@pytest.fixture
def subscription_service(client_factory, platform_config):
    return SubscriptionReconciliationService(
        platform_config=platform_config,
        client_factory=client_factory,
    )


@pytest.fixture
def orchestrator(client_factory, platform_config):
    return RefundOrchestrator(platform_config=platform_config, client_factory=client_factory)
