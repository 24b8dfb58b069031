"""
Pytest fixtures for webhook tests.

Provides notification payloads for both providers and the pending
payments they refer to.
"""

from unittest.mock import MagicMock, patch

import pytest

from payments.state_machines import PaymentProvider
from payments.tests.factories import PendingPaymentFactory, status_payload
from stores.tests.factories import CompanyFactory, PaymentSettingsFactory


# =============================================================================
# Pending Payment Fixtures
# =============================================================================


@pytest.fixture
def company(db):
    company = CompanyFactory()
    PaymentSettingsFactory(company=company)
    return company


@pytest.fixture
def picpay_pending(company):
    """PicPay checkout awaiting its charge notification."""
    return PendingPaymentFactory(
        company=company,
        provider=PaymentProvider.PICPAY,
        provider_reference="link-abc",
    )


@pytest.fixture
def mercadopago_pending(company):
    return PendingPaymentFactory(company=company, provider_reference="123456789")


# =============================================================================
# Payload Fixtures
# =============================================================================


@pytest.fixture
def picpay_paid_payload(picpay_pending):
    return {
        "type": "PAYMENT",
        "data": {
            "id": "charge-1",
            "status": "PAID",
            "merchantChargeId": str(picpay_pending.id),
        },
    }


@pytest.fixture
def mercadopago_payload(mercadopago_pending):
    return {
        "action": "payment.updated",
        "type": "payment",
        "data": {"id": mercadopago_pending.provider_reference},
    }


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def mercadopago_client():
    """Mock Mercado Pago client used by the reconciliation engine."""
    client = MagicMock()
    client.authenticate.return_value = "test-token"
    client.get_payment_status.return_value = status_payload("approved", reference="123456789")
    with patch(
        "payments.services.reconciliation_service.get_provider_client",
        return_value=client,
    ):
        yield client
