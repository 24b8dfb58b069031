"""
Test configuration and fixtures for notification tests.
"""

import pytest

from stores.tests.factories import CompanyFactory, OrderFactory


@pytest.fixture
def company(db):
    """Company whose owner receives notifications."""
    return CompanyFactory()


@pytest.fixture
def refunded_order(db, company):
    """Order with a customer e-mail address."""
    return OrderFactory(company=company, customer_email="ana@example.com")
