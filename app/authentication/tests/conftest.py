"""
Test configuration and fixtures for authentication tests.
"""

import pytest

from authentication.tests.factories import (
    StoreOwnerFactory,
    SuperAdminFactory,
    UserFactory,
)


@pytest.fixture
def user(db):
    """Create a basic customer account."""
    return UserFactory()


@pytest.fixture
def store_owner(db):
    """Create a store owner account."""
    return StoreOwnerFactory()


@pytest.fixture
def super_admin(db):
    """Create a platform operator account."""
    return SuperAdminFactory()
