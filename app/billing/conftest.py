"""
Pytest fixtures shared by all billing tests.

Provides users, orders in each state, and an authenticated API client.

Usage:
    def test_fulfill(open_order):
        open_order.fulfill({"payment_status": "paid"})
        open_order.save()
        assert open_order.state == CheckoutOrderState.FULFILLED
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from billing.state_machines import CheckoutOrderState
from billing.tests.factories import (
    BillingCustomerFactory,
    CheckoutOrderFactory,
    UserFactory,
)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    """Create a second user for ownership checks."""
    return UserFactory()


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture
def auth_client(user):
    """DRF test client with a JWT bearer token for `user`."""
    client = APIClient()
    token = RefreshToken.for_user(user).access_token
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def open_order(user):
    """Order whose checkout session is open."""
    return CheckoutOrderFactory(user=user)


@pytest.fixture
def awaiting_order(user):
    """Order completed with a delayed payment method."""
    return CheckoutOrderFactory(user=user, state=CheckoutOrderState.AWAITING_PAYMENT)


@pytest.fixture
def fulfilled_order(user):
    """Order already fulfilled."""
    return CheckoutOrderFactory(
        user=user,
        state=CheckoutOrderState.FULFILLED,
        payment_status="paid",
    )


@pytest.fixture
def billing_customer(user):
    """Stripe customer linked to `user`."""
    return BillingCustomerFactory(user=user, stripe_customer_id="cus_test_linked")
