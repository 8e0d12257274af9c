"""
Tests for BillingPortalService.

Tests cover:
- Linking the Stripe customer reported by a completed session
- Opening billing portal sessions (Stripe adapter mocked)
"""

from unittest.mock import patch

import pytest
from django.test import override_settings

from billing.adapters import PortalSessionResult
from billing.exceptions import StripeInvalidRequestError
from billing.models import BillingCustomer
from billing.services import BillingPortalService
from billing.tests.factories import (
    BillingCustomerFactory,
    CheckoutOrderFactory,
    checkout_session_payload,
)


ADAPTER_PATH = "billing.services.portal_service.StripeAdapter"


def session_object(order=None, **kwargs):
    if order is not None:
        kwargs.setdefault("session_id", order.stripe_checkout_session_id)
    return checkout_session_payload(**kwargs)["data"]["object"]


# =============================================================================
# link_customer
# =============================================================================


@pytest.mark.django_db
class TestLinkCustomer:
    """Tests for BillingPortalService.link_customer."""

    def test_creates_billing_customer(self, open_order):
        result = BillingPortalService.link_customer(
            session_object(open_order, customer="cus_first")
        )

        assert result.success
        assert result.data.stripe_customer_id == "cus_first"
        assert result.data.user == open_order.user

    def test_updates_existing_customer(self, open_order, billing_customer):
        result = BillingPortalService.link_customer(
            session_object(open_order, customer="cus_replaced")
        )

        assert result.success
        assert BillingCustomer.objects.count() == 1
        billing_customer = BillingCustomer.objects.get(pk=billing_customer.pk)
        assert billing_customer.stripe_customer_id == "cus_replaced"

    def test_same_customer_again_is_idempotent(self, open_order):
        session = session_object(open_order, customer="cus_same")

        BillingPortalService.link_customer(session)
        result = BillingPortalService.link_customer(session)

        assert result.success
        assert BillingCustomer.objects.filter(stripe_customer_id="cus_same").count() == 1

    def test_session_without_customer_skipped(self, open_order):
        result = BillingPortalService.link_customer(
            session_object(open_order, customer=None)
        )

        assert result.success
        assert result.data is None
        assert not BillingCustomer.objects.exists()

    def test_unknown_session_skipped(self, db):
        result = BillingPortalService.link_customer(
            session_object(session_id="cs_payment_link")
        )

        assert result.success
        assert result.data is None

    def test_customer_of_another_user_conflicts(self, user, other_user):
        BillingCustomerFactory(user=other_user, stripe_customer_id="cus_taken")
        order = CheckoutOrderFactory(user=user)

        result = BillingPortalService.link_customer(
            session_object(order, customer="cus_taken")
        )

        assert not result.success
        assert result.error_code == "BILLING_CUSTOMER_CONFLICT"
        assert not BillingCustomer.objects.filter(user=user).exists()


# =============================================================================
# create_portal_session
# =============================================================================


@pytest.mark.django_db
class TestCreatePortalSession:
    """Tests for BillingPortalService.create_portal_session."""

    @patch(ADAPTER_PATH)
    def test_opens_portal_for_customer(self, mock_adapter, user, billing_customer):
        mock_adapter.create_billing_portal_session.return_value = PortalSessionResult(
            id="bps_123",
            url="https://billing.stripe.com/p/session/bps_123",
            customer_id="cus_test_linked",
        )

        result = BillingPortalService.create_portal_session(
            user, return_url="https://example.com/account"
        )

        assert result.success
        assert result.data.url == "https://billing.stripe.com/p/session/bps_123"
        mock_adapter.create_billing_portal_session.assert_called_once_with(
            customer_id="cus_test_linked",
            return_url="https://example.com/account",
        )

    @override_settings(BILLING_PORTAL_RETURN_URL="https://example.com/home")
    @patch(ADAPTER_PATH)
    def test_default_return_url(self, mock_adapter, user, billing_customer):
        BillingPortalService.create_portal_session(user)

        kwargs = mock_adapter.create_billing_portal_session.call_args.kwargs
        assert kwargs["return_url"] == "https://example.com/home"

    @patch(ADAPTER_PATH)
    def test_user_without_customer(self, mock_adapter, user):
        result = BillingPortalService.create_portal_session(user)

        assert not result.success
        assert result.error_code == "BILLING_CUSTOMER_NOT_FOUND"
        mock_adapter.create_billing_portal_session.assert_not_called()

    @patch(ADAPTER_PATH)
    def test_stripe_error(self, mock_adapter, user, billing_customer):
        mock_adapter.create_billing_portal_session.side_effect = (
            StripeInvalidRequestError("No configuration provided")
        )

        result = BillingPortalService.create_portal_session(user)

        assert not result.success
        assert result.error_code == "STRIPE_INVALID_REQUEST"
