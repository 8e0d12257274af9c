"""
Tests for CheckoutService.

Tests cover:
- Opening a checkout (Stripe adapter mocked)
- Applying webhook outcomes to orders
- Order lookup for the success page
"""

from unittest.mock import MagicMock, patch

import pytest
from django.db import transaction
from django.test import override_settings

from billing.adapters import CheckoutSessionResult
from billing.exceptions import StripeAPIUnavailableError, StripeInvalidRequestError
from billing.models import CheckoutOrder
from billing.services import CheckoutService, CheckoutStart, with_session_id
from billing.signals import order_fulfilled
from billing.state_machines import CheckoutOrderState
from billing.tests.factories import CheckoutOrderFactory, checkout_session_payload


ADAPTER_PATH = "billing.services.checkout_service.StripeAdapter"


def session_object(order=None, **kwargs):
    """Checkout Session object as carried by a webhook."""
    if order is not None:
        kwargs.setdefault("session_id", order.stripe_checkout_session_id)
    return checkout_session_payload(**kwargs)["data"]["object"]


@pytest.fixture
def mock_adapter():
    with patch(ADAPTER_PATH) as mock:
        mock.create_checkout_session.return_value = CheckoutSessionResult(
            id="cs_test_opened",
            url="https://checkout.stripe.com/c/pay/cs_test_opened",
            status="open",
            payment_status="unpaid",
        )
        yield mock


@pytest.fixture
def fulfilled_receiver():
    receiver = MagicMock()
    order_fulfilled.connect(receiver, weak=False)
    yield receiver
    order_fulfilled.disconnect(receiver)


# =============================================================================
# with_session_id
# =============================================================================


class TestWithSessionId:
    """Success URLs carry the session_id template Stripe fills in."""

    def test_url_without_query(self):
        assert (
            with_session_id("https://example.com/done")
            == "https://example.com/done?session_id={CHECKOUT_SESSION_ID}"
        )

    def test_url_with_query(self):
        assert (
            with_session_id("https://example.com/done?ref=mail")
            == "https://example.com/done?ref=mail&session_id={CHECKOUT_SESSION_ID}"
        )

    def test_template_already_present(self):
        url = "https://example.com/done?sid={CHECKOUT_SESSION_ID}"

        assert with_session_id(url) == url


# =============================================================================
# start_checkout
# =============================================================================


@pytest.mark.django_db
class TestStartCheckout:
    """Tests for CheckoutService.start_checkout."""

    def test_opens_session_for_new_order(self, user, mock_adapter):
        result = CheckoutService.start_checkout(
            user=user,
            price_id="price_test_123",
            quantity=2,
        )

        assert result.success
        assert isinstance(result.data, CheckoutStart)
        assert result.data.url == "https://checkout.stripe.com/c/pay/cs_test_opened"
        assert result.data.session_id == "cs_test_opened"

        order = CheckoutOrder.objects.get(pk=result.data.order.pk)
        assert order.user == user
        assert order.state == CheckoutOrderState.OPEN
        assert order.quantity == 2
        assert order.stripe_checkout_session_id == "cs_test_opened"

    @override_settings(
        CHECKOUT_SUCCESS_URL="https://shop.example.com/thanks",
        CHECKOUT_CANCEL_URL="https://shop.example.com/cart",
        CHECKOUT_LOCALE="fr",
    )
    def test_session_parameters(self, user, mock_adapter):
        result = CheckoutService.start_checkout(user=user, price_id="price_test_123")

        params = mock_adapter.create_checkout_session.call_args.args[0]
        order_id = str(result.data.order.id)
        assert params.price_id == "price_test_123"
        assert params.quantity == 1
        assert params.success_url == (
            "https://shop.example.com/thanks?session_id={CHECKOUT_SESSION_ID}"
        )
        assert params.cancel_url == "https://shop.example.com/cart"
        assert params.client_reference_id == order_id
        assert params.metadata == {"checkout_order_id": order_id}
        assert params.customer_email == user.email
        assert params.customer_id is None
        assert params.locale == "fr"
        assert params.idempotency_key.startswith(f"checkout_session:{order_id}:1:")

    def test_explicit_redirect_urls(self, user, mock_adapter):
        CheckoutService.start_checkout(
            user=user,
            price_id="price_test_123",
            success_url="https://example.com/ok",
            cancel_url="https://example.com/back",
        )

        params = mock_adapter.create_checkout_session.call_args.args[0]
        assert params.success_url == "https://example.com/ok?session_id={CHECKOUT_SESSION_ID}"
        assert params.cancel_url == "https://example.com/back"

    def test_existing_customer_reused(self, user, billing_customer, mock_adapter):
        CheckoutService.start_checkout(user=user, price_id="price_test_123")

        params = mock_adapter.create_checkout_session.call_args.args[0]
        assert params.customer_id == "cus_test_linked"

    def test_stripe_error_fails_order(self, user, mock_adapter):
        mock_adapter.create_checkout_session.side_effect = StripeInvalidRequestError(
            "No such price: 'price_gone'",
            stripe_code="resource_missing",
        )

        result = CheckoutService.start_checkout(user=user, price_id="price_gone")

        assert not result.success
        assert result.error_code == "STRIPE_INVALID_REQUEST"
        order = CheckoutOrder.objects.get(user=user)
        assert order.state == CheckoutOrderState.FAILED
        assert "price_gone" in order.failure_reason

    def test_stripe_unavailable(self, user, mock_adapter):
        mock_adapter.create_checkout_session.side_effect = StripeAPIUnavailableError(
            "Could not connect to Stripe. Please retry."
        )

        result = CheckoutService.start_checkout(user=user, price_id="price_test_123")

        assert result.error_code == "STRIPE_UNAVAILABLE"

    def test_invalid_parameters_fail_before_stripe(self, user, mock_adapter):
        result = CheckoutService.start_checkout(
            user=user, price_id="price_test_123", quantity=0
        )

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        mock_adapter.create_checkout_session.assert_not_called()
        assert CheckoutOrder.objects.get(user=user).state == CheckoutOrderState.FAILED


# =============================================================================
# Webhook outcomes
# =============================================================================


@pytest.mark.django_db
class TestFulfillOrder:
    """Tests for CheckoutService.fulfill_order."""

    def test_fulfills_open_order(
        self, open_order, fulfilled_receiver, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            result = CheckoutService.fulfill_order(
                session_object(open_order, customer="cus_abc"), event_id="evt_1"
            )

        assert result.success
        order = CheckoutOrder.objects.get(pk=open_order.pk)
        assert order.state == CheckoutOrderState.FULFILLED
        assert order.stripe_customer_id == "cus_abc"
        assert order.currency == "usd"
        fulfilled_receiver.assert_called_once()
        kwargs = fulfilled_receiver.call_args.kwargs
        assert kwargs["order"].pk == open_order.pk
        assert kwargs["event_id"] == "evt_1"

    def test_fulfills_awaiting_order(self, awaiting_order):
        result = CheckoutService.fulfill_order(session_object(awaiting_order))

        assert result.success
        assert result.data.state == CheckoutOrderState.FULFILLED

    def test_already_fulfilled_is_idempotent(
        self, fulfilled_order, fulfilled_receiver, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            result = CheckoutService.fulfill_order(session_object(fulfilled_order))

        assert result.success
        assert callbacks == []
        fulfilled_receiver.assert_not_called()

    def test_signal_waits_for_commit(self, open_order, fulfilled_receiver):
        with pytest.raises(RuntimeError):
            with transaction.atomic():
                CheckoutService.fulfill_order(session_object(open_order))
                raise RuntimeError("rolled back")

        assert CheckoutOrder.objects.get(pk=open_order.pk).state == CheckoutOrderState.OPEN
        fulfilled_receiver.assert_not_called()

    def test_backfills_session_id_found_by_reference(self, user):
        order = CheckoutOrderFactory(user=user, stripe_checkout_session_id=None)

        with transaction.atomic():
            located = CheckoutService.locate_order(
                {"id": "cs_backfilled", "client_reference_id": str(order.id)}
            )

        assert located.pk == order.pk
        stored = CheckoutOrder.objects.get(pk=order.pk)
        assert stored.stripe_checkout_session_id == "cs_backfilled"
        assert stored.state == CheckoutOrderState.OPEN

    @pytest.mark.parametrize(
        "state", [CheckoutOrderState.FAILED, CheckoutOrderState.EXPIRED]
    )
    def test_terminal_order_not_fulfilled(self, user, state, fulfilled_receiver):
        order = CheckoutOrderFactory(user=user, state=state)

        result = CheckoutService.fulfill_order(session_object(order))

        assert not result.success
        assert result.error_code == "INVALID_ORDER_STATE"
        assert CheckoutOrder.objects.get(pk=order.pk).state == state
        fulfilled_receiver.assert_not_called()

    def test_unknown_session(self, db):
        result = CheckoutService.fulfill_order(session_object(session_id="cs_nope"))

        assert not result.success
        assert result.error_code == "CHECKOUT_ORDER_NOT_FOUND"

    def test_foreign_client_reference_ignored(self, db):
        result = CheckoutService.fulfill_order(
            session_object(session_id="cs_nope", client_reference_id="not-a-uuid")
        )

        assert result.error_code == "CHECKOUT_ORDER_NOT_FOUND"


@pytest.mark.django_db
class TestMarkAwaitingPayment:
    """Tests for CheckoutService.mark_awaiting_payment."""

    def test_open_order_awaits_payment(self, open_order):
        result = CheckoutService.mark_awaiting_payment(
            session_object(open_order, payment_status="unpaid")
        )

        assert result.success
        order = CheckoutOrder.objects.get(pk=open_order.pk)
        assert order.state == CheckoutOrderState.AWAITING_PAYMENT
        assert order.payment_status == "unpaid"

    def test_settled_order_left_alone(self, fulfilled_order):
        result = CheckoutService.mark_awaiting_payment(
            session_object(fulfilled_order, payment_status="unpaid")
        )

        assert result.success
        order = CheckoutOrder.objects.get(pk=fulfilled_order.pk)
        assert order.state == CheckoutOrderState.FULFILLED
        assert order.payment_status == "paid"

    def test_unknown_session(self, db):
        result = CheckoutService.mark_awaiting_payment(session_object(session_id="cs_x"))

        assert result.error_code == "CHECKOUT_ORDER_NOT_FOUND"


@pytest.mark.django_db
class TestMarkPaymentFailed:
    """Tests for CheckoutService.mark_payment_failed."""

    def test_awaiting_order_fails(self, awaiting_order):
        result = CheckoutService.mark_payment_failed(session_object(awaiting_order))

        assert result.success
        order = CheckoutOrder.objects.get(pk=awaiting_order.pk)
        assert order.state == CheckoutOrderState.FAILED
        assert order.failed_at is not None

    def test_already_failed_is_idempotent(self, user):
        order = CheckoutOrderFactory(user=user, state=CheckoutOrderState.FAILED)

        result = CheckoutService.mark_payment_failed(session_object(order))

        assert result.success

    def test_fulfilled_order_cannot_fail(self, fulfilled_order):
        result = CheckoutService.mark_payment_failed(session_object(fulfilled_order))

        assert result.error_code == "INVALID_ORDER_STATE"
        order = CheckoutOrder.objects.get(pk=fulfilled_order.pk)
        assert order.state == CheckoutOrderState.FULFILLED


@pytest.mark.django_db
class TestExpireOrder:
    """Tests for CheckoutService.expire_order."""

    def test_open_order_expires(self, open_order):
        result = CheckoutService.expire_order(session_object(open_order))

        assert result.success
        order = CheckoutOrder.objects.get(pk=open_order.pk)
        assert order.state == CheckoutOrderState.EXPIRED

    def test_awaiting_order_not_expired(self, awaiting_order):
        CheckoutService.expire_order(session_object(awaiting_order))

        order = CheckoutOrder.objects.get(pk=awaiting_order.pk)
        assert order.state == CheckoutOrderState.AWAITING_PAYMENT

    def test_unknown_session_is_success(self, db):
        result = CheckoutService.expire_order(session_object(session_id="cs_other"))

        assert result.success
        assert result.data is None


# =============================================================================
# Lookups
# =============================================================================


@pytest.mark.django_db
class TestGetOrderForSession:
    """Tests for CheckoutService.get_order_for_session."""

    def test_own_order(self, user, open_order):
        result = CheckoutService.get_order_for_session(
            user, open_order.stripe_checkout_session_id
        )

        assert result.success
        assert result.data.pk == open_order.pk

    def test_other_users_order_not_found(self, other_user, open_order):
        result = CheckoutService.get_order_for_session(
            other_user, open_order.stripe_checkout_session_id
        )

        assert result.error_code == "CHECKOUT_ORDER_NOT_FOUND"

    def test_unknown_session(self, user):
        result = CheckoutService.get_order_for_session(user, "cs_missing")

        assert not result.success
