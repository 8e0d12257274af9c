"""
Webhook listeners for Stripe Checkout events.

Subscriptions made by this module (in order):

    checkout.session.completed
        1. LinkCustomerListener   - remember the Stripe customer
        2. FulfillOrderListener   - fulfill when payment_status == "paid"
    checkout.session.async_payment_succeeded
        1. FulfillOrderListener
    checkout.session.async_payment_failed
        1. fail_order_payment
    checkout.session.expired
        1. expire_order

Some payment methods (bank debits, vouchers) complete the checkout
before the funds settle. The completed event then carries
payment_status "unpaid" and fulfillment waits for the
async_payment_succeeded event, which routes to the same listener.

This module is imported from BillingConfig.ready() so subscriptions
happen exactly once per process.
"""

from __future__ import annotations

import logging

from core.services import ServiceResult

from billing.services import BillingPortalService, CheckoutService
from billing.webhooks.delegator import StripeEvent, WebhookDelegator, delegator

logger = logging.getLogger(__name__)


# =============================================================================
# Event Names
# =============================================================================

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
CHECKOUT_SESSION_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"


# =============================================================================
# Listeners
# =============================================================================


class LinkCustomerListener:
    """Store the Stripe customer of a completed session on the user."""

    name = "link_customer"

    def handle(self, event: StripeEvent) -> ServiceResult:
        return BillingPortalService.link_customer(event.data_object, event_id=event.id)


class FulfillOrderListener:
    """
    Fulfill the order once its payment is confirmed.

    Unpaid sessions are recorded as awaiting payment and nothing is
    fulfilled; the later async_payment_succeeded event fulfills them.
    """

    name = "fulfill_order"

    def handle(self, event: StripeEvent) -> ServiceResult:
        session = event.data_object

        if not event.is_paid:
            logger.info(
                f"Checkout session not paid ({event.payment_status}), not fulfilling",
                extra={
                    "stripe_event_id": event.id,
                    "checkout_session_id": session.get("id"),
                    "payment_status": event.payment_status,
                },
            )
            if event.name == CHECKOUT_SESSION_COMPLETED:
                return CheckoutService.mark_awaiting_payment(session, event_id=event.id)
            return ServiceResult.success(None)

        return CheckoutService.fulfill_order(session, event_id=event.id)


def fail_order_payment(event: StripeEvent) -> ServiceResult:
    """Mark the order failed when a delayed payment does not settle."""
    return CheckoutService.mark_payment_failed(event.data_object, event_id=event.id)


def expire_order(event: StripeEvent) -> ServiceResult:
    """Expire the order of an abandoned checkout session."""
    return CheckoutService.expire_order(event.data_object, event_id=event.id)


# =============================================================================
# Registration
# =============================================================================


def register_listeners(target: WebhookDelegator) -> WebhookDelegator:
    """
    Subscribe the checkout listeners to a delegator.

    Args:
        target: Delegator to subscribe to

    Returns:
        The same delegator, for chaining
    """
    fulfill = FulfillOrderListener()

    target.subscribe(CHECKOUT_SESSION_COMPLETED, LinkCustomerListener())
    target.subscribe(CHECKOUT_SESSION_COMPLETED, fulfill)
    target.subscribe(CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED, fulfill)
    target.listener(CHECKOUT_SESSION_ASYNC_PAYMENT_FAILED)(fail_order_payment)
    target.listener(CHECKOUT_SESSION_EXPIRED)(expire_order)

    return target


register_listeners(delegator)
