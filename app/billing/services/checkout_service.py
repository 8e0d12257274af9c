"""
Checkout service for hosted checkout orders.

This module provides the CheckoutService class which owns the lifecycle
of a CheckoutOrder:
1. Opening a Stripe-hosted checkout session for a new order
2. Applying the outcome reported by webhooks (fulfill, await, fail, expire)
3. Looking up an order from the success page's session_id

Every webhook-driven method is idempotent: replaying the same Checkout
Session object leaves the order unchanged and returns success.

Usage:
    from billing.services import CheckoutService

    result = CheckoutService.start_checkout(
        user=request.user,
        price_id="price_123",
        quantity=2,
    )
    if result.success:
        return HttpResponseRedirect(result.data.url, status=303)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import urlsplit

from django.conf import settings
from django.db import transaction
from django_fsm import can_proceed

from core.services import BaseService, ServiceResult

from billing.adapters import (
    CreateCheckoutSessionParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from billing.exceptions import StripeError
from billing.models import BillingCustomer, CheckoutOrder
from billing.signals import order_fulfilled
from billing.state_machines import CheckoutMode, CheckoutOrderState

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser


logger = logging.getLogger(__name__)


# Stripe replaces this template with the real session id on redirect
SESSION_ID_TEMPLATE = "{CHECKOUT_SESSION_ID}"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class CheckoutStart:
    """
    Result of opening a hosted checkout.

    Attributes:
        order: The CheckoutOrder backing the session
        session_id: Stripe Checkout Session ID (cs_xxx)
        url: Hosted checkout page to redirect the browser to
    """

    order: CheckoutOrder
    session_id: str
    url: str


def with_session_id(url: str) -> str:
    """
    Append the session_id query parameter to a success URL.

    Example:
        with_session_id("https://example.com/done")
        # "https://example.com/done?session_id={CHECKOUT_SESSION_ID}"
    """
    if SESSION_ID_TEMPLATE in url:
        return url
    separator = "&" if urlsplit(url).query else "?"
    return f"{url}{separator}session_id={SESSION_ID_TEMPLATE}"


# =============================================================================
# Checkout Service
# =============================================================================


class CheckoutService(BaseService):
    """
    Service for opening checkout sessions and applying their outcome.

    Methods receiving a `session` expect the Checkout Session object
    carried by a webhook (event.data.object).
    """

    # =========================================================================
    # Opening a checkout
    # =========================================================================

    @classmethod
    def start_checkout(
        cls,
        user: AbstractBaseUser,
        price_id: str,
        quantity: int = 1,
        mode: str = CheckoutMode.PAYMENT,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> ServiceResult[CheckoutStart]:
        """
        Create a CheckoutOrder and open a Stripe Checkout Session for it.

        Args:
            user: Customer starting the checkout
            price_id: Stripe Price ID
            quantity: Number of units
            mode: payment or subscription
            success_url: Override for settings.CHECKOUT_SUCCESS_URL
            cancel_url: Override for settings.CHECKOUT_CANCEL_URL

        Returns:
            ServiceResult with CheckoutStart, or failure with the Stripe
            error code when the session could not be created
        """
        log = cls.get_logger()

        order = CheckoutOrder.objects.create(
            user=user,
            price_id=price_id,
            quantity=quantity,
            mode=mode,
        )

        billing_customer = BillingCustomer.objects.filter(user=user).first()

        try:
            params = CreateCheckoutSessionParams(
                price_id=price_id,
                quantity=quantity,
                mode=mode,
                success_url=with_session_id(success_url or settings.CHECKOUT_SUCCESS_URL),
                cancel_url=cancel_url or settings.CHECKOUT_CANCEL_URL,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    operation="checkout_session",
                    entity_id=order.id,
                ),
                client_reference_id=str(order.id),
                customer_id=(
                    billing_customer.stripe_customer_id if billing_customer else None
                ),
                customer_email=getattr(user, "email", None) or None,
                metadata={"checkout_order_id": str(order.id)},
                locale=getattr(settings, "CHECKOUT_LOCALE", None) or None,
            )
        except ValueError as e:
            order.fail(reason=str(e))
            order.save()
            return ServiceResult.failure(str(e), error_code="VALIDATION_ERROR")

        try:
            session = StripeAdapter.create_checkout_session(params)
        except StripeError as e:
            order.fail(reason=str(e))
            order.save()
            log.warning(
                "Could not open checkout session",
                extra={
                    "order_id": str(order.id),
                    "error_code": e.error_code,
                    "stripe_code": e.stripe_code,
                },
            )
            return ServiceResult.failure(str(e), error_code=e.error_code)

        order.stripe_checkout_session_id = session.id
        order.save(update_fields=["stripe_checkout_session_id", "updated_at"])

        log.info(
            "Checkout session opened",
            extra={
                "order_id": str(order.id),
                "checkout_session_id": session.id,
                "price_id": price_id,
                "quantity": quantity,
            },
        )

        return ServiceResult.success(
            CheckoutStart(order=order, session_id=session.id, url=session.url)
        )

    # =========================================================================
    # Webhook outcomes
    # =========================================================================

    @classmethod
    def locate_order(cls, session: Mapping[str, Any]) -> CheckoutOrder | None:
        """
        Find and lock the order behind a Checkout Session object.

        Looks up by session id first, then by client_reference_id (our
        order id) for sessions whose id was never stored locally.
        Must be called inside a transaction.
        """
        orders = CheckoutOrder.objects.select_for_update()

        session_id = session.get("id")
        if session_id:
            order = orders.filter(stripe_checkout_session_id=session_id).first()
            if order:
                return order

        reference = session.get("client_reference_id")
        if reference:
            try:
                order_id = uuid.UUID(str(reference))
            except ValueError:
                # Not one of our order ids
                return None
            order = orders.filter(id=order_id).first()
            if order and not order.stripe_checkout_session_id and session_id:
                order.stripe_checkout_session_id = session_id
                order.save(update_fields=["stripe_checkout_session_id", "updated_at"])
            return order

        return None

    @classmethod
    def _order_not_found(cls, session: Mapping[str, Any]) -> ServiceResult:
        cls.get_logger().warning(
            "CheckoutOrder not found for session",
            extra={
                "checkout_session_id": session.get("id"),
                "client_reference_id": session.get("client_reference_id"),
            },
        )
        return ServiceResult.failure(
            f"CheckoutOrder not found for session: {session.get('id')}",
            error_code="CHECKOUT_ORDER_NOT_FOUND",
        )

    @classmethod
    def fulfill_order(
        cls,
        session: Mapping[str, Any],
        event_id: str | None = None,
    ) -> ServiceResult[CheckoutOrder]:
        """
        Fulfill the order behind a paid Checkout Session.

        Sends order_fulfilled once the surrounding transaction commits, and
        only when the order actually transitions; an already fulfilled
        order is returned unchanged.

        Args:
            session: Checkout Session object with payment_status "paid"
            event_id: Stripe event ID, for logging and the signal

        Returns:
            ServiceResult with the CheckoutOrder
        """
        log = cls.get_logger()

        with cls.atomic():
            order = cls.locate_order(session)
            if not order:
                return cls._order_not_found(session)

            if order.state == CheckoutOrderState.FULFILLED:
                log.info(
                    "Order already fulfilled, skipping",
                    extra={"order_id": str(order.id), "stripe_event_id": event_id},
                )
                return ServiceResult.success(order)

            if not can_proceed(order.fulfill):
                log.error(
                    f"Cannot fulfill order in state {order.state}",
                    extra={"order_id": str(order.id), "stripe_event_id": event_id},
                )
                return ServiceResult.failure(
                    f"Cannot fulfill order in state {order.state}",
                    error_code="INVALID_ORDER_STATE",
                )

            order.fulfill(session)
            order.save()

        log.info(
            "Order fulfilled",
            extra={
                "order_id": str(order.id),
                "stripe_event_id": event_id,
                "checkout_session_id": order.stripe_checkout_session_id,
            },
        )

        # Webhook dispatch runs inside the task's transaction; a later
        # listener raising rolls this fulfillment back.
        transaction.on_commit(
            lambda: order_fulfilled.send(sender=cls, order=order, event_id=event_id)
        )

        return ServiceResult.success(order)

    @classmethod
    def mark_awaiting_payment(
        cls,
        session: Mapping[str, Any],
        event_id: str | None = None,
    ) -> ServiceResult[CheckoutOrder]:
        """
        Record a completed session whose payment has not settled yet.

        Orders past OPEN are left as they are (a late completed event
        must not undo an async success or failure).
        """
        with cls.atomic():
            order = cls.locate_order(session)
            if not order:
                return cls._order_not_found(session)

            if can_proceed(order.await_payment):
                order.await_payment(session)
                order.save()
                cls.get_logger().info(
                    "Order awaiting payment",
                    extra={
                        "order_id": str(order.id),
                        "stripe_event_id": event_id,
                        "payment_status": session.get("payment_status"),
                    },
                )

        return ServiceResult.success(order)

    @classmethod
    def mark_payment_failed(
        cls,
        session: Mapping[str, Any],
        event_id: str | None = None,
    ) -> ServiceResult[CheckoutOrder]:
        """Mark the order failed after an asynchronous payment failure."""
        log = cls.get_logger()

        with cls.atomic():
            order = cls.locate_order(session)
            if not order:
                return cls._order_not_found(session)

            if order.state == CheckoutOrderState.FAILED:
                return ServiceResult.success(order)

            if not can_proceed(order.fail):
                log.error(
                    f"Cannot fail order in state {order.state}",
                    extra={"order_id": str(order.id), "stripe_event_id": event_id},
                )
                return ServiceResult.failure(
                    f"Cannot fail order in state {order.state}",
                    error_code="INVALID_ORDER_STATE",
                )

            order.fail(reason="Asynchronous payment failed")
            order.save()

        log.info(
            "Order payment failed",
            extra={"order_id": str(order.id), "stripe_event_id": event_id},
        )
        return ServiceResult.success(order)

    @classmethod
    def expire_order(
        cls,
        session: Mapping[str, Any],
        event_id: str | None = None,
    ) -> ServiceResult[CheckoutOrder | None]:
        """
        Expire the open order behind an expired Checkout Session.

        Unknown sessions are not an error: Stripe expires sessions that
        were never opened by this service (payment links, dashboard).
        """
        with cls.atomic():
            order = cls.locate_order(session)
            if not order:
                return ServiceResult.success(None)

            if can_proceed(order.expire):
                order.expire()
                order.save()
                cls.get_logger().info(
                    "Order expired",
                    extra={"order_id": str(order.id), "stripe_event_id": event_id},
                )

        return ServiceResult.success(order)

    # =========================================================================
    # Lookups
    # =========================================================================

    @classmethod
    def get_order_for_session(
        cls,
        user: AbstractBaseUser,
        session_id: str,
    ) -> ServiceResult[CheckoutOrder]:
        """
        Find the user's order for a Checkout Session id.

        Orders belonging to other users are reported as not found.
        """
        order = CheckoutOrder.objects.filter(
            stripe_checkout_session_id=session_id,
            user=user,
        ).first()

        if not order:
            return ServiceResult.failure(
                "Checkout session not found",
                error_code="CHECKOUT_ORDER_NOT_FOUND",
            )

        return ServiceResult.success(order)
