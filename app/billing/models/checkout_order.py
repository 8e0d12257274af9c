"""
CheckoutOrder model - the local record behind one hosted checkout session.

A CheckoutOrder is created before the customer is redirected to the
Stripe-hosted checkout page. Webhook listeners move it through its
lifecycle once Stripe reports the outcome.

State Machine:
    OPEN → FULFILLED                      (paid on completion)
    OPEN → AWAITING_PAYMENT → FULFILLED   (delayed settlement)
    OPEN / AWAITING_PAYMENT → FAILED      (async payment failed)
    OPEN → EXPIRED                        (session expired)

Usage:
    from billing.models import CheckoutOrder

    order = CheckoutOrder.objects.create(
        user=request.user,
        price_id="price_123",
        quantity=1,
    )
    order.stripe_checkout_session_id = session.id
    order.save(update_fields=["stripe_checkout_session_id", "updated_at"])

    # Later, from a webhook listener
    order.fulfill(session_object)
    order.save()
"""

from __future__ import annotations

from typing import Any

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import CheckoutMode, CheckoutOrderState


class CheckoutOrder(UUIDPrimaryKeyMixin, BaseModel):
    """
    Order opened through a Stripe Checkout Session.

    Uses django-fsm for state machine management. Transitions copy the
    relevant fields of the Checkout Session object they were triggered by,
    so the order reflects what Stripe reported last.

    Fields:
        user: Customer who started the checkout
        price_id: Stripe Price purchased
        quantity: Number of units
        mode: payment or subscription
        stripe_checkout_session_id: Checkout Session ID (cs_xxx)
        stripe_customer_id: Stripe Customer ID reported by the session
        payment_status: Last payment_status seen (paid, unpaid, no_payment_required)
        amount_total: Total charged in the smallest currency unit
        currency: ISO 4217 currency code
        state: Lifecycle state (FSM-managed)
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="checkout_orders",
        help_text="User who started the checkout",
    )

    price_id = models.CharField(
        max_length=255,
        help_text="Stripe Price ID (price_xxx)",
    )

    quantity = models.PositiveIntegerField(
        default=1,
        help_text="Number of units purchased",
    )

    mode = models.CharField(
        max_length=20,
        choices=CheckoutMode.choices,
        default=CheckoutMode.PAYMENT,
        help_text="Checkout mode (payment or subscription)",
    )

    # ==========================================================================
    # Stripe References
    # ==========================================================================

    stripe_checkout_session_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )

    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Customer ID (cus_xxx) reported by the session",
    )

    payment_status = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Last payment_status reported by Stripe",
    )

    amount_total = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Total amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        blank=True,
        default="",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=CheckoutOrderState.OPEN,
        choices=CheckoutOrderState.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current state of the order (managed by FSM)",
    )

    fulfilled_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the order failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Checkout Order"
        verbose_name_plural = "Checkout Orders"
        indexes = [
            models.Index(
                fields=["user", "created_at"],
                name="order_user_created_idx",
            ),
            models.Index(
                fields=["state", "created_at"],
                name="order_state_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"CheckoutOrder({self.id}, {self.state})"

    @property
    def is_fulfilled(self) -> bool:
        return self.state == CheckoutOrderState.FULFILLED

    def _apply_session(self, session: dict[str, Any]) -> None:
        """Copy the fields Stripe reports on a Checkout Session object."""
        self.payment_status = session.get("payment_status") or self.payment_status
        if session.get("customer"):
            self.stripe_customer_id = session["customer"]
        if session.get("amount_total") is not None:
            self.amount_total = session["amount_total"]
        if session.get("currency"):
            self.currency = session["currency"]

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=CheckoutOrderState.OPEN,
        target=CheckoutOrderState.AWAITING_PAYMENT,
    )
    def await_payment(self, session: dict[str, Any]):
        """
        Record a completed session whose funds have not settled yet.

        Transition: OPEN -> AWAITING_PAYMENT

        Delayed payment methods complete the checkout with
        payment_status "unpaid"; a later async_payment_succeeded or
        async_payment_failed event settles the order.
        """
        self._apply_session(session)

    @transition(
        field=state,
        source=[CheckoutOrderState.OPEN, CheckoutOrderState.AWAITING_PAYMENT],
        target=CheckoutOrderState.FULFILLED,
    )
    def fulfill(self, session: dict[str, Any]):
        """
        Mark the order as paid and fulfilled.

        Transition: OPEN | AWAITING_PAYMENT -> FULFILLED
        """
        self._apply_session(session)
        self.fulfilled_at = timezone.now()

    @transition(
        field=state,
        source=[CheckoutOrderState.OPEN, CheckoutOrderState.AWAITING_PAYMENT],
        target=CheckoutOrderState.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark the order as failed.

        Transition: OPEN | AWAITING_PAYMENT -> FAILED

        Args:
            reason: Optional failure reason for debugging
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=state,
        source=CheckoutOrderState.OPEN,
        target=CheckoutOrderState.EXPIRED,
    )
    def expire(self):
        """
        Mark the order as abandoned.

        Transition: OPEN -> EXPIRED
        """
        self.expired_at = timezone.now()
