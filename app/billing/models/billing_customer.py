"""
BillingCustomer model - maps a user to their Stripe Customer.

The Stripe Customer is created by Checkout (customer_creation="always"
or by subscription mode) and reported back on checkout.session.completed.
It is required to open Billing Portal sessions.

Usage:
    from billing.models import BillingCustomer

    customer = BillingCustomer.objects.filter(user=request.user).first()
    if customer:
        StripeAdapter.create_billing_portal_session(
            customer.stripe_customer_id, return_url
        )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class BillingCustomer(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stripe Customer reference for a user.

    Fields:
        user: The application user (one-to-one)
        stripe_customer_id: Stripe Customer ID (cus_xxx)
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="billing_customer",
        help_text="Application user owning this Stripe customer",
    )

    stripe_customer_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    class Meta:
        verbose_name = "Billing Customer"
        verbose_name_plural = "Billing Customers"

    def __str__(self) -> str:
        return f"BillingCustomer({self.user_id}, {self.stripe_customer_id})"
