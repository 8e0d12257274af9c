"""
DRF serializers for the billing app.

This module provides serializers for:
- Checkout and billing portal requests
- Checkout order display on the success page

Related files:
    - models/checkout_order.py: CheckoutOrder
    - views.py: Billing API views
"""

from __future__ import annotations

from rest_framework import serializers

from billing.models import CheckoutOrder
from billing.state_machines import CheckoutMode


class CreateCheckoutSessionSerializer(serializers.Serializer):
    """
    Checkout request (form post or JSON).

    Fields:
        price_id: Stripe Price ID
        quantity: Number of units (1-99)
        mode: payment (default) or subscription
    """

    price_id = serializers.RegexField(
        regex=r"^price_[A-Za-z0-9_]+$",
        max_length=255,
        error_messages={"invalid": "Enter a valid Stripe price ID."},
    )
    quantity = serializers.IntegerField(min_value=1, max_value=99, default=1)
    mode = serializers.ChoiceField(
        choices=CheckoutMode.choices,
        default=CheckoutMode.PAYMENT,
    )


class CreateBillingPortalSerializer(serializers.Serializer):
    """Billing portal request with an optional return URL."""

    return_url = serializers.URLField(required=False)


class CheckoutOrderSerializer(serializers.ModelSerializer):
    """Checkout order as shown on the success page."""

    is_fulfilled = serializers.BooleanField(read_only=True)

    class Meta:
        model = CheckoutOrder
        fields = [
            "id",
            "state",
            "is_fulfilled",
            "payment_status",
            "price_id",
            "quantity",
            "mode",
            "amount_total",
            "currency",
            "stripe_checkout_session_id",
            "fulfilled_at",
            "created_at",
        ]
        read_only_fields = fields
