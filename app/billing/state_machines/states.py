"""
State enums for billing models.

This module defines all state enums used by billing models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

CheckoutOrder States:
    open → fulfilled (paid on completion)
    open → awaiting_payment → fulfilled (delayed settlement)
    open/awaiting_payment → failed
    open → expired

WebhookEvent Status:
    pending → processing → processed
    pending → processing → failed (can retry)
"""

from django.db import models


class CheckoutOrderState(models.TextChoices):
    """
    States for the CheckoutOrder model lifecycle.

    Terminal states: FULFILLED, FAILED, EXPIRED

    State Flow (immediate payment methods):
        OPEN → FULFILLED

    State Flow (delayed payment methods, e.g. bank debits):
        OPEN → AWAITING_PAYMENT → FULFILLED
        OPEN → AWAITING_PAYMENT → FAILED

    Abandonment:
        OPEN → EXPIRED
    """

    OPEN = "open", "Open"
    AWAITING_PAYMENT = "awaiting_payment", "Awaiting Payment"
    FULFILLED = "fulfilled", "Fulfilled"
    FAILED = "failed", "Failed"
    EXPIRED = "expired", "Expired"


class CheckoutMode(models.TextChoices):
    """
    Hosted checkout modes supported by the service.

    - PAYMENT: One-time payment for the line items
    - SUBSCRIPTION: Recurring price, Stripe creates the subscription
    """

    PAYMENT = "payment", "Payment"
    SUBSCRIPTION = "subscription", "Subscription"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "CheckoutMode",
    "CheckoutOrderState",
    "WebhookEventStatus",
]
