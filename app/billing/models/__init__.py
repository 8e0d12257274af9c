"""
Billing domain models.

This module contains all billing-related models:
- CheckoutOrder: Local order behind one hosted checkout session
- BillingCustomer: User to Stripe Customer mapping (billing portal access)
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from billing.models.billing_customer import BillingCustomer
from billing.models.checkout_order import CheckoutOrder
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "BillingCustomer",
    "CheckoutOrder",
    "WebhookEvent",
]
