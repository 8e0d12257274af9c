"""
Webhook handling for Stripe checkout events.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks, which hand each event to the delegator.

Usage:
    # In urls.py
    from billing.webhooks import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from billing.webhooks.delegator import (
    StripeEvent,
    WebhookDelegator,
    WebhookListener,
    delegator,
)
from billing.webhooks.views import stripe_webhook

__all__ = [
    "StripeEvent",
    "WebhookDelegator",
    "WebhookListener",
    "delegator",
    "stripe_webhook",
]
