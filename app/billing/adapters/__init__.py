"""
Billing adapters for external services.

All Stripe API calls go through StripeAdapter to ensure consistent
error handling, timeouts, idempotency, and observability.

Usage:
    from billing.adapters import StripeAdapter, CreateCheckoutSessionParams

    session = StripeAdapter.create_checkout_session(
        CreateCheckoutSessionParams(
            price_id="price_123",
            success_url="https://example.com/success?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://example.com/cancel",
            idempotency_key="checkout_session:order_123:1:abcd1234",
        )
    )
"""

from billing.adapters.stripe_adapter import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    IdempotencyKeyGenerator,
    PortalSessionResult,
    StripeAdapter,
)

__all__ = [
    "CheckoutSessionResult",
    "CreateCheckoutSessionParams",
    "IdempotencyKeyGenerator",
    "PortalSessionResult",
    "StripeAdapter",
]
