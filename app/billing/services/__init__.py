"""
Billing services for hosted checkout and billing portal operations.

This module provides:
- CheckoutService: Opens checkout sessions and applies webhook outcomes
- BillingPortalService: Links Stripe customers and opens portal sessions

Usage:
    from billing.services import CheckoutService

    result = CheckoutService.start_checkout(user=request.user, price_id="price_123")

    from billing.services import BillingPortalService

    result = BillingPortalService.create_portal_session(request.user)
"""

from billing.services.checkout_service import (
    CheckoutService,
    CheckoutStart,
    with_session_id,
)
from billing.services.portal_service import BillingPortalService

__all__ = [
    "BillingPortalService",
    "CheckoutService",
    "CheckoutStart",
    "with_session_id",
]
