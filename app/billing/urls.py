"""
URL configuration for the billing app.

Routes:
    - POST /checkout/          - Open a hosted checkout (303 redirect)
    - GET  /checkout/success/  - Order status for ?session_id=
    - GET  /checkout/cancel/   - Checkout abandoned
    - POST /portal/            - Open the billing portal (303 redirect)
    - POST /webhooks/stripe/   - Stripe webhook endpoint

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing.views import (
    CheckoutCancelView,
    CheckoutSuccessView,
    CreateBillingPortalView,
    CreateCheckoutSessionView,
)
from billing.webhooks import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("checkout/", CreateCheckoutSessionView.as_view(), name="checkout"),
    path("checkout/success/", CheckoutSuccessView.as_view(), name="checkout_success"),
    path("checkout/cancel/", CheckoutCancelView.as_view(), name="checkout_cancel"),
    path("portal/", CreateBillingPortalView.as_view(), name="portal"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
