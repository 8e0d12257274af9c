"""
Billing app configuration.

This app provides hosted checkout integration:
- Checkout and billing portal sessions (303 redirects to Stripe)
- Stripe webhook pipeline with listener delegation
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"

    def ready(self):
        """
        Connect signals and subscribe webhook listeners.

        Listeners subscribe on import, so this runs once per process.
        """
        from billing import signals  # noqa: F401
        from billing.webhooks import listeners  # noqa: F401
