"""
Django signals for the billing app.

This module defines:
- order_fulfilled: sent once when a CheckoutOrder transitions to FULFILLED
  and the transition has been committed
- A receiver logging fulfilled orders for audit purposes

Fulfillment side effects (granting access, sending receipts) hook into
order_fulfilled rather than into the webhook listeners, so they run only
on the actual state transition and never on a redelivered webhook.

Related files:
    - services/checkout_service.py: Sends order_fulfilled
    - apps.py: Signal import in ready()

Usage:
    from django.dispatch import receiver
    from billing.signals import order_fulfilled

    @receiver(order_fulfilled)
    def grant_access(sender, order, event_id, **kwargs):
        ...
"""

import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)


# Sent with kwargs: order (CheckoutOrder), event_id (Stripe event id or None)
order_fulfilled = Signal()


@receiver(order_fulfilled)
def log_order_fulfilled(sender, order, event_id=None, **kwargs):
    """
    Log fulfilled orders.

    Args:
        sender: The CheckoutService class
        order: The CheckoutOrder that was fulfilled
        event_id: Stripe event that triggered fulfillment
        **kwargs: Additional signal arguments
    """
    logger.info(
        f"Checkout order fulfilled: {order.id}",
        extra={
            "order_id": str(order.id),
            "user_id": order.user_id,
            "stripe_event_id": event_id,
            "amount_total": order.amount_total,
            "currency": order.currency,
        },
    )
