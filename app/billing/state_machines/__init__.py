"""
State machine enums for billing models.

This module defines the state enums used by billing models with django-fsm.
"""

from billing.state_machines.states import (
    CheckoutMode,
    CheckoutOrderState,
    WebhookEventStatus,
)

__all__ = [
    "CheckoutMode",
    "CheckoutOrderState",
    "WebhookEventStatus",
]
