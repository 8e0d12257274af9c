"""
Billing-specific exceptions for checkout and webhook operations.

This module provides a hierarchy of exceptions for billing operations,
including Stripe-specific errors raised by the adapter layer.

Exception Hierarchy:
    BillingError (base for billing domain)
    └── StripeError - Base for all Stripe errors
        ├── StripeInvalidRequestError - Invalid request params (permanent)
        ├── StripeRateLimitError - Rate limited (transient, retry)
        └── StripeAPIUnavailableError - API unavailable (transient, retry)

Usage:
    from billing.exceptions import StripeError

    try:
        StripeAdapter.create_checkout_session(params)
    except StripeError as e:
        if e.is_retryable:
            ...  # ask the client to try again later
        return Response(e.to_dict(), status=502)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


class BillingError(BaseApplicationError):
    """
    Base exception for all billing operations.

    All billing-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "BILLING_ERROR"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(BillingError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent error, do not retry
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Raised for:
    - Unknown or archived price IDs
    - Unknown customer IDs
    - Invalid webhook signatures
    - Authentication failures (bad API key)

    This is a permanent error - fix the request before retrying.
    """

    default_error_code: str = "STRIPE_INVALID_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """
    Rate limited by Stripe API.

    Stripe allows 100 requests/second in live mode, 25/second in test mode.
    This error indicates we've exceeded those limits.
    """

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    This covers:
    - Network connectivity issues
    - Stripe server errors (5xx)
    - Unexpected SDK failures

    These are transient errors that typically resolve themselves.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
