"""
Stripe API adapter for hosted checkout operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls should go through this
adapter to ensure consistent error handling, timeouts, idempotency,
and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency support for safe retries

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK-level network retries (default: 3)

Usage:
    from billing.adapters import StripeAdapter, CreateCheckoutSessionParams

    # Open a hosted checkout session
    session = StripeAdapter.create_checkout_session(
        CreateCheckoutSessionParams(
            price_id="price_123",
            success_url="https://example.com/success?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://example.com/cancel",
            idempotency_key="checkout_session:order_123:1:abcd1234",
        )
    )
    return HttpResponseRedirect(session.url, status=303)

    # Open a billing portal session
    portal = StripeAdapter.create_billing_portal_session(
        customer_id="cus_123",
        return_url="https://example.com/account",
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeInvalidRequestError,
    StripeRateLimitError,
)
from billing.state_machines import CheckoutMode


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateCheckoutSessionParams:
    """
    Parameters for creating a Stripe Checkout Session.

    Attributes:
        price_id: Stripe Price ID for the single line item
        success_url: Redirect target after payment (should carry the
            {CHECKOUT_SESSION_ID} template so Stripe fills in the session id)
        cancel_url: Redirect target when the customer backs out
        idempotency_key: Unique key for idempotent creation
        quantity: Number of units (default: 1)
        mode: 'payment' or 'subscription' (default: 'payment')
        client_reference_id: Our order ID, echoed back in webhooks
        customer_id: Existing Stripe Customer ID (optional)
        customer_email: Prefill email when no customer exists yet (optional)
        metadata: Key-value pairs to attach to the session
        locale: Checkout page locale (e.g. 'auto', 'fr')
    """

    price_id: str
    success_url: str
    cancel_url: str
    idempotency_key: str
    quantity: int = 1
    mode: str = CheckoutMode.PAYMENT
    client_reference_id: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    locale: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if not self.price_id:
            raise ValueError("price_id is required")
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.success_url or not self.cancel_url:
            raise ValueError("success_url and cancel_url are required")
        if self.mode not in CheckoutMode.values:
            raise ValueError(f"Unsupported checkout mode: {self.mode}")


@dataclass
class CheckoutSessionResult:
    """
    Result from Stripe Checkout Session operations.

    Attributes:
        id: Checkout Session ID (cs_xxx)
        url: Hosted checkout page URL (None once the session is complete)
        status: open, complete or expired
        payment_status: paid, unpaid or no_payment_required
        mode: payment or subscription
        customer_id: Stripe Customer ID, if any
        client_reference_id: Our order ID
        amount_total: Total in smallest currency unit
        currency: Currency code
        raw_response: Full Stripe response dict (for debugging)
    """

    id: str
    url: str | None
    status: str | None
    payment_status: str | None
    mode: str | None = None
    customer_id: str | None = None
    client_reference_id: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PortalSessionResult:
    """
    Result from Stripe Billing Portal Session creation.

    Attributes:
        id: Portal Session ID (bps_xxx)
        url: Hosted billing portal URL
        customer_id: Stripe Customer ID the portal is for
        return_url: Where the portal sends the customer back to
        raw_response: Full Stripe response dict
    """

    id: str
    url: str
    customer_id: str
    return_url: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The hash component provides uniqueness across environments sharing
    a Stripe account while the structured format aids debugging.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="checkout_session",
            entity_id=order.id,
        )
        # Result: "checkout_session:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate a unique idempotency key.

        Args:
            operation: The Stripe operation (checkout_session, portal_session)
            entity_id: The domain entity ID (checkout order id, user id)
            attempt: Attempt number for retries (default: 1)

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are class methods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        session = StripeAdapter.create_checkout_session(params)
        session = StripeAdapter.retrieve_checkout_session("cs_test_123")
        portal = StripeAdapter.create_billing_portal_session("cus_123", return_url)
        event = StripeAdapter.verify_webhook_signature(request.body, signature)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    @classmethod
    def create_checkout_session(
        cls,
        params: CreateCheckoutSessionParams,
    ) -> CheckoutSessionResult:
        """
        Create a Stripe-hosted Checkout Session.

        In payment mode without an existing customer, Stripe is asked to
        always create a Customer so the billing portal can be offered later.

        Args:
            params: Parameters for creating the session

        Returns:
            CheckoutSessionResult whose url the browser is redirected to

        Raises:
            StripeInvalidRequestError: Invalid parameters (unknown price, etc.)
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_checkout_session",
            "price_id": params.price_id,
            "quantity": params.quantity,
            "mode": params.mode,
            "client_reference_id": params.client_reference_id,
            "idempotency_key": params.idempotency_key,
        }

        create_kwargs: dict[str, Any] = {
            "mode": str(params.mode),
            "line_items": [{"price": params.price_id, "quantity": params.quantity}],
            "success_url": params.success_url,
            "cancel_url": params.cancel_url,
            "metadata": params.metadata,
        }
        if params.client_reference_id:
            create_kwargs["client_reference_id"] = params.client_reference_id
        if params.customer_id:
            create_kwargs["customer"] = params.customer_id
        else:
            if params.customer_email:
                create_kwargs["customer_email"] = params.customer_email
            if params.mode == CheckoutMode.PAYMENT:
                create_kwargs["customer_creation"] = "always"
        if params.locale:
            create_kwargs["locale"] = params.locale

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.create(
                idempotency_key=params.idempotency_key,
                **create_kwargs,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "checkout_session_id": session.id,
                    "duration_ms": duration_ms,
                },
            )

            return cls._to_checkout_session_result(session)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

    @classmethod
    def retrieve_checkout_session(cls, session_id: str) -> CheckoutSessionResult:
        """
        Retrieve a Checkout Session by ID.

        Args:
            session_id: Checkout Session ID (cs_xxx)

        Returns:
            CheckoutSessionResult with the current session status

        Raises:
            StripeInvalidRequestError: Session not found
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_checkout_session",
            "checkout_session_id": session_id,
        }

        start_time = time.time()

        try:
            session = stripe.checkout.Session.retrieve(session_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": session.status,
                    "payment_status": session.payment_status,
                    "duration_ms": duration_ms,
                },
            )

            return cls._to_checkout_session_result(session)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @staticmethod
    def _to_checkout_session_result(session: Any) -> CheckoutSessionResult:
        return CheckoutSessionResult(
            id=session.id,
            url=session.url,
            status=session.status,
            payment_status=session.payment_status,
            mode=session.mode,
            customer_id=session.customer,
            client_reference_id=session.client_reference_id,
            amount_total=session.amount_total,
            currency=session.currency,
            raw_response=session.to_dict(),
        )

    # =========================================================================
    # Billing Portal
    # =========================================================================

    @classmethod
    def create_billing_portal_session(
        cls,
        customer_id: str,
        return_url: str,
    ) -> PortalSessionResult:
        """
        Create a Stripe Billing Portal session for a customer.

        Args:
            customer_id: Stripe Customer ID (cus_xxx)
            return_url: Where the portal's "return" link points to

        Returns:
            PortalSessionResult whose url the browser is redirected to

        Raises:
            StripeInvalidRequestError: Unknown customer or portal not configured
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_billing_portal_session",
            "customer_id": customer_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            portal_session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "portal_session_id": portal_session.id,
                    "duration_ms": duration_ms,
                },
            )

            return PortalSessionResult(
                id=portal_session.id,
                url=portal_session.url,
                customer_id=portal_session.customer,
                return_url=portal_session.return_url,
                raw_response=portal_session.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            StripeInvalidRequestError: Invalid signature or malformed payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Args:
            error: The Stripe exception
            log_context: Logging context dict
            duration_ms: Operation duration for logging

        Raises:
            StripeInvalidRequestError: Invalid request or authentication failure
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: API unavailable or unexpected error
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning(
                "Rate limited by Stripe",
                extra=log_context,
            )
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            # Invalid API key - permanent, operational issue
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error(
                "Stripe API error",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )
