"""
Billing portal service.

This module provides the BillingPortalService class which:
1. Remembers the Stripe Customer created by Checkout for each user
2. Opens Stripe-hosted Billing Portal sessions for that customer

Usage:
    from billing.services import BillingPortalService

    result = BillingPortalService.create_portal_session(request.user)
    if result.success:
        return HttpResponseRedirect(result.data.url, status=303)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from django.conf import settings

from core.services import BaseService, ServiceResult

from billing.adapters import PortalSessionResult, StripeAdapter
from billing.exceptions import StripeError
from billing.models import BillingCustomer
from billing.services.checkout_service import CheckoutService

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser


logger = logging.getLogger(__name__)


class BillingPortalService(BaseService):
    """Service for Stripe customers and billing portal sessions."""

    @classmethod
    def link_customer(
        cls,
        session: Mapping[str, Any],
        event_id: str | None = None,
    ) -> ServiceResult[BillingCustomer | None]:
        """
        Store the customer reported by a completed Checkout Session.

        Sessions without a customer (guest payments) and sessions not
        opened by this service are skipped.

        Args:
            session: Checkout Session object (event.data.object)
            event_id: Stripe event ID, for logging

        Returns:
            ServiceResult with the BillingCustomer, or None when skipped
        """
        log = cls.get_logger()
        customer_id = session.get("customer")
        if not customer_id:
            return ServiceResult.success(None)

        with cls.atomic():
            order = CheckoutService.locate_order(session)
            if not order:
                log.info(
                    "No order for session, customer not linked",
                    extra={
                        "checkout_session_id": session.get("id"),
                        "stripe_event_id": event_id,
                    },
                )
                return ServiceResult.success(None)

            conflict = (
                BillingCustomer.objects.filter(stripe_customer_id=customer_id)
                .exclude(user_id=order.user_id)
                .exists()
            )
            if conflict:
                log.error(
                    "Stripe customer already linked to another user",
                    extra={
                        "customer_id": customer_id,
                        "user_id": order.user_id,
                        "stripe_event_id": event_id,
                    },
                )
                return ServiceResult.failure(
                    f"Stripe customer {customer_id} belongs to another user",
                    error_code="BILLING_CUSTOMER_CONFLICT",
                )

            billing_customer, created = BillingCustomer.objects.update_or_create(
                user_id=order.user_id,
                defaults={"stripe_customer_id": customer_id},
            )

        log.info(
            "Stripe customer linked" if created else "Stripe customer refreshed",
            extra={
                "user_id": order.user_id,
                "customer_id": customer_id,
                "stripe_event_id": event_id,
            },
        )
        return ServiceResult.success(billing_customer)

    @classmethod
    def create_portal_session(
        cls,
        user: AbstractBaseUser,
        return_url: str | None = None,
    ) -> ServiceResult[PortalSessionResult]:
        """
        Open a Billing Portal session for the user's Stripe customer.

        Args:
            user: The requesting user
            return_url: Override for settings.BILLING_PORTAL_RETURN_URL

        Returns:
            ServiceResult with PortalSessionResult, or failure with
            BILLING_CUSTOMER_NOT_FOUND when the user never checked out
        """
        billing_customer = BillingCustomer.objects.filter(user=user).first()
        if not billing_customer:
            return ServiceResult.failure(
                "No billing account found for this user",
                error_code="BILLING_CUSTOMER_NOT_FOUND",
            )

        try:
            portal_session = StripeAdapter.create_billing_portal_session(
                customer_id=billing_customer.stripe_customer_id,
                return_url=return_url or settings.BILLING_PORTAL_RETURN_URL,
            )
        except StripeError as e:
            cls.get_logger().warning(
                "Could not open billing portal session",
                extra={
                    "user_id": user.pk,
                    "error_code": e.error_code,
                    "stripe_code": e.stripe_code,
                },
            )
            return ServiceResult.failure(str(e), error_code=e.error_code)

        return ServiceResult.success(portal_session)
