"""
DRF views for the billing app.

This module provides API views for:
- Opening a Stripe-hosted checkout session
- Opening the Stripe billing portal
- The success and cancel pages checkout redirects back to

Both "open" endpoints answer 303 See Other with the hosted page in the
Location header, so a plain HTML form post lands the browser on Stripe.

Related files:
    - services/: CheckoutService, BillingPortalService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/billing/checkout/ - Create checkout session, redirect
    GET /api/v1/billing/checkout/success/?session_id= - Order status
    GET /api/v1/billing/checkout/cancel/ - Checkout abandoned
    POST /api/v1/billing/portal/ - Create billing portal session, redirect
"""

from __future__ import annotations

import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.serializers import (
    CheckoutOrderSerializer,
    CreateBillingPortalSerializer,
    CreateCheckoutSessionSerializer,
)
from billing.services import BillingPortalService, CheckoutService

logger = logging.getLogger(__name__)


def see_other(url: str) -> Response:
    """303 redirect to a hosted Stripe page."""
    return Response(status=status.HTTP_303_SEE_OTHER, headers={"Location": url})


class CreateCheckoutSessionView(APIView):
    """
    Open a Stripe-hosted checkout.

    POST /api/v1/billing/checkout/

    Request:
        price_id (required), quantity (default 1), mode (default payment)

    Response:
        303 See Other: Location is the checkout page
        400 Bad Request: Validation error
        502 Bad Gateway: Stripe refused or is unavailable
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_checkout_session",
        summary="Open hosted checkout",
        request=CreateCheckoutSessionSerializer,
        responses={
            303: OpenApiResponse(description="Redirect to the Stripe checkout page"),
            400: OpenApiResponse(description="Validation error"),
            502: OpenApiResponse(description="Stripe error"),
        },
        tags=["Billing - Checkout"],
    )
    def post(self, request):
        serializer = CreateCheckoutSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = CheckoutService.start_checkout(
            user=request.user,
            **serializer.validated_data,
        )
        if not result.success:
            return Response(result.to_response(), status=status.HTTP_502_BAD_GATEWAY)

        return see_other(result.data.url)


class CheckoutSuccessView(APIView):
    """
    Page Stripe sends the customer to after checkout.

    GET /api/v1/billing/checkout/success/?session_id=cs_xxx

    The order may still be open here: fulfillment happens when the
    webhook arrives, which can be after the redirect.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="checkout_success",
        summary="Checkout order status",
        parameters=[
            OpenApiParameter(
                name="session_id",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=True,
                description="Checkout Session ID filled in by Stripe",
            ),
        ],
        responses={
            200: CheckoutOrderSerializer,
            400: OpenApiResponse(description="Missing session_id"),
            404: OpenApiResponse(description="Unknown checkout session"),
        },
        tags=["Billing - Checkout"],
    )
    def get(self, request):
        session_id = request.query_params.get("session_id", "").strip()
        if not session_id:
            return Response(
                {"detail": "session_id query parameter is required"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = CheckoutService.get_order_for_session(request.user, session_id)
        if not result.success:
            return Response(result.to_response(), status=status.HTTP_404_NOT_FOUND)

        return Response(CheckoutOrderSerializer(result.data).data)


class CheckoutCancelView(APIView):
    """Page Stripe sends the customer to when they back out of checkout."""

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="checkout_cancel",
        summary="Checkout canceled",
        responses={200: OpenApiResponse(description="Checkout canceled")},
        tags=["Billing - Checkout"],
    )
    def get(self, request):
        return Response({"detail": "Checkout canceled"})


class CreateBillingPortalView(APIView):
    """
    Open the Stripe billing portal.

    POST /api/v1/billing/portal/

    Response:
        303 See Other: Location is the portal page
        404 Not Found: User has no Stripe customer yet
        502 Bad Gateway: Stripe refused or is unavailable
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_billing_portal_session",
        summary="Open billing portal",
        request=CreateBillingPortalSerializer,
        responses={
            303: OpenApiResponse(description="Redirect to the Stripe billing portal"),
            404: OpenApiResponse(description="No billing account"),
            502: OpenApiResponse(description="Stripe error"),
        },
        tags=["Billing - Portal"],
    )
    def post(self, request):
        serializer = CreateBillingPortalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = BillingPortalService.create_portal_session(
            request.user,
            return_url=serializer.validated_data.get("return_url"),
        )
        if not result.success:
            status_code = (
                status.HTTP_404_NOT_FOUND
                if result.error_code == "BILLING_CUSTOMER_NOT_FOUND"
                else status.HTTP_502_BAD_GATEWAY
            )
            return Response(result.to_response(), status=status_code)

        return see_other(result.data.url)
