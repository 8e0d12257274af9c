"""
Stripe webhook endpoint.

The endpoint never runs listeners itself. It only:
1. Verifies the Stripe-Signature header against the raw body
2. Stores the event once per Stripe event id (WebhookEvent)
3. Queues process_webhook_event, which dispatches to the delegator

Stripe retries deliveries that do not get a 2xx answer in time, so the
view answers as soon as the event is stored.

Responses:
    200 "Accepted"           stored (or re-queued) for processing
    200 "Already processed"  duplicate delivery of a processed event
    400 "Missing signature"  no Stripe-Signature header
    400 "Invalid signature"  signature or payload rejected
    400 "Verification error" unexpected error while verifying
    400 "Invalid event"      event without id or type
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import StripeInvalidRequestError
from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.webhooks.delegator import StripeEvent


logger = logging.getLogger(__name__)


def _queue_for_processing(webhook_event: WebhookEvent) -> None:
    """Hand the stored event to Celery; failures only get logged."""
    from billing.tasks import process_webhook_event

    log_context = {
        "stripe_event_id": webhook_event.stripe_event_id,
        "webhook_event_id": str(webhook_event.id),
    }
    try:
        process_webhook_event.delay(str(webhook_event.id))
    except Exception as e:
        # Stored as pending: retry_failed_webhooks will not see it, but
        # Stripe redelivers and the redelivery re-queues it
        logger.error(
            f"Could not queue webhook event: {type(e).__name__}",
            extra=log_context,
            exc_info=True,
        )
        return

    logger.info("Webhook event queued", extra=log_context)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive a Stripe webhook delivery.

    CSRF-exempt because Stripe cannot send a token; the signature check
    is what authenticates the request.
    """
    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        payload = StripeAdapter.verify_webhook_signature(request.body, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature rejected",
            extra={"error": str(e), "stripe_code": e.stripe_code},
        )
        return HttpResponse("Invalid signature", status=400)
    except Exception as e:
        logger.error(
            f"Unexpected error verifying webhook: {type(e).__name__}",
            exc_info=True,
        )
        return HttpResponse("Verification error", status=400)

    event = StripeEvent.from_payload(payload)
    if not event.id or not event.name:
        logger.warning("Webhook event without id or type")
        return HttpResponse("Invalid event", status=400)

    log_context = {"stripe_event_id": event.id, "event_type": event.name}
    logger.info(f"Received Stripe webhook: {event.name}", extra=log_context)

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event.id,
        defaults={
            "event_type": event.name,
            "payload": payload,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created:
        if webhook_event.is_processed:
            logger.info("Duplicate delivery of processed event", extra=log_context)
            return HttpResponse("Already processed", status=200)

        logger.info(
            f"Redelivery of event in status {webhook_event.status}",
            extra=log_context,
        )

    _queue_for_processing(webhook_event)

    return HttpResponse("Accepted", status=200)
