"""
Celery tasks for webhook processing.

This module provides async tasks for:
- Dispatching stored Stripe webhook events to the delegator
- Re-queuing failed events (celery-beat, every 5 minutes)
- Resetting events stuck in processing (celery-beat, every 10 minutes)
- Deleting old processed events (celery-beat, daily)

Schedules are created by migration 0002_webhook_periodic_tasks.

Usage:
    from billing.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.db import transaction
from django.utils import timezone

from core.services import ServiceResult

from billing.models import WebhookEvent
from billing.models.webhook_event import MAX_WEBHOOK_RETRIES
from billing.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100

# Listener outcomes that replaying the same event cannot change
PERMANENT_LISTENER_ERRORS = frozenset(
    {
        "INVALID_ORDER_STATE",
        "BILLING_CUSTOMER_CONFLICT",
    }
)


def is_permanent_failure(result: ServiceResult) -> bool:
    """True when every failed listener reported a permanent error code."""
    codes = [code for codes in (result.errors or {}).values() for code in codes]
    return bool(codes) and all(code in PERMANENT_LISTENER_ERRORS for code in codes)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Dispatch a stored webhook event to its listeners.

    Listener failures reported through ServiceResult mark the event
    failed (retry_failed_webhooks picks it up later), unless every failure
    is permanent (PERMANENT_LISTENER_ERRORS): the event is then recorded as
    processed with the rejection in error_message. Exceptions mark it
    failed and are re-raised so Celery retries with backoff.

    Args:
        webhook_event_id: UUID of the WebhookEvent

    Returns:
        Dict with the processing status
    """
    from billing.webhooks.delegator import delegator

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    log_context = {
        "webhook_event_id": str(webhook_event.id),
        "stripe_event_id": webhook_event.stripe_event_id,
        "event_type": webhook_event.event_type,
    }

    if webhook_event.is_processed:
        logger.info("WebhookEvent already processed, skipping", extra=log_context)
        return {"status": "already_processed", **log_context}

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={**log_context, "retry_count": webhook_event.retry_count},
    )

    try:
        with transaction.atomic():
            result = delegator.dispatch(webhook_event.to_event())
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save()
        logger.exception("Webhook listener raised", extra=log_context)
        raise

    if not result.success and is_permanent_failure(result):
        webhook_event.mark_processed(error_message=result.error)
        webhook_event.save()
        logger.warning(
            f"Webhook rejected by listeners: {result.error}",
            extra={**log_context, "error_codes": result.errors},
        )
        return {"status": "rejected", "error": result.error, **log_context}

    if not result.success:
        webhook_event.mark_failed(result.error or "Listener returned failure")
        webhook_event.save()
        logger.warning(
            f"Webhook listeners failed: {result.error}",
            extra={**log_context, "error_code": result.error_code},
        )
        return {"status": "listener_failed", "error": result.error, **log_context}

    webhook_event.mark_processed()
    webhook_event.save()
    logger.info("Webhook processed", extra={**log_context, **result.data})

    return {"status": "processed", "handled": result.data["handled"], **log_context}


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Re-queue failed webhook events that are under the retry limit.

    Oldest first, at most RETRY_BATCH_SIZE per run.

    Returns:
        Dict with count of events queued
    """
    failed_events = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook_event in failed_events:
        try:
            process_webhook_event.delay(str(webhook_event.id))
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook_event.id)},
            )
            continue
        queued_count += 1

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Reset events stuck in PROCESSING (worker crashed mid-dispatch).

    They are marked FAILED so retry_failed_webhooks picks them up.

    Returns:
        Dict with count of events reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    reset_count = 0
    for webhook_event in WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    ):
        stuck_since = webhook_event.updated_at
        webhook_event.mark_failed("Processing timed out - reset for retry")
        webhook_event.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    return {"reset_count": reset_count}


@shared_task
def cleanup_old_webhooks(days: int = 90) -> dict:
    """
    Delete processed webhook events older than `days`.

    Failed events are kept for debugging.

    Args:
        days: Age threshold in days

    Returns:
        Dict with count of events deleted
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={"deleted_count": deleted_count, "cutoff_date": cutoff.isoformat()},
        )

    return {"deleted_count": deleted_count}
