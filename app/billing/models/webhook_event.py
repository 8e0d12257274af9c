"""
WebhookEvent model for Stripe webhook event tracking.

Stores every webhook event received from Stripe for idempotent
processing and audit trails. The unique stripe_event_id constraint
ensures duplicate deliveries are detected and handled correctly.

Usage:
    from billing.models import WebhookEvent
    from billing.state_machines import WebhookEventStatus

    # Store incoming webhook event
    event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id="evt_1234567890",
        defaults={
            "event_type": "checkout.session.completed",
            "payload": webhook_payload,
        }
    )

    if not created and event.is_processed:
        # Duplicate webhook - already processed
        return HttpResponse(status=200)

    # Hand the immutable event to the delegator
    delegator.dispatch(event.to_event())
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import WebhookEventStatus

if TYPE_CHECKING:
    from billing.webhooks.delegator import StripeEvent


MAX_WEBHOOK_RETRIES = 5


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Stripe webhook events for idempotent processing.

    Stores the full webhook payload and processing status to:
    1. Prevent duplicate handling (idempotency)
    2. Enable retry logic for failed events
    3. Provide audit trail for debugging

    Processing Flow:
        1. Webhook arrives, verify Stripe signature
        2. Insert/get WebhookEvent with stripe_event_id
        3. If exists and PROCESSED -> return 200 (duplicate)
        4. Set status to PROCESSING
        5. Dispatch to the listeners registered for event_type
        6. Set status to PROCESSED or FAILED
        7. If FAILED, the retry task picks it up later

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Type of webhook event
        payload: Full JSON payload from Stripe
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'checkout.session.completed')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="whevent_status_created_idx",
            ),
            models.Index(
                fields=["event_type", "created_at"],
                name="whevent_type_created_idx",
            ),
            models.Index(
                fields=["status", "retry_count"],
                name="whevent_status_retry_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with event ID and type."""
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        """Check if event has been successfully processed."""
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        """Check if event can be retried (failed with retry count < max)."""
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < MAX_WEBHOOK_RETRIES
        )

    # Note: the mark_* helpers do not save - caller must save after calling.

    def mark_processing(self) -> None:
        """Mark event as being processed and count the attempt."""
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self, error_message: str | None = None) -> None:
        """
        Mark event as processed.

        Args:
            error_message: Why a listener rejected the event, when the
                rejection is final and retrying cannot change it
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = error_message

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Args:
            error_message: Description of what went wrong
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def to_event(self) -> StripeEvent:
        """
        Build the immutable event handed to webhook listeners.

        Returns:
            StripeEvent carrying the stored id, type and payload
        """
        from billing.webhooks.delegator import StripeEvent

        return StripeEvent(
            id=self.stripe_event_id,
            name=self.event_type,
            payload=self.payload or {},
        )
