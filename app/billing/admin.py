"""
Billing admin configuration.

Orders and webhook events are read-mostly: state changes go through
the service layer and the webhook pipeline, not the admin forms.
"""

from django.contrib import admin, messages

from billing.models import BillingCustomer, CheckoutOrder, WebhookEvent

__all__ = [
    "BillingCustomerAdmin",
    "CheckoutOrderAdmin",
    "WebhookEventAdmin",
]


@admin.register(CheckoutOrder)
class CheckoutOrderAdmin(admin.ModelAdmin):
    """Visibility into checkout orders and their states."""

    list_display = [
        "id",
        "user",
        "price_id",
        "quantity",
        "state",
        "payment_status",
        "amount_total",
        "currency",
        "created_at",
    ]
    list_filter = ["state", "mode", "payment_status", "created_at"]
    search_fields = ["id", "stripe_checkout_session_id", "user__email"]
    readonly_fields = [
        "id",
        "state",
        "stripe_checkout_session_id",
        "stripe_customer_id",
        "payment_status",
        "amount_total",
        "currency",
        "fulfilled_at",
        "failed_at",
        "expired_at",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "user", "state")}),
        ("Purchase", {"fields": ("price_id", "quantity", "mode")}),
        (
            "Stripe",
            {
                "fields": (
                    "stripe_checkout_session_id",
                    "stripe_customer_id",
                    "payment_status",
                    "amount_total",
                    "currency",
                ),
            },
        ),
        (
            "Outcome",
            {
                "fields": ("fulfilled_at", "failed_at", "expired_at", "failure_reason"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {"fields": ("created_at", "updated_at"), "classes": ("collapse",)},
        ),
    )


@admin.register(BillingCustomer)
class BillingCustomerAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "stripe_customer_id", "created_at"]
    search_fields = ["stripe_customer_id", "user__email"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Visibility into webhook processing status.

    Webhook events are immutable once received; failed ones can be
    re-queued with the "Requeue" action.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "retry_count",
        "processed_at",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["requeue_events"]

    @admin.action(description="Requeue failed events")
    def requeue_events(self, request, queryset):
        from billing.tasks import process_webhook_event

        queued = 0
        for webhook_event in queryset:
            if webhook_event.can_retry:
                process_webhook_event.delay(str(webhook_event.id))
                queued += 1

        skipped = queryset.count() - queued
        self.message_user(
            request,
            f"Queued {queued} event(s); skipped {skipped} not retryable.",
            messages.SUCCESS if queued else messages.WARNING,
        )
