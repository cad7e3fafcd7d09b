"""
Payment admin configuration.

Registers the payment engine models with the Django admin. Ledger rows
are read-only: state moves only through the event processor, and the
WebhookEvent admin offers a replay action for failed events.
"""

from django.contrib import admin, messages

from payments.engine import get_engine
from payments.models import Payment, PaymentAttempt, PaymentIntent, Refund, WebhookEvent
from payments.state_machines import WebhookEventStatus

__all__ = [
    "PaymentAdmin",
    "PaymentAttemptAdmin",
    "PaymentIntentAdmin",
    "RefundAdmin",
    "WebhookEventAdmin",
]


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    """Rows are written by the engine only."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete (audit trail)."""
        return False

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]


class PaymentAttemptInline(admin.TabularInline):
    model = PaymentAttempt
    fk_name = "intent"
    extra = 0
    can_delete = False
    fields = ["operation", "status", "error_code", "actor_role", "created_at"]
    readonly_fields = fields
    ordering = ["-created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentIntent)
class PaymentIntentAdmin(ReadOnlyLedgerAdmin):
    """
    Admin configuration for PaymentIntent.

    Provides visibility into intent status and confirm attempts.
    """

    list_display = [
        "id",
        "order",
        "provider",
        "amount",
        "currency",
        "status",
        "last_error_code",
        "created_at",
    ]
    list_filter = ["status", "provider", "created_at"]
    search_fields = ["id", "provider_intent_id", "order__id", "idempotency_key"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PaymentAttemptInline]


@admin.register(Payment)
class PaymentAdmin(ReadOnlyLedgerAdmin):
    list_display = ["id", "order", "intent", "provider", "provider_txn_id", "amount", "status", "created_at"]
    list_filter = ["status", "provider", "created_at"]
    search_fields = ["id", "provider_txn_id", "order__id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(Refund)
class RefundAdmin(ReadOnlyLedgerAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status and history.
    """

    list_display = [
        "id",
        "order",
        "payment",
        "amount",
        "status",
        "attempt_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "created_at"]
    search_fields = ["id", "provider_refund_id", "order__id", "reason"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(ReadOnlyLedgerAdmin):
    list_display = ["id", "order", "operation", "status", "error_code", "actor_role", "created_at"]
    list_filter = ["operation", "status", "provider"]
    search_fields = ["id", "order__id", "intent__id", "refund__id", "error_code"]
    ordering = ["-created_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyLedgerAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type", "last_error"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["replay_events"]

    @admin.action(description="Replay selected failed events")
    def replay_events(self, request, queryset):
        store = get_engine().event_store
        processed = 0
        failed_ids = queryset.filter(status=WebhookEventStatus.FAILED).values_list("id", flat=True)
        for webhook_event_id in failed_ids:
            result = store.replay(webhook_event_id)
            if result.status == WebhookEventStatus.PROCESSED:
                processed += 1
        self.message_user(
            request,
            f"Replayed {len(failed_ids)} event(s), {processed} processed.",
            messages.INFO,
        )
