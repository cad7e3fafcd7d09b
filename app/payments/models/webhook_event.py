"""
WebhookEvent model for normalized payment event tracking.

Stores every normalized event, whether it came from a provider webhook,
a synchronous confirmation or a reconciliation job. The unique
(provider, event_id) constraint is the engine's only concurrency-control
primitive: a duplicate delivery never reaches the processor twice.

Usage:
    from payments.models import WebhookEvent
    from payments.state_machines import WebhookEventStatus

    webhook_event, created = WebhookEvent.objects.get_or_create(
        provider="mock",
        event_id="evt_mock_123",
        defaults={
            "event_type": "payment.succeeded",
            "payload": event.to_dict(),
        },
    )

    if not created and webhook_event.is_processed:
        # Duplicate delivery - already applied
        ...
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import PaymentEventType, ProviderName, WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Idempotent log of every normalized payment event.

    Processing Flow:
        1. Provider verifies signature and normalizes payload
        2. Insert/get WebhookEvent keyed by (provider, event_id)
        3. If exists and PROCESSED -> duplicate, no further work
        4. If exists and FAILED -> left for the replay job
        5. First sight: run the processor
        6. Set status to PROCESSED or FAILED
        7. If FAILED, the replay job retries until max retries

    Fields:
        provider: Provider that issued (or is credited with) the event
        event_id: Provider event id, or sync_/reconcile_ id for synthesized events
        event_type: Normalized event type
        payload: Full normalized event (eventId, type, provider, createdAt, data)
        signature: Signature header received with the event
        status: received / processed / failed
        retry_count: Number of replays that failed
        last_error: Error message of the last failed run
        processed_at: When the event was processed
        order/intent/payment/refund: Back-links set once processing succeeds

    Note:
        Rows are never deleted.
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(max_length=32, choices=ProviderName.choices)
    event_id = models.CharField(
        max_length=255,
        help_text="Unique per provider - the idempotency key for ingestion",
    )
    event_type = models.CharField(
        max_length=64,
        choices=PaymentEventType.choices,
        db_index=True,
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(help_text="Normalized event (JSON)")
    signature = models.CharField(max_length=512, null=True, blank=True)

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=16,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.RECEIVED,
        db_index=True,
    )
    retry_count = models.PositiveSmallIntegerField(default=0)
    last_error = models.TextField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Linked References
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
    )
    intent = models.ForeignKey(
        "payments.PaymentIntent",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
    )
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
    )
    refund = models.ForeignKey(
        "payments.Refund",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="unique_provider_event_id",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processed(self, links: dict | None = None) -> None:
        """
        Mark event as successfully processed and save.

        Args:
            links: Optional back-links, keys among order/intent/payment/refund
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.last_error = None
        update_fields = ["status", "processed_at", "last_error", "updated_at"]
        for name, obj in (links or {}).items():
            if obj is not None:
                setattr(self, name, obj)
                update_fields.append(name)
        self.save(update_fields=update_fields)

    def mark_failed(self, error_message: str, increment_retry: bool = False) -> None:
        """
        Mark event as failed with error message and save.

        Args:
            error_message: Description of what went wrong
            increment_retry: True when a replay attempt failed
        """
        self.status = WebhookEventStatus.FAILED
        self.last_error = error_message
        update_fields = ["status", "last_error", "updated_at"]
        if increment_retry:
            self.retry_count += 1
            update_fields.append("retry_count")
        self.save(update_fields=update_fields)
