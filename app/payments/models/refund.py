"""
Refund model for tracking money returned to travelers.

A Refund always references exactly one succeeded Payment. Failed refunds
are retried in place: the same row moves back to processing and the
provider is called again with a fresh idempotency key.

State Machine:
    requested → processing → succeeded
    requested → processing → failed → processing (retry)

Usage:
    from payments.models import Refund

    refund = Refund.objects.create(
        order=order,
        payment=payment,
        intent=payment.intent,
        provider=payment.provider,
        amount=payment.amount,
        currency=payment.currency,
    )
    refund.process(provider_refund_id="rf_mock_123")
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import ProviderName, RefundStatus


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    A request to return funds for a succeeded Payment.

    Fields:
        order: Order being refunded
        payment: Succeeded payment the money came from
        intent: Intent of that payment
        provider: Provider that processes the refund
        provider_refund_id: Provider refund id (rf_xxx)
        amount: Amount to return
        currency: ISO currency code
        status: FSM-managed status (protected)
        reason: Why the refund was requested
        idempotency_key: Key sent on the most recent provider call
        last_error: Last failure reason
        attempt_count: Number of provider calls made for this row
        processed_at: When the refund succeeded
        requested_by: User who asked for the refund
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    intent = models.ForeignKey(
        "payments.PaymentIntent",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refunds",
    )
    provider = models.CharField(max_length=32, choices=ProviderName.choices)
    provider_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider refund id (e.g. rf_mock_xxx)",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CNY")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.REQUESTED,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the refund (managed by FSM)",
    )

    reason = models.CharField(max_length=255, default="requested_by_user")
    idempotency_key = models.CharField(max_length=255, null=True, blank=True)
    last_error = models.TextField(null=True, blank=True)
    attempt_count = models.PositiveIntegerField(default=0)
    processed_at = models.DateTimeField(null=True, blank=True)

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["provider", "status"], name="refund_provider_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_refund_id"],
                condition=models.Q(provider_refund_id__isnull=False),
                name="unique_provider_refund_id",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.id}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.REQUESTED,
        target=RefundStatus.PROCESSING,
    )
    def process(self, provider_refund_id: str | None = None):
        """
        Provider accepted the refund request.

        Transition: REQUESTED -> PROCESSING
        """
        self.attempt_count += 1
        if provider_refund_id:
            self.provider_refund_id = provider_refund_id

    @transition(
        field=status,
        source=[RefundStatus.REQUESTED, RefundStatus.PROCESSING, RefundStatus.FAILED],
        target=RefundStatus.PROCESSING,
    )
    def retry(self, provider_refund_id: str | None = None):
        """
        Call the provider again for the same refund row.

        Transition: FAILED/REQUESTED/PROCESSING -> PROCESSING
        """
        self.attempt_count += 1
        self.last_error = None
        if provider_refund_id:
            self.provider_refund_id = provider_refund_id

    @transition(
        field=status,
        source=[RefundStatus.REQUESTED, RefundStatus.PROCESSING, RefundStatus.FAILED],
        target=RefundStatus.SUCCEEDED,
    )
    def succeed(self):
        """
        Mark refund as completed.

        FAILED is a valid source: a provider success can arrive after a
        failure was recorded for an earlier attempt.
        """
        self.processed_at = timezone.now()
        self.last_error = None

    @transition(
        field=status,
        source=[RefundStatus.REQUESTED, RefundStatus.PROCESSING, RefundStatus.FAILED],
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark refund as failed.

        Args:
            reason: Failure reason reported by the provider
        """
        if reason:
            self.last_error = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == RefundStatus.SUCCEEDED
