"""
PaymentAttempt model.

Append-only audit of every confirm, refund and expiry call and its
immediate outcome, whether or not a webhook later confirms it.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import AttemptOperation, ProviderName


class PaymentAttempt(UUIDPrimaryKeyMixin, BaseModel):
    """
    Audit record of one provider interaction.

    Fields:
        order: Order the attempt belongs to
        intent: Intent involved (confirm/expire/payment webhooks)
        refund: Refund involved (refund calls)
        provider: Provider called
        operation: confirm / refund / expire / webhook
        status: Immediate outcome reported by the provider or the engine
        amount: Amount of the attempt
        currency: ISO currency code
        idempotency_key: Key sent to the provider
        error_code: Error code on failure
        error_message: Error message on failure
        actor: User who triggered the attempt (None for system jobs)
        actor_role: TRAVELER / HOST / ADMIN / SYSTEM
        raw_payload: Request and provider response snapshot
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="payment_attempts",
    )
    intent = models.ForeignKey(
        "payments.PaymentIntent",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="attempts",
    )
    refund = models.ForeignKey(
        "payments.Refund",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="attempts",
    )
    provider = models.CharField(max_length=32, choices=ProviderName.choices)
    operation = models.CharField(
        max_length=16,
        choices=AttemptOperation.choices,
        default=AttemptOperation.CONFIRM,
    )
    status = models.CharField(max_length=32)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CNY")
    idempotency_key = models.CharField(max_length=255, null=True, blank=True)
    error_code = models.CharField(max_length=64, null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    actor_role = models.CharField(max_length=16, default="SYSTEM")
    raw_payload = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Attempt"
        verbose_name_plural = "Payment Attempts"
        indexes = [
            models.Index(fields=["order", "created_at"], name="attempt_order_created_idx"),
        ]

    def __str__(self) -> str:
        return f"PaymentAttempt({self.operation}, {self.status}, {self.error_code})"
