"""
Payment model.

A Payment is the settled record of a successful charge. It is created
exactly once per succeeded intent, by the event processor only.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import PaymentStatus, ProviderName


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    Settled record of a successful charge.

    Fields:
        order: Order that was paid
        intent: Intent that succeeded (one payment per intent)
        provider: Provider that moved the money
        provider_txn_id: Provider transaction id, unique per provider
        amount: Amount captured
        currency: ISO currency code
        status: Always succeeded for rows written by the engine

    Note:
        Uniqueness on (provider, provider_txn_id) and on intent absorbs
        duplicate inserts even when two distinct events describe the
        same charge.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    intent = models.OneToOneField(
        "payments.PaymentIntent",
        on_delete=models.PROTECT,
        related_name="payment",
    )
    provider = models.CharField(max_length=32, choices=ProviderName.choices)
    provider_txn_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Provider transaction id (e.g. txn_mock_xxx)",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CNY")
    status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.SUCCEEDED,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_txn_id"],
                condition=models.Q(provider_txn_id__isnull=False),
                name="unique_provider_txn_id",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.amount} {self.currency})"
