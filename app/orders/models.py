"""
Order models.

The Order is owned by the booking flow. The payment engine reads the
amount and status from it and writes back payment bookkeeping fields
through the helper methods below, never by editing the fields directly.

Models:
    Order: A traveler's booking with a host, payable once
    OrderStatusLog: Audit trail of order status changes

Usage:
    from orders.models import Order

    from_status, to_status = order.mark_paid(provider="mock", intent_id=intent.id)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class OrderStatus(models.TextChoices):
    """Booking lifecycle states."""

    PENDING_PAYMENT = "PENDING_PAYMENT", "Pending Payment"
    PENDING_HOST_CONFIRM = "PENDING_HOST_CONFIRM", "Pending Host Confirmation"
    CONFIRMED = "CONFIRMED", "Confirmed"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED_BY_TRAVELER = "CANCELLED_BY_TRAVELER", "Cancelled by Traveler"
    CANCELLED_REFUNDED = "CANCELLED_REFUNDED", "Cancelled and Refunded"


class OrderPaymentStatus(models.TextChoices):
    """Money state of an order as seen by the payment engine."""

    UNPAID = "UNPAID", "Unpaid"
    PAID = "PAID", "Paid"
    REFUNDING = "REFUNDING", "Refunding"
    REFUNDED = "REFUNDED", "Refunded"


class ActorRole(models.TextChoices):
    """Who caused an order status change."""

    TRAVELER = "TRAVELER", "Traveler"
    HOST = "HOST", "Host"
    ADMIN = "ADMIN", "Admin"
    SYSTEM = "SYSTEM", "System"


# Statuses from which an order can no longer be paid
CLOSED_ORDER_STATUSES = (
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED_BY_TRAVELER,
    OrderStatus.CANCELLED_REFUNDED,
)


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A booking between a traveler and a host.

    Fields:
        traveler: User paying for the order
        host: User providing the experience
        total_amount: Price the traveler must pay
        currency: ISO currency code (default CNY)
        status: Booking lifecycle status
        payment_status: UNPAID / PAID / REFUNDING / REFUNDED
        paid_at: When the order was first marked paid
        latest_intent_id: Most recent PaymentIntent created for this order
        payment_provider: Provider that settled the order
        last_payment_attempt_status: Status of the latest confirm attempt
        last_payment_attempt_at: When the latest attempt was recorded
        refund_status: processing / succeeded / failed
        refund_amount: Amount refunded
        refund_at: When the refund completed
    """

    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="traveler_orders",
        help_text="User paying for this order",
    )
    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="host_orders",
        help_text="User hosting this order",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total price of the order",
    )
    currency = models.CharField(
        max_length=3,
        default="CNY",
        help_text="ISO currency code",
    )

    status = models.CharField(
        max_length=32,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_PAYMENT,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.UNPAID,
        db_index=True,
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    # Plain UUID instead of a FK: payments already depends on orders
    latest_intent_id = models.UUIDField(null=True, blank=True)
    payment_provider = models.CharField(max_length=32, null=True, blank=True)

    last_payment_attempt_status = models.CharField(
        max_length=32, null=True, blank=True
    )
    last_payment_attempt_at = models.DateTimeField(null=True, blank=True)

    refund_status = models.CharField(max_length=16, null=True, blank=True)
    refund_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    refund_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(
                fields=["payment_status", "status"],
                name="order_payment_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.status}, {self.payment_status})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_payable(self) -> bool:
        """Unpaid and not closed."""
        return (
            self.payment_status == OrderPaymentStatus.UNPAID
            and self.status not in CLOSED_ORDER_STATUSES
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.PAID

    # ==========================================================================
    # Payment Bookkeeping
    # ==========================================================================

    def mark_paid(self, provider: str, intent_id=None) -> tuple[str, str]:
        """
        Record a successful payment on the order.

        Safe to call repeatedly: PENDING_PAYMENT advances to
        PENDING_HOST_CONFIRM, every other status is left alone. An order
        that is already refunding or refunded keeps its payment status.

        Args:
            provider: Provider that settled the payment
            intent_id: Intent that succeeded

        Returns:
            Tuple of (from_status, to_status)
        """
        fields = ["status", "payment_status", "paid_at", "payment_provider", "latest_intent_id"]
        before = [getattr(self, name) for name in fields]
        from_status = self.status

        if self.status == OrderStatus.PENDING_PAYMENT:
            self.status = OrderStatus.PENDING_HOST_CONFIRM

        if self.payment_status not in (
            OrderPaymentStatus.REFUNDING,
            OrderPaymentStatus.REFUNDED,
        ):
            self.payment_status = OrderPaymentStatus.PAID

        if self.paid_at is None:
            self.paid_at = timezone.now()
        self.payment_provider = provider
        if intent_id is not None:
            self.latest_intent_id = intent_id

        if [getattr(self, name) for name in fields] != before:
            self.save(update_fields=[*fields, "updated_at"])
        return from_status, self.status

    def record_payment_attempt(self, status: str) -> None:
        """Update last-attempt bookkeeping without touching the order status."""
        self.last_payment_attempt_status = status
        self.last_payment_attempt_at = timezone.now()
        self.save(
            update_fields=[
                "last_payment_attempt_status",
                "last_payment_attempt_at",
                "updated_at",
            ]
        )

    def mark_refund_processing(self) -> None:
        self.refund_status = "processing"
        self.payment_status = OrderPaymentStatus.REFUNDING
        self.save(update_fields=["refund_status", "payment_status", "updated_at"])

    def mark_refunded(self, amount: Decimal) -> None:
        """Record a completed refund."""
        self.payment_status = OrderPaymentStatus.REFUNDED
        self.refund_status = "succeeded"
        self.refund_amount = amount
        self.refund_at = timezone.now()
        self.save(
            update_fields=[
                "payment_status",
                "refund_status",
                "refund_amount",
                "refund_at",
                "updated_at",
            ]
        )

    def mark_refund_failed(self) -> None:
        self.refund_status = "failed"
        self.save(update_fields=["refund_status", "updated_at"])


class OrderStatusLog(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only record of an order status change.

    Fields:
        order: Order whose status changed
        from_status: Status before the change
        to_status: Status after the change
        actor_role: Who caused the change
        reason: Machine-readable reason (e.g. PAYMENT_WEBHOOK_CONFIRMED)
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="status_logs",
    )
    from_status = models.CharField(max_length=32, choices=OrderStatus.choices)
    to_status = models.CharField(max_length=32, choices=OrderStatus.choices)
    actor_role = models.CharField(
        max_length=16,
        choices=ActorRole.choices,
        default=ActorRole.SYSTEM,
    )
    reason = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order Status Log"
        verbose_name_plural = "Order Status Logs"

    def __str__(self) -> str:
        return f"OrderStatusLog({self.order_id}: {self.from_status} -> {self.to_status})"
