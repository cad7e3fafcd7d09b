"""
PaymentIntent model.

A PaymentIntent is one attempt to collect payment for an order. Checkout
creates it; only the event processor and the expiry job move it into a
terminal state.

State Machine:
    requires_confirmation → processing → succeeded
    requires_confirmation → processing → failed
    requires_confirmation/processing → requires_action → processing
    failed → succeeded (late provider success)

Usage:
    from payments.models import PaymentIntent

    intent = PaymentIntent.objects.select_for_update().get(id=intent_id)
    intent.succeed()
    intent.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import IntentStatus, ProviderName


INTENT_EXPIRED = "INTENT_EXPIRED"


class PaymentIntent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Server-side record of an attempt to collect payment for one order.

    Fields:
        order: Order being paid
        provider: Provider handling the intent
        provider_intent_id: Provider's id for the intent (pi_xxx)
        amount: Amount to collect
        currency: ISO currency code
        status: FSM-managed status (protected)
        idempotency_key: Caller-supplied key for create requests
        client_secret: Secret handed to the client SDK
        metadata: Arbitrary metadata sent to the provider
        last_error: Last failure reason (error message or code)
        last_error_code: Machine-readable code of the last failure
        confirmed_at: When the intent succeeded

    Invariants:
        - At most one non-terminal intent per order (partial unique index)
        - A succeeded intent is never mutated by a transition again
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_intents",
        help_text="Order this intent collects payment for",
    )

    provider = models.CharField(
        max_length=32,
        choices=ProviderName.choices,
        db_index=True,
    )
    provider_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider intent id (e.g. pi_mock_xxx)",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CNY")

    status = FSMField(
        default=IntentStatus.REQUIRES_CONFIRMATION,
        choices=IntentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the intent (managed by FSM)",
    )

    idempotency_key = models.CharField(max_length=255, null=True, blank=True)
    client_secret = models.CharField(max_length=255, null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    last_error = models.TextField(null=True, blank=True)
    last_error_code = models.CharField(max_length=64, null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Intent"
        verbose_name_plural = "Payment Intents"
        indexes = [
            models.Index(fields=["status", "updated_at"], name="intent_status_updated_idx"),
            models.Index(fields=["provider", "status"], name="intent_provider_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(
                    status__in=[
                        "requires_confirmation",
                        "processing",
                        "requires_action",
                    ]
                ),
                name="one_active_intent_per_order",
            ),
            models.UniqueConstraint(
                fields=["provider", "provider_intent_id"],
                condition=models.Q(provider_intent_id__isnull=False),
                name="unique_provider_intent_id",
            ),
            models.UniqueConstraint(
                fields=["order", "idempotency_key"],
                condition=models.Q(idempotency_key__isnull=False),
                name="unique_intent_idempotency_key",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="intent_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentIntent({self.id}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[
            IntentStatus.REQUIRES_CONFIRMATION,
            IntentStatus.REQUIRES_ACTION,
            IntentStatus.PROCESSING,
        ],
        target=IntentStatus.PROCESSING,
    )
    def mark_processing(self):
        """Provider accepted the confirmation; result arrives by webhook."""
        pass

    @transition(
        field=status,
        source=[
            IntentStatus.REQUIRES_CONFIRMATION,
            IntentStatus.PROCESSING,
            IntentStatus.REQUIRES_ACTION,
        ],
        target=IntentStatus.REQUIRES_ACTION,
    )
    def require_action(self):
        """Customer must complete an extra step (e.g. 3DS, QR scan)."""
        pass

    @transition(
        field=status,
        source=[
            IntentStatus.REQUIRES_CONFIRMATION,
            IntentStatus.PROCESSING,
            IntentStatus.REQUIRES_ACTION,
            IntentStatus.FAILED,
        ],
        target=IntentStatus.SUCCEEDED,
    )
    def succeed(self):
        """
        Mark the intent as paid.

        Transition: any non-succeeded status -> SUCCEEDED

        FAILED is a valid source because a provider may deliver a success
        after an earlier failure or expiry; the money has moved.
        """
        self.confirmed_at = timezone.now()
        self.last_error = None
        self.last_error_code = None

    @transition(
        field=status,
        source=[
            IntentStatus.REQUIRES_CONFIRMATION,
            IntentStatus.PROCESSING,
            IntentStatus.REQUIRES_ACTION,
            IntentStatus.FAILED,
        ],
        target=IntentStatus.FAILED,
    )
    def fail(self, error_message: str | None = None, error_code: str | None = None):
        """
        Mark the intent as failed.

        Args:
            error_message: Human-readable failure reason
            error_code: Provider or engine error code
        """
        self.last_error = error_message or error_code
        self.last_error_code = error_code

    @transition(
        field=status,
        source=[
            IntentStatus.REQUIRES_CONFIRMATION,
            IntentStatus.PROCESSING,
            IntentStatus.REQUIRES_ACTION,
        ],
        target=IntentStatus.FAILED,
    )
    def expire(self):
        """Timeout policy: the intent sat in a non-terminal status too long."""
        self.last_error = INTENT_EXPIRED
        self.last_error_code = INTENT_EXPIRED

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in IntentStatus.terminal()

    @property
    def is_succeeded(self) -> bool:
        return self.status == IntentStatus.SUCCEEDED
