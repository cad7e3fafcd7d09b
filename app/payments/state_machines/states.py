"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PaymentIntent States:
    requires_confirmation → processing → succeeded
    requires_confirmation → processing → failed
    requires_confirmation/processing → requires_action → processing
    any non-succeeded state → failed (expiry, provider failure)
    failed → succeeded (late success event from the provider)

Refund States:
    requested → processing → succeeded
    requested → processing → failed → processing (retry, same row)

WebhookEvent Statuses:
    received → processed
    received → failed → processed (replay)
"""

from django.db import models


class IntentStatus(models.TextChoices):
    """
    States for the PaymentIntent model lifecycle.

    Terminal states: SUCCEEDED (immutable), FAILED
    Non-terminal states: REQUIRES_CONFIRMATION, PROCESSING, REQUIRES_ACTION

    At most one intent per order may be in a non-terminal state.
    """

    REQUIRES_CONFIRMATION = "requires_confirmation", "Requires Confirmation"
    PROCESSING = "processing", "Processing"
    REQUIRES_ACTION = "requires_action", "Requires Action"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"

    @classmethod
    def non_terminal(cls) -> list[str]:
        """States an intent can still leave on its own."""
        return [cls.REQUIRES_CONFIRMATION, cls.PROCESSING, cls.REQUIRES_ACTION]

    @classmethod
    def terminal(cls) -> list[str]:
        return [cls.SUCCEEDED, cls.FAILED]


class PaymentStatus(models.TextChoices):
    """
    Status of a settled Payment row.

    Payments are only created for successful charges, so SUCCEEDED is the
    only value written by the engine.
    """

    SUCCEEDED = "succeeded", "Succeeded"


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    State Flow:
        REQUESTED → PROCESSING → SUCCEEDED
        REQUESTED → PROCESSING → FAILED

    Retry Flow:
        FAILED → PROCESSING (same row, new idempotency key)
    """

    REQUESTED = "requested", "Requested"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for stored webhook events.

    RECEIVED: Inserted on first sight, processor not finished yet
    PROCESSED: Processor committed all writes
    FAILED: Processor rolled back; eligible for replay
    """

    RECEIVED = "received", "Received"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class PaymentEventType(models.TextChoices):
    """Normalized event types understood by the event processor."""

    PAYMENT_SUCCEEDED = "payment.succeeded", "Payment Succeeded"
    PAYMENT_FAILED = "payment.failed", "Payment Failed"
    PAYMENT_REQUIRES_ACTION = "payment.requires_action", "Payment Requires Action"
    REFUND_SUCCEEDED = "refund.succeeded", "Refund Succeeded"
    REFUND_FAILED = "refund.failed", "Refund Failed"


class ProviderName(models.TextChoices):
    """
    Closed set of payment providers known to the engine.

    Adding a provider means adding a member here and an implementation
    in payments.providers.registry.
    """

    MOCK = "mock", "Mock"
    WECHAT = "wechat", "WeChat Pay"
    ALIPAY = "alipay", "Alipay"


class AttemptOperation(models.TextChoices):
    """Operation recorded on a PaymentAttempt audit row."""

    CONFIRM = "confirm", "Confirm"
    REFUND = "refund", "Refund"
    EXPIRE = "expire", "Expire"
    WEBHOOK = "webhook", "Webhook"
