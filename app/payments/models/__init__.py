"""
Payment domain models.

This module contains all payment-related models:
- PaymentIntent: One attempt to collect payment for an order
- Payment: Settled record of a successful charge
- Refund: Money returned to travelers, retried in place
- WebhookEvent: Idempotent log of every normalized payment event
- PaymentAttempt: Append-only audit of provider interactions
"""

from payments.models.payment import Payment
from payments.models.payment_attempt import PaymentAttempt
from payments.models.payment_intent import INTENT_EXPIRED, PaymentIntent
from payments.models.refund import Refund
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "INTENT_EXPIRED",
    "Payment",
    "PaymentAttempt",
    "PaymentIntent",
    "Refund",
    "WebhookEvent",
]
