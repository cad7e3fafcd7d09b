"""
Payment services for coordinating payment operations.

This module provides:
- CheckoutService: Intent creation/confirmation and refund requests
- ReconciliationService: Replay, drift repair and intent expiry jobs

Both are constructed once by PaymentEngine and reached through it:

    from payments.engine import get_engine

    engine = get_engine()
    result = engine.checkout.create_intent(order, amount=order.total_amount)
    summary = engine.reconciliation.cleanup_expired_intents(cutoff_minutes=60)
"""

from payments.services.checkout_service import (
    CheckoutService,
    ConfirmOutcome,
    OrderPayments,
)
from payments.services.reconciliation_service import (
    JobSummary,
    ReconciliationService,
)

__all__ = [
    "CheckoutService",
    "ConfirmOutcome",
    "JobSummary",
    "OrderPayments",
    "ReconciliationService",
]
