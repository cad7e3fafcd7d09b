"""
Event handlers for normalized payment events.

This module provides a handler registry and one handler per normalized
event type. Handlers run inside the processor's transaction, lock the
rows they touch with select_for_update(), and raise on failure so every
write of the event is rolled back together.

Terminal-state short-circuit:
    An event that would move an intent or refund already in a terminal
    state is accepted without error and writes nothing beyond idempotent
    upserts. This is what lets a synchronous confirm result and the
    provider's own webhook converge on the same ledger state.

Usage:
    from payments.webhooks.handlers import register_handler

    @register_handler("payment.succeeded")
    def handle_payment_succeeded(event: NormalizedEvent) -> HandlerOutcome:
        ...
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from django.db.models import Sum

from orders.models import ActorRole, Order, OrderStatusLog
from payments.exceptions import AmountMismatchError, IntentNotFoundError, RefundNotFoundError
from payments.models import Payment, PaymentAttempt, PaymentIntent, Refund
from payments.state_machines import (
    AttemptOperation,
    IntentStatus,
    PaymentEventType,
    PaymentStatus,
    RefundStatus,
)

if TYPE_CHECKING:
    from payments.providers.base import NormalizedEvent


logger = logging.getLogger(__name__)


PAYMENT_WEBHOOK_CONFIRMED = "PAYMENT_WEBHOOK_CONFIRMED"


@dataclass
class HandlerOutcome:
    """Rows an event touched, used to back-link the WebhookEvent."""

    order: Order | None = None
    intent: PaymentIntent | None = None
    payment: Payment | None = None
    refund: Refund | None = None
    applied: bool = True

    def links(self) -> dict:
        return {
            "order": self.order,
            "intent": self.intent,
            "payment": self.payment,
            "refund": self.refund,
        }


# =============================================================================
# Handler Registry
# =============================================================================


# Maps normalized event types to handler functions
EVENT_HANDLERS: dict[str, Callable[[NormalizedEvent], HandlerOutcome]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register an event handler.

    Args:
        event_type: Normalized event type (e.g., "payment.succeeded")

    Returns:
        Decorator function that registers the handler
    """

    def decorator(func: Callable[[NormalizedEvent], HandlerOutcome]) -> Callable:
        EVENT_HANDLERS[event_type] = func
        logger.debug(f"Registered event handler for {event_type}")
        return func

    return decorator


# =============================================================================
# Lookup Helpers
# =============================================================================


def _event_log_context(event: NormalizedEvent) -> dict:
    return {
        "provider": event.provider,
        "event_id": event.event_id,
        "event_type": event.type,
    }


def _find_intent_id(event: NormalizedEvent) -> uuid.UUID:
    """
    Resolve which intent an event refers to.

    Lookup order:
        1. provider_intent_id
        2. engine intent id carried back in metadata["intent_id"]
        3. most recent processing intent for the provider (heuristic)

    Raises:
        IntentNotFoundError: If nothing matches
    """
    data = event.data
    intents = PaymentIntent.objects.filter(provider=event.provider)

    if data.provider_intent_id:
        intent_id = (
            intents.filter(provider_intent_id=data.provider_intent_id)
            .values_list("id", flat=True)
            .first()
        )
        if intent_id:
            return intent_id

    metadata_intent_id = (data.metadata or {}).get("intent_id")
    if metadata_intent_id:
        try:
            intent_id = (
                intents.filter(id=uuid.UUID(str(metadata_intent_id)))
                .values_list("id", flat=True)
                .first()
            )
        except ValueError:
            intent_id = None
        if intent_id:
            return intent_id

    intent_id = (
        intents.filter(status=IntentStatus.PROCESSING)
        .order_by("-updated_at")
        .values_list("id", flat=True)
        .first()
    )
    if intent_id:
        logger.warning(
            "Intent resolved by most-recent-processing fallback",
            extra={
                **_event_log_context(event),
                "provider_intent_id": data.provider_intent_id,
                "intent_id": str(intent_id),
            },
        )
        return intent_id

    raise IntentNotFoundError(
        f"No intent found for provider intent id {data.provider_intent_id}",
        details={
            "provider": event.provider,
            "provider_intent_id": data.provider_intent_id,
        },
    )


def _find_refund_id(event: NormalizedEvent) -> uuid.UUID:
    """
    Resolve which refund an event refers to.

    Falls back to the most recent processing refund for the provider.

    Raises:
        RefundNotFoundError: If nothing matches
    """
    data = event.data
    refunds = Refund.objects.filter(provider=event.provider)

    if data.provider_refund_id:
        refund_id = (
            refunds.filter(provider_refund_id=data.provider_refund_id)
            .values_list("id", flat=True)
            .first()
        )
        if refund_id:
            return refund_id

    refund_id = (
        refunds.filter(status=RefundStatus.PROCESSING)
        .order_by("-updated_at")
        .values_list("id", flat=True)
        .first()
    )
    if refund_id:
        logger.warning(
            "Refund resolved by most-recent-processing fallback",
            extra={
                **_event_log_context(event),
                "provider_refund_id": data.provider_refund_id,
                "refund_id": str(refund_id),
            },
        )
        return refund_id

    raise RefundNotFoundError(
        f"No refund found for provider refund id {data.provider_refund_id}",
        details={
            "provider": event.provider,
            "provider_refund_id": data.provider_refund_id,
        },
    )


def _lock_intent(event: NormalizedEvent) -> tuple[Order, PaymentIntent]:
    """Lock order then intent, always in that order."""
    intent_id = _find_intent_id(event)
    order_id = PaymentIntent.objects.values_list("order_id", flat=True).get(id=intent_id)
    order = Order.objects.select_for_update().get(id=order_id)
    intent = PaymentIntent.objects.select_for_update().get(id=intent_id)
    return order, intent


def _lock_refund(event: NormalizedEvent) -> tuple[Order, Refund]:
    refund_id = _find_refund_id(event)
    order_id = Refund.objects.values_list("order_id", flat=True).get(id=refund_id)
    order = Order.objects.select_for_update().get(id=order_id)
    refund = Refund.objects.select_for_update().get(id=refund_id)
    return order, refund


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler(PaymentEventType.PAYMENT_SUCCEEDED)
def handle_payment_succeeded(event: NormalizedEvent) -> HandlerOutcome:
    """
    Settle a successful charge.

    Moves the intent to succeeded, inserts the Payment exactly once per
    intent, marks the order PAID and advances PENDING_PAYMENT to
    PENDING_HOST_CONFIRM with a status log entry.

    Raises:
        IntentNotFoundError: No intent matches the event
        AmountMismatchError: Event amount differs from the intent amount
    """
    data = event.data
    order, intent = _lock_intent(event)

    if data.amount != intent.amount:
        raise AmountMismatchError(
            f"Event amount {data.amount} does not match intent amount {intent.amount}",
            details={
                "intent_id": str(intent.id),
                "event_amount": str(data.amount),
                "intent_amount": str(intent.amount),
            },
        )

    already_succeeded = intent.status == IntentStatus.SUCCEEDED
    if not already_succeeded:
        intent.succeed()
        intent.save()

    payment, created = Payment.objects.get_or_create(
        intent=intent,
        defaults={
            "order": order,
            "provider": intent.provider,
            "provider_txn_id": data.provider_txn_id,
            "amount": intent.amount,
            "currency": intent.currency,
            "status": PaymentStatus.SUCCEEDED,
        },
    )
    if not created and not payment.provider_txn_id and data.provider_txn_id:
        payment.provider_txn_id = data.provider_txn_id
        payment.save(update_fields=["provider_txn_id", "updated_at"])

    from_status, to_status = order.mark_paid(provider=intent.provider, intent_id=intent.id)
    if from_status != to_status:
        OrderStatusLog.objects.create(
            order=order,
            from_status=from_status,
            to_status=to_status,
            actor_role=ActorRole.SYSTEM,
            reason=PAYMENT_WEBHOOK_CONFIRMED,
        )

    logger.info(
        "Payment succeeded",
        extra={
            **_event_log_context(event),
            "intent_id": str(intent.id),
            "payment_id": str(payment.id),
            "order_id": str(order.id),
            "payment_created": created,
            "already_succeeded": already_succeeded,
        },
    )
    return HandlerOutcome(
        order=order,
        intent=intent,
        payment=payment,
        applied=created or not already_succeeded,
    )


@register_handler(PaymentEventType.PAYMENT_FAILED)
def handle_payment_failed(event: NormalizedEvent) -> HandlerOutcome:
    """
    Record a failed charge.

    The order keeps its status so the traveler can pay with a new intent;
    only the last-attempt bookkeeping changes.
    """
    data = event.data
    order, intent = _lock_intent(event)

    if intent.status == IntentStatus.SUCCEEDED:
        logger.info(
            "Ignoring payment failure for succeeded intent",
            extra={**_event_log_context(event), "intent_id": str(intent.id)},
        )
        return HandlerOutcome(order=order, intent=intent, applied=False)

    if intent.status == IntentStatus.FAILED and intent.last_error_code == data.error_code:
        return HandlerOutcome(order=order, intent=intent, applied=False)

    intent.fail(error_message=data.error_message, error_code=data.error_code)
    intent.save()

    PaymentAttempt.objects.create(
        order=order,
        intent=intent,
        provider=intent.provider,
        operation=AttemptOperation.WEBHOOK,
        status="failed",
        amount=intent.amount,
        currency=intent.currency,
        error_code=data.error_code,
        error_message=data.error_message,
        raw_payload=event.to_dict(),
    )
    order.record_payment_attempt("failed")

    logger.info(
        "Payment failed",
        extra={
            **_event_log_context(event),
            "intent_id": str(intent.id),
            "order_id": str(order.id),
            "error_code": data.error_code,
        },
    )
    return HandlerOutcome(order=order, intent=intent)


@register_handler(PaymentEventType.PAYMENT_REQUIRES_ACTION)
def handle_payment_requires_action(event: NormalizedEvent) -> HandlerOutcome:
    """Customer action needed. No money has moved, so no ledger rows."""
    order, intent = _lock_intent(event)

    if intent.is_terminal:
        return HandlerOutcome(order=order, intent=intent, applied=False)

    if intent.status != IntentStatus.REQUIRES_ACTION:
        intent.require_action()
        intent.save()
    order.record_payment_attempt(IntentStatus.REQUIRES_ACTION)

    return HandlerOutcome(order=order, intent=intent)


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler(PaymentEventType.REFUND_SUCCEEDED)
def handle_refund_succeeded(event: NormalizedEvent) -> HandlerOutcome:
    """Complete a refund and mark the order REFUNDED."""
    order, refund = _lock_refund(event)

    if refund.status == RefundStatus.SUCCEEDED:
        return HandlerOutcome(order=order, refund=refund, applied=False)

    refund.succeed()
    refund.save()

    refunded_total = Refund.objects.filter(
        order=order,
        status=RefundStatus.SUCCEEDED,
    ).aggregate(total=Sum("amount"))["total"]
    order.mark_refunded(refunded_total or refund.amount)

    logger.info(
        "Refund succeeded",
        extra={
            **_event_log_context(event),
            "refund_id": str(refund.id),
            "order_id": str(order.id),
        },
    )
    return HandlerOutcome(order=order, refund=refund, intent=refund.intent)


@register_handler(PaymentEventType.REFUND_FAILED)
def handle_refund_failed(event: NormalizedEvent) -> HandlerOutcome:
    """
    Record a failed refund.

    The refund row stays in place; a later retry reuses it.
    """
    data = event.data
    order, refund = _lock_refund(event)
    reason = data.error_message or data.error_code

    if refund.status == RefundStatus.SUCCEEDED:
        logger.info(
            "Ignoring refund failure for succeeded refund",
            extra={**_event_log_context(event), "refund_id": str(refund.id)},
        )
        return HandlerOutcome(order=order, refund=refund, applied=False)

    if refund.status == RefundStatus.FAILED and refund.last_error == reason:
        return HandlerOutcome(order=order, refund=refund, applied=False)

    refund.fail(reason=reason)
    refund.save()
    order.mark_refund_failed()

    PaymentAttempt.objects.create(
        order=order,
        intent=refund.intent,
        refund=refund,
        provider=refund.provider,
        operation=AttemptOperation.WEBHOOK,
        status="failed",
        amount=refund.amount,
        currency=refund.currency,
        error_code=data.error_code,
        error_message=data.error_message,
        raw_payload=event.to_dict(),
    )

    logger.info(
        "Refund failed",
        extra={
            **_event_log_context(event),
            "refund_id": str(refund.id),
            "order_id": str(order.id),
            "error_code": data.error_code,
        },
    )
    return HandlerOutcome(order=order, refund=refund, intent=refund.intent)
