"""
Celery tasks for payment processing.

This module provides async tasks for:
- Delivering scheduled provider webhooks through the event store
- Replaying failed webhook events
- Reconciling succeeded payments whose order was never marked paid
- Expiring stale payment intents
- Syncing a single intent with its provider

The three periodic jobs are scheduled by django-celery-beat (see
migration 0002_add_reconciliation_schedules).

Usage:
    from payments.tasks import reconcile_single_intent

    reconcile_single_intent.delay(str(intent.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.db import DatabaseError

from payments.engine import get_engine
from payments.exceptions import InvalidSignatureError, UnknownProviderError
from payments.models import PaymentIntent

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_DELIVERY_RETRIES = 5


# =============================================================================
# Webhook Delivery
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_DELIVERY_RETRIES},
    acks_late=True,
)
def deliver_provider_webhook(self, provider: str, body: str, signature: str) -> dict:
    """
    Deliver a signed webhook body scheduled by a provider.

    Goes through EventStore.ingest exactly like the HTTP endpoint, so
    signature verification and deduplication apply.

    Args:
        provider: Provider name
        body: Raw JSON body
        signature: Signature the provider computed for the body

    Returns:
        Dict with the ingestion status
    """
    try:
        result = get_engine().event_store.ingest(provider, body, signature)
    except (InvalidSignatureError, UnknownProviderError) as e:
        logger.error(
            f"Scheduled webhook rejected: {e.message}",
            extra={"provider": provider, "error_code": e.error_code},
        )
        return {"status": "rejected", "error_code": e.error_code}

    return {
        "status": result.status,
        "event_id": result.event_id,
        "is_new": result.is_new,
    }


# =============================================================================
# Reconciliation Jobs
# =============================================================================


@shared_task
def replay_failed_webhooks(max_retries: int | None = None, limit: int | None = None) -> dict:
    """
    Replay failed webhook events below the retry ceiling.

    Scheduled: every 5 minutes
    """
    result = get_engine().reconciliation.replay_failed_webhooks(
        max_retries=max_retries,
        limit=limit,
    )
    return result.data.to_dict()


@shared_task
def reconcile_succeeded_payments(limit: int | None = None) -> dict:
    """
    Repair orders left unpaid behind a succeeded payment.

    Scheduled: every 10 minutes
    """
    result = get_engine().reconciliation.reconcile_succeeded_payments(limit=limit)
    return result.data.to_dict()


@shared_task
def cleanup_expired_intents(cutoff_minutes: int | None = None, limit: int | None = None) -> dict:
    """
    Fail intents left non-terminal past the expiry cutoff.

    Scheduled: every 30 minutes
    """
    result = get_engine().reconciliation.cleanup_expired_intents(
        cutoff_minutes=cutoff_minutes,
        limit=limit,
    )
    return result.data.to_dict()


@shared_task
def reconcile_single_intent(intent_id: str) -> dict:
    """
    Ask the provider about one intent and apply a terminal answer.

    Args:
        intent_id: UUID of the PaymentIntent
    """
    if isinstance(intent_id, str):
        intent_id = UUID(intent_id)

    try:
        intent = PaymentIntent.objects.get(id=intent_id)
    except PaymentIntent.DoesNotExist:
        logger.error("PaymentIntent not found", extra={"intent_id": str(intent_id)})
        return {"status": "not_found", "intent_id": str(intent_id)}

    result = get_engine().reconciliation.sync_intent_status(intent)
    if not result.success:
        return {"status": "error", "error_code": result.error_code, "error": result.error}
    if result.data is None:
        return {"status": "unchanged", "intent_id": str(intent_id)}
    return {
        "status": result.data.status,
        "event_id": result.data.event_id,
        "intent_id": str(intent_id),
    }
