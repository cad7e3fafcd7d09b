"""
Reconciliation service for detecting and repairing ledger drift.

This module provides the periodic jobs that keep internal state converged
with the provider's view of truth. Replay and payment reconciliation feed
events through the EventStore, so they share the primary path's
semantics and deduplication; intent expiry is a pure timeout policy with
no provider event behind it.

Jobs:
    replay_failed_webhooks: Re-run failed events below the retry ceiling
    reconcile_succeeded_payments: Re-assert payment.succeeded for payments
        whose order was never marked PAID
    cleanup_expired_intents: Fail intents left non-terminal too long
    sync_intent_status: Ask the provider about one intent and submit a
        corrective event for a terminal answer

Usage:
    from payments.engine import get_engine

    summary = get_engine().reconciliation.replay_failed_webhooks(max_retries=3)
    if summary.success:
        print(summary.data.to_dict())

Note:
    Jobs assume a single active runner. Two beat schedulers running the
    same job concurrently are safe for ledger state (row locks and the
    event store's uniqueness) but may do redundant work.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from orders.models import ActorRole, Order, OrderPaymentStatus
from payments.models import INTENT_EXPIRED, Payment, PaymentAttempt, PaymentIntent, WebhookEvent
from payments.providers.base import TERMINAL_PROVIDER_STATUSES, EventData, NormalizedEvent
from payments.state_machines import (
    AttemptOperation,
    IntentStatus,
    PaymentEventType,
    PaymentStatus,
    WebhookEventStatus,
)

if TYPE_CHECKING:
    from payments.providers.registry import ProviderRegistry
    from payments.webhooks.store import EventStore, IngestResult


logger = logging.getLogger(__name__)


# Orders in these payment states are not drift: the refund flow owns them
SETTLED_PAYMENT_STATUSES = (
    OrderPaymentStatus.PAID,
    OrderPaymentStatus.REFUNDING,
    OrderPaymentStatus.REFUNDED,
)


@dataclass
class JobSummary:
    """
    Counts from one job run.

    Attributes:
        job: Job name
        examined: Rows selected for this run
        processed: Rows repaired or applied
        failed: Rows that failed again (left for the next run)
        skipped: Rows that no longer needed work when locked
        errors: Error messages keyed by row id
    """

    job: str
    examined: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class ReconciliationService(BaseService):
    """
    Periodic convergence jobs.

    Attributes:
        providers: Provider registry (used by sync_intent_status)
        event_store: Store every corrective event is submitted through
    """

    def __init__(self, providers: ProviderRegistry, event_store: EventStore):
        self.providers = providers
        self.event_store = event_store

    # ==========================================================================
    # Failed Event Replay
    # ==========================================================================

    def replay_failed_webhooks(
        self,
        max_retries: int | None = None,
        limit: int | None = None,
    ) -> ServiceResult[JobSummary]:
        """
        Re-run the processor for failed events with retry_count < max_retries.

        Events that reach max_retries stay failed for operator inspection.
        """
        max_retries = settings.PAYMENTS_WEBHOOK_MAX_RETRIES if max_retries is None else max_retries
        limit = limit or settings.PAYMENTS_JOB_BATCH_LIMIT
        summary = JobSummary(job="replay_failed_webhooks")

        event_ids = list(
            WebhookEvent.objects.filter(
                status=WebhookEventStatus.FAILED,
                retry_count__lt=max_retries,
            )
            .order_by("created_at")
            .values_list("id", flat=True)[:limit]
        )

        for event_id in event_ids:
            summary.examined += 1
            try:
                result = self.event_store.replay(event_id)
            except Exception as e:
                self.get_logger().error(
                    "Error replaying webhook event",
                    extra={"webhook_event_id": str(event_id), "error": str(e)},
                    exc_info=True,
                )
                summary.failed += 1
                summary.errors[str(event_id)] = str(e)
                continue

            if result.status == WebhookEventStatus.PROCESSED:
                summary.processed += 1
            elif result.status == WebhookEventStatus.FAILED:
                summary.failed += 1
                summary.errors[str(event_id)] = result.error or ""
            else:
                summary.skipped += 1

        self._log_summary(summary)
        return ServiceResult.success(summary)

    # ==========================================================================
    # Payment Reconciliation
    # ==========================================================================

    def reconcile_succeeded_payments(self, limit: int | None = None) -> ServiceResult[JobSummary]:
        """
        Repair orders left unpaid behind a succeeded Payment.

        Each drifted payment gets a payment.succeeded event with the
        deterministic id reconcile_payment_<paymentId>, so a payment is
        re-asserted at most once however often the job runs.
        """
        limit = limit or settings.PAYMENTS_JOB_BATCH_LIMIT
        summary = JobSummary(job="reconcile_succeeded_payments")

        payments = (
            Payment.objects.filter(status=PaymentStatus.SUCCEEDED)
            .exclude(order__payment_status__in=SETTLED_PAYMENT_STATUSES)
            .select_related("intent", "order")
            .order_by("created_at")[:limit]
        )

        for payment in payments:
            summary.examined += 1
            result = self._submit(summary, str(payment.id), self._reconcile_payment_event(payment))
            if result is not None and not result.is_new:
                logger.info(
                    "Reconcile event already stored for payment",
                    extra={
                        "payment_id": str(payment.id),
                        "order_id": str(payment.order_id),
                        "status": result.status,
                    },
                )

        self._log_summary(summary)
        return ServiceResult.success(summary)

    def _reconcile_payment_event(self, payment: Payment) -> NormalizedEvent:
        return NormalizedEvent(
            event_id=f"reconcile_payment_{payment.id}",
            type=PaymentEventType.PAYMENT_SUCCEEDED,
            provider=payment.provider,
            data=EventData(
                amount=payment.amount,
                currency=payment.currency,
                status="succeeded",
                provider_intent_id=payment.intent.provider_intent_id,
                provider_txn_id=payment.provider_txn_id,
                metadata={"intent_id": str(payment.intent_id)},
            ),
        )

    # ==========================================================================
    # Intent Expiry
    # ==========================================================================

    def cleanup_expired_intents(
        self,
        cutoff_minutes: int | None = None,
        limit: int | None = None,
    ) -> ServiceResult[JobSummary]:
        """
        Fail intents that sat in a non-terminal status past the cutoff.

        Only intents of still-unpaid orders are expired. Each expiry writes
        an EXPIRE PaymentAttempt with error code INTENT_EXPIRED.
        """
        if cutoff_minutes is None:
            cutoff_minutes = settings.PAYMENTS_INTENT_EXPIRE_MINUTES
        limit = limit or settings.PAYMENTS_JOB_BATCH_LIMIT
        cutoff = timezone.now() - timedelta(minutes=cutoff_minutes)
        summary = JobSummary(job="cleanup_expired_intents")

        intent_ids = list(
            PaymentIntent.objects.filter(
                status__in=IntentStatus.non_terminal(),
                updated_at__lt=cutoff,
                order__payment_status=OrderPaymentStatus.UNPAID,
            )
            .order_by("updated_at")
            .values_list("id", flat=True)[:limit]
        )

        for intent_id in intent_ids:
            summary.examined += 1
            try:
                expired = self._expire_intent(intent_id, cutoff)
            except Exception as e:
                self.get_logger().error(
                    "Error expiring payment intent",
                    extra={"intent_id": str(intent_id), "error": str(e)},
                    exc_info=True,
                )
                summary.failed += 1
                summary.errors[str(intent_id)] = str(e)
                continue

            if expired:
                summary.processed += 1
            else:
                summary.skipped += 1

        self._log_summary(summary)
        return ServiceResult.success(summary)

    def _expire_intent(self, intent_id, cutoff) -> bool:
        with transaction.atomic():
            order_id = PaymentIntent.objects.values_list("order_id", flat=True).get(id=intent_id)
            order = Order.objects.select_for_update().get(id=order_id)
            intent = PaymentIntent.objects.select_for_update().get(id=intent_id)

            # Re-check under lock: a webhook may have moved it since selection
            if (
                intent.is_terminal
                or intent.updated_at >= cutoff
                or order.payment_status != OrderPaymentStatus.UNPAID
            ):
                return False

            intent.expire()
            intent.save()
            PaymentAttempt.objects.create(
                order=order,
                intent=intent,
                provider=intent.provider,
                operation=AttemptOperation.EXPIRE,
                status=IntentStatus.FAILED,
                amount=intent.amount,
                currency=intent.currency,
                error_code=INTENT_EXPIRED,
                error_message="Intent expired",
                actor_role=ActorRole.SYSTEM,
            )
            order.record_payment_attempt(IntentStatus.FAILED)

        logger.info(
            "Payment intent expired",
            extra={"intent_id": str(intent_id), "order_id": str(order_id)},
        )
        return True

    # ==========================================================================
    # Single Intent Sync
    # ==========================================================================

    def sync_intent_status(self, intent: PaymentIntent) -> ServiceResult[IngestResult | None]:
        """
        Query the provider for one intent and submit a corrective event.

        Returns:
            ServiceResult with the IngestResult, or None when the intent is
            already terminal or the provider has no terminal answer yet
        """
        intent = PaymentIntent.objects.get(id=intent.id)
        if intent.is_terminal:
            return ServiceResult.success(None)

        try:
            answer = self.providers.get(intent.provider).query_status(intent.provider_intent_id)
        except BaseApplicationError as e:
            return self.handle_exception(
                e,
                f"Status query failed for intent {intent.id}",
                log_level=logging.WARNING,
            )

        if answer.status not in TERMINAL_PROVIDER_STATUSES:
            return ServiceResult.success(None)

        succeeded = answer.status == IntentStatus.SUCCEEDED
        event = NormalizedEvent(
            event_id=f"reconcile_intent_{intent.id}_{answer.status}",
            type=(
                PaymentEventType.PAYMENT_SUCCEEDED
                if succeeded
                else PaymentEventType.PAYMENT_FAILED
            ),
            provider=intent.provider,
            data=EventData(
                amount=intent.amount,
                currency=intent.currency,
                status=answer.status,
                provider_intent_id=intent.provider_intent_id,
                provider_txn_id=answer.provider_txn_id,
                error_code=None if succeeded else "PROVIDER_REPORTED_FAILURE",
                error_message=None if succeeded else "Provider reported the intent as failed",
                metadata={"intent_id": str(intent.id)},
            ),
        )
        return ServiceResult.success(self.event_store.submit(event))

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _submit(self, summary: JobSummary, row_id: str, event: NormalizedEvent) -> IngestResult | None:
        try:
            result = self.event_store.submit(event)
        except Exception as e:
            self.get_logger().error(
                f"Error submitting {event.event_id}",
                extra={"event_id": event.event_id, "error": str(e)},
                exc_info=True,
            )
            summary.failed += 1
            summary.errors[row_id] = str(e)
            return None

        if result.status == WebhookEventStatus.FAILED:
            summary.failed += 1
            summary.errors[row_id] = result.error or ""
        elif result.is_new:
            summary.processed += 1
        else:
            summary.skipped += 1
        return result

    def _log_summary(self, summary: JobSummary) -> None:
        self.get_logger().info(
            f"{summary.job} finished",
            extra={
                "job": summary.job,
                "examined": summary.examined,
                "processed": summary.processed,
                "failed": summary.failed,
                "skipped": summary.skipped,
            },
        )
