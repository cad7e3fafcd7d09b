"""
Event store: idempotent ingestion of normalized payment events.

Every event, whether delivered by a provider webhook, synthesized by a
synchronous confirmation or produced by a reconciliation job, enters the
ledger through EventStore.submit(). The unique (provider, event_id)
constraint guarantees that however many times an identical event is
delivered, the processor applies it at most once.

Ingestion Flow:
    1. ingest(): provider verifies the signature and normalizes the body
       (INVALID_SIGNATURE rejects it; nothing is stored)
    2. submit(): insert-if-absent on (provider, event_id)
    3. Existing + processed -> duplicate, no further work
       Existing + failed -> left for the replay job
    4. First sight -> processor runs, row marked processed or failed

Usage:
    store = EventStore(providers=registry, processor=EventProcessor())
    result = store.ingest("mock", request.body, request.headers["X-Signature"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction

from payments.exceptions import InvalidSignatureError
from payments.models import WebhookEvent
from payments.providers.base import NormalizedEvent
from payments.state_machines import WebhookEventStatus

if TYPE_CHECKING:
    from payments.providers.registry import ProviderRegistry
    from payments.webhooks.processor import EventProcessor


logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """
    Outcome of one ingestion.

    Attributes:
        received: Event was accepted (stored now or earlier)
        event_id: Provider event id
        is_new: A WebhookEvent row was created by this call
        duplicate: The event had already been processed
        status: Status of the stored WebhookEvent
        error: Processor error when the event was stored as failed
        webhook_event: The stored row
    """

    received: bool
    event_id: str
    is_new: bool
    duplicate: bool = False
    status: str | None = None
    error: str | None = None
    webhook_event: WebhookEvent | None = None

    def to_response(self) -> dict:
        return {"received": self.received, "eventId": self.event_id}


class EventStore:
    """Owns all writes to WebhookEvent rows."""

    def __init__(self, providers: ProviderRegistry, processor: EventProcessor):
        self.providers = providers
        self.processor = processor

    def ingest(self, provider_name: str, payload: bytes | str, signature: str) -> IngestResult:
        """
        Verify, normalize and submit a raw provider webhook.

        Raises:
            UnknownProviderError: Provider name is not registered
            InvalidSignatureError: Signature or payload rejected
        """
        provider = self.providers.get(provider_name)
        verification = provider.verify_webhook(payload, signature)

        if not verification.valid or verification.event is None:
            logger.warning(
                "Webhook rejected",
                extra={"provider": provider_name, "error": verification.error},
            )
            raise InvalidSignatureError(
                verification.error or "Invalid webhook signature",
                details={"provider": provider_name},
            )

        return self.submit(verification.event, signature=signature)

    def submit(self, event: NormalizedEvent, signature: str | None = None) -> IngestResult:
        """
        Store an event if absent and process it on first sight.

        The insert, the processing and the status update share one
        transaction: a concurrent delivery of the same event waits on the
        unique index and then sees the committed outcome.
        """
        log_context = {
            "provider": event.provider,
            "event_id": event.event_id,
            "event_type": event.type,
        }

        with transaction.atomic():
            webhook_event, created = WebhookEvent.objects.get_or_create(
                provider=event.provider,
                event_id=event.event_id,
                defaults={
                    "event_type": event.type,
                    "payload": event.to_dict(),
                    "signature": signature or None,
                    "status": WebhookEventStatus.RECEIVED,
                },
            )

            if not created:
                duplicate = webhook_event.is_processed
                logger.info(
                    "Duplicate event delivery" if duplicate else "Event already stored",
                    extra={**log_context, "status": webhook_event.status},
                )
                return IngestResult(
                    received=True,
                    event_id=event.event_id,
                    is_new=False,
                    duplicate=duplicate,
                    status=webhook_event.status,
                    error=webhook_event.last_error,
                    webhook_event=webhook_event,
                )

            result = self.processor.process(event)
            if result.success:
                webhook_event.mark_processed(result.data.links())
                logger.info("Event processed", extra=log_context)
            else:
                webhook_event.mark_failed(result.error or "Processor returned failure")
                logger.warning(
                    f"Event stored as failed: {result.error}",
                    extra={**log_context, "error_code": result.error_code},
                )

        return IngestResult(
            received=True,
            event_id=event.event_id,
            is_new=True,
            status=webhook_event.status,
            error=webhook_event.last_error,
            webhook_event=webhook_event,
        )

    def replay(self, webhook_event_id) -> IngestResult:
        """
        Re-run the processor for a stored failed event.

        Success marks the row processed; failure increments retry_count
        and keeps it failed. Rows that are no longer failed are skipped.
        """
        with transaction.atomic():
            webhook_event = WebhookEvent.objects.select_for_update().get(id=webhook_event_id)
            log_context = {
                "provider": webhook_event.provider,
                "event_id": webhook_event.event_id,
                "event_type": webhook_event.event_type,
                "retry_count": webhook_event.retry_count,
            }

            if webhook_event.status != WebhookEventStatus.FAILED:
                return IngestResult(
                    received=True,
                    event_id=webhook_event.event_id,
                    is_new=False,
                    duplicate=webhook_event.is_processed,
                    status=webhook_event.status,
                    webhook_event=webhook_event,
                )

            try:
                event = NormalizedEvent.from_dict(webhook_event.payload)
            except ValueError as e:
                webhook_event.mark_failed(f"Stored payload is malformed: {e}", increment_retry=True)
                logger.error("Stored payload is malformed", extra=log_context)
                return IngestResult(
                    received=True,
                    event_id=webhook_event.event_id,
                    is_new=False,
                    status=webhook_event.status,
                    error=webhook_event.last_error,
                    webhook_event=webhook_event,
                )

            result = self.processor.process(event)
            if result.success:
                webhook_event.mark_processed(result.data.links())
                logger.info("Replayed event processed", extra=log_context)
            else:
                webhook_event.mark_failed(
                    result.error or "Processor returned failure",
                    increment_retry=True,
                )
                logger.warning(
                    f"Replayed event failed again: {result.error}",
                    extra={**log_context, "error_code": result.error_code},
                )

        return IngestResult(
            received=True,
            event_id=webhook_event.event_id,
            is_new=False,
            status=webhook_event.status,
            error=webhook_event.last_error,
            webhook_event=webhook_event,
        )
