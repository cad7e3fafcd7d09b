"""
Event processor: the state-machine core of the payment engine.

Dispatches a normalized event to its handler inside one atomic
transaction. Any exception rolls back every write of the event and is
turned into a failed ServiceResult, which the event store records on the
WebhookEvent for the replay job.

Usage:
    processor = EventProcessor()
    result = processor.process(event)
    if result.success:
        webhook_event.mark_processed(result.data.links())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from django.db import transaction
from django_fsm import TransitionNotAllowed

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from payments.webhooks.handlers import EVENT_HANDLERS, HandlerOutcome

if TYPE_CHECKING:
    from payments.providers.base import NormalizedEvent


logger = logging.getLogger(__name__)


PROCESSING_FAILED = "PROCESSING_FAILED"


class EventProcessor(BaseService):
    """
    Applies normalized events to intents, payments, refunds and orders.

    Attributes:
        handlers: Event type to handler mapping (defaults to the registry)
    """

    def __init__(
        self,
        handlers: dict[str, Callable[[NormalizedEvent], HandlerOutcome]] | None = None,
    ):
        self.handlers = EVENT_HANDLERS if handlers is None else handlers

    def process(self, event: NormalizedEvent) -> ServiceResult[HandlerOutcome]:
        """
        Apply one event atomically.

        Args:
            event: Normalized event to apply

        Returns:
            ServiceResult with the HandlerOutcome, or a failure carrying the
            error message and code (PROCESSING_FAILED for unexpected errors)
        """
        log_context = {
            "provider": event.provider,
            "event_id": event.event_id,
            "event_type": event.type,
        }

        handler = self.handlers.get(event.type)
        if handler is None:
            logger.error("No handler registered for event type", extra=log_context)
            return ServiceResult.failure(
                f"No handler registered for event type: {event.type}",
                error_code=PROCESSING_FAILED,
            )

        logger.info(f"Dispatching {event.type} to handler", extra=log_context)

        try:
            with transaction.atomic():
                outcome = handler(event)
        except BaseApplicationError as e:
            logger.warning(
                f"Event processing failed: {e}",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.failure(str(e), error_code=e.error_code)
        except TransitionNotAllowed as e:
            logger.warning(
                f"Event processing hit an invalid transition: {e}",
                extra={**log_context, "error_code": PROCESSING_FAILED},
            )
            return ServiceResult.failure(
                f"TransitionNotAllowed: {e}",
                error_code=PROCESSING_FAILED,
            )
        except Exception as e:
            logger.exception(
                "Event processing failed with exception",
                extra={**log_context, "error_code": PROCESSING_FAILED},
            )
            return ServiceResult.failure(
                f"{type(e).__name__}: {e}",
                error_code=PROCESSING_FAILED,
            )

        return ServiceResult.success(outcome)
