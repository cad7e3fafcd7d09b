"""
Webhook ingestion and event processing.

This package contains:
- handlers.py: One handler per normalized event type
- processor.py: EventProcessor, atomic dispatch to handlers
- store.py: EventStore, idempotent storage keyed by (provider, event_id)
- views.py: Provider webhook endpoint

Usage:
    from payments.webhooks import EventProcessor, EventStore

    store = EventStore(providers=registry, processor=EventProcessor())
    result = store.ingest("mock", body, signature)
"""

from payments.webhooks.handlers import EVENT_HANDLERS, HandlerOutcome, register_handler
from payments.webhooks.processor import EventProcessor
from payments.webhooks.store import EventStore, IngestResult

__all__ = [
    "EVENT_HANDLERS",
    "EventProcessor",
    "EventStore",
    "HandlerOutcome",
    "IngestResult",
    "register_handler",
]
