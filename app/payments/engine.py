"""
Payment engine assembly.

PaymentEngine is the one object that owns the provider registry, the
event store and processor, and the checkout and reconciliation services.
PaymentsConfig.ready() builds it once per process from settings; views
and Celery tasks reach it with get_engine(). Tests build fresh engines
with a VirtualClockScheduler and swap them in.

Usage:
    from payments.engine import get_engine

    engine = get_engine()
    engine.event_store.ingest("mock", body, signature)

    # Tests
    scheduler = VirtualClockScheduler()
    engine = PaymentEngine.build(scheduler=scheduler)
    scheduler.advance(2)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.apps import apps

from payments.providers.registry import ProviderRegistry
from payments.providers.scheduling import CeleryWebhookScheduler, VirtualClockScheduler
from payments.services.checkout_service import CheckoutService
from payments.services.reconciliation_service import ReconciliationService
from payments.webhooks.processor import EventProcessor
from payments.webhooks.store import EventStore

if TYPE_CHECKING:
    from payments.providers.scheduling import WebhookScheduler


logger = logging.getLogger(__name__)


@dataclass
class PaymentEngine:
    """Process-wide set of payment components."""

    providers: ProviderRegistry
    event_store: EventStore
    processor: EventProcessor
    checkout: CheckoutService
    reconciliation: ReconciliationService

    @classmethod
    def build(
        cls,
        scheduler: WebhookScheduler | None = None,
        registry: ProviderRegistry | None = None,
    ) -> PaymentEngine:
        """
        Wire an engine together.

        A VirtualClockScheduler is bound to the new event store, so
        advancing it delivers webhooks through EventStore.ingest.
        """
        providers = registry or ProviderRegistry.build(scheduler=scheduler)
        processor = EventProcessor()
        event_store = EventStore(providers=providers, processor=processor)

        if isinstance(scheduler, VirtualClockScheduler):
            scheduler.bind(event_store.ingest)

        return cls(
            providers=providers,
            event_store=event_store,
            processor=processor,
            checkout=CheckoutService(providers=providers, event_store=event_store),
            reconciliation=ReconciliationService(providers=providers, event_store=event_store),
        )

    @classmethod
    def from_settings(cls) -> PaymentEngine:
        """Production engine: webhooks are delivered by Celery."""
        engine = cls.build(scheduler=CeleryWebhookScheduler())
        logger.info(
            "Payment engine ready",
            extra={
                "providers": engine.providers.names(),
                "active_provider": str(engine.providers.active_name),
            },
        )
        return engine


def get_engine() -> PaymentEngine:
    """Engine built by PaymentsConfig.ready()."""
    return apps.get_app_config("payments").engine
