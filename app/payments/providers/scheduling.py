"""
Webhook schedulers for providers that simulate asynchronous delivery.

The reference provider never fires timers itself. It hands a signed
webhook body to a scheduler, which delivers it later through the same
ingestion path as the HTTP endpoint.

Schedulers:
    CeleryWebhookScheduler: Enqueues the deliver_provider_webhook task
        with a countdown (production and local development)
    VirtualClockScheduler: Keeps deliveries in memory against a virtual
        clock; tests call advance() to deliver what is due

Usage:
    scheduler = VirtualClockScheduler()
    engine = PaymentEngine.build(scheduler=scheduler)

    engine.checkout.confirm_intent(intent)
    scheduler.advance(5)  # delivers webhooks due within 5 seconds
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


# deliver(provider_name, body, signature)
DeliverCallback = Callable[[str, str, str], object]


class WebhookScheduler(Protocol):
    def schedule(self, provider: str, body: str, signature: str, delay_seconds: float) -> None:
        """Deliver a signed webhook body after delay_seconds."""
        ...


class CeleryWebhookScheduler:
    """Schedule deliveries as Celery tasks."""

    def schedule(self, provider: str, body: str, signature: str, delay_seconds: float) -> None:
        from payments.tasks import deliver_provider_webhook

        deliver_provider_webhook.apply_async(
            args=[provider, body, signature],
            countdown=max(delay_seconds, 0),
        )
        logger.debug(
            "Scheduled provider webhook",
            extra={"provider": provider, "delay_seconds": delay_seconds},
        )


@dataclass(order=True)
class _PendingDelivery:
    due_at: float
    sequence: int
    provider: str = field(compare=False)
    body: str = field(compare=False)
    signature: str = field(compare=False)


class VirtualClockScheduler:
    """
    Deterministic scheduler driven by a virtual clock.

    Deliveries are queued until advance() moves the clock past their due
    time. Nothing is delivered until a deliver callback is bound
    (PaymentEngine.build binds the engine's event store).
    """

    def __init__(self, deliver: DeliverCallback | None = None):
        self.now = 0.0
        self._deliver = deliver
        self._pending: list[_PendingDelivery] = []
        self._sequence = 0
        self.delivered: list[object] = []

    def bind(self, deliver: DeliverCallback) -> None:
        self._deliver = deliver

    def schedule(self, provider: str, body: str, signature: str, delay_seconds: float) -> None:
        self._sequence += 1
        self._pending.append(
            _PendingDelivery(
                due_at=self.now + max(delay_seconds, 0),
                sequence=self._sequence,
                provider=provider,
                body=body,
                signature=signature,
            )
        )
        self._pending.sort()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def advance(self, seconds: float) -> list[object]:
        """
        Move the clock forward and deliver every webhook that became due.

        Returns:
            Results returned by the deliver callback, in delivery order
        """
        if self._deliver is None:
            raise RuntimeError("VirtualClockScheduler has no deliver callback bound")

        self.now += seconds
        results = []
        while self._pending and self._pending[0].due_at <= self.now:
            item = self._pending.pop(0)
            results.append(self._deliver(item.provider, item.body, item.signature))
        self.delivered.extend(results)
        return results

    def run_all(self) -> list[object]:
        """Deliver everything pending regardless of due time."""
        if not self._pending:
            return []
        return self.advance(self._pending[-1].due_at - self.now)
