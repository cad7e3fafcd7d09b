"""
Payment provider implementations.

This package contains:
- base.py: PaymentProvider protocol and normalized data types
- mock.py: In-memory reference provider with signed webhooks
- wallets.py: WeChat Pay / Alipay placeholders
- registry.py: ProviderRegistry keyed by ProviderName
- scheduling.py: Celery and virtual-clock webhook schedulers

Adding New Providers:
    1. Add a member to payments.state_machines.ProviderName
    2. Implement the PaymentProvider protocol
    3. Register it in ProviderRegistry.build()
"""

from payments.providers.base import (
    ConfirmResult,
    CreateIntentParams,
    CreateIntentResult,
    EventData,
    NormalizedEvent,
    PaymentProvider,
    ProviderRefundResult,
    StatusQueryResult,
    WebhookVerification,
)
from payments.providers.mock import MockProvider
from payments.providers.registry import ProviderRegistry
from payments.providers.scheduling import CeleryWebhookScheduler, VirtualClockScheduler

__all__ = [
    "CeleryWebhookScheduler",
    "ConfirmResult",
    "CreateIntentParams",
    "CreateIntentResult",
    "EventData",
    "MockProvider",
    "NormalizedEvent",
    "PaymentProvider",
    "ProviderRefundResult",
    "ProviderRegistry",
    "StatusQueryResult",
    "VirtualClockScheduler",
    "WebhookVerification",
]
