"""
Provider registry keyed by the closed ProviderName enum.

Every ProviderName member must map to exactly one provider instance;
build() refuses to create a registry with a member missing, so adding a
provider means adding the enum member and its implementation together.

Usage:
    registry = ProviderRegistry.build(scheduler=CeleryWebhookScheduler())
    provider = registry.get("mock")
    active = registry.active()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings

from payments.exceptions import UnknownProviderError
from payments.providers.mock import MockProvider
from payments.providers.wallets import AlipayProvider, WeChatPayProvider
from payments.state_machines import ProviderName

if TYPE_CHECKING:
    from payments.providers.base import PaymentProvider
    from payments.providers.scheduling import WebhookScheduler

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps ProviderName members to provider instances."""

    def __init__(
        self,
        providers: dict[ProviderName, PaymentProvider],
        active_name: str = ProviderName.MOCK,
    ):
        missing = [name for name in ProviderName if name not in providers]
        if missing:
            raise ValueError(f"No provider registered for: {', '.join(missing)}")
        self._providers = dict(providers)
        self.active_name = self._parse(active_name)

    @classmethod
    def build(cls, scheduler: WebhookScheduler | None = None) -> ProviderRegistry:
        """Create the standard registry from settings."""
        providers = {
            ProviderName.MOCK: MockProvider(
                scheduler=scheduler,
                webhook_secret=settings.PAYMENTS_MOCK_WEBHOOK_SECRET,
                auto_webhook=settings.PAYMENTS_MOCK_AUTO_WEBHOOK,
                webhook_delay_seconds=settings.PAYMENTS_MOCK_WEBHOOK_DELAY_SECONDS,
            ),
            ProviderName.WECHAT: WeChatPayProvider(
                credentials={
                    "app_id": settings.WECHAT_PAY_APP_ID,
                    "mch_id": settings.WECHAT_PAY_MCH_ID,
                    "api_key": settings.WECHAT_PAY_API_KEY,
                },
            ),
            ProviderName.ALIPAY: AlipayProvider(
                credentials={
                    "app_id": settings.ALIPAY_APP_ID,
                    "private_key": settings.ALIPAY_PRIVATE_KEY,
                    "public_key": settings.ALIPAY_PUBLIC_KEY,
                },
            ),
        }
        return cls(providers, active_name=settings.PAYMENT_PROVIDER)

    @staticmethod
    def _parse(name: str) -> ProviderName:
        try:
            return ProviderName(name)
        except ValueError:
            raise UnknownProviderError(
                f"Unknown payment provider: {name}",
                details={"provider": name},
            ) from None

    def get(self, name: str) -> PaymentProvider:
        """
        Look up a provider by name.

        Raises:
            UnknownProviderError: If name is not a ProviderName member
        """
        return self._providers[self._parse(name)]

    def active(self) -> PaymentProvider:
        """Provider used for new intents."""
        return self._providers[self.active_name]

    def names(self) -> list[str]:
        return [str(name) for name in self._providers]
