"""
WeChat Pay and Alipay providers.

Placeholders that satisfy the provider contract so the registry stays a
closed set. Without credentials every call fails with NOT_CONFIGURED;
with credentials the calls fail with NOT_IMPLEMENTED until a real
integration is written.

Configuration (via settings):
- WECHAT_PAY_APP_ID, WECHAT_PAY_MCH_ID, WECHAT_PAY_API_KEY
- ALIPAY_APP_ID, ALIPAY_PRIVATE_KEY, ALIPAY_PUBLIC_KEY
"""

from __future__ import annotations

from decimal import Decimal

from payments.exceptions import ProviderNotConfiguredError, ProviderNotImplementedError
from payments.providers.base import (
    BaseProviderImpl,
    ConfirmResult,
    CreateIntentParams,
    CreateIntentResult,
    ProviderRefundResult,
    StatusQueryResult,
    WebhookVerification,
)
from payments.state_machines import ProviderName


class UnimplementedWalletProvider(BaseProviderImpl):
    """
    Shared behavior for wallet providers without an integration.

    Subclasses list the credential names they require.
    """

    required_credentials: tuple[str, ...] = ()

    def __init__(self, credentials: dict[str, str] | None = None, scheduler=None):
        super().__init__(scheduler=scheduler)
        self.credentials = credentials or {}

    @property
    def missing_credentials(self) -> list[str]:
        return [name for name in self.required_credentials if not self.credentials.get(name)]

    @property
    def is_configured(self) -> bool:
        return not self.missing_credentials

    def _unavailable(self, operation: str):
        missing = self.missing_credentials
        if missing:
            raise ProviderNotConfiguredError(
                f"{self.name} provider is not configured",
                details={"provider": self.name, "missing": missing},
            )
        raise ProviderNotImplementedError(
            f"{self.name} {operation} is not implemented",
            details={"provider": self.name, "operation": operation},
        )

    def create_intent(self, params: CreateIntentParams) -> CreateIntentResult:
        self._unavailable("create_intent")

    def confirm_intent(
        self,
        provider_intent_id: str,
        idempotency_key: str | None = None,
        payment_method: str | None = None,
        simulate: str | None = None,
    ) -> ConfirmResult:
        self._unavailable("confirm_intent")

    def refund(
        self,
        provider_txn_id: str | None,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> ProviderRefundResult:
        self._unavailable("refund")

    def verify_webhook(self, payload: bytes | str, signature: str) -> WebhookVerification:
        if self.missing_credentials:
            return WebhookVerification(valid=False, error="NOT_CONFIGURED")
        return WebhookVerification(valid=False, error="NOT_IMPLEMENTED")

    def query_status(self, provider_intent_id: str) -> StatusQueryResult:
        self._unavailable("query_status")


class WeChatPayProvider(UnimplementedWalletProvider):
    name = ProviderName.WECHAT
    required_credentials = ("app_id", "mch_id", "api_key")


class AlipayProvider(UnimplementedWalletProvider):
    name = ProviderName.ALIPAY
    required_credentials = ("app_id", "private_key", "public_key")
