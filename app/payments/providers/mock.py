"""
In-memory reference provider.

Implements the full provider contract without any network calls so the
asynchronous webhook path can be exercised end to end: confirmations and
refunds schedule signed webhook bodies on the injected scheduler, and
those bodies come back through EventStore.ingest exactly like a real
provider's callbacks.

Configuration (via settings):
- PAYMENTS_MOCK_WEBHOOK_SECRET: HMAC secret for webhook signatures
- PAYMENTS_MOCK_AUTO_WEBHOOK: Schedule webhooks after confirm/refund
- PAYMENTS_MOCK_WEBHOOK_DELAY_SECONDS: Delay before delivery

Simulation (confirm_intent ``simulate`` argument):
    "succeeded"        terminal success now, webhook follows
    "failed"           terminal failure now (MOCK_DECLINED), webhook follows
    "requires_action"  action data returned, no webhook
    None               "processing", webhook carries default_result
"""

from __future__ import annotations

import hashlib
import hmac
import json
import threading
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from payments.providers.base import (
    BaseProviderImpl,
    ConfirmResult,
    CreateIntentParams,
    CreateIntentResult,
    EventData,
    NormalizedEvent,
    ProviderRefundResult,
    StatusQueryResult,
    WebhookVerification,
)
from payments.state_machines import PaymentEventType, ProviderName

if TYPE_CHECKING:
    from payments.providers.scheduling import WebhookScheduler


MOCK_DECLINED = "MOCK_DECLINED"
MOCK_REFUND_FAILED = "MOCK_REFUND_FAILED"


def _random_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:16]}"


def sign_payload(secret: str, body: str | bytes) -> str:
    """HMAC-SHA256 hex digest of the raw webhook body."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@dataclass
class _MockIntent:
    provider_intent_id: str
    amount: Decimal
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str = "requires_confirmation"
    provider_txn_id: str | None = None


@dataclass
class _MockRefund:
    provider_refund_id: str
    provider_txn_id: str | None
    amount: Decimal
    currency: str
    status: str = "processing"


class MockProvider(BaseProviderImpl):
    """
    Reference provider backed by in-memory tables.

    Attributes:
        webhook_secret: HMAC secret used to sign and verify bodies
        auto_webhook: Whether confirm/refund schedule webhooks
        webhook_delay_seconds: Delay handed to the scheduler
        default_result: Outcome of a confirm without ``simulate``
        default_refund_result: Outcome delivered by refund webhooks
    """

    name = ProviderName.MOCK

    def __init__(
        self,
        scheduler: WebhookScheduler | None = None,
        webhook_secret: str = "mock_secret",
        auto_webhook: bool = True,
        webhook_delay_seconds: float = 2,
        default_result: str = "succeeded",
        default_refund_result: str = "succeeded",
    ):
        super().__init__(scheduler=scheduler)
        self.webhook_secret = webhook_secret
        self.auto_webhook = auto_webhook
        self.webhook_delay_seconds = webhook_delay_seconds
        self.default_result = default_result
        self.default_refund_result = default_refund_result

        self._lock = threading.Lock()
        self._intents: dict[str, _MockIntent] = {}
        self._refunds: dict[str, _MockRefund] = {}
        self._confirm_results: dict[str, ConfirmResult] = {}
        self._refund_results: dict[str, ProviderRefundResult] = {}

    # ==========================================================================
    # Provider Contract
    # ==========================================================================

    def create_intent(self, params: CreateIntentParams) -> CreateIntentResult:
        with self._timed("create_intent", idempotency_key=params.idempotency_key):
            intent = _MockIntent(
                provider_intent_id=_random_id("pi_mock_"),
                amount=params.amount,
                currency=params.currency,
                metadata=dict(params.metadata),
            )
            with self._lock:
                self._intents[intent.provider_intent_id] = intent
            return CreateIntentResult(
                provider_intent_id=intent.provider_intent_id,
                client_secret=_random_id("cs_mock_"),
                status="requires_confirmation",
            )

    def confirm_intent(
        self,
        provider_intent_id: str,
        idempotency_key: str | None = None,
        payment_method: str | None = None,
        simulate: str | None = None,
    ) -> ConfirmResult:
        with self._timed(
            "confirm_intent",
            provider_intent_id=provider_intent_id,
            simulate=simulate,
        ) as log_context:
            with self._lock:
                if idempotency_key and idempotency_key in self._confirm_results:
                    return self._confirm_results[idempotency_key]

                intent = self._intents.get(provider_intent_id)
                if intent is None:
                    return ConfirmResult(
                        status="failed",
                        error_code="INTENT_NOT_FOUND",
                        error_message="Payment intent not found",
                    )

                if intent.status in ("succeeded", "failed"):
                    return ConfirmResult(
                        status=intent.status,
                        provider_txn_id=intent.provider_txn_id,
                    )

                result, outcome = self._resolve_confirm(intent, simulate)
                if idempotency_key:
                    self._confirm_results[idempotency_key] = result

            log_context["status"] = result.status
            if outcome is not None:
                self._schedule_payment_webhook(intent, outcome)
            return result

    def refund(
        self,
        provider_txn_id: str | None,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> ProviderRefundResult:
        with self._timed(
            "refund",
            provider_txn_id=provider_txn_id,
            idempotency_key=idempotency_key,
        ):
            with self._lock:
                if idempotency_key in self._refund_results:
                    return self._refund_results[idempotency_key]

                refund = _MockRefund(
                    provider_refund_id=_random_id("rf_mock_"),
                    provider_txn_id=provider_txn_id,
                    amount=Decimal(amount),
                    currency=currency,
                )
                self._refunds[refund.provider_refund_id] = refund
                result = ProviderRefundResult(
                    provider_refund_id=refund.provider_refund_id,
                    status="processing",
                )
                self._refund_results[idempotency_key] = result

            self._schedule_refund_webhook(refund, self.default_refund_result)
            return result

    def verify_webhook(self, payload: bytes | str, signature: str) -> WebhookVerification:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        if not signature:
            return WebhookVerification(valid=False, error="Missing signature")

        expected = sign_payload(self.webhook_secret, payload)
        if not hmac.compare_digest(expected, signature):
            return WebhookVerification(valid=False, error="Signature mismatch")

        try:
            event = NormalizedEvent.from_dict(json.loads(payload))
        except (ValueError, TypeError) as e:
            return WebhookVerification(valid=False, error=f"Malformed event: {e}")

        if event.provider != self.name:
            return WebhookVerification(
                valid=False,
                error=f"Event provider {event.provider!r} does not match {self.name!r}",
            )
        return WebhookVerification(valid=True, event=event)

    def query_status(self, provider_intent_id: str) -> StatusQueryResult:
        with self._lock:
            intent = self._intents.get(provider_intent_id)
        if intent is None:
            return StatusQueryResult(status="not_found")
        return StatusQueryResult(
            status=intent.status,
            provider_txn_id=intent.provider_txn_id,
        )

    # ==========================================================================
    # Webhook Construction
    # ==========================================================================

    def build_webhook(self, event: NormalizedEvent) -> tuple[str, str]:
        """
        Serialize and sign an event the way the provider would send it.

        Returns:
            Tuple of (body, signature)
        """
        body = json.dumps(event.to_dict(), separators=(",", ":"), sort_keys=True)
        return body, sign_payload(self.webhook_secret, body)

    def _resolve_confirm(
        self,
        intent: _MockIntent,
        simulate: str | None,
    ) -> tuple[ConfirmResult, str | None]:
        """
        Decide the immediate result and the outcome the webhook will carry.

        Called with the lock held.
        """
        if simulate == "requires_action":
            intent.status = "requires_action"
            return (
                ConfirmResult(
                    status="requires_action",
                    action_data={
                        "type": "redirect",
                        "url": f"https://mock.pay/authorize/{intent.provider_intent_id}",
                    },
                ),
                None,
            )

        if simulate == "succeeded":
            intent.status = "succeeded"
            intent.provider_txn_id = _random_id("txn_mock_")
            return (
                ConfirmResult(status="succeeded", provider_txn_id=intent.provider_txn_id),
                "succeeded",
            )

        if simulate == "failed":
            intent.status = "failed"
            return (
                ConfirmResult(
                    status="failed",
                    error_code=MOCK_DECLINED,
                    error_message="Payment was declined (simulated)",
                ),
                "failed",
            )

        intent.status = "processing"
        return ConfirmResult(status="processing"), self.default_result

    def _schedule_payment_webhook(self, intent: _MockIntent, outcome: str) -> None:
        if not (self.auto_webhook and self.scheduler):
            return

        if outcome == "succeeded":
            with self._lock:
                intent.status = "succeeded"
                if not intent.provider_txn_id:
                    intent.provider_txn_id = _random_id("txn_mock_")
            event_type = PaymentEventType.PAYMENT_SUCCEEDED
        elif outcome == "failed":
            with self._lock:
                intent.status = "failed"
            event_type = PaymentEventType.PAYMENT_FAILED
        else:
            event_type = PaymentEventType.PAYMENT_REQUIRES_ACTION

        failed = outcome == "failed"
        event = NormalizedEvent(
            event_id=_random_id("evt_mock_"),
            type=event_type,
            provider=self.name,
            data=EventData(
                amount=intent.amount,
                currency=intent.currency,
                status=outcome,
                provider_intent_id=intent.provider_intent_id,
                provider_txn_id=intent.provider_txn_id if not failed else None,
                error_code=MOCK_DECLINED if failed else None,
                error_message="Payment was declined (simulated)" if failed else None,
                metadata=intent.metadata,
            ),
        )
        body, signature = self.build_webhook(event)
        self.scheduler.schedule(self.name, body, signature, self.webhook_delay_seconds)

    def _schedule_refund_webhook(self, refund: _MockRefund, outcome: str) -> None:
        if not (self.auto_webhook and self.scheduler):
            return

        with self._lock:
            refund.status = outcome
        failed = outcome == "failed"
        event = NormalizedEvent(
            event_id=_random_id("evt_mock_"),
            type=(
                PaymentEventType.REFUND_FAILED
                if failed
                else PaymentEventType.REFUND_SUCCEEDED
            ),
            provider=self.name,
            data=EventData(
                amount=refund.amount,
                currency=refund.currency,
                status=outcome,
                provider_refund_id=refund.provider_refund_id,
                provider_txn_id=refund.provider_txn_id,
                error_code=MOCK_REFUND_FAILED if failed else None,
                error_message="Refund failed (simulated)" if failed else None,
            ),
        )
        body, signature = self.build_webhook(event)
        self.scheduler.schedule(self.name, body, signature, self.webhook_delay_seconds)
