"""
Tests for payment providers.

Tests cover:
- MockProvider confirm simulations and idempotency keys
- Webhook signing and verification
- Wallet placeholders (NOT_CONFIGURED / NOT_IMPLEMENTED)
- ProviderRegistry lookups
- VirtualClockScheduler delivery
- NormalizedEvent parsing
"""

import json
from decimal import Decimal

import pytest

from payments.exceptions import (
    ProviderNotConfiguredError,
    ProviderNotImplementedError,
    UnknownProviderError,
)
from payments.providers import (
    CreateIntentParams,
    MockProvider,
    NormalizedEvent,
    ProviderRegistry,
    VirtualClockScheduler,
)
from payments.providers.mock import MOCK_DECLINED, sign_payload
from payments.providers.wallets import AlipayProvider, WeChatPayProvider
from payments.state_machines import PaymentEventType, ProviderName
from payments.tests.factories import make_event


class RecordingScheduler:
    """Collects scheduled webhooks without delivering them."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, provider, body, signature, delay_seconds):
        self.scheduled.append((provider, body, signature, delay_seconds))

    def events(self):
        return [json.loads(body) for _, body, _, _ in self.scheduled]


@pytest.fixture
def recorder():
    return RecordingScheduler()


@pytest.fixture
def provider(recorder):
    return MockProvider(scheduler=recorder, webhook_secret="mock_secret")


def _create(provider, amount="88.00"):
    return provider.create_intent(
        CreateIntentParams(amount=amount, currency="CNY", metadata={"intent_id": "abc"})
    )


# =============================================================================
# MockProvider
# =============================================================================


class TestMockProviderCreate:
    def test_create_returns_provider_ids(self, provider):
        result = _create(provider)

        assert result.provider_intent_id.startswith("pi_mock_")
        assert result.client_secret.startswith("cs_mock_")
        assert result.status == "requires_confirmation"

    def test_params_reject_non_positive_amount(self):
        with pytest.raises(ValueError):
            CreateIntentParams(amount="0", currency="CNY")

    def test_params_reject_garbage_amount(self):
        with pytest.raises(ValueError):
            CreateIntentParams(amount="eighty", currency="CNY")

    @pytest.mark.parametrize("amount", ["1e30", "10000000000.00", 1e30])
    def test_params_reject_amount_too_large_for_storage(self, amount):
        with pytest.raises(ValueError):
            CreateIntentParams(amount=amount, currency="CNY")

    def test_params_accept_largest_storable_amount(self):
        assert CreateIntentParams(amount="9999999999.99", currency="CNY").amount == Decimal("9999999999.99")


class TestMockProviderConfirm:
    """Tests for confirm_intent simulations."""

    def test_simulated_success_is_terminal_and_schedules_webhook(self, provider, recorder):
        created = _create(provider)

        result = provider.confirm_intent(created.provider_intent_id, simulate="succeeded")

        assert result.status == "succeeded"
        assert result.is_terminal
        assert result.provider_txn_id.startswith("txn_mock_")
        [event] = recorder.events()
        assert event["type"] == PaymentEventType.PAYMENT_SUCCEEDED
        assert event["data"]["providerTxnId"] == result.provider_txn_id
        assert event["data"]["metadata"] == {"intent_id": "abc"}

    def test_simulated_failure(self, provider, recorder):
        created = _create(provider)

        result = provider.confirm_intent(created.provider_intent_id, simulate="failed")

        assert result.status == "failed"
        assert result.error_code == MOCK_DECLINED
        [event] = recorder.events()
        assert event["type"] == PaymentEventType.PAYMENT_FAILED
        assert event["data"]["errorCode"] == MOCK_DECLINED

    def test_requires_action_returns_action_data_without_webhook(self, provider, recorder):
        created = _create(provider)

        result = provider.confirm_intent(created.provider_intent_id, simulate="requires_action")

        assert result.status == "requires_action"
        assert result.action_data["type"] == "redirect"
        assert recorder.scheduled == []

    def test_default_is_processing_with_success_webhook(self, provider, recorder):
        created = _create(provider)

        result = provider.confirm_intent(created.provider_intent_id)

        assert result.status == "processing"
        assert not result.is_terminal
        [event] = recorder.events()
        assert event["type"] == PaymentEventType.PAYMENT_SUCCEEDED
        assert provider.query_status(created.provider_intent_id).status == "succeeded"

    def test_default_result_can_be_failure(self, recorder):
        provider = MockProvider(scheduler=recorder, default_result="failed")
        created = _create(provider)

        provider.confirm_intent(created.provider_intent_id)

        [event] = recorder.events()
        assert event["type"] == PaymentEventType.PAYMENT_FAILED

    def test_same_idempotency_key_returns_cached_result(self, provider, recorder):
        created = _create(provider)

        first = provider.confirm_intent(
            created.provider_intent_id, idempotency_key="key-1", simulate="succeeded"
        )
        second = provider.confirm_intent(
            created.provider_intent_id, idempotency_key="key-1", simulate="failed"
        )

        assert second is first
        assert len(recorder.scheduled) == 1

    def test_unknown_intent_fails(self, provider):
        result = provider.confirm_intent("pi_mock_missing")

        assert result.status == "failed"
        assert result.error_code == "INTENT_NOT_FOUND"

    def test_no_webhook_when_auto_webhook_disabled(self, recorder):
        provider = MockProvider(scheduler=recorder, auto_webhook=False)
        created = _create(provider)

        provider.confirm_intent(created.provider_intent_id, simulate="succeeded")

        assert recorder.scheduled == []


class TestMockProviderRefund:
    def test_refund_is_processing_and_schedules_webhook(self, provider, recorder):
        result = provider.refund("txn_mock_1", Decimal("88.00"), "CNY", idempotency_key="refund-1")

        assert result.status == "processing"
        assert result.provider_refund_id.startswith("rf_mock_")
        [event] = recorder.events()
        assert event["type"] == PaymentEventType.REFUND_SUCCEEDED
        assert event["data"]["providerRefundId"] == result.provider_refund_id

    def test_refund_failure_webhook(self, recorder):
        provider = MockProvider(scheduler=recorder, default_refund_result="failed")

        provider.refund("txn_mock_1", Decimal("88.00"), "CNY", idempotency_key="refund-1")

        [event] = recorder.events()
        assert event["type"] == PaymentEventType.REFUND_FAILED

    def test_refund_idempotency_key(self, provider, recorder):
        first = provider.refund("txn_mock_1", Decimal("88.00"), "CNY", idempotency_key="refund-1")
        second = provider.refund("txn_mock_1", Decimal("88.00"), "CNY", idempotency_key="refund-1")

        assert second is first
        assert len(recorder.scheduled) == 1


class TestMockProviderWebhooks:
    """Tests for signing and verification."""

    def test_build_and_verify_round_trip(self, provider):
        event = make_event(provider_intent_id="pi_mock_1")
        body, signature = provider.build_webhook(event)

        verification = provider.verify_webhook(body, signature)

        assert verification.valid
        assert verification.event.event_id == event.event_id
        assert verification.event.data.amount == Decimal("88.00")

    def test_signature_is_hmac_sha256_of_body(self, provider):
        body, signature = provider.build_webhook(make_event())

        assert signature == sign_payload("mock_secret", body)
        assert len(signature) == 64

    def test_bad_signature_rejected(self, provider):
        body, _ = provider.build_webhook(make_event())

        verification = provider.verify_webhook(body, "0" * 64)

        assert not verification.valid
        assert verification.event is None

    def test_missing_signature_rejected(self, provider):
        body, _ = provider.build_webhook(make_event())

        assert not provider.verify_webhook(body, "").valid

    def test_tampered_body_rejected(self, provider):
        body, signature = provider.build_webhook(make_event())

        assert not provider.verify_webhook(body.replace("88.0", "1.0"), signature).valid

    def test_malformed_json_rejected(self, provider):
        body = "not json"

        verification = provider.verify_webhook(body, sign_payload("mock_secret", body))

        assert not verification.valid
        assert "Malformed" in verification.error

    def test_amount_beyond_storage_rejected(self, provider):
        payload = make_event().to_dict()
        payload["data"]["amount"] = 1e30
        body = json.dumps(payload)

        verification = provider.verify_webhook(body, sign_payload("mock_secret", body))

        assert not verification.valid
        assert "Malformed" in verification.error

    def test_event_for_other_provider_rejected(self, provider):
        body, signature = provider.build_webhook(make_event(provider=ProviderName.WECHAT))

        assert not provider.verify_webhook(body, signature).valid


# =============================================================================
# Wallet Placeholders
# =============================================================================


class TestWalletProviders:
    def test_missing_credentials_not_configured(self):
        provider = WeChatPayProvider(credentials={"app_id": "wx123"})

        with pytest.raises(ProviderNotConfiguredError) as exc_info:
            provider.create_intent(CreateIntentParams(amount="88.00", currency="CNY"))

        assert exc_info.value.error_code == "NOT_CONFIGURED"
        assert exc_info.value.details["missing"] == ["mch_id", "api_key"]

    def test_configured_wallet_not_implemented(self):
        provider = AlipayProvider(
            credentials={"app_id": "a", "private_key": "b", "public_key": "c"}
        )

        with pytest.raises(ProviderNotImplementedError):
            provider.confirm_intent("pi_alipay_1")

    def test_webhooks_never_verify(self):
        provider = AlipayProvider()

        verification = provider.verify_webhook("{}", "sig")

        assert not verification.valid
        assert verification.error == "NOT_CONFIGURED"


# =============================================================================
# Registry
# =============================================================================


class TestProviderRegistry:
    def test_every_provider_name_registered(self):
        registry = ProviderRegistry.build()

        assert sorted(registry.names()) == sorted(ProviderName.values)
        assert registry.active().name == ProviderName.MOCK

    def test_unknown_provider(self):
        registry = ProviderRegistry.build()

        with pytest.raises(UnknownProviderError) as exc_info:
            registry.get("paypal")

        assert exc_info.value.error_code == "UNKNOWN_PROVIDER"

    def test_missing_member_rejected(self):
        with pytest.raises(ValueError):
            ProviderRegistry({ProviderName.MOCK: MockProvider()})


# =============================================================================
# Scheduling
# =============================================================================


class TestVirtualClockScheduler:
    def test_delivers_only_when_due(self):
        delivered = []
        scheduler = VirtualClockScheduler(deliver=lambda *args: delivered.append(args) or "ok")
        scheduler.schedule("mock", "body-1", "sig-1", delay_seconds=2)
        scheduler.schedule("mock", "body-2", "sig-2", delay_seconds=5)

        assert scheduler.advance(1) == []
        assert scheduler.advance(1) == ["ok"]
        assert delivered == [("mock", "body-1", "sig-1")]
        assert scheduler.pending_count == 1

    def test_run_all(self):
        delivered = []
        scheduler = VirtualClockScheduler(deliver=lambda *args: delivered.append(args[1]))
        scheduler.schedule("mock", "late", "sig", delay_seconds=10)
        scheduler.schedule("mock", "early", "sig", delay_seconds=1)

        scheduler.run_all()

        assert delivered == ["early", "late"]
        assert scheduler.pending_count == 0

    def test_advance_without_callback_raises(self):
        with pytest.raises(RuntimeError):
            VirtualClockScheduler().advance(1)


# =============================================================================
# Normalized Events
# =============================================================================


class TestNormalizedEvent:
    def test_from_dict_parses_wire_shape(self):
        event = NormalizedEvent.from_dict(
            {
                "eventId": "evt_1",
                "type": "refund.succeeded",
                "provider": "mock",
                "createdAt": "2026-01-01T00:00:00+00:00",
                "data": {"amount": 10.5, "currency": "CNY", "status": "succeeded", "providerRefundId": "rf_1"},
            }
        )

        assert event.type == PaymentEventType.REFUND_SUCCEEDED
        assert event.data.amount == Decimal("10.50")
        assert event.data.provider_refund_id == "rf_1"

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "payment.succeeded", "provider": "mock", "data": {"amount": 1}},
            {"eventId": "e", "type": "payment.disputed", "provider": "mock", "data": {"amount": 1}},
            {"eventId": "e", "type": "payment.succeeded", "provider": "mock", "data": {}},
            {"eventId": "e", "type": "payment.succeeded", "provider": "mock", "data": {"amount": "x"}},
            {"eventId": "e", "type": "payment.succeeded", "provider": "mock", "data": {"amount": 1e30}},
            [],
        ],
    )
    def test_from_dict_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            NormalizedEvent.from_dict(raw)
