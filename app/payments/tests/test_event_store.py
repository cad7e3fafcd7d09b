"""
Tests for the EventStore.

Tests cover:
- Signed ingestion and rejection of bad signatures
- Duplicate deliveries are applied once
- Processor failures are stored, not raised
- Replay of failed events
"""

import json

import pytest

from orders.models import Order, OrderPaymentStatus
from payments.exceptions import InvalidSignatureError, UnknownProviderError
from payments.models import Payment, PaymentIntent, WebhookEvent
from payments.providers.mock import sign_payload
from payments.state_machines import IntentStatus, WebhookEventStatus
from payments.tests.factories import (
    PaymentIntentFactory,
    WebhookEventFactory,
    make_event,
    payment_event_for,
)


pytestmark = pytest.mark.django_db


@pytest.fixture
def processing_intent(unpaid_order):
    return PaymentIntentFactory(order=unpaid_order, status=IntentStatus.PROCESSING)


class TestIngest:
    """Tests for EventStore.ingest."""

    def test_valid_webhook_is_processed(self, engine, mock_provider, processing_intent):
        body, signature = mock_provider.build_webhook(payment_event_for(processing_intent))

        result = engine.event_store.ingest("mock", body, signature)

        assert result.received
        assert result.is_new
        assert result.status == WebhookEventStatus.PROCESSED
        assert result.to_response() == {"received": True, "eventId": result.event_id}
        assert PaymentIntent.objects.get(id=processing_intent.id).status == IntentStatus.SUCCEEDED

    def test_invalid_signature_is_rejected_and_not_stored(self, engine, mock_provider, processing_intent):
        body, _ = mock_provider.build_webhook(payment_event_for(processing_intent))

        with pytest.raises(InvalidSignatureError) as exc_info:
            engine.event_store.ingest("mock", body, "bad")

        assert exc_info.value.error_code == "INVALID_SIGNATURE"
        assert WebhookEvent.objects.count() == 0

    def test_unknown_provider(self, engine):
        with pytest.raises(UnknownProviderError):
            engine.event_store.ingest("paypal", "{}", "sig")

    def test_unconfigured_wallet_is_rejected(self, engine):
        with pytest.raises(InvalidSignatureError) as exc_info:
            engine.event_store.ingest("wechat", "{}", "sig")

        assert exc_info.value.message == "NOT_CONFIGURED"

    def test_signed_event_with_oversized_amount_is_rejected(self, engine, processing_intent):
        payload = payment_event_for(processing_intent).to_dict()
        payload["data"]["amount"] = 1e30
        body = json.dumps(payload)

        with pytest.raises(InvalidSignatureError) as exc_info:
            engine.event_store.ingest("mock", body, sign_payload("mock_secret", body))

        assert exc_info.value.message.startswith("Malformed event")
        assert not WebhookEvent.objects.exists()
        assert PaymentIntent.objects.get(id=processing_intent.id).status == IntentStatus.PROCESSING


class TestSubmit:
    """Tests for EventStore.submit idempotency."""

    def test_duplicate_delivery_applied_once(self, engine, processing_intent):
        event = payment_event_for(processing_intent)

        first = engine.event_store.submit(event)
        second = engine.event_store.submit(event)

        assert first.is_new and not first.duplicate
        assert not second.is_new and second.duplicate
        assert WebhookEvent.objects.count() == 1
        assert Payment.objects.filter(intent=processing_intent).count() == 1

    def test_processed_event_links_rows(self, engine, processing_intent):
        result = engine.event_store.submit(payment_event_for(processing_intent))

        webhook_event = WebhookEvent.objects.get(id=result.webhook_event.id)
        assert webhook_event.intent_id == processing_intent.id
        assert webhook_event.order_id == processing_intent.order_id
        assert webhook_event.payment_id is not None
        assert webhook_event.payload["eventId"] == result.event_id

    def test_processor_failure_is_stored(self, engine):
        result = engine.event_store.submit(make_event(provider_intent_id="pi_mock_nowhere"))

        assert result.is_new
        assert result.status == WebhookEventStatus.FAILED
        assert "INTENT_NOT_FOUND" in result.error
        webhook_event = WebhookEvent.objects.get(event_id=result.event_id)
        assert webhook_event.retry_count == 0

    def test_failed_event_redelivery_is_not_reprocessed(self, engine, unpaid_order):
        """A redelivered failed event waits for the replay job."""
        event = make_event(provider_intent_id="pi_mock_later")
        engine.event_store.submit(event)
        PaymentIntentFactory(
            order=unpaid_order,
            provider_intent_id="pi_mock_later",
            status=IntentStatus.PROCESSING,
        )

        result = engine.event_store.submit(event)

        assert not result.is_new
        assert not result.duplicate
        assert result.status == WebhookEventStatus.FAILED
        assert Payment.objects.count() == 0

    def test_failure_rolls_back_handler_writes(self, engine, processing_intent):
        event = payment_event_for(processing_intent, amount="1.00")

        result = engine.event_store.submit(event)

        assert result.status == WebhookEventStatus.FAILED
        assert "AMOUNT_MISMATCH" in result.error
        assert PaymentIntent.objects.get(id=processing_intent.id).status == IntentStatus.PROCESSING
        assert Order.objects.get(id=processing_intent.order_id).payment_status == OrderPaymentStatus.UNPAID


class TestReplay:
    """Tests for EventStore.replay."""

    def test_replay_succeeds_once_intent_exists(self, engine, unpaid_order):
        webhook_event = WebhookEventFactory()
        PaymentIntentFactory(
            order=unpaid_order,
            provider_intent_id="pi_mock_unknown",
            status=IntentStatus.PROCESSING,
        )

        result = engine.event_store.replay(webhook_event.id)

        assert result.status == WebhookEventStatus.PROCESSED
        webhook_event = WebhookEvent.objects.get(id=webhook_event.id)
        assert webhook_event.is_processed
        assert webhook_event.retry_count == 0
        assert Order.objects.get(id=unpaid_order.id).payment_status == OrderPaymentStatus.PAID

    def test_replay_failure_increments_retry_count(self, engine):
        webhook_event = WebhookEventFactory(retry_count=1)

        result = engine.event_store.replay(webhook_event.id)

        assert result.status == WebhookEventStatus.FAILED
        assert WebhookEvent.objects.get(id=webhook_event.id).retry_count == 2

    def test_replay_skips_processed_event(self, engine):
        webhook_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED, last_error=None)

        result = engine.event_store.replay(webhook_event.id)

        assert result.duplicate
        assert WebhookEvent.objects.get(id=webhook_event.id).retry_count == 0

    def test_replay_malformed_payload(self, engine):
        webhook_event = WebhookEventFactory(payload={"eventId": "evt", "data": None})

        result = engine.event_store.replay(webhook_event.id)

        assert result.status == WebhookEventStatus.FAILED
        assert "malformed" in result.error
        assert WebhookEvent.objects.get(id=webhook_event.id).retry_count == 1
