"""
Tests for CheckoutService.

Tests cover:
- Intent creation: validation, payability, price check, idempotency
- Confirmation: sync events, pending statuses, webhook-only mode
- Refund requests and in-place retries
- Provider errors surfaced as failures
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from orders.models import Order, OrderPaymentStatus, OrderStatus
from orders.tests.factories import OrderFactory
from payments.exceptions import ProviderNotConfiguredError
from payments.models import Payment, PaymentAttempt, PaymentIntent, Refund, WebhookEvent
from payments.state_machines import AttemptOperation, IntentStatus, ProviderName, RefundStatus
from payments.tests.factories import PaymentIntentFactory


pytestmark = pytest.mark.django_db


@pytest.fixture
def checkout(engine):
    return engine.checkout


@pytest.fixture
def intent(checkout, unpaid_order):
    return checkout.create_intent(unpaid_order, amount="88.00").data


# =============================================================================
# create_intent
# =============================================================================


class TestCreateIntent:
    """Tests for CheckoutService.create_intent."""

    def test_creates_intent_with_provider_ids(self, checkout, unpaid_order):
        result = checkout.create_intent(unpaid_order, amount="88.00", metadata={"source": "app"})

        assert result.success
        intent = result.data
        assert intent.status == IntentStatus.REQUIRES_CONFIRMATION
        assert intent.provider_intent_id.startswith("pi_mock_")
        assert intent.amount == Decimal("88.00")
        assert intent.metadata["intent_id"] == str(intent.id)
        assert intent.metadata["source"] == "app"
        assert Order.objects.get(id=unpaid_order.id).latest_intent_id == intent.id

    def test_returns_existing_active_intent(self, checkout, unpaid_order, intent):
        result = checkout.create_intent(unpaid_order, amount="88.00")

        assert result.data.id == intent.id
        assert PaymentIntent.objects.filter(order=unpaid_order).count() == 1

    def test_same_idempotency_key_returns_same_intent(self, checkout, unpaid_order):
        first = checkout.create_intent(unpaid_order, amount="88.00", idempotency_key="abc")
        second = checkout.create_intent(unpaid_order, amount="88.00", idempotency_key="abc")

        assert first.data.id == second.data.id

    def test_new_intent_after_failure(self, checkout, unpaid_order):
        failed = PaymentIntentFactory(order=unpaid_order, status=IntentStatus.FAILED)

        result = checkout.create_intent(unpaid_order, amount="88.00")

        assert result.data.id != failed.id

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "1e30", "10000000000"])
    def test_invalid_amount(self, checkout, unpaid_order, amount):
        result = checkout.create_intent(unpaid_order, amount=amount)

        assert not result.success
        assert result.error_code == "VALIDATION"

    @pytest.mark.parametrize("currency", ["", "   ", None])
    def test_missing_currency(self, checkout, unpaid_order, currency):
        result = checkout.create_intent(unpaid_order, amount="88.00", currency=currency)

        assert not result.success
        assert result.error_code == "VALIDATION"
        assert result.errors == {"currency": ["This field is required."]}
        assert not PaymentIntent.objects.exists()

    def test_provider_params_error_is_validation(self, checkout, unpaid_order):
        """Parameter checks at the provider boundary surface as VALIDATION too."""
        with patch.object(checkout, "validate_required", return_value=None):
            result = checkout.create_intent(unpaid_order, amount="88.00", currency="")

        assert not result.success
        assert result.error_code == "VALIDATION"
        assert "currency" in result.error
        assert not PaymentIntent.objects.exists()

    def test_price_mismatch(self, checkout, unpaid_order):
        result = checkout.create_intent(unpaid_order, amount="80.00")

        assert result.error_code == "PRICE_MISMATCH"
        assert not PaymentIntent.objects.exists()

    def test_paid_order_is_rejected(self, checkout, paid_order):
        result = checkout.create_intent(paid_order, amount="88.00")

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_cancelled_order_is_rejected(self, checkout):
        order = OrderFactory(status=OrderStatus.CANCELLED_BY_TRAVELER)

        result = checkout.create_intent(order, amount="88.00")

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_unconfigured_provider(self, checkout, unpaid_order):
        checkout.providers.active_name = ProviderName.WECHAT

        result = checkout.create_intent(unpaid_order, amount="88.00")

        assert result.error_code == "NOT_CONFIGURED"
        assert not PaymentIntent.objects.exists()


# =============================================================================
# confirm_intent
# =============================================================================


class TestConfirmIntent:
    """Tests for CheckoutService.confirm_intent."""

    def test_simulated_success_settles_synchronously(self, checkout, intent):
        result = checkout.confirm_intent(intent, simulate="succeeded")

        assert result.success
        assert result.data.status == IntentStatus.SUCCEEDED
        assert result.data.ingest.event_id.startswith(f"sync_{intent.id}_")
        assert Order.objects.get(id=intent.order_id).payment_status == OrderPaymentStatus.PAID
        assert Payment.objects.filter(intent=intent).count() == 1

    def test_simulated_failure(self, checkout, intent):
        result = checkout.confirm_intent(intent, simulate="failed")

        assert result.data.status == IntentStatus.FAILED
        assert PaymentIntent.objects.get(id=intent.id).last_error_code == "MOCK_DECLINED"
        assert Order.objects.get(id=intent.order_id).is_payable

    def test_late_failure_webhook_after_sync_failure_converges(self, checkout, intent, scheduler):
        checkout.confirm_intent(intent, simulate="failed")
        attempts = PaymentAttempt.objects.filter(intent=intent).count()
        last_error = PaymentIntent.objects.get(id=intent.id).last_error

        scheduler.advance(2)

        assert WebhookEvent.objects.filter(status="processed").count() == 2
        assert PaymentAttempt.objects.filter(intent=intent).count() == attempts
        failed = PaymentIntent.objects.get(id=intent.id)
        assert failed.status == IntentStatus.FAILED
        assert failed.last_error_code == "MOCK_DECLINED"
        assert failed.last_error == last_error

    def test_processing_waits_for_webhook(self, checkout, intent, scheduler):
        result = checkout.confirm_intent(intent)

        assert result.data.status == IntentStatus.PROCESSING
        assert result.data.ingest is None
        assert scheduler.pending_count == 1

        scheduler.run_all()

        assert PaymentIntent.objects.get(id=intent.id).status == IntentStatus.SUCCEEDED
        assert Order.objects.get(id=intent.order_id).is_paid

    def test_requires_action_returns_action_data(self, checkout, intent):
        result = checkout.confirm_intent(intent, simulate="requires_action")

        assert result.data.status == IntentStatus.REQUIRES_ACTION
        assert result.data.action_data["url"].startswith("https://mock.pay/")

    def test_webhook_only_mode_ignores_sync_result(self, checkout, intent, scheduler, settings):
        settings.PAYMENTS_WEBHOOK_ONLY = True

        result = checkout.confirm_intent(intent, simulate="succeeded")

        assert result.data.provider_status == "succeeded"
        assert result.data.status == IntentStatus.PROCESSING
        assert not WebhookEvent.objects.exists()

        scheduler.run_all()

        assert PaymentIntent.objects.get(id=intent.id).status == IntentStatus.SUCCEEDED

    def test_confirm_records_attempt(self, checkout, intent, traveler):
        checkout.confirm_intent(intent, simulate="succeeded", actor=traveler)

        attempt = PaymentAttempt.objects.get(intent=intent, operation=AttemptOperation.CONFIRM)
        assert attempt.status == "succeeded"
        assert attempt.actor == traveler
        assert attempt.actor_role == "TRAVELER"
        assert attempt.idempotency_key == f"confirm_{intent.id}_1"

    def test_confirm_succeeded_intent_is_a_no_op(self, checkout, intent):
        checkout.confirm_intent(intent, simulate="succeeded")

        result = checkout.confirm_intent(intent, simulate="failed")

        assert result.data.status == IntentStatus.SUCCEEDED
        assert PaymentAttempt.objects.filter(operation=AttemptOperation.CONFIRM).count() == 1

    def test_confirm_failed_intent_is_rejected(self, checkout, intent):
        checkout.confirm_intent(intent, simulate="failed")

        result = checkout.confirm_intent(intent)

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_provider_error_is_returned(self, checkout, intent):
        mock_provider = checkout.providers.get("mock")
        error = ProviderNotConfiguredError("mock provider is not configured")

        with patch.object(mock_provider, "confirm_intent", side_effect=error):
            result = checkout.confirm_intent(intent)

        assert result.error_code == "NOT_CONFIGURED"
        assert PaymentIntent.objects.get(id=intent.id).status == IntentStatus.REQUIRES_CONFIRMATION
        attempt = PaymentAttempt.objects.get(intent=intent)
        assert attempt.status == "error"

    def test_late_webhook_after_sync_success_converges(self, checkout, intent, scheduler):
        checkout.confirm_intent(intent, simulate="succeeded")

        scheduler.run_all()

        assert WebhookEvent.objects.filter(status="processed").count() == 2
        assert Payment.objects.filter(intent=intent).count() == 1


# =============================================================================
# Refunds
# =============================================================================


class TestRequestRefund:
    """Tests for CheckoutService.request_refund."""

    def test_full_refund_flow(self, checkout, paid_order, scheduler, host):
        scheduler.run_all()

        result = checkout.request_refund(paid_order, actor=host)

        assert result.success
        refund = result.data
        assert refund.status == RefundStatus.PROCESSING
        assert refund.amount == Decimal("88.00")
        assert refund.attempt_count == 1
        assert refund.idempotency_key == f"refund_{refund.id}"
        assert Order.objects.get(id=paid_order.id).payment_status == OrderPaymentStatus.REFUNDING

        scheduler.run_all()

        assert Refund.objects.get(id=refund.id).status == RefundStatus.SUCCEEDED
        assert Order.objects.get(id=paid_order.id).payment_status == OrderPaymentStatus.REFUNDED

    def test_partial_refund(self, checkout, paid_order):
        result = checkout.request_refund(paid_order, amount="20.00")

        assert result.data.amount == Decimal("20.00")

    @pytest.mark.parametrize("amount", ["0", "100.00", "abc", "1e30"])
    def test_invalid_refund_amount(self, checkout, paid_order, amount):
        result = checkout.request_refund(paid_order, amount=amount)

        assert result.error_code == "VALIDATION"
        assert not Refund.objects.exists()

    def test_unpaid_order_cannot_be_refunded(self, checkout, unpaid_order):
        result = checkout.request_refund(unpaid_order)

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_paid_order_without_payment(self, checkout):
        order = OrderFactory(payment_status=OrderPaymentStatus.PAID)

        result = checkout.request_refund(order)

        assert result.error_code == "NOT_FOUND"

    def test_same_idempotency_key_returns_same_refund(self, checkout, paid_order):
        first = checkout.request_refund(paid_order, idempotency_key="r-1")
        second = checkout.request_refund(paid_order, idempotency_key="r-1")

        assert first.data.id == second.data.id
        assert Refund.objects.count() == 1

    def test_provider_error_marks_refund_failed(self, checkout, paid_order):
        mock_provider = checkout.providers.get("mock")
        error = ProviderNotConfiguredError("mock provider is not configured")

        with patch.object(mock_provider, "refund", side_effect=error):
            result = checkout.request_refund(paid_order)

        assert result.error_code == "NOT_CONFIGURED"
        refund = Refund.objects.get(order=paid_order)
        assert refund.status == RefundStatus.FAILED
        assert Order.objects.get(id=paid_order.id).refund_status == "failed"


class TestRetryRefund:
    """Tests for CheckoutService.retry_refund."""

    def test_retry_reuses_the_same_row(self, checkout, paid_order, scheduler, mock_provider):
        scheduler.run_all()
        mock_provider.default_refund_result = "failed"
        refund = checkout.request_refund(paid_order).data
        scheduler.run_all()
        assert Refund.objects.get(id=refund.id).status == RefundStatus.FAILED

        mock_provider.default_refund_result = "succeeded"
        result = checkout.retry_refund(refund)
        scheduler.run_all()

        assert result.success
        assert Refund.objects.count() == 1
        refund = Refund.objects.get(id=refund.id)
        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.attempt_count == 2
        assert Order.objects.get(id=paid_order.id).payment_status == OrderPaymentStatus.REFUNDED

    def test_retry_of_succeeded_refund_is_a_no_op(self, checkout, paid_order, scheduler):
        refund = checkout.request_refund(paid_order).data
        scheduler.run_all()

        result = checkout.retry_refund(refund)

        assert result.data.status == RefundStatus.SUCCEEDED
        assert Refund.objects.get(id=refund.id).attempt_count == 1


class TestOrderPayments:
    def test_lists_intents_payments_and_refunds(self, checkout, paid_order):
        checkout.request_refund(paid_order)

        summary = checkout.order_payments(paid_order).data

        assert len(summary.intents) == 1
        assert len(summary.payments) == 1
        assert len(summary.refunds) == 1
