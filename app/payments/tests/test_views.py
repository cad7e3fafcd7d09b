"""
Tests for payment API views.

Tests cover:
- Provider webhook endpoint (signatures, duplicates, unknown providers)
- Intent create/confirm permissions and error mapping
- Refund create/retry permissions
- Order payment summary
"""

import json
import uuid

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from orders.models import Order, OrderPaymentStatus
from payments.models import PaymentIntent, Refund, WebhookEvent
from payments.providers.mock import sign_payload
from payments.state_machines import IntentStatus, RefundStatus
from payments.tests.factories import PaymentIntentFactory, RefundFactory, payment_event_for


pytestmark = pytest.mark.django_db


def post_webhook(client, provider, body, signature):
    return client.post(
        reverse("payments:provider_webhook", kwargs={"provider": provider}),
        data=body,
        content_type="application/json",
        HTTP_X_SIGNATURE=signature,
    )


# =============================================================================
# Webhook Endpoint
# =============================================================================


class TestProviderWebhookView:
    """Tests for POST /api/v1/payments/webhooks/<provider>/."""

    @pytest.fixture
    def signed_webhook(self, mock_provider, unpaid_order):
        intent = PaymentIntentFactory(order=unpaid_order, status=IntentStatus.PROCESSING)
        event = payment_event_for(intent)
        body, signature = mock_provider.build_webhook(event)
        return intent, event, body, signature

    def test_valid_webhook_returns_200(self, api_client, signed_webhook):
        intent, event, body, signature = signed_webhook

        response = post_webhook(api_client, "mock", body, signature)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"received": True, "eventId": event.event_id}
        assert PaymentIntent.objects.get(id=intent.id).status == IntentStatus.SUCCEEDED

    def test_duplicate_webhook_returns_200_and_applies_once(self, api_client, signed_webhook):
        intent, event, body, signature = signed_webhook

        post_webhook(api_client, "mock", body, signature)
        response = post_webhook(api_client, "mock", body, signature)

        assert response.status_code == status.HTTP_200_OK
        assert WebhookEvent.objects.filter(event_id=event.event_id).count() == 1

    def test_bad_signature_returns_400(self, api_client, signed_webhook):
        _, _, body, _ = signed_webhook

        response = post_webhook(api_client, "mock", body, "not-a-signature")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        assert not WebhookEvent.objects.exists()

    def test_oversized_amount_returns_400(self, api_client, signed_webhook):
        _, event, _, _ = signed_webhook
        payload = event.to_dict()
        payload["data"]["amount"] = 1e30
        body = json.dumps(payload)

        response = post_webhook(api_client, "mock", body, sign_payload("mock_secret", body))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        assert not WebhookEvent.objects.exists()

    def test_unknown_provider_returns_404(self, api_client):
        response = post_webhook(api_client, "paypal", "{}", "sig")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "UNKNOWN_PROVIDER"

    def test_unprocessable_event_is_still_acknowledged(self, api_client, mock_provider):
        """Stored as failed for the replay job; the provider should not resend."""
        event = payment_event_for(PaymentIntentFactory.build(provider_intent_id="pi_mock_ghost"))
        body, signature = mock_provider.build_webhook(event)

        response = post_webhook(api_client, "mock", body, signature)

        assert response.status_code == status.HTTP_200_OK
        assert WebhookEvent.objects.get(event_id=event.event_id).is_failed

    def test_get_not_allowed(self, api_client):
        response = api_client.get(reverse("payments:provider_webhook", kwargs={"provider": "mock"}))

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED


# =============================================================================
# Intents
# =============================================================================


class TestCreateIntentView:
    """Tests for POST /api/v1/payments/intents/."""

    @pytest.fixture
    def url(self):
        return reverse("payments:intent_create")

    def test_traveler_creates_intent(self, url, traveler_client, unpaid_order):
        response = traveler_client.post(
            url,
            {"order_id": str(unpaid_order.id), "amount": "88.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == IntentStatus.REQUIRES_CONFIRMATION
        assert response.data["amount"] == "88.00"
        assert response.data["client_secret"].startswith("cs_mock_")

    def test_requires_authentication(self, url, api_client, unpaid_order):
        response = api_client.post(url, {"order_id": str(unpaid_order.id), "amount": "88.00"}, format="json")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_host_cannot_pay(self, url, host_client, unpaid_order):
        response = host_client.post(url, {"order_id": str(unpaid_order.id), "amount": "88.00"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert "detail" in response.data

    def test_price_mismatch_is_400(self, url, traveler_client, unpaid_order):
        response = traveler_client.post(
            url,
            {"order_id": str(unpaid_order.id), "amount": "1.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "PRICE_MISMATCH"

    def test_paid_order_is_409(self, url, traveler_client, paid_order):
        response = traveler_client.post(
            url,
            {"order_id": str(paid_order.id), "amount": "88.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_missing_order_is_404(self, url, traveler_client):
        response = traveler_client.post(url, {"order_id": str(uuid.uuid4()), "amount": "88.00"}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_invalid_body_is_400(self, url, traveler_client):
        response = traveler_client.post(url, {"amount": "-1"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "order_id" in response.data


class TestConfirmIntentView:
    """Tests for POST /api/v1/payments/intents/<id>/confirm/."""

    @pytest.fixture
    def intent(self, engine, unpaid_order):
        return engine.checkout.create_intent(unpaid_order, amount="88.00").data

    def url(self, intent):
        return reverse("payments:intent_confirm", kwargs={"intent_id": intent.id})

    def test_confirm_with_simulated_success(self, traveler_client, intent):
        response = traveler_client.post(self.url(intent), {"simulate": "succeeded"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == IntentStatus.SUCCEEDED
        assert response.data["intent"]["id"] == str(intent.id)
        assert Order.objects.get(id=intent.order_id).is_paid

    def test_confirm_requires_action(self, traveler_client, intent):
        response = traveler_client.post(self.url(intent), {"simulate": "requires_action"}, format="json")

        assert response.data["status"] == IntentStatus.REQUIRES_ACTION
        assert response.data["action_data"]["type"] == "redirect"

    def test_confirm_failed_intent_is_409(self, traveler_client, intent):
        traveler_client.post(self.url(intent), {"simulate": "failed"}, format="json")

        response = traveler_client.post(self.url(intent), {}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "INVALID_STATUS_TRANSITION"

    def test_unknown_simulation_is_400(self, traveler_client, intent):
        response = traveler_client.post(self.url(intent), {"simulate": "explode"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_other_user_is_403(self, host_client, intent):
        response = host_client.post(self.url(intent), {}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# Refunds
# =============================================================================


class TestRefundViews:
    """Tests for refund create and retry endpoints."""

    @pytest.fixture
    def url(self):
        return reverse("payments:refund_create")

    def test_host_requests_refund(self, url, host_client, paid_order):
        response = host_client.post(url, {"order_id": str(paid_order.id)}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == RefundStatus.PROCESSING
        assert response.data["amount"] == "88.00"
        assert Order.objects.get(id=paid_order.id).payment_status == OrderPaymentStatus.REFUNDING

    def test_staff_requests_refund(self, url, staff_user, paid_order):
        client = APIClient()
        client.force_authenticate(user=staff_user)

        response = client.post(url, {"order_id": str(paid_order.id), "amount": "10.00"}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert Refund.objects.get(order=paid_order).requested_by == staff_user

    def test_traveler_cannot_refund(self, url, traveler_client, paid_order):
        response = traveler_client.post(url, {"order_id": str(paid_order.id)}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not Refund.objects.exists()

    def test_unpaid_order_is_409(self, url, host_client, unpaid_order):
        response = host_client.post(url, {"order_id": str(unpaid_order.id)}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_retry_failed_refund(self, host_client, paid_order):
        refund = RefundFactory(
            payment=paid_order.payments.get(),
            status=RefundStatus.FAILED,
            attempt_count=1,
        )

        response = host_client.post(
            reverse("payments:refund_retry", kwargs={"refund_id": refund.id}),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["id"] == str(refund.id)
        assert response.data["status"] == RefundStatus.PROCESSING
        assert response.data["attempt_count"] == 2

    def test_traveler_cannot_retry(self, traveler_client, paid_order):
        refund = RefundFactory(payment=paid_order.payments.get(), status=RefundStatus.FAILED)

        response = traveler_client.post(
            reverse("payments:refund_retry", kwargs={"refund_id": refund.id}),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# Order Summary
# =============================================================================


class TestOrderPaymentsView:
    def url(self, order):
        return reverse("payments:order_payments", kwargs={"order_id": order.id})

    def test_traveler_sees_summary(self, traveler_client, paid_order):
        response = traveler_client.get(self.url(paid_order))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["order_id"] == str(paid_order.id)
        assert response.data["payment_status"] == OrderPaymentStatus.PAID
        assert len(response.data["intents"]) == 1
        assert len(response.data["payments"]) == 1
        assert response.data["refunds"] == []

    def test_host_sees_summary(self, host_client, paid_order):
        assert host_client.get(self.url(paid_order)).status_code == status.HTTP_200_OK

    def test_stranger_is_403(self, paid_order):
        from orders.tests.factories import UserFactory

        client = APIClient()
        client.force_authenticate(user=UserFactory())

        assert client.get(self.url(paid_order)).status_code == status.HTTP_403_FORBIDDEN
