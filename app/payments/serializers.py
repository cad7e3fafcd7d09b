"""
DRF serializers for payments app.

This module provides serializers for:
- Intent creation and confirmation requests
- Refund requests
- Intent, payment, refund and per-order payment summaries

Related files:
    - models/: PaymentIntent, Payment, Refund
    - views.py: Payment API views

Usage:
    serializer = CreateIntentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.models import Payment, PaymentIntent, Refund


# =============================================================================
# Request Serializers
# =============================================================================


class CreateIntentSerializer(serializers.Serializer):
    """
    Request body for creating a payment intent.

    Fields:
        order_id: Order to pay
        amount: Amount to collect, must equal the order total
        currency: ISO currency code
        idempotency_key: Optional client key for safe retries
    """

    order_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    currency = serializers.CharField(max_length=3, default="CNY")
    idempotency_key = serializers.CharField(max_length=255, required=False, allow_blank=False)


class ConfirmIntentSerializer(serializers.Serializer):
    """
    Request body for confirming an intent.

    Fields:
        payment_method: Provider payment method identifier
        simulate: Mock provider only (succeeded / failed / requires_action)
        idempotency_key: Optional client key for safe retries
    """

    payment_method = serializers.CharField(max_length=64, required=False)
    simulate = serializers.ChoiceField(
        choices=["succeeded", "failed", "requires_action"],
        required=False,
    )
    idempotency_key = serializers.CharField(max_length=255, required=False)


class CreateRefundSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.01"),
        required=False,
    )
    reason = serializers.CharField(max_length=255, default="requested_by_user")
    idempotency_key = serializers.CharField(max_length=255, required=False)


class RetryRefundSerializer(serializers.Serializer):
    idempotency_key = serializers.CharField(max_length=255, required=False)


# =============================================================================
# Response Serializers
# =============================================================================


class PaymentIntentSerializer(serializers.ModelSerializer):
    """Intent as seen by the traveler."""

    order_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = PaymentIntent
        fields = [
            "id",
            "order_id",
            "provider",
            "provider_intent_id",
            "amount",
            "currency",
            "status",
            "client_secret",
            "last_error",
            "last_error_code",
            "confirmed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ConfirmIntentResponseSerializer(serializers.Serializer):
    intent = PaymentIntentSerializer()
    status = serializers.CharField()
    action_data = serializers.JSONField(allow_null=True)


class PaymentSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)
    intent_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "order_id",
            "intent_id",
            "provider",
            "provider_txn_id",
            "amount",
            "currency",
            "status",
            "created_at",
        ]
        read_only_fields = fields


class RefundSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)
    payment_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "order_id",
            "payment_id",
            "provider",
            "provider_refund_id",
            "amount",
            "currency",
            "status",
            "reason",
            "last_error",
            "attempt_count",
            "processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderPaymentsSerializer(serializers.Serializer):
    """
    Payment summary for one order.

    Fields:
        order_id: Order id
        status: Order status
        payment_status: UNPAID / PAID / REFUNDING / REFUNDED
        intents: All intents, newest first
        payments: Settled payments
        refunds: Refunds
    """

    order_id = serializers.UUIDField(source="order.id")
    status = serializers.CharField(source="order.status")
    payment_status = serializers.CharField(source="order.payment_status")
    intents = PaymentIntentSerializer(many=True)
    payments = PaymentSerializer(many=True)
    refunds = RefundSerializer(many=True)
