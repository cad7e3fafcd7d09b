"""
DRF views for payments app.

This module provides API views for:
- Payment intent creation and confirmation (traveler)
- Refund requests and retries (host or staff)
- Per-order payment summary

Related files:
    - services/checkout_service.py: CheckoutService
    - serializers.py: Request/response serializers
    - webhooks/views.py: Provider webhook endpoint
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/intents/ - Create payment intent
    POST /api/v1/payments/intents/{id}/confirm/ - Confirm intent
    POST /api/v1/payments/refunds/ - Request refund
    POST /api/v1/payments/refunds/{id}/retry/ - Retry failed refund
    GET /api/v1/payments/orders/{id}/payments/ - Order payment summary

Security:
    - All endpoints require authentication except the webhook
    - Only the order's traveler may create or confirm intents
    - Only the order's host or staff may refund
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import OpenApiResponse, extend_schema

from orders.models import Order
from payments.engine import get_engine
from payments.models import PaymentIntent, Refund
from payments.serializers import (
    ConfirmIntentResponseSerializer,
    ConfirmIntentSerializer,
    CreateIntentSerializer,
    CreateRefundSerializer,
    OrderPaymentsSerializer,
    PaymentIntentSerializer,
    RefundSerializer,
    RetryRefundSerializer,
)

logger = logging.getLogger(__name__)


# Error code -> HTTP status for failed ServiceResults
ERROR_STATUS = {
    "VALIDATION": status.HTTP_400_BAD_REQUEST,
    "PRICE_MISMATCH": status.HTTP_400_BAD_REQUEST,
    "INVALID_STATUS_TRANSITION": status.HTTP_409_CONFLICT,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INTENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "REFUND_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "UNKNOWN_PROVIDER": status.HTTP_404_NOT_FOUND,
    "NOT_CONFIGURED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "NOT_IMPLEMENTED": status.HTTP_501_NOT_IMPLEMENTED,
    "PROVIDER_ERROR": status.HTTP_502_BAD_GATEWAY,
}


def failure_response(result) -> Response:
    return Response(
        result.to_response(),
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


def forbidden(detail: str) -> Response:
    return Response({"detail": detail}, status=status.HTTP_403_FORBIDDEN)


def is_traveler(user, order: Order) -> bool:
    return order.traveler_id is not None and order.traveler_id == user.id


def can_refund(user, order: Order) -> bool:
    return user.is_staff or (order.host_id is not None and order.host_id == user.id)


class CreateIntentView(APIView):
    """
    Create a payment intent for an order.

    POST /api/v1/payments/intents/

    Request body:
        {"order_id": "...", "amount": "88.00", "currency": "CNY"}

    Returns:
        The intent (an existing active intent is returned as is)
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_intent",
        summary="Create payment intent",
        request=CreateIntentSerializer,
        responses={
            201: PaymentIntentSerializer,
            400: OpenApiResponse(description="Validation or price mismatch"),
            403: OpenApiResponse(description="Not the order's traveler"),
            409: OpenApiResponse(description="Order is not payable"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = CreateIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_object_or_404(Order, id=data["order_id"])
        if not is_traveler(request.user, order):
            return forbidden("Only the traveler can pay for this order")

        result = get_engine().checkout.create_intent(
            order,
            amount=data["amount"],
            currency=data["currency"],
            idempotency_key=data.get("idempotency_key"),
            actor=request.user,
        )
        if not result.success:
            return failure_response(result)

        return Response(
            PaymentIntentSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class ConfirmIntentView(APIView):
    """
    Confirm a payment intent.

    POST /api/v1/payments/intents/{id}/confirm/

    Returns:
        {"intent": {...}, "status": "...", "action_data": {...} | null}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="confirm_payment_intent",
        summary="Confirm payment intent",
        request=ConfirmIntentSerializer,
        responses={
            200: ConfirmIntentResponseSerializer,
            403: OpenApiResponse(description="Not the order's traveler"),
            409: OpenApiResponse(description="Intent has failed"),
        },
        tags=["Payments"],
    )
    def post(self, request, intent_id):
        serializer = ConfirmIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        intent = get_object_or_404(PaymentIntent.objects.select_related("order"), id=intent_id)
        if not is_traveler(request.user, intent.order):
            return forbidden("Only the traveler can confirm this payment")

        result = get_engine().checkout.confirm_intent(
            intent,
            payment_method=data.get("payment_method"),
            simulate=data.get("simulate"),
            idempotency_key=data.get("idempotency_key"),
            actor=request.user,
        )
        if not result.success:
            return failure_response(result)

        outcome = result.data
        return Response(
            ConfirmIntentResponseSerializer(
                {
                    "intent": outcome.intent,
                    "status": outcome.status,
                    "action_data": outcome.action_data,
                }
            ).data,
            status=status.HTTP_200_OK,
        )


class CreateRefundView(APIView):
    """
    Refund a paid order.

    POST /api/v1/payments/refunds/

    Request body:
        {"order_id": "...", "amount": "88.00", "reason": "host_cancelled"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_refund",
        summary="Request refund",
        request=CreateRefundSerializer,
        responses={
            201: RefundSerializer,
            403: OpenApiResponse(description="Not the host or staff"),
            409: OpenApiResponse(description="Order is not paid"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = CreateRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_object_or_404(Order, id=data["order_id"])
        if not can_refund(request.user, order):
            return forbidden("Only the host or staff can refund this order")

        result = get_engine().checkout.request_refund(
            order,
            amount=data.get("amount"),
            reason=data["reason"],
            idempotency_key=data.get("idempotency_key"),
            actor=request.user,
        )
        if not result.success:
            return failure_response(result)

        return Response(RefundSerializer(result.data).data, status=status.HTTP_201_CREATED)


class RetryRefundView(APIView):
    """
    Retry a refund in place.

    POST /api/v1/payments/refunds/{id}/retry/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="retry_refund",
        summary="Retry refund",
        request=RetryRefundSerializer,
        responses={200: RefundSerializer},
        tags=["Payments"],
    )
    def post(self, request, refund_id):
        serializer = RetryRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        refund = get_object_or_404(Refund.objects.select_related("order"), id=refund_id)
        if not can_refund(request.user, refund.order):
            return forbidden("Only the host or staff can refund this order")

        result = get_engine().checkout.retry_refund(
            refund,
            idempotency_key=serializer.validated_data.get("idempotency_key"),
            actor=request.user,
        )
        if not result.success:
            return failure_response(result)

        return Response(RefundSerializer(result.data).data, status=status.HTTP_200_OK)


class OrderPaymentsView(APIView):
    """
    Payment summary for one order.

    GET /api/v1/payments/orders/{id}/payments/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_order_payments",
        summary="Get order payments",
        responses={200: OrderPaymentsSerializer},
        tags=["Payments"],
    )
    def get(self, request, order_id):
        order = get_object_or_404(Order, id=order_id)
        if not (is_traveler(request.user, order) or can_refund(request.user, order)):
            return forbidden("You do not have access to this order")

        result = get_engine().checkout.order_payments(order)
        return Response(result.map(lambda summary: OrderPaymentsSerializer(summary).data).data)
