"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/<provider>/ - Provider webhook endpoint
    - POST /intents/ - Create payment intent
    - POST /intents/<id>/confirm/ - Confirm payment intent
    - POST /refunds/ - Request refund
    - POST /refunds/<id>/retry/ - Retry refund
    - GET /orders/<id>/payments/ - Order payment summary

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import (
    ConfirmIntentView,
    CreateIntentView,
    CreateRefundView,
    OrderPaymentsView,
    RetryRefundView,
)
from payments.webhooks.views import provider_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    # Intents
    path("intents/", CreateIntentView.as_view(), name="intent_create"),
    path("intents/<uuid:intent_id>/confirm/", ConfirmIntentView.as_view(), name="intent_confirm"),
    # Refunds
    path("refunds/", CreateRefundView.as_view(), name="refund_create"),
    path("refunds/<uuid:refund_id>/retry/", RetryRefundView.as_view(), name="refund_retry"),
    # Orders
    path("orders/<uuid:order_id>/payments/", OrderPaymentsView.as_view(), name="order_payments"),
]
