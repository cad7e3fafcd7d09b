"""
Webhook endpoint view for payment providers.

The provider name comes from the URL; the raw body and the X-Signature
header are handed to EventStore.ingest, which verifies, stores and
processes the event synchronously. Providers only need to know whether
the event was accepted: a duplicate or an event stored as failed (it will
be replayed by the reconciliation job) is still acknowledged with 200.

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.engine import get_engine
from payments.exceptions import InvalidSignatureError, UnknownProviderError


logger = logging.getLogger(__name__)


SIGNATURE_HEADER = "X-Signature"


@csrf_exempt
@require_POST
def provider_webhook(request: HttpRequest, provider: str) -> JsonResponse:
    """
    Receive a provider webhook.

    Security:
    - Signature verification is done by the provider implementation
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Returns:
        JsonResponse with status:
        - 200: {"received": true, "eventId": ...} (new, duplicate or stored failed)
        - 400: {"error": ..., "error_code": "INVALID_SIGNATURE"}
        - 404: {"error": ..., "error_code": "UNKNOWN_PROVIDER"}
    """
    signature = request.headers.get(SIGNATURE_HEADER, "")

    try:
        result = get_engine().event_store.ingest(provider, request.body, signature)
    except UnknownProviderError as e:
        logger.warning("Webhook for unknown provider", extra={"provider": provider})
        return JsonResponse(e.to_dict(), status=404)
    except InvalidSignatureError as e:
        return JsonResponse(e.to_dict(), status=400)

    logger.info(
        "Webhook acknowledged",
        extra={
            "provider": provider,
            "event_id": result.event_id,
            "is_new": result.is_new,
            "status": result.status,
        },
    )
    return JsonResponse(result.to_response(), status=200)
