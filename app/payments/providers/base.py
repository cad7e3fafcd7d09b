"""
Provider protocol and normalized data types.

Defines the contract every payment backend implements and the normalized
event shape the engine stores and dispatches. Providers are stateless with
respect to the ledger: they make the external call and return a result,
all persistence happens in the event processor.

Usage:
    from payments.providers.base import BaseProviderImpl, ConfirmResult

    class MyProvider(BaseProviderImpl):
        name = ProviderName.MOCK

        def confirm_intent(self, provider_intent_id, idempotency_key=None,
                           payment_method=None, simulate=None):
            ...
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from django.utils import timezone

from payments.state_machines import PaymentEventType

if TYPE_CHECKING:
    from collections.abc import Generator

    from payments.providers.scheduling import WebhookScheduler


# Statuses a provider may report for a confirmation
CONFIRM_STATUSES = ("processing", "succeeded", "failed", "requires_action")
TERMINAL_PROVIDER_STATUSES = ("succeeded", "failed")

# Exclusive upper bound for DecimalField(max_digits=12, decimal_places=2)
MAX_AMOUNT = Decimal("10000000000")


def to_decimal(value: Any) -> Decimal:
    """
    Parse an amount coming from JSON or a caller.

    Raises:
        ValueError: If the value is not a finite number or does not fit
            the 12-digit, 2-decimal amount columns
    """
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {value!r}")
        amount = amount.quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if abs(amount) >= MAX_AMOUNT:
        raise ValueError(f"Amount out of range: {value!r}")
    return amount


# =============================================================================
# Call Parameters and Results
# =============================================================================


@dataclass
class CreateIntentParams:
    """
    Parameters for creating a provider intent.

    Attributes:
        amount: Amount to collect (major units, e.g. 88.00)
        currency: ISO currency code
        idempotency_key: Key for idempotent creation
        metadata: Key-value pairs sent to the provider (includes intent_id)
    """

    amount: Decimal
    currency: str
    idempotency_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        self.amount = to_decimal(self.amount)
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class CreateIntentResult:
    provider_intent_id: str
    status: str = "requires_confirmation"
    client_secret: str | None = None


@dataclass
class ConfirmResult:
    """
    Result of a confirmation call.

    Attributes:
        status: processing / succeeded / failed / requires_action
        provider_txn_id: Transaction id when the charge settled synchronously
        error_code: Provider error code on failure
        error_message: Provider error message on failure
        action_data: Next-step data for requires_action (e.g. redirect URL)
    """

    status: str
    provider_txn_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    action_data: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.status not in CONFIRM_STATUSES:
            raise ValueError(f"Unknown confirm status: {self.status}")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROVIDER_STATUSES


@dataclass
class ProviderRefundResult:
    provider_refund_id: str | None
    status: str
    error_code: str | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROVIDER_STATUSES


@dataclass
class StatusQueryResult:
    """Provider view of an intent, used only by reconciliation."""

    status: str
    provider_txn_id: str | None = None


# =============================================================================
# Normalized Event
# =============================================================================


@dataclass
class EventData:
    """Payload of a normalized event. Amounts are kept as Decimal."""

    amount: Decimal
    currency: str
    status: str
    provider_intent_id: str | None = None
    provider_txn_id: str | None = None
    provider_refund_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status,
        }
        optional = {
            "providerIntentId": self.provider_intent_id,
            "providerTxnId": self.provider_txn_id,
            "providerRefundId": self.provider_refund_id,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> EventData:
        if not isinstance(raw, dict):
            raise ValueError("event data must be an object")
        if raw.get("amount") is None:
            raise ValueError("event data.amount is required")
        return cls(
            amount=to_decimal(raw["amount"]),
            currency=raw.get("currency") or "CNY",
            status=raw.get("status") or "",
            provider_intent_id=raw.get("providerIntentId"),
            provider_txn_id=raw.get("providerTxnId"),
            provider_refund_id=raw.get("providerRefundId"),
            error_code=raw.get("errorCode"),
            error_message=raw.get("errorMessage"),
            metadata=raw.get("metadata") or {},
        )


@dataclass
class NormalizedEvent:
    """
    Provider-independent event, stored verbatim as WebhookEvent.payload.

    Wire shape:
        {
            "eventId": "evt_mock_...",
            "type": "payment.succeeded",
            "provider": "mock",
            "createdAt": "2026-01-01T00:00:00+00:00",
            "data": {"providerIntentId": ..., "amount": 88.0, ...}
        }
    """

    event_id: str
    type: str
    provider: str
    data: EventData
    created_at: str = field(default_factory=lambda: timezone.now().isoformat())

    def __post_init__(self) -> None:
        if not self.event_id:
            raise ValueError("eventId is required")
        if self.type not in PaymentEventType.values:
            raise ValueError(f"Unsupported event type: {self.type}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "type": self.type,
            "provider": self.provider,
            "createdAt": self.created_at,
            "data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NormalizedEvent:
        """
        Build an event from its wire/stored form.

        Raises:
            ValueError: If required keys are missing or malformed
        """
        if not isinstance(raw, dict):
            raise ValueError("event must be an object")
        return cls(
            event_id=raw.get("eventId") or "",
            type=raw.get("type") or "",
            provider=raw.get("provider") or "",
            created_at=raw.get("createdAt") or timezone.now().isoformat(),
            data=EventData.from_dict(raw.get("data")),
        )


@dataclass
class WebhookVerification:
    valid: bool
    event: NormalizedEvent | None = None
    error: str | None = None


# =============================================================================
# Provider Protocol
# =============================================================================


@runtime_checkable
class PaymentProvider(Protocol):
    """
    Protocol for payment provider implementations.

    Required Methods:
        create_intent: Register an intent with the provider
        confirm_intent: Ask the provider to charge the intent
        refund: Return money for a settled transaction
        verify_webhook: Authenticate and normalize an inbound webhook
        query_status: Ask for the provider's view of an intent
    """

    name: str

    def create_intent(self, params: CreateIntentParams) -> CreateIntentResult:
        """
        Raises:
            ProviderNotConfiguredError: Required credentials are absent
        """
        ...

    def confirm_intent(
        self,
        provider_intent_id: str,
        idempotency_key: str | None = None,
        payment_method: str | None = None,
        simulate: str | None = None,
    ) -> ConfirmResult:
        ...

    def refund(
        self,
        provider_txn_id: str | None,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> ProviderRefundResult:
        ...

    def verify_webhook(self, payload: bytes | str, signature: str) -> WebhookVerification:
        ...

    def query_status(self, provider_intent_id: str) -> StatusQueryResult:
        ...


class BaseProviderImpl:
    """
    Base implementation with shared functionality.

    Providers can inherit from this for logging and scheduler wiring.
    Not required, but helpful for code reuse.

    Attributes:
        name: ProviderName member for this provider
        scheduler: Where outgoing simulated webhooks are scheduled
    """

    name: str = ""

    def __init__(self, scheduler: WebhookScheduler | None = None):
        self.scheduler = scheduler

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @contextmanager
    def _timed(self, operation: str, **context: Any) -> Generator[dict, None, None]:
        """
        Log start/finish of a provider call with its duration.

        Yields the log context so callers can add result fields.
        """
        logger = self.get_logger()
        log_context = {"provider": self.name, "operation": operation, **context}
        start_time = time.time()
        logger.info("Starting provider operation", extra=log_context)
        try:
            yield log_context
        except Exception:
            log_context["duration_ms"] = (time.time() - start_time) * 1000
            logger.warning("Provider operation failed", extra=log_context)
            raise
        log_context["duration_ms"] = (time.time() - start_time) * 1000
        logger.info("Provider operation completed", extra=log_context)
