"""
Payment-specific exceptions for payment operations.

Every exception carries one of the engine's machine-readable error codes
so the webhook endpoint, the checkout API and the stored WebhookEvent
all report the same vocabulary.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - VALIDATION, bad caller input
    │   └── PriceMismatchError - PRICE_MISMATCH, amount differs from order
    ├── InvalidStatusTransitionError - INVALID_STATUS_TRANSITION
    ├── PaymentNotFoundError - lookup misses
    │   ├── IntentNotFoundError - INTENT_NOT_FOUND
    │   └── RefundNotFoundError - REFUND_NOT_FOUND
    ├── EventProcessingError - PROCESSING_FAILED
    │   └── AmountMismatchError - AMOUNT_MISMATCH
    └── ProviderError - PROVIDER_ERROR, base for provider failures
        ├── ProviderNotConfiguredError - NOT_CONFIGURED (not retried)
        ├── ProviderNotImplementedError - NOT_IMPLEMENTED
        ├── UnknownProviderError - UNKNOWN_PROVIDER
        └── InvalidSignatureError - INVALID_SIGNATURE (never stored)

Usage:
    from payments.exceptions import IntentNotFoundError

    raise IntentNotFoundError(
        "No intent matches provider intent id",
        details={"provider": "mock", "provider_intent_id": "pi_mock_123"},
    )
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """Base exception for all payment domain errors."""

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError, ValidationError):
    """
    Raised when caller input for a payment operation is invalid.

    Example:
        if amount <= 0:
            raise PaymentValidationError("Amount must be positive")
    """

    default_error_code: str = "VALIDATION"


class PriceMismatchError(PaymentValidationError):
    """Raised when the requested amount differs from the order total."""

    default_error_code: str = "PRICE_MISMATCH"


class InvalidStatusTransitionError(PaymentError, ConflictError):
    """Raised when the order or intent is in a status that forbids the call."""

    default_error_code: str = "INVALID_STATUS_TRANSITION"


class PaymentNotFoundError(PaymentError, NotFoundError):
    """Raised when a payment entity lookup fails."""

    default_error_code: str = "NOT_FOUND"


class IntentNotFoundError(PaymentNotFoundError):
    default_error_code: str = "INTENT_NOT_FOUND"


class RefundNotFoundError(PaymentNotFoundError):
    default_error_code: str = "REFUND_NOT_FOUND"


class EventProcessingError(PaymentError):
    """
    Raised when a normalized event cannot be applied to the ledger.

    The surrounding transaction is rolled back and the WebhookEvent is
    left failed for the replay job.
    """

    default_error_code: str = "PROCESSING_FAILED"


class AmountMismatchError(EventProcessingError):
    """Raised when an event amount disagrees with the stored intent amount."""

    default_error_code: str = "AMOUNT_MISMATCH"


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(PaymentError, ExternalServiceError):
    """Base exception for provider call failures."""

    default_error_code: str = "PROVIDER_ERROR"


class ProviderNotConfiguredError(ProviderError):
    """
    Raised when a provider is missing required credentials.

    Fatal for that provider until the configuration is fixed.
    """

    default_error_code: str = "NOT_CONFIGURED"


class ProviderNotImplementedError(ProviderError):
    default_error_code: str = "NOT_IMPLEMENTED"


class UnknownProviderError(ProviderError):
    """Raised when a provider name is not a member of ProviderName."""

    default_error_code: str = "UNKNOWN_PROVIDER"


class InvalidSignatureError(ProviderError):
    """
    Raised when a webhook payload fails authentication or normalization.

    The payload is rejected outright: never stored, never retried.
    """

    default_error_code: str = "INVALID_SIGNATURE"
