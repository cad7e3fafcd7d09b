"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views handle HTTP concerns, models handle data, services handle logic.

Pattern Comparison:
    - ServiceResult: Use for expected failures (validation, business rules)
    - Exceptions: Use for unexpected failures (database errors, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class OrderNoteService(BaseService):
        @classmethod
        def add_note(cls, order: Order, text: str) -> ServiceResult[OrderNote]:
            if not text.strip():
                return ServiceResult.failure(
                    "Note is empty",
                    error_code="VALIDATION"
                )

            with transaction.atomic():
                note = OrderNote.objects.create(order=order, text=text)

            cls.get_logger().info("Note added", extra={"order_id": str(order.id)})
            return ServiceResult.success(note)

    # In view
    result = OrderNoteService.add_note(order, text)
    if result.success:
        return Response(OrderNoteSerializer(result.data).data, status=201)
    return Response(result.to_response(), status=400)

Related:
    - core.exceptions: For unexpected/exceptional errors
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from typing import Any

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.
    Use this for expected failures (validation errors, business rule violations).

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        # Success case
        return ServiceResult.success(intent)

        # Failure case
        return ServiceResult.failure("Order is not payable", "INVALID_STATUS_TRANSITION")

        # Check result
        result = checkout.create_intent(order, amount=order.total_amount)
        if result.success:
            intent = result.data
        else:
            logger.warning(f"{result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Returns:
            ServiceResult with success=False and error details

        Example:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION",
                errors={"currency": ["This field is required."]}
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Args:
            exc: The caught exception
            error_code: Optional error code (defaults to exception class name)

        Example:
            try:
                provider.query_status(provider_intent_id)
            except ProviderError as e:
                return ServiceResult.from_exception(e, e.error_code)
        """
        return cls(
            success=False,
            error=getattr(exc, "message", None) or str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            Dict with success status and data or error details

        Example:
            result = checkout.retry_refund(refund)
            if not result.success:
                return Response(result.to_response(), status=409)
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func) -> ServiceResult:
        """
        Transform the data if successful.

        Example:
            result = checkout.order_payments(order)
            serialized = result.map(lambda summary: OrderPaymentsSerializer(summary).data)
        """
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Required-field validation
    - Exception handling patterns

    Usage:
        class CheckoutService(BaseService):
            def __init__(self, providers, event_store):
                self.providers = providers
                self.event_store = event_store

            def create_intent(self, order, amount) -> ServiceResult[PaymentIntent]:
                with transaction.atomic():
                    # All operations in this block are in a transaction
                    intent = PaymentIntent.objects.create(order=order, amount=amount)

                self.get_logger().info("Intent created", extra={"intent_id": str(intent.id)})
                return ServiceResult.success(intent)

    Design Notes:
        - Collaborators (providers, event store) are injected at construction
        - Services hold no per-request state
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Returns:
            Logger instance for this service

        Example:
            class ReconciliationService(BaseService):
                def replay_failed_webhooks(self):
                    self.get_logger().info("Replaying failed events")
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Convert exception to ServiceResult with logging.

        Provides consistent exception handling across services.
        Logs the exception and returns a ServiceResult.

        Args:
            exc: The caught exception
            context: Additional context for logging
            log_level: Logging level (default ERROR)

        Returns:
            ServiceResult with error details

        Example:
            try:
                provider.refund(txn_id, amount, currency, key)
            except ProviderError as e:
                return cls.handle_exception(e, "refund request")
        """
        logger = cls.get_logger()
        message = f"{context}: {exc}" if context else str(exc)
        logger.log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc, getattr(exc, "error_code", None))

    @classmethod
    def validate_required(cls, **kwargs) -> ServiceResult | None:
        """
        Validate that required fields are provided.

        Returns a failure result if any required field is None or empty.
        Returns None if all fields are valid.

        Args:
            **kwargs: Field names and their values

        Returns:
            ServiceResult.failure if validation fails, None otherwise

        Example:
            validation = cls.validate_required(currency=currency)
            if validation:
                return validation  # Return the error

            # Continue with valid data...
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION",
                errors=errors,
            )
        return None
