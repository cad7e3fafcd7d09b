"""
Checkout service: the caller side of the payment engine.

Creates intents and refund requests and drives provider calls. It never
writes terminal state itself: a terminal provider result is turned into a
synthesized normalized event and submitted through the EventStore, the
same path a provider webhook takes. If the provider's real webhook
arrives later it carries a different event id, and the processor's
terminal-state short-circuit keeps the ledger unchanged.

Synthesized event ids:
    sync_<intentId>_<ms>            terminal confirm result
    sync_refund_<refundId>_<ms>     terminal refund result

Usage:
    checkout = get_engine().checkout

    result = checkout.create_intent(order, amount=order.total_amount, actor=user)
    if result.success:
        confirm = checkout.confirm_intent(result.data, simulate="succeeded")
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from orders.models import ActorRole, Order, OrderPaymentStatus
from payments.exceptions import (
    InvalidStatusTransitionError,
    PaymentNotFoundError,
    PaymentValidationError,
    PriceMismatchError,
)
from payments.models import Payment, PaymentAttempt, PaymentIntent, Refund
from payments.providers.base import (
    CreateIntentParams,
    EventData,
    NormalizedEvent,
    to_decimal,
)
from payments.state_machines import (
    AttemptOperation,
    IntentStatus,
    PaymentEventType,
    PaymentStatus,
    RefundStatus,
)

if TYPE_CHECKING:
    from payments.providers.base import ConfirmResult, ProviderRefundResult
    from payments.providers.registry import ProviderRegistry
    from payments.webhooks.store import EventStore, IngestResult


logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(timezone.now().timestamp() * 1000)


def _actor_role(actor, default: str = ActorRole.SYSTEM) -> str:
    if actor is None:
        return ActorRole.SYSTEM
    if getattr(actor, "is_staff", False) and default == ActorRole.HOST:
        return ActorRole.ADMIN
    return default


@dataclass
class ConfirmOutcome:
    """
    What the caller sees after a confirm call.

    Attributes:
        intent: Intent as committed after the call
        status: Intent status (the last committed transition)
        action_data: Next-step data when status is requires_action
        provider_status: Raw status the provider answered with
        ingest: EventStore result when a sync event was submitted
    """

    intent: PaymentIntent
    status: str
    action_data: dict[str, Any] | None = None
    provider_status: str | None = None
    ingest: IngestResult | None = None


@dataclass
class OrderPayments:
    order: Order
    intents: list[PaymentIntent] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    refunds: list[Refund] = field(default_factory=list)


class CheckoutService(BaseService):
    """
    Creates intents and refunds and confirms them with the provider.

    Attributes:
        providers: Provider registry
        event_store: Store used to funnel terminal provider results
    """

    def __init__(self, providers: ProviderRegistry, event_store: EventStore):
        self.providers = providers
        self.event_store = event_store

    # ==========================================================================
    # Intents
    # ==========================================================================

    def create_intent(
        self,
        order: Order,
        amount: Decimal | str | float,
        currency: str = "CNY",
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        actor=None,
    ) -> ServiceResult[PaymentIntent]:
        """
        Create a payment intent for an order.

        An order has at most one non-terminal intent: if one exists, or an
        intent with the same idempotency key exists, it is returned instead
        of creating a new one.

        Returns:
            ServiceResult with the PaymentIntent. Failure codes: VALIDATION,
            INVALID_STATUS_TRANSITION, PRICE_MISMATCH, NOT_CONFIGURED
        """
        log = self.get_logger()

        validation = self.validate_required(currency=currency)
        if validation is not None:
            return validation

        try:
            amount = to_decimal(amount)
        except ValueError as e:
            return ServiceResult.failure(str(e), error_code=PaymentValidationError.default_error_code)
        if amount <= 0:
            return ServiceResult.failure(
                "Amount must be positive",
                error_code=PaymentValidationError.default_error_code,
            )

        try:
            with transaction.atomic():
                intent = self._create_intent_locked(
                    order_id=order.id,
                    amount=amount,
                    currency=currency,
                    idempotency_key=idempotency_key,
                    metadata=metadata or {},
                )
        except BaseApplicationError as e:
            log.warning(
                f"Intent creation rejected: {e.message}",
                extra={"order_id": str(order.id), "error_code": e.error_code},
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)
        except IntegrityError:
            # Lost a race with a concurrent create for the same order
            intent = (
                PaymentIntent.objects.filter(
                    order_id=order.id,
                    status__in=IntentStatus.non_terminal(),
                )
                .order_by("-created_at")
                .first()
            )
            if intent is None:
                raise
            log.info(
                "Concurrent intent creation resolved to existing intent",
                extra={"order_id": str(order.id), "intent_id": str(intent.id)},
            )

        return ServiceResult.success(intent)

    def _create_intent_locked(
        self,
        order_id,
        amount: Decimal,
        currency: str,
        idempotency_key: str | None,
        metadata: dict[str, Any],
    ) -> PaymentIntent:
        order = Order.objects.select_for_update().get(id=order_id)

        if idempotency_key:
            existing = PaymentIntent.objects.filter(
                order=order,
                idempotency_key=idempotency_key,
            ).first()
            if existing is not None:
                return existing

        if not order.is_payable:
            raise InvalidStatusTransitionError(
                f"Order is not payable (status={order.status}, payment_status={order.payment_status})",
                details={"order_id": str(order.id)},
            )

        if amount != order.total_amount:
            raise PriceMismatchError(
                f"Amount {amount} does not match order total {order.total_amount}",
                details={
                    "order_id": str(order.id),
                    "amount": str(amount),
                    "order_total": str(order.total_amount),
                },
            )

        active = (
            PaymentIntent.objects.filter(
                order=order,
                status__in=IntentStatus.non_terminal(),
            )
            .order_by("-created_at")
            .first()
        )
        if active is not None:
            return active

        provider = self.providers.active()
        intent_id = uuid.uuid4()
        provider_metadata = {
            **metadata,
            "intent_id": str(intent_id),
            "order_id": str(order.id),
        }
        try:
            params = CreateIntentParams(
                amount=amount,
                currency=currency,
                idempotency_key=idempotency_key or f"intent_{intent_id}",
                metadata=provider_metadata,
            )
        except ValueError as e:
            raise PaymentValidationError(str(e), details={"order_id": str(order.id)}) from e
        created = provider.create_intent(params)

        intent = PaymentIntent.objects.create(
            id=intent_id,
            order=order,
            provider=provider.name,
            provider_intent_id=created.provider_intent_id,
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
            client_secret=created.client_secret,
            metadata=provider_metadata,
        )
        order.latest_intent_id = intent.id
        order.save(update_fields=["latest_intent_id", "updated_at"])

        self.get_logger().info(
            "Payment intent created",
            extra={
                "order_id": str(order.id),
                "intent_id": str(intent.id),
                "provider": provider.name,
                "provider_intent_id": created.provider_intent_id,
            },
        )
        return intent

    def confirm_intent(
        self,
        intent: PaymentIntent,
        payment_method: str | None = None,
        simulate: str | None = None,
        idempotency_key: str | None = None,
        actor=None,
    ) -> ServiceResult[ConfirmOutcome]:
        """
        Confirm an intent with its provider.

        A terminal provider answer is submitted as a sync event unless
        PAYMENTS_WEBHOOK_ONLY is set, in which case the intent waits in
        processing for the webhook. Non-terminal answers move the intent
        to processing or requires_action.
        """
        log = self.get_logger()
        intent = PaymentIntent.objects.get(id=intent.id)
        log_context = {"intent_id": str(intent.id), "order_id": str(intent.order_id)}

        if intent.status == IntentStatus.SUCCEEDED:
            return ServiceResult.success(ConfirmOutcome(intent=intent, status=intent.status))

        if intent.status == IntentStatus.FAILED:
            return ServiceResult.failure(
                "Intent has failed; create a new intent to retry payment",
                error_code=InvalidStatusTransitionError.default_error_code,
            )

        attempt_number = intent.attempts.filter(operation=AttemptOperation.CONFIRM).count() + 1
        key = idempotency_key or f"confirm_{intent.id}_{attempt_number}"

        try:
            provider = self.providers.get(intent.provider)
            result = provider.confirm_intent(
                intent.provider_intent_id,
                idempotency_key=key,
                payment_method=payment_method,
                simulate=simulate,
            )
        except BaseApplicationError as e:
            log.warning(f"Confirm call failed: {e.message}", extra={**log_context, "error_code": e.error_code})
            self._record_attempt(
                intent=intent,
                operation=AttemptOperation.CONFIRM,
                status="error",
                idempotency_key=key,
                error_code=e.error_code,
                error_message=e.message,
                actor=actor,
                actor_role=_actor_role(actor, ActorRole.TRAVELER),
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        self._record_attempt(
            intent=intent,
            operation=AttemptOperation.CONFIRM,
            status=result.status,
            idempotency_key=key,
            error_code=result.error_code,
            error_message=result.error_message,
            actor=actor,
            actor_role=_actor_role(actor, ActorRole.TRAVELER),
            raw_payload={"status": result.status, "action_data": result.action_data},
        )
        log.info(f"Provider answered confirm with {result.status}", extra=log_context)

        ingest = None
        if result.is_terminal and not settings.PAYMENTS_WEBHOOK_ONLY:
            ingest = self.event_store.submit(self._sync_payment_event(intent, result))
        else:
            self._apply_pending_status(intent.id, result)

        intent = PaymentIntent.objects.get(id=intent.id)
        return ServiceResult.success(
            ConfirmOutcome(
                intent=intent,
                status=intent.status,
                action_data=result.action_data,
                provider_status=result.status,
                ingest=ingest,
            )
        )

    def _apply_pending_status(self, intent_id, result: ConfirmResult) -> None:
        with transaction.atomic():
            intent = PaymentIntent.objects.select_for_update().get(id=intent_id)
            # The webhook may already have settled the intent
            if intent.is_terminal:
                return
            if result.status == IntentStatus.REQUIRES_ACTION:
                intent.require_action()
            else:
                intent.mark_processing()
            intent.save()
            intent.order.record_payment_attempt(intent.status)

    def _sync_payment_event(self, intent: PaymentIntent, result: ConfirmResult) -> NormalizedEvent:
        succeeded = result.status == IntentStatus.SUCCEEDED
        return NormalizedEvent(
            event_id=f"sync_{intent.id}_{_now_ms()}",
            type=(
                PaymentEventType.PAYMENT_SUCCEEDED
                if succeeded
                else PaymentEventType.PAYMENT_FAILED
            ),
            provider=intent.provider,
            data=EventData(
                amount=intent.amount,
                currency=intent.currency,
                status=result.status,
                provider_intent_id=intent.provider_intent_id,
                provider_txn_id=result.provider_txn_id,
                error_code=result.error_code,
                error_message=result.error_message,
                metadata={"intent_id": str(intent.id)},
            ),
        )

    # ==========================================================================
    # Refunds
    # ==========================================================================

    def request_refund(
        self,
        order: Order,
        amount: Decimal | str | float | None = None,
        reason: str = "requested_by_user",
        idempotency_key: str | None = None,
        actor=None,
    ) -> ServiceResult[Refund]:
        """
        Refund the latest succeeded payment of a paid order.

        The Refund row is committed in REQUESTED before the provider is
        called so a crash between the two leaves a retryable record.

        Returns:
            ServiceResult with the Refund. Failure codes: VALIDATION,
            INVALID_STATUS_TRANSITION, NOT_FOUND, provider error codes
        """
        log = self.get_logger()

        try:
            with transaction.atomic():
                refund, created = self._create_refund_locked(
                    order_id=order.id,
                    amount=amount,
                    reason=reason,
                    idempotency_key=idempotency_key,
                    actor=actor,
                )
        except BaseApplicationError as e:
            log.warning(
                f"Refund request rejected: {e.message}",
                extra={"order_id": str(order.id), "error_code": e.error_code},
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        if not created:
            return ServiceResult.success(refund)

        return self._call_refund_provider(
            refund,
            idempotency_key=f"refund_{refund.id}",
            actor=actor,
            retry=False,
        )

    def _create_refund_locked(
        self,
        order_id,
        amount,
        reason: str,
        idempotency_key: str | None,
        actor,
    ) -> tuple[Refund, bool]:
        order = Order.objects.select_for_update().get(id=order_id)

        if idempotency_key:
            existing = Refund.objects.filter(order=order, idempotency_key=idempotency_key).first()
            if existing is not None:
                return existing, False

        if order.payment_status != OrderPaymentStatus.PAID:
            raise InvalidStatusTransitionError(
                f"Order cannot be refunded (payment_status={order.payment_status})",
                details={"order_id": str(order.id)},
            )

        payment = (
            Payment.objects.filter(order=order, status=PaymentStatus.SUCCEEDED)
            .order_by("-created_at")
            .first()
        )
        if payment is None:
            raise PaymentNotFoundError(
                "No succeeded payment found for order",
                details={"order_id": str(order.id)},
            )

        try:
            refund_amount = payment.amount if amount is None else to_decimal(amount)
        except ValueError as e:
            raise PaymentValidationError(str(e)) from e
        if refund_amount <= 0 or refund_amount > payment.amount:
            raise PaymentValidationError(
                f"Refund amount must be between 0 and {payment.amount}",
                details={"amount": str(refund_amount), "payment_amount": str(payment.amount)},
            )

        refund = Refund.objects.create(
            order=order,
            payment=payment,
            intent=payment.intent,
            provider=payment.provider,
            amount=refund_amount,
            currency=payment.currency,
            status=RefundStatus.REQUESTED,
            reason=reason or "requested_by_user",
            idempotency_key=idempotency_key,
            requested_by=actor,
        )
        self.get_logger().info(
            "Refund requested",
            extra={
                "order_id": str(order.id),
                "refund_id": str(refund.id),
                "payment_id": str(payment.id),
                "amount": str(refund_amount),
            },
        )
        return refund, True

    def retry_refund(
        self,
        refund: Refund,
        idempotency_key: str | None = None,
        actor=None,
    ) -> ServiceResult[Refund]:
        """
        Call the provider again for an existing refund row.

        Succeeded refunds are returned untouched. The provider key is
        derived from the refund id and attempt number so each retry is a
        fresh provider request.
        """
        refund = Refund.objects.get(id=refund.id)
        if refund.is_complete:
            return ServiceResult.success(refund)

        return self._call_refund_provider(
            refund,
            idempotency_key=idempotency_key or f"refund_retry_{refund.id}_{refund.attempt_count + 1}",
            actor=actor,
            retry=True,
        )

    def _call_refund_provider(
        self,
        refund: Refund,
        idempotency_key: str,
        actor,
        retry: bool,
    ) -> ServiceResult[Refund]:
        log = self.get_logger()
        log_context = {
            "refund_id": str(refund.id),
            "order_id": str(refund.order_id),
            "idempotency_key": idempotency_key,
        }

        try:
            provider = self.providers.get(refund.provider)
            result = provider.refund(
                refund.payment.provider_txn_id,
                refund.amount,
                refund.currency,
                idempotency_key=idempotency_key,
                reason=refund.reason,
            )
        except BaseApplicationError as e:
            log.warning(f"Refund call failed: {e.message}", extra={**log_context, "error_code": e.error_code})
            with transaction.atomic():
                locked = Refund.objects.select_for_update().get(id=refund.id)
                if locked.status != RefundStatus.SUCCEEDED:
                    locked.fail(reason=e.message)
                    locked.save()
                    locked.order.mark_refund_failed()
                self._record_attempt(
                    intent=locked.intent,
                    refund=locked,
                    operation=AttemptOperation.REFUND,
                    status="error",
                    idempotency_key=idempotency_key,
                    error_code=e.error_code,
                    error_message=e.message,
                    actor=actor,
                    actor_role=_actor_role(actor, ActorRole.HOST),
                )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        with transaction.atomic():
            order = Order.objects.select_for_update().get(id=refund.order_id)
            locked = Refund.objects.select_for_update().get(id=refund.id)
            if locked.status != RefundStatus.SUCCEEDED:
                if retry:
                    locked.retry(provider_refund_id=result.provider_refund_id)
                else:
                    locked.process(provider_refund_id=result.provider_refund_id)
                locked.idempotency_key = locked.idempotency_key or idempotency_key
                locked.save()
                order.mark_refund_processing()
            self._record_attempt(
                intent=locked.intent,
                refund=locked,
                operation=AttemptOperation.REFUND,
                status=result.status,
                idempotency_key=idempotency_key,
                error_code=result.error_code,
                error_message=result.error_message,
                actor=actor,
                actor_role=_actor_role(actor, ActorRole.HOST),
            )
        log.info(f"Provider answered refund with {result.status}", extra=log_context)

        if result.is_terminal and not settings.PAYMENTS_WEBHOOK_ONLY:
            self.event_store.submit(self._sync_refund_event(locked, result))

        return ServiceResult.success(Refund.objects.get(id=refund.id))

    def _sync_refund_event(self, refund: Refund, result: ProviderRefundResult) -> NormalizedEvent:
        succeeded = result.status == RefundStatus.SUCCEEDED
        return NormalizedEvent(
            event_id=f"sync_refund_{refund.id}_{_now_ms()}",
            type=(
                PaymentEventType.REFUND_SUCCEEDED
                if succeeded
                else PaymentEventType.REFUND_FAILED
            ),
            provider=refund.provider,
            data=EventData(
                amount=refund.amount,
                currency=refund.currency,
                status=result.status,
                provider_refund_id=refund.provider_refund_id,
                provider_txn_id=refund.payment.provider_txn_id,
                error_code=result.error_code,
                error_message=result.error_message,
                metadata={"refund_id": str(refund.id)},
            ),
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    def order_payments(self, order: Order) -> ServiceResult[OrderPayments]:
        return ServiceResult.success(
            OrderPayments(
                order=order,
                intents=list(order.payment_intents.order_by("-created_at")),
                payments=list(order.payments.order_by("-created_at")),
                refunds=list(order.refunds.order_by("-created_at")),
            )
        )

    # ==========================================================================
    # Audit
    # ==========================================================================

    def _record_attempt(
        self,
        intent: PaymentIntent | None,
        operation: str,
        status: str,
        idempotency_key: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        actor=None,
        actor_role: str = ActorRole.SYSTEM,
        refund: Refund | None = None,
        raw_payload: dict | None = None,
    ) -> PaymentAttempt:
        source = refund or intent
        return PaymentAttempt.objects.create(
            order_id=source.order_id,
            intent=intent,
            refund=refund,
            provider=source.provider,
            operation=operation,
            status=status,
            amount=source.amount,
            currency=source.currency,
            idempotency_key=idempotency_key,
            error_code=error_code,
            error_message=error_message,
            actor=actor,
            actor_role=actor_role,
            raw_payload=raw_payload or {},
        )
