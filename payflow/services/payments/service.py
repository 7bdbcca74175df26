"""Payment lifecycle engine.

Owns the payment state machine progression, idempotent creation and the
translation of provider failures into persisted payment state. Provider calls
happen with no storage session open; status writes go through the store's
compare-and-set transition.
"""

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable
from uuid import uuid4

from payflow.common.errors import DuplicatePaymentError, InvalidPaymentStateError, PaymentNotFoundError, StoreError
from payflow.common.logging import bind_payment, logger
from payflow.common.metrics import (
    idempotent_replays_total,
    payment_failure_total,
    payment_success_total,
    provider_calls_total,
    provider_latency_seconds,
)
from payflow.common.state_machine import PaymentStatus
from payflow.common.tracing import tracer
from payflow.services.payments.models import Payment, PaymentTransition
from payflow.services.payments.store import PaymentStore
from payflow.services.provider_gateway.port import CaptureResult, PaymentGateway


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class PaymentService:
    """Creates, confirms and looks up payments."""

    def __init__(
        self,
        session_factory,
        gateway: PaymentGateway,
        service_name: str = "payments",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = PaymentStore(session_factory)
        self.gateway = gateway
        self.service_name = service_name
        self.clock = clock

    def create_payment(
        self,
        *,
        amount: Decimal,
        currency: str,
        customer_email: str,
        customer_id: str | None = None,
        description: str | None = None,
        idempotency_key: str | None = None,
    ) -> Payment:
        """Create a payment once per idempotency key.

        A provider authorization failure does not fail the request: the payment
        is stored as FAILED and returned like any other creation result.
        """

        idempotency_key = (idempotency_key or "").strip() or None
        if idempotency_key:
            existing = self.store.get_by_idempotency_key(idempotency_key)
            if existing:
                return self._replay(existing, idempotency_key)

        payment = Payment(
            id=str(uuid4()),
            amount=amount,
            currency=currency.upper(),
            status=PaymentStatus.PENDING.value,
            customer_id=customer_id,
            customer_email=customer_email,
            description=description,
            idempotency_key=idempotency_key,
            created_at=self.clock(),
        )
        bind_payment(payment.id, idempotency_key)
        logger.info(
            "creating payment amount=%s currency=%s customer_email=%s",
            payment.amount,
            payment.currency,
            payment.customer_email,
        )

        reason = "payment_created"
        try:
            provider_reference = self._authorize(payment)
            payment.provider_reference = provider_reference
            logger.info("payment authorized provider_reference=%s", provider_reference)
        except Exception as exc:
            logger.exception("provider authorization failed")
            payment.status = PaymentStatus.FAILED.value
            payment.failure_reason = f"Provider error: {_describe(exc)}"
            reason = "provider_authorization_failed"

        try:
            self.store.insert(payment, reason=reason)
        except DuplicatePaymentError:
            if not idempotency_key:
                raise
            # Lost an insert race against a request carrying the same key.
            existing = self.store.get_by_idempotency_key(idempotency_key)
            if existing is None:
                raise
            return self._replay(existing, idempotency_key)

        if payment.status == PaymentStatus.FAILED.value:
            payment_failure_total.labels(service=self.service_name, stage="authorize").inc()
        logger.info("payment created status=%s", payment.status)
        return payment

    def _replay(self, existing: Payment, idempotency_key: str) -> Payment:
        bind_payment(existing.id, idempotency_key)
        logger.info("returning existing payment for idempotency key=%s", idempotency_key)
        idempotent_replays_total.labels(service=self.service_name).inc()
        return existing

    def _authorize(self, payment: Payment) -> str:
        metadata = {
            "payment_id": payment.id,
            "customer_email": payment.customer_email,
            "customer_id": payment.customer_id,
            "description": payment.description,
            "idempotency_key": payment.idempotency_key,
        }
        started = time.perf_counter()
        outcome = "error"
        with tracer.start_as_current_span("provider.authorize", attributes={"payment.id": payment.id}) as span:
            try:
                provider_reference = self.gateway.authorize(payment.amount, payment.currency, metadata)
                if not provider_reference:
                    raise ValueError("provider returned an empty reference")
                outcome = "success"
                span.set_attribute("payment.provider_reference", provider_reference)
                return provider_reference
            finally:
                span.set_attribute("provider.outcome", outcome)
                self._observe_provider_call("authorize", outcome, started)

    def _capture(self, provider_reference: str, payment_method_id: str) -> CaptureResult:
        started = time.perf_counter()
        outcome = "error"
        with tracer.start_as_current_span(
            "provider.capture", attributes={"payment.provider_reference": provider_reference}
        ) as span:
            try:
                result = self.gateway.capture(provider_reference, payment_method_id)
                outcome = "success" if result.success else "decline"
                return result
            finally:
                span.set_attribute("provider.outcome", outcome)
                self._observe_provider_call("capture", outcome, started)

    def _observe_provider_call(self, operation: str, outcome: str, started: float) -> None:
        provider_calls_total.labels(service=self.service_name, operation=operation, outcome=outcome).inc()
        provider_latency_seconds.labels(service=self.service_name, operation=operation).observe(
            max(0.0, time.perf_counter() - started)
        )

    def confirm_payment(self, payment_id: str, payment_method_id: str) -> Payment:
        """Move a PENDING payment through PROCESSING to COMPLETED or FAILED.

        PROCESSING is committed before the provider is called so a crash during
        capture leaves a visible non-terminal record. Any non-success capture
        outcome is returned as a FAILED payment rather than raised.
        """

        bind_payment(payment_id)
        logger.info("confirming payment")
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidPaymentStateError(f"Payment cannot be confirmed in status: {payment.status}")

        processing = self.store.transition(
            payment,
            PaymentStatus.PROCESSING,
            reason="confirmation_requested",
            payment_method_id=payment_method_id,
        )
        if processing is None:
            current = self.get_payment(payment_id)
            logger.warning("confirmation lost race current_status=%s", current.status)
            raise InvalidPaymentStateError(f"Payment cannot be confirmed in status: {current.status}")

        target, reason, envelope = self._settle(processing.provider_reference, payment_method_id)
        final = self.store.transition(processing, target, reason=reason, **envelope)
        if final is None:
            raise StoreError(f"payment {payment_id} changed while PROCESSING")

        if final.status == PaymentStatus.COMPLETED.value:
            payment_success_total.labels(service=self.service_name).inc()
            logger.info("payment confirmed")
        else:
            payment_failure_total.labels(service=self.service_name, stage="capture").inc()
            logger.warning("payment confirmation failed failure_reason=%s", final.failure_reason)
        return final

    def _settle(self, provider_reference: str, payment_method_id: str) -> tuple[PaymentStatus, str, dict]:
        """Map the capture outcome to (target status, history reason, status envelope).

        Declines and exceptions both end in FAILED; only the reason text differs.
        """

        try:
            result = self._capture(provider_reference, payment_method_id)
        except Exception as exc:
            logger.exception("provider capture failed")
            return PaymentStatus.FAILED, "provider_capture_error", {"failure_reason": f"Provider error: {_describe(exc)}"}
        if result.success:
            return PaymentStatus.COMPLETED, "provider_capture_succeeded", {"completed_at": self.clock()}
        if result.failure_reason:
            failure_reason = f"Payment declined: {result.failure_reason}"
        else:
            failure_reason = "Payment confirmation failed"
        return PaymentStatus.FAILED, "provider_capture_declined", {"failure_reason": failure_reason}

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.store.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Payment not found: {payment_id}")
        return payment

    def get_payment_by_provider_reference(self, provider_reference: str) -> Payment:
        payment = self.store.get_by_provider_reference(provider_reference)
        if payment is None:
            raise PaymentNotFoundError(f"Payment not found for provider reference: {provider_reference}")
        return payment

    def list_payments_by_email(self, customer_email: str) -> list[Payment]:
        """Return the customer's payments, newest first."""

        if not customer_email:
            return []
        return self.store.list_by_email(customer_email)

    def list_payments_by_status(self, status: PaymentStatus) -> list[Payment]:
        """Payments sitting in one status, oldest first, for reconciliation and reporting."""

        return self.store.list_by_status(status)

    def get_history(self, payment_id: str) -> list[PaymentTransition]:
        self.get_payment(payment_id)
        return self.store.list_transitions(payment_id)

    def is_healthy(self) -> bool:
        """True when both the store and the provider answer."""

        try:
            self.store.count()
            return self.gateway.is_healthy()
        except Exception:
            logger.exception("health check failed")
            return False
