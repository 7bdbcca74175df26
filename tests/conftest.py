"""Shared fixtures: in-memory database, fake provider gateway and stepping clock."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TRACING_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable
from uuid import uuid4

import pytest

from payflow.common.db import Base, build_engine, build_session_factory
from payflow.common.errors import ProviderError
from payflow.services.payments.service import PaymentService
from payflow.services.provider_gateway.port import CaptureResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """Deterministic provider double; outcomes are set per test."""

    def __init__(self) -> None:
        self.authorize_error: Exception | None = None
        self.capture_outcome: str = "success"
        self.decline_reason: str | None = "card_declined"
        self.healthy: bool = True
        self.reference: str | None = None
        self.on_authorize: Callable[[], None] | None = None
        self.on_capture: Callable[[], None] | None = None
        self.calls: list[dict[str, Any]] = []

    def authorize(self, amount: Decimal, currency: str, metadata: dict[str, Any]) -> str:
        self.calls.append({"method": "authorize", "amount": amount, "currency": currency, "metadata": metadata})
        if self.on_authorize is not None:
            hook, self.on_authorize = self.on_authorize, None
            hook()
        if self.authorize_error is not None:
            raise self.authorize_error
        return self.reference or f"pi_{uuid4().hex[:24]}"

    def capture(self, provider_reference: str, payment_method_id: str) -> CaptureResult:
        self.calls.append(
            {
                "method": "capture",
                "provider_reference": provider_reference,
                "payment_method_id": payment_method_id,
            }
        )
        if self.on_capture is not None:
            hook, self.on_capture = self.on_capture, None
            hook()
        if self.capture_outcome == "error":
            raise ProviderError("connection reset by provider")
        if self.capture_outcome == "decline":
            return CaptureResult(success=False, failure_reason=self.decline_reason)
        return CaptureResult(success=True)

    def is_healthy(self) -> bool:
        return self.healthy

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]


class StepClock:
    """Clock that advances one second on every read."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def session_factory():
    import payflow.services.payments.models  # noqa: F401  registers tables

    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def service(session_factory, gateway, clock) -> PaymentService:
    return PaymentService(session_factory, gateway, service_name="payments-test", clock=clock)


@pytest.fixture
def create(service):
    """Create a payment with sensible defaults, overridable per call."""

    def _create(**overrides):
        params = {
            "amount": Decimal("10.00"),
            "currency": "usd",
            "customer_email": "jane@payflow.io",
        }
        params.update(overrides)
        return service.create_payment(**params)

    return _create
