"""Simulated payment processor used in development deployments.

Sleeps for a random latency and fails a configurable share of calls, which is
enough to exercise the engine's failure handling without real credentials.
"""

import random
import time
from decimal import Decimal
from typing import Any
from uuid import uuid4

from payflow.common.config import PayflowSettings
from payflow.common.errors import ProviderError
from payflow.common.logging import logger
from payflow.services.provider_gateway.port import CaptureResult, PaymentGateway


class SimulatedGateway(PaymentGateway):
    """Random-outcome provider with Stripe-like references."""

    def __init__(
        self,
        authorize_failure_rate: float = 0.10,
        capture_failure_rate: float = 0.05,
        min_latency_ms: int = 100,
        max_latency_ms: int = 500,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= authorize_failure_rate <= 1.0 or not 0.0 <= capture_failure_rate <= 1.0:
            raise ValueError("failure rates must be within [0, 1]")
        if min_latency_ms < 0 or max_latency_ms < min_latency_ms:
            raise ValueError("latency bounds must satisfy 0 <= min <= max")
        self.authorize_failure_rate = authorize_failure_rate
        self.capture_failure_rate = capture_failure_rate
        self.min_latency_ms = min_latency_ms
        self.max_latency_ms = max_latency_ms
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: PayflowSettings) -> "SimulatedGateway":
        return cls(
            authorize_failure_rate=settings.provider_authorize_failure_rate,
            capture_failure_rate=settings.provider_capture_failure_rate,
            min_latency_ms=settings.provider_min_latency_ms,
            max_latency_ms=settings.provider_max_latency_ms,
        )

    def _simulate_latency(self) -> None:
        delay_ms = self.rng.randint(self.min_latency_ms, self.max_latency_ms)
        time.sleep(delay_ms / 1000)

    def authorize(self, amount: Decimal, currency: str, metadata: dict[str, Any]) -> str:
        logger.info("provider authorize amount=%s currency=%s", amount, currency)
        self._simulate_latency()
        if self.rng.random() < self.authorize_failure_rate:
            logger.error("provider authorize failed payment_id=%s", metadata.get("payment_id"))
            raise ProviderError("Provider temporarily unavailable")
        provider_reference = "pi_" + uuid4().hex[:24]
        logger.info("provider authorize succeeded provider_reference=%s", provider_reference)
        return provider_reference

    def capture(self, provider_reference: str, payment_method_id: str) -> CaptureResult:
        logger.info(
            "provider capture provider_reference=%s payment_method_id=%s",
            provider_reference,
            payment_method_id,
        )
        self._simulate_latency()
        if self.rng.random() < self.capture_failure_rate:
            logger.warning("provider capture declined provider_reference=%s", provider_reference)
            return CaptureResult(success=False, failure_reason="card_declined")
        return CaptureResult(success=True)

    def is_healthy(self) -> bool:
        return True
