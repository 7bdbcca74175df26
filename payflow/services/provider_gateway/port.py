"""Provider gateway port.

Defines the contract every payment-processor adapter implements so the
lifecycle engine never depends on a concrete provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of a capture call that reached the provider."""

    success: bool
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    def authorize(self, amount: Decimal, currency: str, metadata: dict[str, Any]) -> str:
        """Open the payment with the provider and return its reference.

        Raises `ProviderError` (or any other exception) when the provider is
        unavailable or refuses the payment.
        """
        ...

    @abstractmethod
    def capture(self, provider_reference: str, payment_method_id: str) -> CaptureResult:
        """Charge the payment method against a previously authorized reference."""
        ...

    @abstractmethod
    def is_healthy(self) -> bool:
        """Report whether the provider is reachable."""
        ...
