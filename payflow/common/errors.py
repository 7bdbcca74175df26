"""Exception taxonomy shared by the engine, its collaborators and the HTTP layer."""


class PaymentError(Exception):
    """Base class for payment service errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PaymentNotFoundError(PaymentError):
    """Lookup target does not exist."""


class InvalidPaymentStateError(PaymentError):
    """Requested transition is not allowed from the payment's current status."""


class ProviderError(PaymentError):
    """Provider gateway call failed or returned an unusable result."""


class StoreError(PaymentError):
    """Persistence is unavailable or rejected a write."""


class DuplicatePaymentError(StoreError):
    """Insert violated a uniqueness constraint (idempotency key or provider reference)."""
