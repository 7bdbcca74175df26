"""Payment state machine enforced by the lifecycle engine."""

from datetime import datetime
from enum import Enum
from typing import Any

from payflow.common.errors import InvalidPaymentStateError


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    # Declared for forward compatibility; nothing transitions into these yet.
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


# A payment is born PENDING, or FAILED when provider authorization fails.
CREATION_STATUSES: frozenset[PaymentStatus] = frozenset({PaymentStatus.PENDING, PaymentStatus.FAILED})

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset(),
}

TERMINAL_STATUSES: frozenset[PaymentStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def validate_creation(status: PaymentStatus | str) -> None:
    """Raise when a new payment would be persisted in a non-initial status."""

    status = PaymentStatus(status)
    if status not in CREATION_STATUSES:
        raise InvalidPaymentStateError(f"Payment cannot be created in status: {status.value}")


def validate_transition(current: PaymentStatus | str, new: PaymentStatus | str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    current, new = PaymentStatus(current), PaymentStatus(new)
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidPaymentStateError(f"Invalid transition: {current.value} -> {new.value}")


def status_fields(
    status: PaymentStatus,
    *,
    completed_at: datetime | None = None,
    failure_reason: str | None = None,
    payment_method_id: str | None = None,
) -> dict[str, Any]:
    """Build the status envelope written alongside a transition into `status`.

    `completed_at` is required for and exclusive to COMPLETED, `failure_reason`
    for and to FAILED, and `payment_method_id` is only recorded when entering
    PROCESSING.
    """

    if (status == PaymentStatus.COMPLETED) != (completed_at is not None):
        raise ValueError(f"completed_at must be set exactly when entering COMPLETED (got {status.value})")
    if (status == PaymentStatus.FAILED) != bool(failure_reason):
        raise ValueError(f"failure_reason must be set exactly when entering FAILED (got {status.value})")
    if (status == PaymentStatus.PROCESSING) != bool(payment_method_id):
        raise ValueError(f"payment_method_id must be set exactly when entering PROCESSING (got {status.value})")

    fields: dict[str, Any] = {"status": status.value}
    if completed_at is not None:
        fields["completed_at"] = completed_at
    if failure_reason:
        fields["failure_reason"] = failure_reason
    if payment_method_id:
        fields["payment_method_id"] = payment_method_id
    return fields
