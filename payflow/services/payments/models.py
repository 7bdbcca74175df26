"""Payment service database models.

`payments` is the source of truth for payment state; `payment_transitions` is
the append-only audit trail of every status the engine wrote.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from payflow.common.db import Base


class Payment(Base):
    """Current state of one payment."""

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_customer_email_created_at", "customer_email", "created_at"),
        CheckConstraint(
            "(status = 'COMPLETED') = (completed_at IS NOT NULL)",
            name="ck_payments_completed_at_status",
        ),
        CheckConstraint(
            "(status = 'FAILED') = (failure_reason IS NOT NULL)",
            name="ck_payments_failure_reason_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 2))
    currency: Mapped[str] = mapped_column(String(3))
    status: Mapped[str] = mapped_column(String, index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_email: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_method_id: Mapped[str | None] = mapped_column(String, nullable=True)
    provider_reference: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    failure_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PaymentTransition(Base):
    """Immutable audit record of one status change."""

    __tablename__ = "payment_transitions"
    __table_args__ = (UniqueConstraint("payment_id", "state_version", name="uq_payment_transitions_version"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    payment_id: Mapped[str] = mapped_column(ForeignKey("payments.id"), index=True)
    # Payment state_version after this transition; orders the history.
    state_version: Mapped[int] = mapped_column(Integer)
    from_status: Mapped[str | None] = mapped_column(String, nullable=True)
    to_status: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
