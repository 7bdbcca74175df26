"""SQLAlchemy-backed payment persistence.

Every public method is its own unit of work: it opens a session, commits and
closes before returning, so no database transaction ever spans a provider call.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from payflow.common.errors import DuplicatePaymentError, StoreError
from payflow.common.state_machine import PaymentStatus, status_fields, validate_creation, validate_transition
from payflow.services.payments.models import Payment, PaymentTransition


class PaymentStore:
    """Point lookups, ordered listing and guarded writes for payments."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.session_factory() as db:
                yield db
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError(f"payment store unavailable: {exc.__class__.__name__}") from exc

    def get(self, payment_id: str) -> Payment | None:
        with self._session() as db:
            return db.get(Payment, payment_id)

    def get_by_idempotency_key(self, idempotency_key: str) -> Payment | None:
        with self._session() as db:
            return db.execute(
                select(Payment).where(Payment.idempotency_key == idempotency_key)
            ).scalar_one_or_none()

    def get_by_provider_reference(self, provider_reference: str) -> Payment | None:
        with self._session() as db:
            return db.execute(
                select(Payment).where(Payment.provider_reference == provider_reference)
            ).scalar_one_or_none()

    def list_by_email(self, customer_email: str) -> list[Payment]:
        with self._session() as db:
            return list(
                db.execute(
                    select(Payment)
                    .where(Payment.customer_email == customer_email)
                    .order_by(Payment.created_at.desc())
                ).scalars()
            )

    def list_by_status(self, status: PaymentStatus) -> list[Payment]:
        """Payments currently in `status`, oldest first."""

        with self._session() as db:
            return list(
                db.execute(
                    select(Payment)
                    .where(Payment.status == PaymentStatus(status).value)
                    .order_by(Payment.created_at, Payment.id)
                ).scalars()
            )

    def list_transitions(self, payment_id: str) -> list[PaymentTransition]:
        with self._session() as db:
            return list(
                db.execute(
                    select(PaymentTransition)
                    .where(PaymentTransition.payment_id == payment_id)
                    .order_by(PaymentTransition.state_version)
                ).scalars()
            )

    def count(self) -> int:
        with self._session() as db:
            return db.execute(select(func.count()).select_from(Payment)).scalar_one()

    def insert(self, payment: Payment, reason: str) -> Payment:
        """Insert a new payment plus its creation history row.

        Raises `DuplicatePaymentError` when the idempotency key or provider
        reference is already taken.
        """

        validate_creation(payment.status)
        payment.state_version = 0
        try:
            with self._session() as db:
                db.add(payment)
                db.flush()
                db.add(
                    PaymentTransition(
                        payment_id=payment.id,
                        state_version=0,
                        from_status=None,
                        to_status=payment.status,
                        reason=reason,
                    )
                )
                db.commit()
        except IntegrityError as exc:
            raise DuplicatePaymentError(f"payment violates a uniqueness constraint: {exc.orig}") from exc
        return payment

    def transition(
        self,
        payment: Payment,
        new_status: PaymentStatus,
        reason: str,
        **envelope,
    ) -> Payment | None:
        """Apply one validated transition with compare-and-set semantics.

        The write is guarded by `(id, status, state_version)` as read into
        `payment`; returns the refreshed row, or `None` when another writer
        moved the payment first.
        """

        validate_transition(payment.status, new_status)
        values = status_fields(new_status, **envelope)
        from_status = payment.status
        current_version = payment.state_version

        with self._session() as db:
            result = db.execute(
                update(Payment)
                .where(
                    Payment.id == payment.id,
                    Payment.status == from_status,
                    Payment.state_version == current_version,
                )
                .values(
                    state_version=current_version + 1,
                    updated_at=datetime.now(timezone.utc),
                    **values,
                )
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            db.add(
                PaymentTransition(
                    payment_id=payment.id,
                    state_version=current_version + 1,
                    from_status=from_status,
                    to_status=new_status.value,
                    reason=reason,
                )
            )
            db.commit()
            return db.get(Payment, payment.id, populate_existing=True)
