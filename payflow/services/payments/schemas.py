"""API request/response schemas for payment endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.networks import validate_email


class PaymentCreateRequest(BaseModel):
    """Payment creation payload; the idempotency key travels in a header."""

    amount: Decimal = Field(gt=0, max_digits=19, decimal_places=2)
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")
    customer_email: str = Field(json_schema_extra={"format": "email"})
    customer_id: str | None = None
    description: str | None = None

    @field_validator("customer_email")
    @classmethod
    def check_customer_email(cls, value: str) -> str:
        # Stored exactly as sent; listing by customer matches on this string.
        validate_email(value)
        return value


class PaymentConfirmRequest(BaseModel):
    """Confirmation payload naming the payment method to charge."""

    model_config = ConfigDict(str_strip_whitespace=True)

    payment_method_id: str = Field(min_length=1)


class PaymentResponse(BaseModel):
    """Full payment projection returned by every payment endpoint."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Decimal
    currency: str
    status: str
    customer_id: str | None
    customer_email: str
    description: str | None
    payment_method_id: str | None
    provider_reference: str | None
    failure_reason: str | None
    created_at: datetime
    completed_at: datetime | None


class PaymentTransitionResponse(BaseModel):
    """One entry of a payment's status history."""

    model_config = ConfigDict(from_attributes=True)

    from_status: str | None
    to_status: str
    reason: str
    created_at: datetime


class ErrorResponse(BaseModel):
    """Envelope for every non-2xx response."""

    message: str
    status: int
    timestamp: datetime
    path: str
    errors: dict[str, str] | None = None
    error_id: str | None = None
