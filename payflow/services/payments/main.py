"""HTTP surface for payment creation, confirmation and lookups."""

from datetime import datetime, timezone
from time import perf_counter
from uuid import UUID, uuid4

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from payflow.common.config import settings
from payflow.common.db import SessionLocal
from payflow.common.errors import InvalidPaymentStateError, PaymentNotFoundError, StoreError
from payflow.common.logging import configure_logging, logger, trace_id_ctx
from payflow.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    payment_latency_seconds,
    payment_requests_total,
)
from payflow.common.startup import log_startup_config
from payflow.common.state_machine import PaymentStatus
from payflow.common.tracing import instrument_app, setup_tracing
from payflow.services.payments.schemas import (
    ErrorResponse,
    PaymentConfirmRequest,
    PaymentCreateRequest,
    PaymentResponse,
    PaymentTransitionResponse,
)
from payflow.services.payments.service import PaymentService
from payflow.services.provider_gateway.simulated import SimulatedGateway

API_VERSION = "1.0.0"

configure_logging(settings.service_name, settings.log_level)
setup_tracing(settings.service_name, API_VERSION)
log_startup_config(
    settings,
    [
        "service_name",
        "database_url",
        "provider_authorize_failure_rate",
        "provider_capture_failure_rate",
        "tracing_enabled",
    ],
)
service = PaymentService(SessionLocal, SimulatedGateway.from_settings(settings), service_name=settings.service_name)

app = FastAPI(title="PayFlow Payment API", version=API_VERSION, docs_url="/api/docs")
instrument_app(app)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind a correlation id and record request count and latency."""

    trace_id = request.headers.get("x-correlation-id") or str(uuid4())
    trace_id_ctx.set(trace_id)
    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        response.headers["x-correlation-id"] = trace_id
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    errors: dict[str, str] | None = None,
    error_id: str | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        message=message,
        status=status_code,
        timestamp=datetime.now(timezone.utc),
        path=request.url.path,
        errors=errors,
        error_id=error_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


@app.exception_handler(PaymentNotFoundError)
async def handle_not_found(request: Request, exc: PaymentNotFoundError):
    logger.info("payment lookup failed: %s", exc.message)
    return _error_response(request, 404, exc.message)


@app.exception_handler(InvalidPaymentStateError)
async def handle_invalid_state(request: Request, exc: InvalidPaymentStateError):
    logger.warning("payment state conflict: %s", exc.message)
    return _error_response(request, 409, exc.message)


@app.exception_handler(StoreError)
async def handle_store_error(request: Request, exc: StoreError):
    error_id = str(uuid4())
    logger.error("payment store error [%s]: %s", error_id, exc.message)
    return _error_response(request, 503, "Payment storage is unavailable. Please try again later.", error_id=error_id)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    field_errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        field_errors[field] = error["msg"]
    logger.warning("validation failed for request: %s", field_errors)
    return _error_response(request, 400, "Validation failed", errors=field_errors)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    error_id = str(uuid4())
    logger.exception("unexpected error [%s]", error_id)
    return _error_response(
        request, 500, "An unexpected error occurred. Please try again later.", error_id=error_id
    )


@app.get("/api/v1/payments")
def api_info():
    """Describe the service."""

    return {
        "service": "PayFlow Payment API",
        "version": app.version,
        "description": "Payment processing service",
        "documentation": app.docs_url,
    }


@app.post("/api/v1/payments", response_model=PaymentResponse, status_code=201)
def create_payment(req: PaymentCreateRequest, idempotency_key: str | None = Header(default=None)):
    """Create a payment, or return the one already created for `Idempotency-Key`."""

    payment_requests_total.labels(service=settings.service_name, operation="create").inc()
    with payment_latency_seconds.labels(service=settings.service_name, operation="create").time():
        payment = service.create_payment(
            amount=req.amount,
            currency=req.currency,
            customer_email=req.customer_email,
            customer_id=req.customer_id,
            description=req.description,
            idempotency_key=idempotency_key,
        )
    return PaymentResponse.model_validate(payment)


@app.get("/api/v1/payments/health")
def health():
    """Report engine and store reachability; 503 when degraded."""

    healthy = service.is_healthy()
    body = {
        "status": "UP" if healthy else "DOWN",
        "service": "Payment Service",
        "timestamp": int(datetime.now(timezone.utc).timestamp() * 1000),
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)


@app.post("/api/v1/payments/{payment_id}/confirm", response_model=PaymentResponse)
def confirm_payment(payment_id: UUID, req: PaymentConfirmRequest):
    """Confirm a PENDING payment; provider failures come back as a FAILED payment."""

    payment_requests_total.labels(service=settings.service_name, operation="confirm").inc()
    with payment_latency_seconds.labels(service=settings.service_name, operation="confirm").time():
        payment = service.confirm_payment(str(payment_id), req.payment_method_id)
    logger.info("payment confirmation result status=%s", payment.status)
    return PaymentResponse.model_validate(payment)


@app.get("/api/v1/payments/customer/{email}", response_model=list[PaymentResponse])
def list_customer_payments(email: str):
    """List a customer's payments, newest first."""

    payments = service.list_payments_by_email(email)
    logger.info("found %s payments for customer", len(payments))
    return [PaymentResponse.model_validate(payment) for payment in payments]


@app.get("/api/v1/payments/status/{status}", response_model=list[PaymentResponse])
def list_payments_by_status(status: PaymentStatus):
    """List payments in one status, oldest first."""

    payments = service.list_payments_by_status(status)
    logger.info("found %s payments in status=%s", len(payments), status.value)
    return [PaymentResponse.model_validate(payment) for payment in payments]


@app.get("/api/v1/payments/provider/{provider_reference}", response_model=PaymentResponse)
def get_payment_by_provider_reference(provider_reference: str):
    """Resolve a provider reference back to its payment."""

    return PaymentResponse.model_validate(service.get_payment_by_provider_reference(provider_reference))


@app.get("/api/v1/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: UUID):
    """Fetch one payment."""

    return PaymentResponse.model_validate(service.get_payment(str(payment_id)))


@app.get("/api/v1/payments/{payment_id}/history", response_model=list[PaymentTransitionResponse])
def get_payment_history(payment_id: UUID):
    """Status history of one payment, oldest first."""

    return [PaymentTransitionResponse.model_validate(item) for item in service.get_history(str(payment_id))]


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()
