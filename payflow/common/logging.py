"""JSON logging that tags every line with the request and payment being handled."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")
idempotency_key_ctx: ContextVar[str] = ContextVar("idempotency_key", default="")

_CONTEXT_FIELDS = {
    "trace_id": trace_id_ctx,
    "payment_id": payment_id_ctx,
    "idempotency_key": idempotency_key_ctx,
}
LOG_FORMAT = " ".join(
    f"%({field})s" for field in ("asctime", "levelname", "name", "service_name", *_CONTEXT_FIELDS, "message")
)


class ContextFilter(logging.Filter):
    """Stamp each record with the service name and the current payment context."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        for field, var in _CONTEXT_FIELDS.items():
            setattr(record, field, var.get())
        return True


def bind_payment(payment_id: str, idempotency_key: str | None = None) -> None:
    """Attach a payment to every log line emitted for the rest of the request."""

    payment_id_ctx.set(payment_id)
    if idempotency_key:
        idempotency_key_ctx.set(idempotency_key)


def build_handler(service_name: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter(service_name))
    handler.setFormatter(JsonFormatter(LOG_FORMAT, rename_fields={"asctime": "timestamp", "levelname": "level"}))
    return handler


def configure_logging(service_name: str, level: str = "INFO") -> None:
    """Route all logging through one JSON stdout handler; call once per process."""

    root = logging.getLogger()
    root.handlers = [build_handler(service_name)]
    root.setLevel(level)


logger = logging.getLogger("payflow")
