"""OpenTelemetry wiring: OTLP export, request spans and provider-call spans."""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from payflow.common.config import settings


# Resolves to the registered provider once `setup_tracing` runs; a no-op until then.
tracer = trace.get_tracer("payflow.payments")


def setup_tracing(service_name: str, service_version: str) -> None:
    """Register an OTLP/HTTP tracer provider unless tracing is switched off."""

    if not settings.tracing_enabled:
        return
    resource = Resource.create({"service.name": service_name, "service.version": service_version})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    """Wrap each request in a server span; provider spans nest beneath it."""

    if not settings.tracing_enabled:
        return
    FastAPIInstrumentor.instrument_app(app, excluded_urls="/metrics,/api/v1/payments/health")
