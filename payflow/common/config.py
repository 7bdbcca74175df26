"""Central environment-driven settings for the payment service.

The process loads this once at startup. Behavior of the simulated provider and
the observability stack is controlled by environment variables (see
`.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class PayflowSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payflow-api"
    log_level: str = "INFO"
    database_url: str
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    provider_authorize_failure_rate: float = 0.10
    provider_capture_failure_rate: float = 0.05
    provider_min_latency_ms: int = 100
    provider_max_latency_ms: int = 500
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = PayflowSettings()
