"""Observability configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["json", "console"]
MetricsBackend = Literal["otel", "prometheus"]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    enabled: bool = Field(default=True, description="Log procedure calls")
    level: LogLevel = Field(default="INFO", description="Log level")
    format: LogFormat = Field(default="json", description="Output format")
    redact_pii: bool = Field(default=True, description="Mask secrets in log events")
    logger_name: str = Field(default="rpcwatch.procedures", description="Name of the procedure logger")


class TracingConfig(BaseModel):
    """Distributed tracing configuration."""

    enabled: bool = Field(default=True, description="Install an SDK tracer provider")
    otlp_endpoint: str | None = Field(default=None, description="OTLP exporter endpoint")
    console_export: bool = Field(default=False, description="Print spans to the console")


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = Field(default=True, description="Install a metrics backend")
    backend: MetricsBackend = Field(default="otel", description="Instrument backend")
    otlp_endpoint: str | None = Field(default=None, description="OTLP exporter endpoint")
    console_export: bool = Field(default=False, description="Print metrics to the console")
    export_interval_millis: int = Field(default=10000, ge=100, description="Export period")
    port: int | None = Field(
        default=None,
        ge=1,
        le=65535,
        description="Prometheus metrics server port (prometheus backend only)",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")
    tracing: TracingConfig = Field(default_factory=TracingConfig, description="Tracing settings")
    metrics: MetricsConfig = Field(default_factory=MetricsConfig, description="Metrics settings")
