"""OpenTelemetry tracing setup for procedure spans.

Spans are named ``trpc/<path> (<type>)`` and created from a single
process-wide tracer in the ``trpc`` namespace.
"""

import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from rpcwatch.outcome import CallMetadata

# Instrumentation scope for tracer and meter
INSTRUMENTATION_NAME = "trpc"

_tracer: Tracer | None = None


def setup_tracing(
    service_name: str = "rpcwatch",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> Tracer:
    """Install an SDK tracer provider and return the procedure tracer.

    Args:
        service_name: Name to identify this service in traces
        otlp_endpoint: OTLP gRPC endpoint (e.g., "localhost:4317")
                       Falls back to OTEL_EXPORTER_OTLP_ENDPOINT env var
        console_export: Also export spans to console (for debugging)

    Returns:
        Configured Tracer instance
    """
    global _tracer

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))

    endpoint = otlp_endpoint or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = provider.get_tracer(INSTRUMENTATION_NAME)
    return _tracer


def get_tracer() -> Tracer:
    """Get the configured tracer, or the global API tracer if not initialized."""
    if _tracer is None:
        return trace.get_tracer(INSTRUMENTATION_NAME)
    return _tracer


def reset_tracer() -> None:
    """Forget the configured tracer (the global provider is left untouched)."""
    global _tracer
    _tracer = None


def span_name(meta: CallMetadata) -> str:
    """Build the span name for a procedure call."""
    return f"{INSTRUMENTATION_NAME}/{meta.path} ({meta.type.value})"


def record_exception(span: Span, exception: BaseException) -> None:
    """Record an escaped exception on a span and mark it failed."""
    span.record_exception(exception, escaped=True)
    span.set_status(Status(StatusCode.ERROR, str(exception) or type(exception).__name__))
