"""Process-wide metric instruments for procedure calls.

Two instruments are written by every call:

    trpc.procedures  counter    path, type, ok, error_code?
    trpc.time        histogram  path, type   (milliseconds)

They are created once (``get_instruments``) and handed to the middleware,
which never synchronizes writes itself; the backing OpenTelemetry or
Prometheus instrument is safe for concurrent use.
"""

import os
import threading
import weakref
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from prometheus_client import REGISTRY, CollectorRegistry, start_http_server
from prometheus_client import Counter as PromCounter
from prometheus_client import Histogram as PromHistogram

from rpcwatch.tracing import INSTRUMENTATION_NAME

Attributes = Mapping[str, str | bool]

PROCEDURES_METRIC = "trpc.procedures"
TIME_METRIC = "trpc.time"

PROCEDURE_LABELS = ("path", "type", "ok", "error_code")
TIME_LABELS = ("path", "type")

# Milliseconds
TIME_BUCKETS_MS = (5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0)


class Counter(Protocol):
    """Monotonic counter."""

    def add(self, amount: int | float, attributes: Attributes | None = None) -> None: ...


class Histogram(Protocol):
    """Distribution-recording instrument."""

    def record(self, amount: int | float, attributes: Attributes | None = None) -> None: ...


@dataclass(frozen=True)
class ProcedureInstruments:
    """Call counter and duration histogram shared by all calls."""

    counter: Counter
    histogram: Histogram

    @classmethod
    def from_meter(cls, meter: Meter) -> "ProcedureInstruments":
        """Create the instruments on an OpenTelemetry meter."""
        return cls(
            counter=meter.create_counter(
                PROCEDURES_METRIC,
                unit="1",
                description="Number of procedure calls",
            ),
            histogram=meter.create_histogram(
                TIME_METRIC,
                unit="ms",
                description="Procedure call duration",
            ),
        )

    @classmethod
    def prometheus(cls, registry: CollectorRegistry = REGISTRY) -> "ProcedureInstruments":
        """Create the instruments on a Prometheus registry."""
        return cls(
            counter=PrometheusCounter(
                PromCounter(
                    "trpc_procedures",
                    "Number of procedure calls",
                    labelnames=PROCEDURE_LABELS,
                    registry=registry,
                ),
            ),
            histogram=PrometheusHistogram(
                PromHistogram(
                    "trpc_time",
                    "Procedure call duration in milliseconds",
                    labelnames=TIME_LABELS,
                    buckets=TIME_BUCKETS_MS,
                    registry=registry,
                ),
            ),
        )


def _label_values(labelnames: tuple[str, ...], attributes: Attributes | None) -> dict[str, str]:
    attributes = attributes or {}
    values: dict[str, str] = {}
    for name in labelnames:
        value = attributes.get(name, "")
        values[name] = str(value).lower() if isinstance(value, bool) else str(value)
    return values


class PrometheusCounter:
    """Counter protocol backed by a labelled prometheus_client Counter."""

    def __init__(self, counter: PromCounter) -> None:
        self._counter = counter

    def add(self, amount: int | float, attributes: Attributes | None = None) -> None:
        self._counter.labels(**_label_values(PROCEDURE_LABELS, attributes)).inc(amount)


class PrometheusHistogram:
    """Histogram protocol backed by a labelled prometheus_client Histogram."""

    def __init__(self, histogram: PromHistogram) -> None:
        self._histogram = histogram

    def record(self, amount: int | float, attributes: Attributes | None = None) -> None:
        self._histogram.labels(**_label_values(TIME_LABELS, attributes)).observe(amount)


_instruments: ProcedureInstruments | None = None
_instruments_lock = threading.Lock()

# Prometheus instruments already registered, per registry
_prometheus_instruments: weakref.WeakKeyDictionary[CollectorRegistry, ProcedureInstruments] = (
    weakref.WeakKeyDictionary()
)


def get_instruments() -> ProcedureInstruments:
    """Get the process-wide instruments, creating them on first use.

    Without an explicit ``set_instruments`` call they are created on the
    global OpenTelemetry meter, which is a no-op until a MeterProvider is
    installed.
    """
    global _instruments
    if _instruments is None:
        with _instruments_lock:
            if _instruments is None:
                _instruments = ProcedureInstruments.from_meter(metrics.get_meter(INSTRUMENTATION_NAME))
    return _instruments


def set_instruments(instruments: ProcedureInstruments) -> None:
    """Replace the process-wide instruments."""
    global _instruments
    with _instruments_lock:
        _instruments = instruments


def reset_instruments() -> None:
    """Drop the process-wide instruments so the next lookup recreates them."""
    global _instruments
    with _instruments_lock:
        _instruments = None


def setup_metrics(
    service_name: str = "rpcwatch",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    export_interval_millis: int = 10000,
    readers: list[MetricReader] | None = None,
) -> ProcedureInstruments:
    """Install an SDK meter provider and create the instruments on it.

    Args:
        service_name: Name to identify this service in metrics
        otlp_endpoint: OTLP gRPC endpoint, falls back to OTEL_EXPORTER_OTLP_ENDPOINT
        console_export: Also export metrics to console (for debugging)
        export_interval_millis: Export period for periodic readers
        readers: Extra metric readers (e.g. an in-memory reader)

    Returns:
        The process-wide instruments
    """
    metric_readers: list[MetricReader] = list(readers or [])

    endpoint = otlp_endpoint or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        metric_readers.append(
            PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=endpoint, insecure=True),
                export_interval_millis=export_interval_millis,
            )
        )

    if console_export:
        metric_readers.append(
            PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=export_interval_millis,
            )
        )

    provider = MeterProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        metric_readers=metric_readers,
    )
    metrics.set_meter_provider(provider)

    instruments = ProcedureInstruments.from_meter(provider.get_meter(INSTRUMENTATION_NAME))
    set_instruments(instruments)
    return instruments


def setup_prometheus_metrics(
    registry: CollectorRegistry = REGISTRY,
    port: int | None = None,
) -> ProcedureInstruments:
    """Create Prometheus-backed instruments and optionally serve /metrics.

    A registry accepts each metric name once, so repeated calls with the same
    registry reuse the instruments created by the first call and do not start
    a second HTTP server.

    Args:
        registry: Registry to register the instruments on
        port: If given, start the prometheus_client HTTP server on this port

    Returns:
        The process-wide instruments
    """
    with _instruments_lock:
        instruments = _prometheus_instruments.get(registry)
        if instruments is None:
            instruments = ProcedureInstruments.prometheus(registry)
            _prometheus_instruments[registry] = instruments
            if port is not None:
                start_http_server(port, registry=registry)
    set_instruments(instruments)
    return instruments
