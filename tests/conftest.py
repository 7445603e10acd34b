"""Shared test fixtures for the rpcwatch test suite."""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Tracer

from rpcwatch.instruments import ProcedureInstruments, reset_instruments
from rpcwatch.middleware import MonitoringMiddleware
from rpcwatch.tracing import reset_tracer


class RecordingLogger:
    """Logger double that records (level, event, fields) tuples.

    Children created with ``bind`` share the parent's record list and carry
    the merged context, like a structlog bound logger.
    """

    def __init__(
        self,
        context: dict[str, Any] | None = None,
        records: list[tuple[str, str, dict[str, Any]]] | None = None,
    ) -> None:
        self.context = context or {}
        self.records = records if records is not None else []

    def bind(self, **new_values: Any) -> "RecordingLogger":
        return RecordingLogger({**self.context, **new_values}, self.records)

    def debug(self, event: str, **kw: Any) -> None:
        self.records.append(("debug", event, {**self.context, **kw}))

    def error(self, event: str, **kw: Any) -> None:
        self.records.append(("error", event, {**self.context, **kw}))

    def levels(self, level: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [record for record in self.records if record[0] == level]


class RecordingCounter:
    """Counter double recording every add() call."""

    def __init__(self) -> None:
        self.calls: list[tuple[float, dict[str, Any]]] = []

    def add(self, amount: float, attributes: Any = None) -> None:
        self.calls.append((amount, dict(attributes or {})))


class RecordingHistogram:
    """Histogram double recording every record() call."""

    def __init__(self) -> None:
        self.calls: list[tuple[float, dict[str, Any]]] = []

    def record(self, amount: float, attributes: Any = None) -> None:
        self.calls.append((amount, dict(attributes or {})))


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """In-memory exporter receiving every finished span."""
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter: InMemorySpanExporter) -> Tracer:
    """SDK tracer exporting synchronously to the in-memory exporter."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("trpc")


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    """In-memory metric reader."""
    return InMemoryMetricReader()


@pytest.fixture
def otel_instruments(metric_reader: InMemoryMetricReader) -> ProcedureInstruments:
    """Real OpenTelemetry instruments read through the in-memory reader."""
    provider = MeterProvider(metric_readers=[metric_reader])
    return ProcedureInstruments.from_meter(provider.get_meter("trpc"))


@pytest.fixture
def fake_instruments() -> ProcedureInstruments:
    """Recording counter and histogram."""
    return ProcedureInstruments(counter=RecordingCounter(), histogram=RecordingHistogram())


@pytest.fixture
def recording_logger() -> RecordingLogger:
    """Logger double shared by the middleware and the assertions."""
    return RecordingLogger()


@pytest.fixture
def middleware(
    tracer: Tracer,
    fake_instruments: ProcedureInstruments,
    recording_logger: RecordingLogger,
) -> MonitoringMiddleware:
    """Middleware wired to test doubles."""
    return MonitoringMiddleware(
        logger=recording_logger,
        tracer=tracer,
        instruments=fake_instruments,
    )


@pytest.fixture
def collect_points(metric_reader: InMemoryMetricReader) -> Callable[[str], list[Any]]:
    """Return a function collecting the data points of one metric by name."""

    def _collect(name: str) -> list[Any]:
        data = metric_reader.get_metrics_data()
        points: list[Any] = []
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    return _collect


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "test.toml": "[observability.logging]\\nlevel = 'DEBUG'",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            (test_config_dir / filename).write_text(content)

    return _create_toml_files


class EnvOverrideContext:
    """Context manager for temporarily setting environment variables."""

    def __init__(self, overrides: dict[str, str]) -> None:
        self.overrides = overrides
        self.original_env: dict[str, str | None] = {}

    def __enter__(self) -> None:
        for key, value in self.overrides.items():
            self.original_env[key] = os.environ.get(key)
            os.environ[key] = value

    def __exit__(self, *args: Any) -> None:
        for key in self.overrides:
            original = self.original_env[key]
            if original is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = original


@pytest.fixture
def env_override() -> Callable[[dict[str, str]], EnvOverrideContext]:
    """Temporarily set environment variables.

    Usage:
        def test_something(env_override):
            with env_override({"RPCWATCH_APP_NAME": "svc"}):
                ...
    """
    return EnvOverrideContext


@pytest.fixture(autouse=True)
def isolated_config(
    test_config_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Read config from the empty temporary dir and clear the settings cache."""
    from rpcwatch.config import get_settings

    monkeypatch.setenv("RPCWATCH_CONFIG_DIR", str(test_config_dir))
    monkeypatch.setenv("RPCWATCH_ENV", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_observability() -> Generator[None, None, None]:
    """Reset structlog and the process-wide tracer/instruments after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    reset_instruments()
    reset_tracer()
