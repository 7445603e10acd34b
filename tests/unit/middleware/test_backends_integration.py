"""Middleware against the real OpenTelemetry, Prometheus and structlog backends."""

import asyncio

import pytest
import structlog
from prometheus_client import CollectorRegistry
from structlog.testing import capture_logs

from rpcwatch.errors import ProcedureError
from rpcwatch.instruments import ProcedureInstruments
from rpcwatch.middleware import MonitoringMiddleware
from rpcwatch.outcome import HandledFailure, Success


class TestOpenTelemetryMetrics:
    """trpc.procedures and trpc.time on an SDK meter provider."""

    @pytest.mark.asyncio
    async def test_success_scenario(self, tracer, otel_instruments, collect_points):
        """user.get query resolving Success counts ok=True."""
        middleware = MonitoringMiddleware(tracer=tracer, instruments=otel_instruments)

        await middleware(path="user.get", type="query", next=lambda ctx: Success())

        points = collect_points("trpc.procedures")
        assert len(points) == 1
        assert points[0].value == 1
        assert dict(points[0].attributes) == {"path": "user.get", "type": "query", "ok": True}

    @pytest.mark.asyncio
    async def test_duration_histogram(self, tracer, otel_instruments, collect_points):
        """Each call records one duration tagged with path and type only."""
        middleware = MonitoringMiddleware(tracer=tracer, instruments=otel_instruments)

        await middleware(path="user.get", type="query", next=lambda ctx: Success())
        await middleware(
            path="user.get",
            type="query",
            next=lambda ctx: HandledFailure(ProcedureError("BAD_REQUEST")),
        )

        points = collect_points("trpc.time")
        assert len(points) == 1
        assert points[0].count == 2
        assert dict(points[0].attributes) == {"path": "user.get", "type": "query"}

    @pytest.mark.asyncio
    async def test_concurrent_calls_counted(self, tracer, otel_instruments, collect_points):
        """Concurrent calls share the instruments without losing increments."""
        middleware = MonitoringMiddleware(tracer=tracer, instruments=otel_instruments)

        async def handler(ctx):
            await asyncio.sleep(0)
            return Success()

        await asyncio.gather(
            *(middleware(path="user.list", type="query", next=handler) for _ in range(25))
        )

        points = collect_points("trpc.procedures")
        assert sum(point.value for point in points) == 25

    @pytest.mark.asyncio
    async def test_error_codes_split_series(self, tracer, otel_instruments, collect_points):
        """Different error codes produce separate counter series."""
        middleware = MonitoringMiddleware(tracer=tracer, instruments=otel_instruments)

        for code in ("BAD_REQUEST", "BAD_REQUEST", "INTERNAL_SERVER_ERROR"):
            await middleware(
                path="user.create",
                type="mutation",
                next=lambda ctx, code=code: HandledFailure(ProcedureError(code)),
            )

        by_code = {
            point.attributes["error_code"]: point.value
            for point in collect_points("trpc.procedures")
        }
        assert by_code == {"BAD_REQUEST": 2, "INTERNAL_SERVER_ERROR": 1}


class TestPrometheusInstruments:
    """Prometheus-backed instruments."""

    @pytest.mark.asyncio
    async def test_counts_and_times(self, tracer):
        """Should expose trpc_procedures_total and trpc_time samples."""
        registry = CollectorRegistry()
        middleware = MonitoringMiddleware(
            tracer=tracer,
            instruments=ProcedureInstruments.prometheus(registry),
        )

        async def handler(ctx):
            raise RuntimeError("boom")

        await middleware(path="user.get", type="query", next=lambda ctx: Success())
        with pytest.raises(RuntimeError):
            await middleware(path="user.get", type="query", next=handler)

        ok_count = registry.get_sample_value(
            "trpc_procedures_total",
            {"path": "user.get", "type": "query", "ok": "true", "error_code": ""},
        )
        failed_count = registry.get_sample_value(
            "trpc_procedures_total",
            {"path": "user.get", "type": "query", "ok": "false", "error_code": "UNEXPECTED_ERROR"},
        )
        timed = registry.get_sample_value("trpc_time_count", {"path": "user.get", "type": "query"})
        assert ok_count == 1.0
        assert failed_count == 1.0
        assert timed == 2.0


class TestStructlogLogger:
    """A structlog logger satisfies the logger capability directly."""

    @pytest.mark.asyncio
    async def test_child_logger_context_in_events(self, tracer, fake_instruments):
        """Every log line of a call carries the procedure context."""
        with capture_logs() as logs:
            middleware = MonitoringMiddleware(
                logger=structlog.get_logger("rpc"),
                tracer=tracer,
                instruments=fake_instruments,
            )

            async def handler(ctx):
                ctx["logger"].debug("loading_user")
                return HandledFailure(ProcedureError("SERVICE_UNAVAILABLE", "upstream down"))

            await middleware(path="user.get", type="query", next=handler)

        assert [log["event"] for log in logs] == [
            "procedure_started",
            "loading_user",
            "procedure_internal_error",
            "procedure_completed",
        ]
        assert all(log["procedure"] == {"path": "user.get", "type": "query"} for log in logs)
        error_log = logs[2]
        assert error_log["log_level"] == "error"
        assert error_log["error"]["code"] == "SERVICE_UNAVAILABLE"
