"""Monitoring middleware for procedure calls.

Wraps one procedure execution in a span, counts it, times it and logs it,
separating internal failures (worth an alert) from expected client errors.
The wrapped call's return value or exception reaches the caller unchanged.

Ordering within one call is fixed:

    start log -> handler -> classification -> count metric
    -> completion log -> span end -> duration record

Usage:

    middleware = create_monitoring_middleware(logger=get_logger("rpc"))

    outcome = await middleware(
        path="user.get",
        type="query",
        next=lambda ctx: resolve_user(ctx),
        ctx={"user_id": 42},
    )
"""

import contextlib
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from opentelemetry.trace import Span, Tracer

from rpcwatch.errors import UNEXPECTED_ERROR_CODE, ErrorClassification
from rpcwatch.instruments import ProcedureInstruments, get_instruments
from rpcwatch.logging import NullLogger, ProcedureLogger, get_logger
from rpcwatch.outcome import CallMetadata, HandledFailure, ProcedureOutcome, ProcedureType
from rpcwatch.tracing import get_tracer, record_exception, span_name

logger = get_logger(__name__)

NextFn = Callable[[dict[str, Any]], ProcedureOutcome | Awaitable[ProcedureOutcome]]
InternalErrorHook = Callable[[BaseException], Any]


class MonitoringMiddleware:
    """Per-call instrumentation around a procedure continuation.

    Tracer and instruments are process-wide and only read here; the
    middleware itself holds no per-call state, so one instance serves any
    number of concurrent calls.
    """

    def __init__(
        self,
        *,
        on_internal_error: InternalErrorHook | None = None,
        logger: ProcedureLogger | None = None,
        tracer: Tracer | None = None,
        instruments: ProcedureInstruments | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Create the middleware.

        Args:
            on_internal_error: Called with the exception when the handler raises
            logger: Base logger; a child bound to the call is derived per call
            tracer: Tracer for procedure spans (defaults to the process tracer)
            instruments: Counter and histogram (defaults to the process instruments)
            clock: Monotonic clock in seconds
        """
        self.on_internal_error = on_internal_error
        self.logger = logger
        self._tracer = tracer
        self._instruments = instruments
        self._clock = clock

    @property
    def tracer(self) -> Tracer:
        return self._tracer or get_tracer()

    @property
    def instruments(self) -> ProcedureInstruments:
        return self._instruments or get_instruments()

    async def __call__(
        self,
        *,
        path: str,
        type: ProcedureType | str,
        next: NextFn,
        ctx: Mapping[str, Any] | None = None,
        input: Any = None,
    ) -> ProcedureOutcome:
        """Run ``next`` under instrumentation and return its outcome unchanged.

        Args:
            path: Dotted procedure path, e.g. "user.get"
            type: query, mutation or subscription
            next: Continuation performing the call; receives the context
                  augmented with ``logger`` and returns an outcome (or an
                  awaitable of one)
            ctx: Caller context passed through to ``next``
            input: Procedure input, only used for the start log

        Returns:
            Whatever ``next`` returned

        Raises:
            Whatever ``next`` raised, including cancellation
        """
        start = self._clock()
        meta = CallMetadata(path=path, type=ProcedureType(type))
        attributes = meta.as_attributes()
        instruments = self.instruments
        procedure_logger = self._child_logger(attributes)

        with self.tracer.start_as_current_span(
            span_name(meta),
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            _safely(span.set_attributes, attributes)
            try:
                _safely(
                    procedure_logger.debug,
                    "procedure_started",
                    path=meta.path,
                    type=meta.type.value,
                    input=input,
                )

                outcome = next({**(ctx or {}), "logger": procedure_logger})
                if inspect.isawaitable(outcome):
                    outcome = await outcome

                self._observe_outcome(span, outcome, attributes, procedure_logger, instruments)

                _safely(
                    procedure_logger.debug,
                    "procedure_completed",
                    path=meta.path,
                    type=meta.type.value,
                    ok=getattr(outcome, "ok", True),
                    duration_ms=self._elapsed_ms(start),
                )
                return outcome
            except BaseException as exc:
                # control-flow signals and cancellation count as unexpected too
                self._observe_exception(span, exc, attributes, procedure_logger, instruments)
                await self._notify_internal_error(exc)
                raise
            finally:
                _safely(span.end)
                _safely(instruments.histogram.record, self._elapsed_ms(start), attributes)

    def _child_logger(self, attributes: dict[str, str]) -> ProcedureLogger:
        if self.logger is None:
            return NullLogger()
        try:
            return self.logger.bind(procedure=dict(attributes))
        except Exception as exc:
            _report_failure("bind_logger", exc)
            return NullLogger()

    def _observe_outcome(
        self,
        span: Span,
        outcome: ProcedureOutcome,
        attributes: dict[str, str],
        procedure_logger: ProcedureLogger,
        instruments: ProcedureInstruments,
    ) -> None:
        _safely(span.set_attributes, {"ok": getattr(outcome, "ok", True)})

        if isinstance(outcome, HandledFailure):
            internal = outcome.is_internal
            _safely(
                span.set_attributes,
                {"error_code": outcome.error_code, "internal_error": internal},
            )
            if internal:
                _safely(
                    procedure_logger.error,
                    "procedure_internal_error",
                    error=outcome.error.to_log_dict(),
                    classification=ErrorClassification.INTERNAL.value,
                )
            _safely(
                instruments.counter.add,
                1,
                {**attributes, "error_code": outcome.error_code, "ok": False},
            )
        else:
            _safely(instruments.counter.add, 1, {**attributes, "ok": True})

    def _observe_exception(
        self,
        span: Span,
        exc: BaseException,
        attributes: dict[str, str],
        procedure_logger: ProcedureLogger,
        instruments: ProcedureInstruments,
    ) -> None:
        _safely(span.set_attributes, {"ok": False, "unexpected_error": True})
        _safely(record_exception, span, exc)
        _safely(
            procedure_logger.error,
            "procedure_unexpected_error",
            error=exc,
            error_type=type(exc).__name__,
            classification=ErrorClassification.UNEXPECTED.value,
            exc_info=exc,
        )
        _safely(
            instruments.counter.add,
            1,
            {**attributes, "ok": False, "error_code": UNEXPECTED_ERROR_CODE},
        )

    async def _notify_internal_error(self, exc: BaseException) -> None:
        if self.on_internal_error is None:
            return
        try:
            result = self.on_internal_error(exc)
            if inspect.isawaitable(result):
                await result
        except BaseException as hook_exc:
            _report_failure("on_internal_error", hook_exc)

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock() - start) * 1000.0


def _safely(action: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Run an emission step; a failure is logged and never propagated."""
    try:
        action(*args, **kwargs)
    except Exception as exc:
        _report_failure(getattr(action, "__qualname__", repr(action)), exc)


def _report_failure(action: str, exc: BaseException) -> None:
    with contextlib.suppress(Exception):
        logger.warning("instrumentation_failed", action=action, error=repr(exc))


def create_monitoring_middleware(
    on_internal_error: InternalErrorHook | None = None,
    logger: ProcedureLogger | None = None,
    *,
    tracer: Tracer | None = None,
    instruments: ProcedureInstruments | None = None,
) -> MonitoringMiddleware:
    """Create a middleware monitoring procedures with OpenTelemetry.

    Args:
        on_internal_error: Hook notified when a handler raises
        logger: Logger used for debug and error logs; omitted disables logging

    Returns:
        Middleware ready to be used on procedures
    """
    return MonitoringMiddleware(
        on_internal_error=on_internal_error,
        logger=logger,
        tracer=tracer,
        instruments=instruments,
    )
