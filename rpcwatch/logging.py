"""Structured logging for procedure instrumentation.

Configures structlog the same way for every entry point and defines the
small logger capability the middleware relies on: ``debug``, ``error`` and
``bind`` (deriving a child logger that carries extra context). Any structlog
bound logger satisfies it; ``NullLogger`` is the no-op stand-in.
"""

import re
import sys
from collections.abc import Mapping
from typing import Any, Protocol, cast, runtime_checkable

import structlog
from structlog.types import EventDict, WrappedLogger

# Keys whose values never reach the log output (procedure inputs often carry them)
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "cookie",
    "credential",
    "credentials",
    "access_token",
    "refresh_token",
    "private_key",
    "bearer",
})

BEARER_PATTERN = re.compile(r"(?i)bearer\s+[a-z0-9._\-]+")

LOG_LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
    "CRITICAL": 50,
}


@runtime_checkable
class ProcedureLogger(Protocol):
    """Logger capability consumed by the monitoring middleware."""

    def debug(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...

    def bind(self, **new_values: Any) -> "ProcedureLogger": ...


class NullLogger:
    """Logger that drops everything.

    Used when no logger is configured so handlers can always log through
    ``ctx["logger"]`` without checking for None.
    """

    def debug(self, event: str, **kw: Any) -> None:
        return None

    def info(self, event: str, **kw: Any) -> None:
        return None

    def warning(self, event: str, **kw: Any) -> None:
        return None

    def error(self, event: str, **kw: Any) -> None:
        return None

    def bind(self, **new_values: Any) -> "NullLogger":
        return self

    def __repr__(self) -> str:
        return "NullLogger()"


class PIIRedactor:
    """Processor that masks secrets in log events.

    Sensitive keys are matched by name at any nesting depth; bearer tokens
    embedded in free text are masked as a fallback.
    """

    def __call__(
        self,
        _logger: WrappedLogger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        return cast(EventDict, self._redact(event_dict))

    def _redact(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {
                key: "[REDACTED]" if str(key).lower() in SENSITIVE_KEYS else self._redact(item)
                for key, item in value.items()
            }
        if isinstance(value, list | tuple):
            return [self._redact(item) for item in value]
        if isinstance(value, str):
            return BEARER_PATTERN.sub("Bearer [REDACTED]", value)
        return value


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_pii: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        format: Output format - "json" for production, "console" for development
        redact_pii: Whether to mask secrets in log events
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if redact_pii:
        processors.append(PIIRedactor())

    if format == "json":
        processors.append(structlog.processors.JSONRenderer(default=repr))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVELS.get(level.upper(), 20)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound to the given name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
