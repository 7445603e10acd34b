"""rpcwatch: per-call monitoring for remote procedure calls.

Wraps each procedure call in an OpenTelemetry span, counts and times it,
and logs it with structlog, classifying failures as internal (alert-worthy)
or expected client errors.
"""

from rpcwatch.errors import (
    INTERNAL_ERROR_CODES,
    UNEXPECTED_ERROR_CODE,
    ErrorClassification,
    ErrorCode,
    ProcedureError,
    classify_error_code,
    is_internal_error,
)
from rpcwatch.instruments import ProcedureInstruments, get_instruments, set_instruments
from rpcwatch.logging import NullLogger, ProcedureLogger
from rpcwatch.middleware import MonitoringMiddleware, create_monitoring_middleware
from rpcwatch.outcome import CallMetadata, HandledFailure, ProcedureOutcome, ProcedureType, Success
from rpcwatch.procedure import Procedure

__all__ = [
    "INTERNAL_ERROR_CODES",
    "UNEXPECTED_ERROR_CODE",
    "CallMetadata",
    "ErrorClassification",
    "ErrorCode",
    "HandledFailure",
    "MonitoringMiddleware",
    "NullLogger",
    "Procedure",
    "ProcedureError",
    "ProcedureInstruments",
    "ProcedureLogger",
    "ProcedureOutcome",
    "ProcedureType",
    "Success",
    "classify_error_code",
    "create_monitoring_middleware",
    "get_instruments",
    "is_internal_error",
    "set_instruments",
]
