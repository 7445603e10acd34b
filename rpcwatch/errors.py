"""Procedure error codes and failure classification.

Handled failures carry a tRPC-style error code. A small closed set of codes
denotes a server-side defect; everything else is an expected client or
validation error that should not page anyone.
"""

from enum import Enum, StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Known procedure error codes."""

    PARSE_ERROR = "PARSE_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_SUPPORTED = "METHOD_NOT_SUPPORTED"
    TIMEOUT = "TIMEOUT"
    CONFLICT = "CONFLICT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    UNPROCESSABLE_CONTENT = "UNPROCESSABLE_CONTENT"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    CLIENT_CLOSED_REQUEST = "CLIENT_CLOSED_REQUEST"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    BAD_GATEWAY = "BAD_GATEWAY"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"


# Codes that indicate a server-side defect (O(1) lookup)
INTERNAL_ERROR_CODES: frozenset[str] = frozenset({
    ErrorCode.INTERNAL_SERVER_ERROR.value,
    ErrorCode.NOT_IMPLEMENTED.value,
    ErrorCode.BAD_GATEWAY.value,
    ErrorCode.SERVICE_UNAVAILABLE.value,
    ErrorCode.GATEWAY_TIMEOUT.value,
})

# Metric error_code used when the handler raised instead of returning
UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"

HTTP_STATUS_BY_CODE: dict[str, int] = {
    ErrorCode.PARSE_ERROR.value: 400,
    ErrorCode.BAD_REQUEST.value: 400,
    ErrorCode.UNAUTHORIZED.value: 401,
    ErrorCode.PAYMENT_REQUIRED.value: 402,
    ErrorCode.FORBIDDEN.value: 403,
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.METHOD_NOT_SUPPORTED.value: 405,
    ErrorCode.TIMEOUT.value: 408,
    ErrorCode.CONFLICT.value: 409,
    ErrorCode.PRECONDITION_FAILED.value: 412,
    ErrorCode.PAYLOAD_TOO_LARGE.value: 413,
    ErrorCode.UNSUPPORTED_MEDIA_TYPE.value: 415,
    ErrorCode.UNPROCESSABLE_CONTENT.value: 422,
    ErrorCode.TOO_MANY_REQUESTS.value: 429,
    ErrorCode.CLIENT_CLOSED_REQUEST.value: 499,
    ErrorCode.INTERNAL_SERVER_ERROR.value: 500,
    ErrorCode.NOT_IMPLEMENTED.value: 501,
    ErrorCode.BAD_GATEWAY.value: 502,
    ErrorCode.SERVICE_UNAVAILABLE.value: 503,
    ErrorCode.GATEWAY_TIMEOUT.value: 504,
}


class ErrorClassification(str, Enum):
    """Severity bucket of a failed procedure call."""

    INTERNAL = "internal"
    CLIENT = "client"
    UNEXPECTED = "unexpected"


def is_internal_error(code: str) -> bool:
    """Return True if the error code denotes a server-side defect."""
    return code in INTERNAL_ERROR_CODES


def classify_error_code(code: str) -> ErrorClassification:
    """Classify a handled failure by its error code.

    Unknown codes are treated as client errors.
    """
    if is_internal_error(code):
        return ErrorClassification.INTERNAL
    return ErrorClassification.CLIENT


class ProcedureError(Exception):
    """Structured failure reported by a procedure handler.

    Attributes:
        code: Error code (see ErrorCode); unknown codes are allowed
        message: Human readable description
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        code: str,
        message: str | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.code = str(code)
        self.message = message or self.code
        self.cause = cause
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def http_status(self) -> int:
        """HTTP status equivalent of the code (500 for unknown codes)."""
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    @property
    def classification(self) -> ErrorClassification:
        """Severity bucket for this error."""
        return classify_error_code(self.code)

    def to_log_dict(self) -> dict[str, Any]:
        """Serialize the error for structured log output."""
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "http_status": self.http_status,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __repr__(self) -> str:
        return f"ProcedureError(code={self.code!r}, message={self.message!r})"
