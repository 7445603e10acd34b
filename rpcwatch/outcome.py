"""Call metadata and procedure outcome models."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from rpcwatch.errors import ProcedureError, is_internal_error


class ProcedureType(StrEnum):
    """Kind of procedure being invoked."""

    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


class CallMetadata(BaseModel):
    """Identifies the procedure being invoked for the lifetime of one call."""

    model_config = ConfigDict(frozen=True)

    path: str
    type: ProcedureType

    def as_attributes(self) -> dict[str, str]:
        """Return the attribute mapping shared by spans, metrics and logs."""
        return {"path": self.path, "type": self.type.value}


@dataclass(frozen=True)
class Success:
    """The handler completed and produced a result."""

    data: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class HandledFailure:
    """The handler completed but reported a recognized failure."""

    error: ProcedureError

    @property
    def ok(self) -> bool:
        return False

    @property
    def error_code(self) -> str:
        return self.error.code

    @property
    def is_internal(self) -> bool:
        """True if the failure denotes a server-side defect."""
        return is_internal_error(self.error.code)


ProcedureOutcome = Success | HandledFailure
