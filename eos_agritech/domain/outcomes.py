"""
Tagged results of a summary fetch.

Every outcome carries a displayable summary, so callers can always render
something; the ``kind`` tag says how much trust to put in it.
"""
from enum import Enum
from typing import Annotated, Literal, Union
from pydantic import BaseModel, Field

from eos_agritech.domain.models import EosSummary


class ErrorKind(str, Enum):
    """Why a fetch produced no usable data."""
    CONFIGURATION = "configuration"
    RATE_LIMITED = "rate_limited"
    PROVIDER = "provider"
    INVALID_RESPONSE = "invalid_response"
    TIMEOUT = "timeout"


class SummaryOk(BaseModel):
    """A summary with at least one observation."""
    kind: Literal["ok"] = "ok"
    summary: EosSummary


class SummaryEmpty(BaseModel):
    """Every attempt answered, but none returned observations."""
    kind: Literal["empty"] = "empty"
    summary: EosSummary


class SummaryFailed(BaseModel):
    """The fetch stopped on an error."""
    kind: Literal["error"] = "error"
    error_kind: ErrorKind
    detail: str
    summary: EosSummary


SummaryOutcome = Annotated[
    Union[SummaryOk, SummaryEmpty, SummaryFailed],
    Field(discriminator="kind"),
]
