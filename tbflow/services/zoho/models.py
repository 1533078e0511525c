"""Domain models and exceptions for the Zoho Books integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from tbflow.core.errors import FetchError
from tbflow_io.schema import RawPayload


class ZohoError(FetchError):
    """Base error raised for Zoho Books failures."""


class ZohoAuthError(ZohoError):
    """Raised when the refresh-token exchange with Zoho Accounts fails."""


class ZohoRequestError(ZohoError):
    """Raised when every report request variant was rejected."""


@dataclass(frozen=True, slots=True)
class ReportVariant:
    """One way of asking the trial balance endpoint for a report."""

    name: str
    params: tuple[tuple[str, str], ...] = ()


@dataclass(slots=True)
class FetchOutcome:
    """Report payload plus which variant produced it."""

    payload: RawPayload
    variant: str
    status_code: int
    tried: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProbeResult:
    """Outcome of one variant during a diagnostic probe."""

    variant: str
    status_code: int
    ok: bool
    snippet: str
    content_type: Optional[str] = None


__all__ = [
    "ZohoError",
    "ZohoAuthError",
    "ZohoRequestError",
    "ReportVariant",
    "FetchOutcome",
    "ProbeResult",
]
