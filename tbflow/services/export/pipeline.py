"""Trial balance export: fetch, normalize, archive."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Callable, Dict, List, Literal, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tbflow.core.errors import TBFlowError
from tbflow.core.logger import get_logger
from tbflow.services.drive.client import ArchiveStore
from tbflow.services.drive.models import ArchivedFile
from tbflow.services.zoho.config import REGIONS
from tbflow.services.zoho.models import FetchOutcome
from tbflow_io.mapping import DEFAULT_ALIASES, ColumnAliases
from tbflow_io.normalize import normalize_payload
from tbflow_io.schema import DEFAULT_SETTINGS, XLSX_MIME, ExtractionSettings
from tbflow_io.sniff import sniff

LOGGER = get_logger()

DEFAULT_WORKERS = 4


class ReportSource(Protocol):
    def fetch_trial_balance(self, org_id: str, from_date: str, to_date: str) -> FetchOutcome:
        """Return the raw report payload for the period."""


class ExportRequest(BaseModel):
    """One region/organization/period to export."""

    model_config = ConfigDict(str_strip_whitespace=True)

    region: str
    org_id: str = Field(min_length=1)
    from_date: date
    to_date: date
    mode: Literal["canonical", "multi"] = "canonical"

    @field_validator("region")
    @classmethod
    def _check_region(cls, value: str) -> str:
        region = value.upper()
        if region not in REGIONS:
            raise ValueError(f"Bad region: {region}")
        return region

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def _check_date_format(cls, value: object) -> object:
        if isinstance(value, str):
            text = value.strip()
            if len(text) != 10 or text[4] != "-" or text[7] != "-":
                raise ValueError("Dates must be YYYY-MM-DD")
            return text
        return value

    @model_validator(mode="after")
    def _check_range(self) -> "ExportRequest":
        if self.to_date < self.from_date:
            raise ValueError("to_date must not be earlier than from_date")
        return self

    @property
    def period(self) -> str:
        return self.from_date.strftime("%Y-%m")

    @property
    def raw_stem(self) -> str:
        return f"TB_{self.region}_{self.period}_RAW"

    @property
    def xlsx_name(self) -> str:
        return f"TB_{self.region}_{self.period}.xlsx"


class ExportResult(BaseModel):
    """Outcome of one export, as shown to the user."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    region: str
    org_id: str
    raw: ArchivedFile
    xlsx: ArchivedFile
    raw_extension: str
    source_type: str
    sheet_names: List[str] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    row_counts: Dict[str, int] = Field(default_factory=dict)
    rows_with_code: int = 0
    rows_without_code: int = 0
    variant: Optional[str] = None
    message: str = ""


def previous_month_range(today: date | None = None) -> tuple[date, date]:
    """First and last day of the month before ``today``."""

    today = today or date.today()
    last = today.replace(day=1) - timedelta(days=1)
    return last.replace(day=1), last


class TrialBalanceExporter:
    """Coordinates Fetch -> Normalize -> Archive for one request at a time.

    ``source_for`` returns the report source for a region; the raw payload is
    always archived before the normalized workbook.
    """

    def __init__(
        self,
        source_for: Callable[[str], ReportSource],
        archive: ArchiveStore,
        *,
        settings: ExtractionSettings | None = None,
        aliases: ColumnAliases | None = None,
        parent_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source_for = source_for
        self.archive = archive
        self.settings = settings or DEFAULT_SETTINGS
        self.aliases = aliases or DEFAULT_ALIASES
        self.parent_id = parent_id
        self.logger = logger or LOGGER

    def run(self, request: ExportRequest) -> ExportResult:
        self.logger.info(
            "export start region=%s org=%s from=%s to=%s mode=%s",
            request.region,
            request.org_id,
            request.from_date,
            request.to_date,
            request.mode,
        )

        # 1. Fetch
        source = self.source_for(request.region)
        outcome = source.fetch_trial_balance(
            request.org_id,
            request.from_date.isoformat(),
            request.to_date.isoformat(),
        )
        payload = outcome.payload
        guess = sniff(payload.content, payload.content_type, payload.content_disposition)

        # 2. Archive raw
        raw = self.archive.upload(
            f"{request.raw_stem}.{guess.extension}",
            guess.mime,
            payload.content,
            self.parent_id,
        )

        # 3. Normalize
        normalized = normalize_payload(payload, request.mode, self.settings, self.aliases)

        # 4. Archive workbook
        xlsx = self.archive.upload(request.xlsx_name, XLSX_MIME, normalized.content, self.parent_id)

        if normalized.ok:
            total = sum(normalized.row_counts.values())
            message = f"Exported {total} rows to {', '.join(normalized.sheet_names)}"
        else:
            message = normalized.diagnostic.message if normalized.diagnostic else "Export degraded"
        self.logger.info(
            "export done region=%s ok=%s raw=%s xlsx=%s",
            request.region,
            normalized.ok,
            raw.name,
            xlsx.name,
        )
        return ExportResult(
            ok=normalized.ok,
            region=request.region,
            org_id=request.org_id,
            raw=raw,
            xlsx=xlsx,
            raw_extension=guess.extension,
            source_type=normalized.source_type,
            sheet_names=normalized.sheet_names,
            columns=normalized.columns,
            row_counts=normalized.row_counts,
            rows_with_code=normalized.rows_with_code,
            rows_without_code=normalized.rows_without_code,
            variant=outcome.variant,
            message=message,
        )


def export_regions(
    exporter: TrialBalanceExporter,
    requests: Sequence[ExportRequest],
    max_workers: int = DEFAULT_WORKERS,
) -> Dict[Tuple[str, str], ExportResult | TBFlowError]:
    """Run one export per request concurrently; failures are returned, not raised.

    Results are keyed by ``(region, org_id)`` in request order.
    """

    if not requests:
        return {}

    def _run(request: ExportRequest) -> ExportResult | TBFlowError:
        try:
            return exporter.run(request)
        except TBFlowError as exc:
            exporter.logger.error("export failed region=%s error=%s", request.region, exc)
            return exc

    workers = max(1, min(max_workers, len(requests)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(_run, requests))
    return {(request.region, request.org_id): outcome for request, outcome in zip(requests, outcomes)}


__all__ = [
    "ExportRequest",
    "ExportResult",
    "ReportSource",
    "TrialBalanceExporter",
    "export_regions",
    "previous_month_range",
]
