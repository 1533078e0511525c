"""Shared data structures for the extraction pipeline."""

# Module responsibilities:
# - Define the request-scoped records passed between sniffing, extraction, mapping and building.
# - Hold the tunable extraction defaults in one frozen settings object.
# - Describe diagnostic outcomes so every stage can degrade to an Info sheet instead of raising.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple, Union

Extension = Literal["xlsx", "xls", "csv", "pdf", "json"]
BuildMode = Literal["canonical", "multi"]
Scalar = Union[str, int, float, bool, Decimal, None]
FlatRecord = Dict[str, Scalar]

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIME = "application/vnd.ms-excel"
CSV_MIME = "text/csv"
PDF_MIME = "application/pdf"
JSON_MIME = "application/json"

MAX_SHEET_NAME = 31
CANONICAL_SHEET = "Trial Balance"
CANONICAL_COLUMNS: Tuple[str, ...] = (
    "name",
    "account_code",
    "net_debit_total",
    "net_credit_total",
)

DEFAULT_NOISY_PATTERNS: Tuple[str, ...] = (
    r"account_transactions",
    r"previous_values",
    r"account_type_col_span_list",
    r"columns",
    r"history",
    r"audit",
)


@dataclass(frozen=True)
class RawPayload:
    """Bytes received from the upstream report endpoint plus its headers."""

    content: bytes
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None


@dataclass(frozen=True)
class FormatGuess:
    """Sniffed file format of a payload."""

    extension: Extension
    mime: str


@dataclass(frozen=True)
class ExtractionSettings:
    """Tunable limits and scoring weights for table discovery.

    The defaults reproduce the behaviour of the production exporter; they are
    hand-tuned values, not derived ones.
    """

    max_depth: int = 4
    max_cell_chars: int = 32000
    truncation_marker: str = "…(truncated)"
    noisy_patterns: Tuple[str, ...] = DEFAULT_NOISY_PATTERNS
    path_chars: int = 64
    trial_balance_bonus: int = 10000
    values_bonus: int = 5000
    rows_bonus: int = 2000
    top_k: int = 8
    allow_substring_match: bool = True


DEFAULT_SETTINGS = ExtractionSettings()


@dataclass
class CandidateTable:
    """Array of records discovered while walking a document."""

    name: str
    path: str
    rows: List[FlatRecord]
    size: int


@dataclass(slots=True)
class MappedRow:
    """Trial balance row projected onto the canonical four columns."""

    account_name: Optional[str] = None
    account_code: Optional[str] = None
    net_debit_total: Optional[Decimal] = None
    net_credit_total: Optional[Decimal] = None

    def as_cells(self) -> List[object]:
        """Return the row in canonical column order; missing values become empty cells."""

        return [
            self.account_name,
            self.account_code,
            self.net_debit_total,
            self.net_credit_total,
        ]


class DiagnosticKind(str, Enum):
    """Reasons an export produced an Info sheet instead of data."""

    PARSE_FAILURE = "parse_failure"
    NO_TABLE_FOUND = "no_table_found"
    UPSTREAM_ERROR = "upstream_error"
    UNSUPPORTED_FORMAT = "unsupported_format"
    NO_MAPPABLE_ROWS = "no_mappable_rows"
    EMPTY_OUTPUT = "empty_output"


@dataclass
class Diagnostic:
    """Failure description rendered into a fallback sheet."""

    kind: DiagnosticKind
    title: str
    details: List[Tuple[str, object]] = field(default_factory=list)

    @property
    def sheet_name(self) -> str:
        if self.kind is DiagnosticKind.UPSTREAM_ERROR:
            return "Zoho Error"
        return "Info"

    @property
    def message(self) -> str:
        """Single-line summary used in logs and CLI output."""

        parts = [self.title]
        parts.extend(f"{label}={value}" for label, value in self.details[:3])
        return "; ".join(str(part) for part in parts)


@dataclass
class NormalizedWorkbook:
    """Spreadsheet produced from one payload plus descriptive metadata."""

    content: bytes
    source_type: Extension
    mode: BuildMode
    sheet_names: List[str]
    row_counts: Dict[str, int]
    rows_with_code: int = 0
    rows_without_code: int = 0
    substring_matches: int = 0
    diagnostic: Optional[Diagnostic] = None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None

    @property
    def columns(self) -> List[str]:
        if self.mode == "canonical" and self.ok:
            return list(CANONICAL_COLUMNS)
        return []


__all__ = [
    "Extension",
    "BuildMode",
    "Scalar",
    "FlatRecord",
    "XLSX_MIME",
    "XLS_MIME",
    "CSV_MIME",
    "PDF_MIME",
    "JSON_MIME",
    "MAX_SHEET_NAME",
    "CANONICAL_SHEET",
    "CANONICAL_COLUMNS",
    "DEFAULT_NOISY_PATTERNS",
    "RawPayload",
    "FormatGuess",
    "ExtractionSettings",
    "DEFAULT_SETTINGS",
    "CandidateTable",
    "MappedRow",
    "DiagnosticKind",
    "Diagnostic",
    "NormalizedWorkbook",
]
