"""`tbflow_io` turns Zoho Books trial balance payloads into normalized workbooks."""

# Module responsibilities:
# - Re-export the extraction stages and the single-call normalizer as a stable API surface.
# - Expose the package version.

from __future__ import annotations

from .flatten import flatten_record, safe_cell
from .mapping import ColumnAliases, load_column_aliases, map_row, map_rows, pick_by_keys, to_number
from .normalize import normalize_payload
from .schema import (
    DEFAULT_SETTINGS,
    CandidateTable,
    Diagnostic,
    DiagnosticKind,
    ExtractionSettings,
    FormatGuess,
    MappedRow,
    NormalizedWorkbook,
    RawPayload,
)
from .sniff import sniff
from .tables import SheetNameRegistry, extract_tables
from .workbook import WorkbookBuilder

__all__ = [
    "sniff",
    "flatten_record",
    "safe_cell",
    "extract_tables",
    "SheetNameRegistry",
    "ColumnAliases",
    "load_column_aliases",
    "pick_by_keys",
    "to_number",
    "map_row",
    "map_rows",
    "WorkbookBuilder",
    "normalize_payload",
    "RawPayload",
    "FormatGuess",
    "CandidateTable",
    "MappedRow",
    "Diagnostic",
    "DiagnosticKind",
    "ExtractionSettings",
    "DEFAULT_SETTINGS",
    "NormalizedWorkbook",
]

__version__ = "0.1.0"
