"""Spreadsheet assembly for normalized trial balance output."""

# Module responsibilities:
# - Render candidate tables (multi-sheet) or mapped rows (canonical) into an openpyxl workbook.
# - Own the sheet-name registry so every workbook de-duplicates its own names.
# - Guarantee a non-empty XLSX buffer, falling back to an Info sheet.

from __future__ import annotations

import io
from typing import Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .flatten import safe_cell
from .schema import (
    CANONICAL_COLUMNS,
    CANONICAL_SHEET,
    DEFAULT_SETTINGS,
    CandidateTable,
    Diagnostic,
    DiagnosticKind,
    ExtractionSettings,
    FlatRecord,
    MappedRow,
)
from .tables import SheetNameRegistry
from .utils.log import get_logger

logger = get_logger("workbook")

EMPTY_OUTPUT_TITLE = "No XLSX content was produced from the Zoho response."


def _union_header(rows: Iterable[FlatRecord]) -> List[str]:
    header: Dict[str, None] = {}
    for row in rows:
        for key in row:
            header.setdefault(key, None)
    return list(header)


class WorkbookBuilder:
    """Accumulates sheets for one output workbook.

    A builder is single-use and not shared between exports; sheet names it
    hands out are unique within its own workbook only.
    """

    def __init__(
        self,
        settings: ExtractionSettings = DEFAULT_SETTINGS,
        registry: Optional[SheetNameRegistry] = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or SheetNameRegistry()
        self._wb = Workbook()
        self._placeholder: Optional[Worksheet] = self._wb.active
        self.sheet_names: List[str] = []
        self.row_counts: Dict[str, int] = {}

    def _new_sheet(self, name: str) -> Worksheet:
        title = self.registry.claim(name)
        if self._placeholder is not None:
            ws = self._placeholder
            ws.title = title
            self._placeholder = None
        else:
            ws = self._wb.create_sheet(title=title)
        self.sheet_names.append(title)
        return ws

    def add_table_sheet(self, name: str, rows: Sequence[FlatRecord]) -> str:
        """Write ``rows`` to a new sheet; the header is the union of keys in first-seen order."""

        ws = self._new_sheet(name)
        header = _union_header(rows)
        if header:
            ws.append([safe_cell(key, self.settings) for key in header])
        for row in rows:
            ws.append([safe_cell(row.get(key), self.settings) for key in header])
        self.row_counts[ws.title] = len(rows)
        return ws.title

    def build_multi_sheet(self, tables: Sequence[CandidateTable], top_k: Optional[int] = None) -> List[str]:
        """One sheet per table for the ``top_k`` best-ranked tables."""

        limit = self.settings.top_k if top_k is None else top_k
        names = [self.add_table_sheet(table.name, table.rows) for table in tables[:limit]]
        logger.info("Multi-sheet workbook assembled", extra={"sheets": names})
        return names

    def build_canonical(self, rows: Sequence[MappedRow]) -> str:
        """Single ``Trial Balance`` sheet with the fixed four-column header."""

        ws = self._new_sheet(CANONICAL_SHEET)
        ws.append(list(CANONICAL_COLUMNS))
        for row in rows:
            # None stays an empty cell
            ws.append(row.as_cells())
        self.row_counts[ws.title] = len(rows)
        logger.info("Canonical sheet assembled", extra={"rows": len(rows)})
        return ws.title

    def add_info_sheet(self, diagnostic: Diagnostic) -> str:
        ws = self._new_sheet(diagnostic.sheet_name)
        ws.append([diagnostic.title])
        for label, value in diagnostic.details:
            ws.append([label, safe_cell(value if isinstance(value, (int, float)) else str(value), self.settings)])
        self.row_counts[ws.title] = 0
        return ws.title

    @property
    def is_empty(self) -> bool:
        return not self.sheet_names

    def to_bytes(self, source_type: Optional[str] = None) -> bytes:
        """Serialize to XLSX; an empty builder first gets an EMPTY_OUTPUT Info sheet."""

        if self.is_empty:
            details = [("sourceType", source_type)] if source_type else []
            self.add_info_sheet(
                Diagnostic(kind=DiagnosticKind.EMPTY_OUTPUT, title=EMPTY_OUTPUT_TITLE, details=details)
            )
        buffer = io.BytesIO()
        self._wb.save(buffer)
        return buffer.getvalue()


__all__ = ["WorkbookBuilder", "EMPTY_OUTPUT_TITLE"]
