"""Decode sniffed payloads into documents the table extractor can walk."""

# Module responsibilities:
# - Parse JSON bodies, reporting failures as diagnostics rather than raising.
# - Project XLSX/XLS/CSV workbooks to ``{sheet: [row dicts]}`` using pandas.
# - Summarize PDF payloads, which carry no machine-readable table.

from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import pdfplumber

from .mapping import DEFAULT_ALIASES, ColumnAliases
from .schema import Diagnostic, DiagnosticKind, Extension
from .utils.log import get_logger

logger = get_logger("decode")

HEAD_PREVIEW_CHARS = 200
HEADER_SCAN_ROWS = 30
PDF_PREVIEW_LINES = 5

SheetRecords = Dict[str, List[Dict[str, Any]]]


def content_head(content: bytes, limit: int = HEAD_PREVIEW_CHARS) -> str:
    return (content or b"")[:limit].decode("utf-8", errors="replace")


def decode_json(content: bytes, content_type: Optional[str] = None) -> Union[Any, Diagnostic]:
    """Parse a UTF-8 JSON body (a leading BOM is ignored)."""

    try:
        text = (content or b"").decode("utf-8-sig")
        return json.loads(text)
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        # RecursionError: nesting deeper than the interpreter stack allows
        logger.warning("JSON payload could not be parsed", extra={"error": str(exc)})
        return Diagnostic(
            kind=DiagnosticKind.PARSE_FAILURE,
            title="Zoho JSON parse failed",
            details=[
                ("Content-Type", content_type or ""),
                ("Error", str(exc)),
                ("Head", content_head(content)),
            ],
        )


def upstream_error(document: Any) -> Optional[Diagnostic]:
    """Return a diagnostic when the document is an API error envelope, not a report."""

    if not isinstance(document, dict):
        return None
    code = document.get("code")
    message = document.get("message")
    if not code or not message:
        return None
    if "trialbalance" in document or "data" in document:
        return None
    return Diagnostic(
        kind=DiagnosticKind.UPSTREAM_ERROR,
        title="Zoho error",
        details=[("code", code), ("message", message)],
    )


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _normalize_label(value: Any) -> str:
    return str(value).strip().lower().replace(" ", "_")


def locate_header_row(frame: pd.DataFrame, aliases: ColumnAliases = DEFAULT_ALIASES) -> Optional[int]:
    """Index of the header row: the first row naming a known column, else the first
    row with at least two filled cells. Report exports put titles above the header."""

    known = aliases.all_aliases()
    fallback: Optional[int] = None
    for idx in range(min(len(frame.index), HEADER_SCAN_ROWS)):
        cells = [v for v in frame.iloc[idx].tolist() if not _is_blank(v)]
        if any(_normalize_label(v) in known for v in cells):
            return idx
        if fallback is None and len(cells) >= 2:
            fallback = idx
    return fallback


def _header_labels(values: List[Any]) -> List[str]:
    labels: List[str] = []
    seen: Dict[str, int] = {}
    for idx, value in enumerate(values):
        label = "" if _is_blank(value) else str(value).strip()
        if not label:
            label = f"column_{idx + 1}"
        count = seen.get(label, 0)
        seen[label] = count + 1
        labels.append(label if count == 0 else f"{label}_{count + 1}")
    return labels


def _cell_value(value: Any) -> Any:
    if _is_blank(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if hasattr(value, "item"):
        # numpy scalars -> builtin numbers
        return value.item()
    return value


def frame_to_records(frame: pd.DataFrame, aliases: ColumnAliases = DEFAULT_ALIASES) -> List[Dict[str, Any]]:
    """Turn a header-less sheet frame into row dicts keyed by its detected header."""

    frame = frame.map(lambda v: None if _is_blank(v) else v)
    frame = frame.dropna(how="all").dropna(axis=1, how="all")
    if frame.empty:
        return []
    frame = frame.reset_index(drop=True)
    header_idx = locate_header_row(frame, aliases)
    if header_idx is None:
        return []
    labels = _header_labels(frame.iloc[header_idx].tolist())
    records: List[Dict[str, Any]] = []
    for _, raw in frame.iloc[header_idx + 1 :].iterrows():
        values = [_cell_value(v) for v in raw.tolist()]
        if all(v is None for v in values):
            continue
        records.append(dict(zip(labels, values)))
    return records


def _read_frames(content: bytes, extension: Extension) -> Dict[str, pd.DataFrame]:
    buffer = io.BytesIO(content)
    if extension == "csv":
        text = content.decode("utf-8-sig", errors="replace")
        # Report CSVs start with title lines narrower than the table, so rows are ragged.
        rows = list(csv.reader(io.StringIO(text)))
        return {"Sheet1": pd.DataFrame(rows, dtype=object)}
    engine = "xlrd" if extension == "xls" else "openpyxl"
    return pd.read_excel(buffer, sheet_name=None, header=None, dtype=object, engine=engine)


def read_workbook_records(
    content: bytes,
    extension: Extension,
    aliases: ColumnAliases = DEFAULT_ALIASES,
) -> Union[SheetRecords, Diagnostic]:
    """Project a spreadsheet payload to ``{sheet name: [row dict, ...]}``."""

    try:
        frames = _read_frames(content, extension)
    except Exception as exc:  # noqa: BLE001 - pandas/engine errors vary by format
        logger.warning(
            "Workbook payload could not be read",
            extra={"extension": extension, "error": str(exc)},
        )
        return Diagnostic(
            kind=DiagnosticKind.PARSE_FAILURE,
            title=f"Zoho {extension.upper()} could not be read",
            details=[("Error", str(exc)), ("Bytes", len(content or b""))],
        )

    sheets: SheetRecords = {}
    for sheet_name, frame in frames.items():
        records = frame_to_records(frame, aliases)
        sheets[str(sheet_name)] = records
        logger.info(
            "Sheet projected to records",
            extra={"sheet": sheet_name, "rows": len(records)},
        )
    return sheets


def describe_pdf(content: bytes, content_type: Optional[str] = None) -> Diagnostic:
    """Info diagnostic for PDF payloads: page count and the first text lines."""

    details: List[tuple[str, object]] = [("Content-Type", content_type or "")]
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            details.append(("Pages", len(pdf.pages)))
            first_text = (pdf.pages[0].extract_text() or "") if pdf.pages else ""
    except Exception as exc:  # noqa: BLE001 - malformed PDFs raise assorted errors
        logger.warning("PDF payload could not be opened", extra={"error": str(exc)})
        details.append(("Error", str(exc)))
    else:
        lines = [line.strip() for line in first_text.splitlines() if line.strip()]
        for line in lines[:PDF_PREVIEW_LINES]:
            details.append(("Text", line))
    return Diagnostic(
        kind=DiagnosticKind.UNSUPPORTED_FORMAT,
        title="Zoho returned a non-Excel format (e.g., PDF). The RAW file was saved; 4-column XLSX not applicable.",
        details=details,
    )


__all__ = [
    "SheetRecords",
    "content_head",
    "decode_json",
    "upstream_error",
    "locate_header_row",
    "frame_to_records",
    "read_workbook_records",
    "describe_pdf",
]
