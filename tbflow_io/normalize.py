"""Entry point turning one upstream payload into a normalized workbook."""

# Module responsibilities:
# - Compose sniff -> decode -> extract -> map -> build for a single payload.
# - Turn every stage diagnostic into an Info sheet so a workbook is always produced.
# - Choose the canonical table by how well its rows map, not by rank alone.

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .decode import decode_json, describe_pdf, read_workbook_records, upstream_error
from .flatten import flatten_record
from .mapping import DEFAULT_ALIASES, ColumnAliases, MappingResult, map_rows
from .schema import (
    DEFAULT_SETTINGS,
    BuildMode,
    Diagnostic,
    DiagnosticKind,
    ExtractionSettings,
    Extension,
    NormalizedWorkbook,
    RawPayload,
)
from .sniff import sniff, source_label
from .tables import RankedTable, extract_tables, sibling_tables
from .utils.log import get_logger
from .workbook import WorkbookBuilder

logger = get_logger("normalize")

MAX_KEYS_REPORTED = 20


def _decode(
    payload: RawPayload,
    source: Extension,
    aliases: ColumnAliases,
) -> Any:
    if source == "json":
        document = decode_json(payload.content, payload.content_type)
        if isinstance(document, Diagnostic):
            return document
        return upstream_error(document) or document
    if source in ("xlsx", "xls", "csv"):
        return read_workbook_records(payload.content, source, aliases)
    return describe_pdf(payload.content, payload.content_type)


def _no_table(document: Any) -> Diagnostic:
    if isinstance(document, dict):
        keys = [str(k) for k in list(document)[:MAX_KEYS_REPORTED]]
        seen = ", ".join(keys) if keys else "(none)"
    else:
        seen = f"(document is {type(document).__name__})"
    return Diagnostic(
        kind=DiagnosticKind.NO_TABLE_FOUND,
        title="No table of records was found in the Zoho response.",
        details=[("Top-level keys", seen)],
    )


def _no_rows(document: Any, tables: List[RankedTable]) -> Diagnostic:
    keys = _no_table(document).details
    return Diagnostic(
        kind=DiagnosticKind.NO_MAPPABLE_ROWS,
        title="No rows could be mapped onto the trial balance columns.",
        details=[
            ("Tables found", len(tables)),
            ("Best table", tables[0].path if tables else ""),
            *keys,
        ],
    )


def _group_rows(group: List[RankedTable], settings: ExtractionSettings) -> List[Dict[str, Any]]:
    return [
        flatten_record(record, settings=settings, inline_singletons=True)
        for table in group
        for record in table.records
    ]


def select_canonical_rows(
    tables: List[RankedTable],
    settings: ExtractionSettings = DEFAULT_SETTINGS,
    aliases: ColumnAliases = DEFAULT_ALIASES,
) -> Tuple[Optional[RankedTable], MappingResult]:
    """Pick the table whose rows map best onto the canonical columns.

    Tables are visited best-ranked first; a table's same-shape siblings (one
    array per account group in nested reports) are merged in document order.
    The winner maximizes rows carrying an account code, then mapped rows; ties
    keep the ranking order.
    """

    best: Optional[RankedTable] = None
    best_result = MappingResult()
    best_key: Optional[Tuple[int, int]] = None
    evaluated = set()
    for table in tables:
        if table.shape in evaluated:
            continue
        evaluated.add(table.shape)
        group = sibling_tables(table, tables)
        result = map_rows(
            _group_rows(group, settings),
            aliases,
            allow_substring=settings.allow_substring_match,
        )
        key = (result.rows_with_code, len(result.rows))
        if best_key is None or key > best_key:
            best, best_result, best_key = table, result, key
    if best is not None:
        logger.info(
            "Canonical table selected",
            extra={"path": best.path, "rows": len(best_result.rows), "dropped": best_result.dropped},
        )
    return best, best_result


def normalize_payload(
    payload: RawPayload,
    mode: BuildMode = "canonical",
    settings: Optional[ExtractionSettings] = None,
    aliases: Optional[ColumnAliases] = None,
) -> NormalizedWorkbook:
    """Normalize a fetched payload into an XLSX buffer plus summary metadata.

    Never raises for malformed data: parse failures, upstream error envelopes,
    PDFs and documents without tables all come back as a workbook holding a
    single Info sheet, with ``diagnostic`` set on the result.
    """

    settings = settings or DEFAULT_SETTINGS
    aliases = aliases or DEFAULT_ALIASES
    guess = sniff(payload.content, payload.content_type, payload.content_disposition)
    source = source_label(payload.content, payload.content_type, guess)
    logger.info(
        "Normalizing payload",
        extra={"source": source, "bytes": len(payload.content or b""), "mode": mode},
    )

    builder = WorkbookBuilder(settings)
    diagnostic: Optional[Diagnostic] = None
    mapping = MappingResult()

    document = _decode(payload, source, aliases)
    if isinstance(document, Diagnostic):
        diagnostic = document
    else:
        tables = extract_tables(document, settings)
        if not tables:
            diagnostic = _no_table(document)
        elif mode == "multi":
            builder.build_multi_sheet(tables, settings.top_k)
        else:
            _, mapping = select_canonical_rows(tables, settings, aliases)
            if mapping.rows:
                builder.build_canonical(mapping.rows)
            else:
                diagnostic = _no_rows(document, tables)

    if diagnostic is not None:
        logger.warning(
            "Payload degraded to diagnostic sheet",
            extra={"kind": diagnostic.kind.value, "reason": diagnostic.message},
        )
        builder.add_info_sheet(diagnostic)

    content = builder.to_bytes(source_type=source)
    return NormalizedWorkbook(
        content=content,
        source_type=source,
        mode=mode,
        sheet_names=list(builder.sheet_names),
        row_counts=dict(builder.row_counts),
        rows_with_code=mapping.rows_with_code,
        rows_without_code=mapping.rows_without_code,
        substring_matches=mapping.substring_matches,
        diagnostic=diagnostic,
    )


__all__ = ["normalize_payload", "select_canonical_rows"]
