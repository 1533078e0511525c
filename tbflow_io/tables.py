"""Discover and rank record arrays inside decoded report documents."""

# Module responsibilities:
# - Walk a JSON-like tree and record every array of objects as a candidate table.
# - Score candidates so report-shaped arrays beat incidental nested ones.
# - Derive spreadsheet-safe sheet names and keep them unique per workbook.

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set, Tuple

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .flatten import flatten_record
from .schema import (
    DEFAULT_SETTINGS,
    MAX_SHEET_NAME,
    CandidateTable,
    ExtractionSettings,
)
from .utils.log import get_logger

logger = get_logger("tables")

_INDEX_RE = re.compile(r"\[.*?\]")
_ILLEGAL_SHEET_CHARS_RE = re.compile(r"[:\\/?*\[\]]")
_WHITESPACE_RE = re.compile(r"\s+")
_SHAPE_INDEX_RE = re.compile(r"\[\d+\]")

ROOT_PATH = "root"
MAX_NUMBERED_SUFFIX = 99


@dataclass
class _Found:
    path: str
    records: List[Any]
    order: int


@dataclass
class RankedTable(CandidateTable):
    """Candidate table plus the bookkeeping needed to rank and regroup it."""

    score: int = 0
    order: int = 0
    shape: str = ""
    records: List[Any] = field(default_factory=list, repr=False)


def _walk(document: Any, found: List[_Found]) -> None:
    # Explicit stack keeps pre-order without recursing on deep documents.
    stack: List[Tuple[Any, str]] = [(document, ROOT_PATH)]
    while stack:
        node, path = stack.pop()
        if isinstance(node, list):
            if node and isinstance(node[0], dict):
                found.append(_Found(path=path, records=node, order=len(found)))
            children = [(child, f"{path}[{idx}]") for idx, child in enumerate(node)]
        elif isinstance(node, dict):
            children = [(child, f"{path}.{key}") for key, child in node.items()]
        else:
            continue
        stack.extend(reversed(children))


def score_path(path: str, size: int, settings: ExtractionSettings = DEFAULT_SETTINGS) -> int:
    """Size plus bonuses for trial-balance, ``.values`` and row-collection paths."""

    lowered = path.lower()
    score = size
    if "trial" in lowered or "tb" in lowered:
        score += settings.trial_balance_bonus
    if ".values" in lowered:
        score += settings.values_bonus
    if "rows" in lowered or "records" in lowered or "items" in lowered:
        score += settings.rows_bonus
    return score


def score_table(table: CandidateTable, settings: ExtractionSettings = DEFAULT_SETTINGS) -> int:
    return score_path(table.path, table.size, settings)


def derive_sheet_name(path: str, index: int) -> str:
    """Turn a traversal path into a sheet name of at most 31 legal characters."""

    last = path.split(".")[-1]
    name = _INDEX_RE.sub("", last)
    name = ILLEGAL_CHARACTERS_RE.sub("", name)
    name = _ILLEGAL_SHEET_CHARS_RE.sub(" ", name)
    # Excel rejects titles that start or end with an apostrophe.
    name = _WHITESPACE_RE.sub(" ", name).strip().strip("'").strip()
    if not name:
        name = f"Sheet{index + 1}"
    return name[:MAX_SHEET_NAME].rstrip(" '")


def table_shape(path: str) -> str:
    """Path with array indices removed; sibling arrays share a shape."""

    return _SHAPE_INDEX_RE.sub("", path)


def collect_tables(document: Any, settings: ExtractionSettings = DEFAULT_SETTINGS) -> List[RankedTable]:
    """Return every array of objects in traversal (pre-order) order, unranked."""

    found: List[_Found] = []
    _walk(document, found)
    tables: List[RankedTable] = []
    for item in found:
        rows = [flatten_record(record, settings=settings) for record in item.records]
        trimmed = item.path[-settings.path_chars :]
        tables.append(
            RankedTable(
                name=trimmed,
                path=trimmed,
                rows=rows,
                size=len(rows),
                order=item.order,
                shape=table_shape(item.path),
                records=item.records,
            )
        )
    return tables


def extract_tables(document: Any, settings: ExtractionSettings = DEFAULT_SETTINGS) -> List[RankedTable]:
    """Collect candidate tables and return them best-first with derived sheet names.

    Ties keep traversal order. Returns an empty list when the document holds no
    array of objects; never raises.
    """

    tables = collect_tables(document, settings)
    for table in tables:
        table.score = score_table(table, settings)
    ranked = sorted(tables, key=lambda t: t.score, reverse=True)
    for idx, table in enumerate(ranked):
        table.name = derive_sheet_name(table.path, idx)
    logger.debug(
        "Candidate tables ranked",
        extra={"count": len(ranked), "top": [(t.path, t.score) for t in ranked[:5]]},
    )
    return ranked


def sibling_tables(chosen: RankedTable, tables: List[RankedTable]) -> List[RankedTable]:
    """Tables sharing ``chosen``'s shape, in document order (``chosen`` included)."""

    if not chosen.shape:
        return [chosen]
    same = [t for t in tables if t.shape == chosen.shape]
    return sorted(same, key=lambda t: t.order) or [chosen]


class SheetNameRegistry:
    """Hands out unique sheet names for one workbook.

    Collisions are resolved as ``"Name (2)"``, ``"Name (3)"`` and so on, trimming
    the base so the result still fits the 31 character limit. Names compare
    case-insensitively, as spreadsheet applications do.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._seen: Set[str] = set()
        self._clock = clock or time.time

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._seen

    def claim(self, name: str) -> str:
        base = ILLEGAL_CHARACTERS_RE.sub("", name)[:MAX_SHEET_NAME] or "Sheet"
        if base not in self:
            return self._remember(base)
        for n in range(2, MAX_NUMBERED_SUFFIX + 1):
            suffix = f" ({n})"
            candidate = base[: MAX_SHEET_NAME - len(suffix)] + suffix
            if candidate not in self:
                return self._remember(candidate)
        stamp = str(int(self._clock() * 1000))
        while True:
            suffix = f" {stamp}"
            candidate = base[: max(0, MAX_SHEET_NAME - len(suffix))] + suffix
            candidate = candidate.strip()[:MAX_SHEET_NAME]
            if candidate not in self:
                return self._remember(candidate)
            stamp = str(int(stamp) + 1)

    def _remember(self, name: str) -> str:
        self._seen.add(name.lower())
        return name


__all__ = [
    "RankedTable",
    "collect_tables",
    "extract_tables",
    "score_path",
    "score_table",
    "derive_sheet_name",
    "table_shape",
    "sibling_tables",
    "SheetNameRegistry",
]
