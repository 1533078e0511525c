"""Flatten nested report records into single-level dotted-key rows."""

# Module responsibilities:
# - Turn one arbitrarily nested JSON record into a key -> scalar mapping.
# - Bound the output: depth cap, noisy-branch summaries and cell length cap.

from __future__ import annotations

import math
import re
from functools import lru_cache
from typing import Any, Optional, Pattern, Tuple

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .schema import DEFAULT_SETTINGS, ExtractionSettings, FlatRecord, Scalar

NESTED_PLACEHOLDER = "[nested object]"
OBJECT_PLACEHOLDER = "[object]"
VALUE_KEY = "value"

_ITEMS_RE = re.compile(r"^\[\d+ items\]$")


@lru_cache(maxsize=16)
def _compile_patterns(patterns: Tuple[str, ...]) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def items_placeholder(count: int) -> str:
    return f"[{count} items]"


def is_noisy(path: str, settings: ExtractionSettings = DEFAULT_SETTINGS) -> bool:
    """Return True when the dotted path should be summarized instead of expanded."""

    return any(p.search(path) for p in _compile_patterns(settings.noisy_patterns))


def safe_cell(value: Any, settings: ExtractionSettings = DEFAULT_SETTINGS) -> Scalar:
    """Make a scalar spreadsheet-safe: strip control characters and cap string length."""

    if value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, str):
        cleaned = ILLEGAL_CHARACTERS_RE.sub("", value)
        if len(cleaned) > settings.max_cell_chars:
            return cleaned[: settings.max_cell_chars] + settings.truncation_marker
        return cleaned
    return value


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list, tuple))


def _join_scalars(values: list[Any] | tuple[Any, ...]) -> str:
    return "; ".join("" if v is None else str(v) for v in values)


def flatten_record(
    value: Any,
    prefix: str = "",
    settings: ExtractionSettings = DEFAULT_SETTINGS,
    *,
    inline_singletons: bool = False,
    out: Optional[FlatRecord] = None,
    depth: int = 0,
) -> FlatRecord:
    """Flatten ``value`` into ``out`` (a new dict when omitted) and return it.

    Scalars are stored under ``prefix`` (``value`` when there is no prefix), lists
    of scalars are joined with ``"; "``, lists holding objects collapse to an
    ``"[N items]"`` summary and dicts recurse with ``.``-joined keys. Past
    ``settings.max_depth`` levels the remainder becomes ``"[nested object]"``.
    With ``inline_singletons`` a list holding exactly one object is expanded in
    place, which is how per-account ``values`` blocks reach the column mapper.
    Never raises; ``None`` yields an empty record.
    """

    record: FlatRecord = {} if out is None else out
    if value is None:
        return record

    key = prefix or VALUE_KEY
    if depth > settings.max_depth:
        record[key] = NESTED_PLACEHOLDER
        return record

    if isinstance(value, dict):
        for field_name, child in value.items():
            name = ILLEGAL_CHARACTERS_RE.sub("", str(field_name))
            child_key = f"{prefix}.{name}" if prefix else name
            if not _is_container(child):
                record[child_key] = safe_cell(child, settings)
            elif is_noisy(child_key, settings):
                record[child_key] = (
                    OBJECT_PLACEHOLDER if isinstance(child, dict) else items_placeholder(len(child))
                )
            else:
                flatten_record(
                    child,
                    child_key,
                    settings,
                    inline_singletons=inline_singletons,
                    out=record,
                    depth=depth + 1,
                )
        return record

    if isinstance(value, (list, tuple)):
        if all(not _is_container(v) for v in value):
            record[key] = safe_cell(_join_scalars(value), settings)
        elif inline_singletons and len(value) == 1 and isinstance(value[0], dict):
            flatten_record(
                value[0],
                prefix,
                settings,
                inline_singletons=inline_singletons,
                out=record,
                depth=depth,
            )
        else:
            record[key] = items_placeholder(len(value))
        return record

    record[key] = safe_cell(value, settings)
    return record


def is_placeholder(value: Any) -> bool:
    """Return True for the summary strings the flattener writes instead of data."""

    if not isinstance(value, str):
        return False
    return value in (NESTED_PLACEHOLDER, OBJECT_PLACEHOLDER) or bool(_ITEMS_RE.match(value))


__all__ = [
    "flatten_record",
    "safe_cell",
    "is_noisy",
    "is_placeholder",
    "items_placeholder",
    "NESTED_PLACEHOLDER",
    "OBJECT_PLACEHOLDER",
    "VALUE_KEY",
]
