"""Map flattened report rows onto the canonical trial balance columns."""

# Module responsibilities:
# - Keep the per-column alias lists as configuration (defaults + YAML override).
# - Resolve each canonical column with ordered tiers: exact, dotted suffix, substring.
# - Parse amounts without turning "absent" into zero.

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from ruamel.yaml import YAML

from .flatten import is_placeholder
from .schema import FlatRecord, MappedRow
from .utils.log import get_logger

logger = get_logger("mapping")

NAME_KEYS = ["name", "account_name", "account", "accountname", "account_name_formatted", "ledger_name"]
CODE_KEYS = ["account_code", "code", "accountnumber", "account_number", "account_id", "accountcode", "ledger_code"]
NET_DEBIT_KEYS = ["net_debit_total", "net_debit", "debit_total", "debit", "netdebit"]
NET_CREDIT_KEYS = ["net_credit_total", "net_credit", "credit_total", "credit", "netcredit"]

_SEPARATOR_RE = re.compile(r"[\s\-]+")


class MatchTier(IntEnum):
    """Key matching tiers, most specific first."""

    EXACT = 1
    SUFFIX = 2
    SUBSTRING = 3


class ColumnAliases(BaseModel):
    """Ordered alias lists per canonical column."""

    model_config = ConfigDict(extra="forbid")

    account_name: List[str] = Field(default_factory=lambda: list(NAME_KEYS))
    account_code: List[str] = Field(default_factory=lambda: list(CODE_KEYS))
    net_debit_total: List[str] = Field(default_factory=lambda: list(NET_DEBIT_KEYS))
    net_credit_total: List[str] = Field(default_factory=lambda: list(NET_CREDIT_KEYS))

    def all_aliases(self) -> set[str]:
        return {
            alias.lower()
            for aliases in (self.account_name, self.account_code, self.net_debit_total, self.net_credit_total)
            for alias in aliases
        }


DEFAULT_ALIASES = ColumnAliases()


@dataclass(slots=True)
class FieldMatch:
    """Key/value picked for one canonical column and the tier that found it."""

    key: str
    value: Any
    tier: MatchTier


@dataclass(slots=True)
class RowMapping:
    row: MappedRow
    matches: dict[str, FieldMatch]

    @property
    def substring_matches(self) -> int:
        return sum(1 for m in self.matches.values() if m.tier is MatchTier.SUBSTRING)


@dataclass
class MappingResult:
    """Rows kept after mapping plus counters used for summaries."""

    rows: List[MappedRow] = field(default_factory=list)
    dropped: int = 0
    substring_matches: int = 0

    @property
    def rows_with_code(self) -> int:
        return sum(1 for r in self.rows if r.account_code is not None)

    @property
    def rows_without_code(self) -> int:
        return len(self.rows) - self.rows_with_code


def load_column_aliases(path: str | Path) -> ColumnAliases:
    """Load alias lists from YAML; columns left out keep their defaults."""

    yaml = YAML(typ="safe")
    with Path(path).open("r", encoding="utf-8") as fh:
        data = yaml.load(fh) or {}
    if "columns" in data:
        data = data["columns"] or {}
    return ColumnAliases.model_validate(data)


def _normalize_key(label: str) -> str:
    return _SEPARATOR_RE.sub("_", str(label).strip().lower())


def pick_by_keys(
    flat: Mapping[str, Any],
    aliases: Sequence[str],
    *,
    allow_substring: bool = True,
) -> Optional[FieldMatch]:
    """Find the value for one canonical column.

    The first pass takes the first key (in record order) that equals an alias or
    ends with ``"." + alias``; only when nothing matches does the second pass
    accept keys that merely contain an alias. Comparison is case-insensitive and
    placeholder summaries are never picked.
    """

    candidates = [_normalize_key(a) for a in aliases]
    usable = [(k, v) for k, v in flat.items() if not is_placeholder(v)]
    for key, value in usable:
        lowered = _normalize_key(key)
        if lowered in candidates:
            return FieldMatch(key=key, value=value, tier=MatchTier.EXACT)
        if any(lowered.endswith(f".{c}") for c in candidates):
            return FieldMatch(key=key, value=value, tier=MatchTier.SUFFIX)
    if not allow_substring:
        return None
    for key, value in usable:
        lowered = _normalize_key(key)
        if any(c in lowered for c in candidates):
            return FieldMatch(key=key, value=value, tier=MatchTier.SUBSTRING)
    return None


def to_number(value: Any) -> Optional[Decimal]:
    """Parse an amount; empty or unparseable input yields None rather than zero."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None
    text = str(value).replace(",", "").replace(" ", "").strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet readers hand back numeric codes as floats (1000.0).
        value = int(value)
    text = str(value).strip()
    return text or None


def map_row_detailed(
    flat: FlatRecord,
    aliases: ColumnAliases = DEFAULT_ALIASES,
    *,
    allow_substring: bool = True,
) -> RowMapping:
    matches: dict[str, FieldMatch] = {}
    for column in ("account_name", "account_code", "net_debit_total", "net_credit_total"):
        match = pick_by_keys(flat, getattr(aliases, column), allow_substring=allow_substring)
        if match is not None:
            matches[column] = match

    def _value(column: str) -> Any:
        match = matches.get(column)
        return None if match is None else match.value

    row = MappedRow(
        account_name=_to_text(_value("account_name")),
        account_code=_to_text(_value("account_code")),
        net_debit_total=to_number(_value("net_debit_total")),
        net_credit_total=to_number(_value("net_credit_total")),
    )
    return RowMapping(row=row, matches=matches)


def map_row(
    flat: FlatRecord,
    aliases: ColumnAliases = DEFAULT_ALIASES,
    *,
    allow_substring: bool = True,
) -> MappedRow:
    """Project one flat record onto the four canonical columns."""

    return map_row_detailed(flat, aliases, allow_substring=allow_substring).row


def map_rows(
    records: Iterable[FlatRecord],
    aliases: ColumnAliases = DEFAULT_ALIASES,
    *,
    allow_substring: bool = True,
) -> MappingResult:
    """Map records, dropping rows where neither account name nor code resolved."""

    result = MappingResult()
    for flat in records:
        mapping = map_row_detailed(flat, aliases, allow_substring=allow_substring)
        if mapping.row.account_name is None and mapping.row.account_code is None:
            result.dropped += 1
            continue
        result.rows.append(mapping.row)
        result.substring_matches += mapping.substring_matches
    if result.substring_matches:
        logger.debug(
            "Columns resolved through substring matching",
            extra={"matches": result.substring_matches},
        )
    return result


__all__ = [
    "NAME_KEYS",
    "CODE_KEYS",
    "NET_DEBIT_KEYS",
    "NET_CREDIT_KEYS",
    "MatchTier",
    "ColumnAliases",
    "DEFAULT_ALIASES",
    "FieldMatch",
    "RowMapping",
    "MappingResult",
    "load_column_aliases",
    "pick_by_keys",
    "to_number",
    "map_row",
    "map_row_detailed",
    "map_rows",
]
