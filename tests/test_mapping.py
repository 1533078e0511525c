"""Unit tests for canonical column mapping."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from tbflow_io.mapping import (
    CODE_KEYS,
    DEFAULT_ALIASES,
    MatchTier,
    load_column_aliases,
    map_row,
    map_rows,
    pick_by_keys,
    to_number,
)


def test_dotted_key_matches_through_suffix_tier() -> None:
    match = pick_by_keys({"account.code": "4010"}, CODE_KEYS)
    assert match is not None
    assert match.tier is MatchTier.SUFFIX
    assert match.value == "4010"


def test_substring_tier_only_when_alias_is_contained() -> None:
    match = pick_by_keys({"ledger_account_number_2": "77"}, CODE_KEYS)
    assert match is not None
    assert match.tier is MatchTier.SUBSTRING
    assert match.key == "ledger_account_number_2"

    assert pick_by_keys({"ledger_ref": "77"}, ["code"]) is None


def test_exact_or_suffix_beats_earlier_substring_key() -> None:
    flat = {"account_code_formatted": "A-1", "code": "1000"}
    match = pick_by_keys(flat, CODE_KEYS)
    assert match is not None
    assert (match.key, match.tier) == ("code", MatchTier.EXACT)


def test_substring_tier_can_be_disabled() -> None:
    assert pick_by_keys({"ledger_account_number_2": "77"}, CODE_KEYS, allow_substring=False) is None


def test_spreadsheet_headers_match_exactly() -> None:
    match = pick_by_keys({"Account Code": "1000"}, CODE_KEYS)
    assert match is not None
    assert match.tier is MatchTier.EXACT


def test_placeholders_are_never_picked() -> None:
    assert pick_by_keys({"account_transactions": "[3 items]"}, ["account"]) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,250.00", Decimal("1250.00")),
        (" 1 000 ", Decimal("1000")),
        (12, Decimal("12")),
        (0.5, Decimal("0.5")),
        ("0", Decimal("0")),
        ("", None),
        (None, None),
        ("n/a", None),
        (True, None),
        ("NaN", None),
        (float("inf"), None),
    ],
)
def test_to_number(raw: object, expected: Decimal | None) -> None:
    assert to_number(raw) == expected


def test_code_only_row_is_kept_and_empty_row_dropped() -> None:
    result = map_rows([{"code": "4010", "debit": "5"}, {"debit": "7"}])
    assert result.dropped == 1
    assert len(result.rows) == 1
    row = result.rows[0]
    assert row.account_code == "4010"
    assert row.account_name is None
    assert row.net_debit_total == Decimal("5")
    assert result.rows_with_code == 1
    assert result.rows_without_code == 0


def test_missing_amount_is_none_not_zero() -> None:
    row = map_row({"name": "Cash", "net_debit_total": "10"})
    assert row.net_credit_total is None


def test_float_codes_from_spreadsheets_become_integers() -> None:
    assert map_row({"account_code": 1000.0}).account_code == "1000"


def test_load_column_aliases_overrides_selected_columns(tmp_path: Path) -> None:
    path = tmp_path / "columns.yaml"
    path.write_text("columns:\n  account_code:\n    - gl_code\n", encoding="utf-8")
    aliases = load_column_aliases(path)
    assert aliases.account_code == ["gl_code"]
    assert aliases.account_name == DEFAULT_ALIASES.account_name


def test_load_column_aliases_rejects_unknown_columns(tmp_path: Path) -> None:
    path = tmp_path / "columns.yaml"
    path.write_text("balance:\n  - bal\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_column_aliases(path)


def test_packaged_columns_file_matches_defaults() -> None:
    path = Path(__file__).resolve().parents[1] / "tbflow" / "config" / "columns.yaml"
    assert load_column_aliases(path) == DEFAULT_ALIASES
