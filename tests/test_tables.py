"""Unit tests for candidate table discovery, ranking and sheet naming."""

from __future__ import annotations

from tbflow_io.tables import (
    SheetNameRegistry,
    collect_tables,
    derive_sheet_name,
    extract_tables,
    score_path,
    sibling_tables,
)


def test_rows_table_outranks_larger_items_table() -> None:
    document = {
        "meta": {"items": [{"k": i} for i in range(50)]},
        "trialbalance": {"rows": [{"name": n} for n in ("a", "b", "c")]},
    }
    ranked = extract_tables(document)
    assert [t.path for t in ranked] == ["root.trialbalance.rows", "root.meta.items"]
    assert ranked[0].score == 3 + 10000 + 2000
    assert ranked[1].score == 50 + 2000


def test_collect_is_pre_order_and_descends_into_arrays() -> None:
    document = {"groups": [{"name": "A", "lines": [{"x": 1}]}, {"name": "B", "lines": [{"x": 2}]}]}
    paths = [t.path for t in collect_tables(document)]
    assert paths == ["root.groups", "root.groups[0].lines", "root.groups[1].lines"]


def test_ties_keep_traversal_order() -> None:
    document = {"first": [{"a": 1}], "second": [{"a": 2}]}
    assert [t.name for t in extract_tables(document)] == ["first", "second"]


def test_no_tables_returns_empty_list() -> None:
    assert extract_tables({"code": 0, "values": [1, 2, 3]}) == []
    assert extract_tables("not a document") == []


def test_long_paths_are_trimmed_to_trailing_characters() -> None:
    key = "k" * 80
    table = collect_tables({key: [{"a": 1}]})[0]
    assert len(table.path) == 64
    assert table.path.endswith(key[-10:])


def test_score_path_values_bonus() -> None:
    assert score_path("root.x.values", 1) == 5001
    assert score_path("root.TB.values", 0) == 15000


def test_derive_sheet_name_sanitizes() -> None:
    assert derive_sheet_name("root.trialbalance[0].account_transactions", 0) == "account_transactions"
    assert derive_sheet_name("root.a/b:c?", 2) == "a b c"
    assert derive_sheet_name("root.data[3]", 0) == "data"
    assert derive_sheet_name("root.[0]", 4) == "Sheet5"
    assert len(derive_sheet_name("root." + "n" * 40, 0)) == 31


def test_sibling_tables_share_shape() -> None:
    document = {"groups": [{"lines": [{"x": 1}]}, {"lines": [{"x": 2}]}]}
    tables = extract_tables(document)
    lines = [t for t in tables if t.path.endswith("lines")]
    group = sibling_tables(lines[-1], tables)
    assert [t.path for t in group] == ["root.groups[0].lines", "root.groups[1].lines"]


def test_registry_numbers_duplicates() -> None:
    registry = SheetNameRegistry()
    assert registry.claim("Details") == "Details"
    assert registry.claim("Details") == "Details (2)"
    assert registry.claim("details") == "details (3)"


def test_registry_keeps_numbered_names_within_limit() -> None:
    registry = SheetNameRegistry()
    base = "x" * 31
    registry.claim(base)
    second = registry.claim(base)
    assert second == "x" * 27 + " (2)"
    assert len(second) == 31


def test_registry_falls_back_to_clock_suffix() -> None:
    registry = SheetNameRegistry(clock=lambda: 1.5)
    for _ in range(99):
        registry.claim("Data")
    assert registry.claim("Data") == "Data 1500"


def test_walk_handles_documents_deeper_than_the_recursion_limit() -> None:
    document: dict = {"rows": [{"name": "Cash"}]}
    for _ in range(3000):
        document = {"k": document}
    tables = extract_tables(document)
    assert len(tables) == 1
    assert tables[0].path.endswith("k.rows")
    assert tables[0].rows == [{"name": "Cash"}]


def test_walk_keeps_pre_order() -> None:
    document = {"a": [{"b": [{"x": 1}]}], "c": [{"y": 2}]}
    tables = collect_tables(document)
    assert [t.path for t in tables] == ["root.a", "root.a[0].b", "root.c"]


def test_sheet_names_drop_control_characters_and_edge_apostrophes() -> None:
    assert derive_sheet_name("root.it\u0001ems", 0) == "items"
    assert derive_sheet_name("root.'quoted'", 0) == "quoted"
    assert derive_sheet_name("root.\u0002\u0003", 4) == "Sheet5"
    assert SheetNameRegistry().claim("Bad\u0007Name") == "BadName"
