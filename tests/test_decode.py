"""Unit tests for the payload decode step."""

from __future__ import annotations

import io

from openpyxl import Workbook

from tbflow_io.decode import decode_json, describe_pdf, read_workbook_records, upstream_error
from tbflow_io.schema import Diagnostic, DiagnosticKind


def _xlsx_bytes(rows: list[list[object]], title: str = "Trial Balance") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def test_decode_json_strips_bom() -> None:
    assert decode_json(b"\xef\xbb\xbf{\"a\": 1}") == {"a": 1}


def test_decode_json_failure_is_diagnostic() -> None:
    result = decode_json(b"<html>oops</html>", "text/html")
    assert isinstance(result, Diagnostic)
    assert result.kind is DiagnosticKind.PARSE_FAILURE
    labels = dict(result.details)
    assert labels["Content-Type"] == "text/html"
    assert labels["Head"] == "<html>oops</html>"


def test_upstream_error_envelope() -> None:
    diagnostic = upstream_error({"code": 57, "message": "You are not authorized"})
    assert diagnostic is not None
    assert diagnostic.kind is DiagnosticKind.UPSTREAM_ERROR
    assert diagnostic.sheet_name == "Zoho Error"


def test_report_with_code_is_not_an_error() -> None:
    assert upstream_error({"code": 0, "message": "success", "trialbalance": []}) is None
    assert upstream_error({"code": 1, "message": "x", "data": {}}) is None
    assert upstream_error([{"code": 1, "message": "x"}]) is None


def test_xlsx_title_rows_are_skipped() -> None:
    content = _xlsx_bytes(
        [
            ["Demo Company"],
            ["Trial Balance"],
            [None],
            ["Account", "Account Code", "Net Debit", "Net Credit"],
            ["Cash", 1000, 1250.5, None],
            [None, None, None, None],
            ["Sales", 4000, None, 800],
        ]
    )
    sheets = read_workbook_records(content, "xlsx")
    assert list(sheets) == ["Trial Balance"]
    records = sheets["Trial Balance"]
    assert len(records) == 2
    assert records[0] == {"Account": "Cash", "Account Code": 1000, "Net Debit": 1250.5, "Net Credit": None}
    assert records[1]["Net Credit"] == 800


def test_csv_with_title_line() -> None:
    content = b"Trial Balance Report\nname,code,debit,credit\nCash,1000,\"1,250.00\",\n"
    sheets = read_workbook_records(content, "csv")
    records = sheets["Sheet1"]
    assert records == [{"name": "Cash", "code": "1000", "debit": "1,250.00", "credit": None}]


def test_unreadable_workbook_is_diagnostic() -> None:
    result = read_workbook_records(b"PK\x03\x04not really a zip", "xlsx")
    assert isinstance(result, Diagnostic)
    assert result.kind is DiagnosticKind.PARSE_FAILURE


def test_broken_pdf_reported_not_raised() -> None:
    diagnostic = describe_pdf(b"%PDF-1.4 truncated", "application/pdf")
    assert diagnostic.kind is DiagnosticKind.UNSUPPORTED_FORMAT
    assert diagnostic.sheet_name == "Info"
    assert any(label == "Error" for label, _ in diagnostic.details)
