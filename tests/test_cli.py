"""CLI integration tests."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

from tbflow import cli
from tbflow.core.errors import CredentialsError
from tbflow.services.zoho.models import FetchOutcome, ProbeResult
from tbflow_io.schema import RawPayload

REPORT = {
    "trialbalance": [
        {
            "account_transactions": [
                {
                    "name": "Liabilities",
                    "account_transactions": [
                        {
                            "account_code": "2000",
                            "name": "Payables",
                            "values": [{"net_debit_total": "", "net_credit_total": "410.10"}],
                        }
                    ],
                }
            ]
        }
    ]
}


class StubClient:
    def __init__(self) -> None:
        self.closed = False

    def fetch_trial_balance(self, org_id: str, from_date: str, to_date: str) -> FetchOutcome:
        payload = RawPayload(content=json.dumps(REPORT).encode("utf-8"), content_type="application/json")
        return FetchOutcome(payload=payload, variant="json", status_code=200)

    def probe_trial_balance(self, org_id: str, from_date: str, to_date: str) -> list[ProbeResult]:
        return [
            ProbeResult(variant="date_from/date_to + export_type", status_code=400, ok=False, snippet="bad params"),
            ProbeResult(variant="from_date/to_date json", status_code=200, ok=True, snippet=""),
        ]

    def list_organizations(self) -> list[dict]:
        return [{"organization_id": "600", "name": "Acme India"}]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


def test_normalize_writes_workbook(cli_runner: CliRunner, tmp_path: Path) -> None:
    source = tmp_path / "report.json"
    source.write_text(json.dumps(REPORT), encoding="utf-8")

    result = cli_runner.invoke(cli.app, ["normalize", str(source)])

    assert result.exit_code == 0, result.output
    target = tmp_path / "report_normalized.xlsx"
    assert target.exists()
    ws = load_workbook(io.BytesIO(target.read_bytes()))["Trial Balance"]
    assert ws["A2"].value == "Payables"
    assert "rows with code: 1" in result.output


def test_normalize_reports_diagnostic(cli_runner: CliRunner, tmp_path: Path) -> None:
    source = tmp_path / "broken.json"
    source.write_bytes(b"{not json")
    out = tmp_path / "out" / "broken.xlsx"

    result = cli_runner.invoke(cli.app, ["normalize", str(source), "--out", str(out)])

    assert result.exit_code == 0, result.output
    assert out.exists()
    assert "diagnostic" in result.output


def test_sniff_prints_extension(cli_runner: CliRunner, tmp_path: Path) -> None:
    source = tmp_path / "payload.bin"
    source.write_bytes(b"%PDF-1.7\n...")

    result = cli_runner.invoke(cli.app, ["sniff", str(source)])

    assert result.exit_code == 0
    assert result.output.strip() == "pdf\tapplication/pdf"


def test_export_to_local_archive(
    cli_runner: CliRunner,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(cli, "_zoho_client", lambda region: StubClient())

    result = cli_runner.invoke(
        cli.app,
        [
            "export",
            "--region",
            "IN",
            "--region",
            "us",
            "--org",
            "600",
            "--from",
            "2024-03-01",
            "--to",
            "2024-03-31",
            "--local",
            str(tmp_path),
        ],
    )

    assert result.exit_code == 0, result.output
    for name in ("TB_IN_2024-03_RAW.json", "TB_IN_2024-03.xlsx", "TB_US_2024-03_RAW.json", "TB_US_2024-03.xlsx"):
        assert (tmp_path / name).exists()
    assert "[IN] ok" in result.output
    assert "[US] ok" in result.output


def test_export_rejects_mismatched_orgs(cli_runner: CliRunner, tmp_path: Path) -> None:
    result = cli_runner.invoke(
        cli.app,
        ["export", "--region", "IN", "--region", "US", "--region", "EU", "--org", "1", "--org", "2", "--local", str(tmp_path)],
    )
    assert result.exit_code == 2


def test_export_rejects_duplicate_regions(cli_runner: CliRunner, tmp_path: Path) -> None:
    result = cli_runner.invoke(
        cli.app,
        ["export", "--region", "IN", "--region", "in", "--org", "1", "--org", "2", "--local", str(tmp_path)],
    )
    assert result.exit_code == 2
    assert not list(tmp_path.iterdir())


def test_export_failure_exits_non_zero(
    cli_runner: CliRunner,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def missing(region: str):
        raise CredentialsError(f"No Zoho connection found for {region}")

    monkeypatch.setattr(cli, "_zoho_client", missing)
    result = cli_runner.invoke(
        cli.app,
        ["export", "--region", "EU", "--org", "7", "--from", "2024-01-01", "--to", "2024-01-31", "--local", str(tmp_path)],
    )
    assert result.exit_code == 1
    assert "[EU] org 7 failed: No Zoho connection found for EU" in result.output


def test_probe_and_orgs(cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    stub = StubClient()
    monkeypatch.setattr(cli, "_zoho_client", lambda region: stub)

    probe = cli_runner.invoke(
        cli.app,
        ["probe", "--region", "IN", "--org", "600", "--from", "2024-03-01", "--to", "2024-03-31"],
    )
    assert probe.exit_code == 0, probe.output
    assert "from_date/to_date json: HTTP 200 ok=True" in probe.output
    assert "bad params" in probe.output
    assert stub.closed

    orgs = cli_runner.invoke(cli.app, ["orgs", "--region", "IN"])
    assert orgs.exit_code == 0
    assert "Acme India" in orgs.output


def test_orgs_reports_errors(cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    def missing(region: str):
        raise CredentialsError("No Zoho connection found for UK")

    monkeypatch.setattr(cli, "_zoho_client", missing)
    result = cli_runner.invoke(cli.app, ["orgs", "--region", "UK"])
    assert result.exit_code == 1
    assert "Error: No Zoho connection found for UK" in result.output
