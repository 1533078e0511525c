"""Typer based command line entry points for TBFlow."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from tbflow.core.errors import TBFlowError
from tbflow.core.logger import get_logger
from tbflow.core.profiles import resolve_config_path
from tbflow.services.drive.client import ArchiveStore, GoogleDriveArchive, LocalArchive
from tbflow.services.export.pipeline import (
    ExportRequest,
    ExportResult,
    TrialBalanceExporter,
    export_regions,
    previous_month_range,
)
from tbflow.services.zoho.client import ZohoBooksClient
from tbflow_io.mapping import DEFAULT_ALIASES, ColumnAliases, load_column_aliases
from tbflow_io.normalize import normalize_payload
from tbflow_io.schema import DEFAULT_SETTINGS, ExtractionSettings, RawPayload
from tbflow_io.sniff import sniff

COLUMNS_FILE = "columns.yaml"
MODES = {"canonical", "multi"}

app = typer.Typer(help="Export Zoho Books trial balances into normalized workbooks.")


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set global logging level (e.g. DEBUG/INFO/WARNING).",
    ),
) -> None:
    """Configure global CLI behaviour before executing commands."""

    logger = get_logger()

    level_value = getattr(logging, log_level.upper(), None)
    if not isinstance(level_value, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")

    logging.getLogger().setLevel(level_value)
    logger.setLevel(level_value)
    logging.getLogger("tbflow_io").setLevel(level_value)


def _handle_error(exc: Exception) -> None:
    get_logger().error("tbflow operation failed: %s", exc, exc_info=True)
    typer.secho(f"Error: {exc}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _validate_mode(value: str) -> str:
    value = value.lower()
    if value not in MODES:
        raise typer.BadParameter("mode must be one of canonical, multi")
    return value


def _load_aliases(columns: Optional[Path]) -> ColumnAliases:
    path = columns or resolve_config_path(COLUMNS_FILE)
    if not path.exists():
        if columns is not None:
            raise typer.BadParameter(f"columns file not found: {columns}", param_hint="--columns")
        return DEFAULT_ALIASES
    return load_column_aliases(path)


def _settings(strict_columns: bool) -> ExtractionSettings:
    if strict_columns:
        return replace(DEFAULT_SETTINGS, allow_substring_match=False)
    return DEFAULT_SETTINGS


def _zoho_client(region: str) -> ZohoBooksClient:
    return ZohoBooksClient.from_region(region)


def _archive(local: Optional[Path]) -> ArchiveStore:
    if local is not None:
        return LocalArchive(local)
    return GoogleDriveArchive.from_profile()


def _echo_result(result: ExportResult) -> None:
    color = typer.colors.GREEN if result.ok else typer.colors.YELLOW
    typer.secho(f"[{result.region}] {'ok' if result.ok else 'degraded'}: {result.message}", fg=color)
    typer.echo(f"  raw:  {result.raw.name} {result.raw.web_view_link or result.raw.id}")
    typer.echo(f"  xlsx: {result.xlsx.name} {result.xlsx.web_view_link or result.xlsx.id}")
    typer.echo(f"  source: {result.source_type}  sheets: {', '.join(result.sheet_names)}")
    if result.columns:
        typer.echo(
            f"  rows with code: {result.rows_with_code}  rows without code: {result.rows_without_code}"
        )


@app.command("export")
def cmd_export(
    region: List[str] = typer.Option(..., "--region", help="Region key (IN/US/EU/UK); repeat to export several."),
    org: List[str] = typer.Option(..., "--org", help="Organization id; one per --region, or one for all."),
    from_date: Optional[str] = typer.Option(None, "--from", help="Start date YYYY-MM-DD (default: previous month)."),
    to_date: Optional[str] = typer.Option(None, "--to", help="End date YYYY-MM-DD (default: previous month)."),
    mode: str = typer.Option("canonical", "--mode", callback=_validate_mode, help="canonical or multi"),
    local: Optional[Path] = typer.Option(None, "--local", file_okay=False, help="Archive into this directory instead of Google Drive."),
    strict_columns: bool = typer.Option(False, "--strict-columns", help="Disable substring column matching."),
    columns: Optional[Path] = typer.Option(None, "--columns", dir_okay=False, help="Column alias YAML file."),
    workers: int = typer.Option(4, "--workers", min=1, help="Concurrent region exports."),
) -> None:
    """Fetch trial balances, normalize them and archive raw + XLSX files."""

    if len(org) not in (1, len(region)):
        raise typer.BadParameter("Pass one --org, or one --org per --region.", param_hint="--org")
    orgs = org * len(region) if len(org) == 1 else org
    regions = [r.strip().upper() for r in region]
    duplicates = sorted({r for r in regions if regions.count(r) > 1})
    if duplicates:
        # Archive names are per region.
        raise typer.BadParameter(f"Region given more than once: {', '.join(duplicates)}", param_hint="--region")

    if not from_date or not to_date:
        first, last = previous_month_range()
        from_date = from_date or first.isoformat()
        to_date = to_date or last.isoformat()

    try:
        requests = [
            ExportRequest(region=r, org_id=o, from_date=from_date, to_date=to_date, mode=mode)
            for r, o in zip(region, orgs)
        ]
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        exporter = TrialBalanceExporter(
            _zoho_client,
            _archive(local),
            settings=_settings(strict_columns),
            aliases=_load_aliases(columns),
        )
    except TBFlowError as exc:
        _handle_error(exc)

    outcomes = export_regions(exporter, requests, max_workers=workers)
    failed = False
    for (key_region, key_org), outcome in outcomes.items():
        if isinstance(outcome, Exception):
            failed = True
            typer.secho(f"[{key_region}] org {key_org} failed: {outcome}", fg=typer.colors.RED)
        else:
            _echo_result(outcome)
    if failed:
        raise typer.Exit(code=1)


@app.command("normalize")
def cmd_normalize(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="Saved report payload"),
    content_type: Optional[str] = typer.Option(None, "--content-type", help="Declared Content-Type of the payload."),
    out: Optional[Path] = typer.Option(None, "--out", dir_okay=False, help="Output XLSX path."),
    mode: str = typer.Option("canonical", "--mode", callback=_validate_mode, help="canonical or multi"),
    strict_columns: bool = typer.Option(False, "--strict-columns", help="Disable substring column matching."),
    columns: Optional[Path] = typer.Option(None, "--columns", dir_okay=False, help="Column alias YAML file."),
) -> None:
    """Normalize a saved payload into an XLSX workbook (no network)."""

    payload = RawPayload(
        content=file.read_bytes(),
        content_type=content_type,
        content_disposition=f'attachment; filename="{file.name}"',
    )
    result = normalize_payload(payload, mode, _settings(strict_columns), _load_aliases(columns))
    target = out or file.with_name(f"{file.stem}_normalized.xlsx")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(result.content)

    if result.ok:
        typer.secho(f"Wrote {target}", fg=typer.colors.GREEN)
    else:
        typer.secho(f"Wrote {target} (diagnostic): {result.diagnostic.message}", fg=typer.colors.YELLOW)
    typer.echo(f"source: {result.source_type}  sheets: {', '.join(result.sheet_names)}")
    for sheet, count in result.row_counts.items():
        typer.echo(f"  {sheet}: {count} rows")
    if result.columns:
        typer.echo(f"rows with code: {result.rows_with_code}  rows without code: {result.rows_without_code}")


@app.command("sniff")
def cmd_sniff(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="Payload file"),
    content_type: Optional[str] = typer.Option(None, "--content-type", help="Declared Content-Type."),
    content_disposition: Optional[str] = typer.Option(None, "--content-disposition", help="Declared Content-Disposition."),
) -> None:
    """Print the detected format of a payload (content and headers only)."""

    guess = sniff(file.read_bytes(), content_type, content_disposition)
    typer.echo(f"{guess.extension}\t{guess.mime}")


@app.command("probe")
def cmd_probe(
    region: str = typer.Option(..., "--region", help="Region key (IN/US/EU/UK)"),
    org: str = typer.Option(..., "--org", help="Organization id"),
    from_date: str = typer.Option(..., "--from", help="Start date YYYY-MM-DD"),
    to_date: str = typer.Option(..., "--to", help="End date YYYY-MM-DD"),
) -> None:
    """Try trial balance request variants and show what Zoho answers."""

    try:
        request = ExportRequest(region=region, org_id=org, from_date=from_date, to_date=to_date)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    client: ZohoBooksClient | None = None
    try:
        client = _zoho_client(request.region)
        results = client.probe_trial_balance(
            request.org_id, request.from_date.isoformat(), request.to_date.isoformat()
        )
    except Exception as exc:
        if isinstance(exc, typer.Exit):
            raise
        _handle_error(exc)
    else:
        for result in results:
            typer.echo(f"{result.variant}: HTTP {result.status_code} ok={result.ok}")
            if result.snippet:
                typer.echo(f"  {result.snippet}")
    finally:
        if client is not None:
            client.close()


@app.command("orgs")
def cmd_orgs(
    region: str = typer.Option(..., "--region", help="Region key (IN/US/EU/UK)"),
) -> None:
    """List organizations reachable through the region's connection."""

    client: ZohoBooksClient | None = None
    try:
        client = _zoho_client(region)
        organizations = client.list_organizations()
    except Exception as exc:
        if isinstance(exc, typer.Exit):
            raise
        _handle_error(exc)
    else:
        if not organizations:
            typer.echo("<empty>")
        for item in organizations:
            typer.echo(f"{item.get('organization_id', '--'):20} {item.get('name', '--')}")
    finally:
        if client is not None:
            client.close()


if __name__ == "__main__":  # pragma: no cover
    app()
