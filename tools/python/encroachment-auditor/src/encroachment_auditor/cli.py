"""
Encroachment Auditor — CLI Entry Point
=======================================
Exposes :class:`~encroachment_auditor.orchestrator.AuditOrchestrator` as the
``geo-encroachment-audit`` command.  One-shot audits print the event stream
as JSON lines; ``--schedule`` keeps scanning the target on an interval.

Usage::

    # One-shot audit of a coordinate against the protected-zone catalog
    geo-encroachment-audit --lat 28.42 --lng 77.10

    # Jurisdiction audit at the Delhi hotspot (coordinate filled in)
    geo-encroachment-audit --state DELHI

    # Scan every 30 minutes
    geo-encroachment-audit --state UP --schedule 30

    # Dependency health / re-render a stored notice
    geo-encroachment-audit --health
    geo-encroachment-audit --notice 0x3f...

Credentials and paths come from the environment (optionally a ``.env`` file);
run ``geo-encroachment-audit --help`` for the full option list.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from pathlib import Path

import click
from dotenv import find_dotenv, load_dotenv

from shared.python.exceptions import GeoAuditError

from encroachment_auditor.config import AuditorSettings
from encroachment_auditor.health import check_system_health
from encroachment_auditor.notice import lookup_notice
from encroachment_auditor.orchestrator import AuditOrchestrator
from encroachment_auditor.scheduler import AuditScheduler, ScanTarget
from encroachment_auditor.store import JsonlDetectionStore
from encroachment_auditor.telemetry import TelemetryClient

logger = logging.getLogger("geoaudit.encroachment_auditor.cli")

# High-risk sectors audited when only a state code is given
HOTSPOTS: dict[str, ScanTarget] = {
    "DELHI": ScanTarget(28.545, 77.300, "DELHI", "Yamuna Floodplain (Okhla)"),
    "UP": ScanTarget(24.150, 82.900, "UP", "Sonbhadra Stone Mines"),
}


def _load_env_file(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    # Eager: runs before the envvar-bound options below are resolved
    load_dotenv(value or find_dotenv(usecwd=True))
    return value


def resolve_target(lat: float | None, lng: float | None, state_code: str | None) -> ScanTarget:
    """Pick the coordinate to audit, falling back to the state's hotspot."""
    code = state_code.strip().upper() if state_code else None
    hotspot = HOTSPOTS.get(code) if code else None
    if lat is None and lng is None and hotspot is not None:
        return hotspot
    if lat is None or lng is None:
        raise click.UsageError("Missing coordinates: pass --lat and --lng (or a known --state).")
    label = hotspot.label if hotspot is not None else "Target Sector"
    return ScanTarget(lat, lng, code, label)


@click.command("geo-encroachment-audit")
@click.option(
    "--env-file", default=None, is_eager=True, expose_value=False, callback=_load_env_file,
    type=click.Path(dir_okay=False),
    help="Load environment variables from this file (default: nearest .env).",
)
@click.option("--lat", type=float, default=None, help="Latitude of the point to audit.")
@click.option("--lng", type=float, default=None, help="Longitude of the point to audit.")
@click.option(
    "--state", "state_code", default=None,
    help="Jurisdiction code (e.g. DELHI, UP). Selects the jurisdiction rule path.",
)
@click.option(
    "--client-id", default=None, envvar="SENTINEL_CLIENT_ID",
    help="Statistics API OAuth client id (or set SENTINEL_CLIENT_ID).",
)
@click.option(
    "--client-secret", default=None, envvar="SENTINEL_CLIENT_SECRET",
    help="Statistics API OAuth client secret (or set SENTINEL_CLIENT_SECRET).",
)
@click.option(
    "--store", "store_path", default=None, envvar="DETECTIONS_PATH",
    type=click.Path(dir_okay=False),
    help="JSONL detection store (or set DETECTIONS_PATH). Default: detections.jsonl.",
)
@click.option(
    "--zones", "zones_path", default=None, envvar="PROTECTED_ZONES_PATH",
    type=click.Path(exists=True, dir_okay=False),
    help="Protected-zone catalog (or set PROTECTED_ZONES_PATH). Default: bundled catalog.",
)
@click.option(
    "--ledger-url", default=None, envvar="LEDGER_URL",
    help="Anchoring service URL (or set LEDGER_URL). Default: simulated testnet ledger.",
)
@click.option(
    "--timeout", "audit_timeout_s", type=float, default=None, envvar="AUDIT_TIMEOUT_S",
    help="Wall-clock budget per audit in seconds (or set AUDIT_TIMEOUT_S). Default: 60.",
)
@click.option(
    "--schedule", "interval_minutes", type=int, default=None,
    help="Re-audit the target every N minutes. Omit for a single one-shot run.",
)
@click.option("--health", is_flag=True, default=False, help="Print dependency health and exit.")
@click.option("--notice", "notice_ref", default=None,
              help="Print the legal notice for a stored detection (UUID or 0x hash) and exit.")
@click.option("--verbose", is_flag=True, default=False, help="Enable DEBUG logging.")
def cli(
    lat: float | None,
    lng: float | None,
    state_code: str | None,
    client_id: str | None,
    client_secret: str | None,
    store_path: str | None,
    zones_path: str | None,
    ledger_url: str | None,
    audit_timeout_s: float | None,
    interval_minutes: int | None,
    health: bool,
    notice_ref: str | None,
    verbose: bool,
) -> None:
    """Audit a coordinate for illegal encroachment on protected land.

    Prints one JSON object per line: ``log`` progress events followed by a
    single ``result`` or ``error`` event.  Exits 1 on ``error``.

    \b
    Examples:
        geo-encroachment-audit --lat 28.42 --lng 77.10
        geo-encroachment-audit --state DELHI --verbose
        geo-encroachment-audit --state UP --schedule 30
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    overrides = {
        "client_id": client_id,
        "client_secret": client_secret,
        "detections_path": Path(store_path) if store_path else None,
        "zones_path": Path(zones_path) if zones_path else None,
        "ledger_url": ledger_url,
        "audit_timeout_s": audit_timeout_s,
    }
    settings = dataclasses.replace(
        AuditorSettings.from_env(), **{k: v for k, v in overrides.items() if v is not None}
    )

    if health:
        try:
            store = JsonlDetectionStore(settings.detections_path)
        except GeoAuditError as exc:
            logger.error("Store unavailable: %s", exc.message)
            store = None
        report = check_system_health(TelemetryClient.from_settings(settings), store)
        click.echo(json.dumps(report.to_dict()))
        sys.exit(0 if report.healthy else 1)

    if notice_ref:
        try:
            click.echo(lookup_notice(JsonlDetectionStore(settings.detections_path), notice_ref))
        except GeoAuditError as exc:
            click.echo(f"Error: {exc.message}", err=True)
            sys.exit(1)
        return

    target = resolve_target(lat, lng, state_code)

    try:
        orchestrator = AuditOrchestrator.from_settings(settings, verbose=verbose)
    except GeoAuditError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    if interval_minutes is not None:
        AuditScheduler(orchestrator, [target], interval_minutes=interval_minutes).start()
        return

    click.echo(json.dumps({
        "type": "log",
        "message": f"[System] Target: {target.label} ({target.lat:.4f}, {target.lng:.4f})",
    }))
    failed = False
    for event in orchestrator.stream_audit(target.lat, target.lng, target.state_code):
        click.echo(event.to_json())
        failed = event.kind == "error"
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    cli()
