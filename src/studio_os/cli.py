# src/studio_os/cli.py
"""Studio OS Command Line Interface.

Entry point for the studio-os CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import typer
import yaml
from pydantic import ValidationError

from studio_os import __version__
from studio_os.core.config import StudioOsSettings, load_settings, resolve_config

__all__ = ["app"]

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="studio-os",
    help="Studio OS: audited studio state, detectors and governed capabilities.",
    no_args_is_help=True,
)

SETTINGS_OPTION = typer.Option(None, "--settings", "-s", help="Path to settings YAML file.")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"studio-os version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


def _load(settings: str | None) -> StudioOsSettings:
    """Load settings, turning config errors into a readable exit."""
    path = Path(settings).expanduser() if settings else None
    try:
        return load_settings(path)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _read_manifest(path: Path) -> dict[str, Any]:
    from studio_os.capabilities.manifests import read_manifest_file

    try:
        return read_manifest_file(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        typer.echo(f"Error reading manifest {path}: {e}", err=True)
        raise typer.Exit(1) from None


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose/debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs (for machine processing)."),
) -> None:
    """Studio OS: audited studio state, detectors and governed capabilities."""
    from studio_os.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


@app.command("run-pass")
def run_pass(
    settings: str | None = SETTINGS_OPTION,
    loop: bool = typer.Option(False, "--loop", help="Keep running on the configured interval."),
) -> None:
    """Compute the studio-state snapshot, run detectors and record the pass."""
    from studio_os.engine import STATE_JOB_NAME, IntervalScheduler, JobRunner, StudioStatePass
    from studio_os.ledger import EventStore, LedgerDB, StateStore
    from studio_os.state import JsonFileSourceReader, StateComputer

    config = _load(settings)
    if not config.state.sources:
        typer.echo("Error: no state sources configured (state.sources)", err=True)
        raise typer.Exit(1)

    db = LedgerDB.from_url(config.ledger.url)
    events = EventStore(db)
    state_store = StateStore(db)
    computer = StateComputer([JsonFileSourceReader(source.name, Path(source.path)) for source in config.state.sources])
    studio_pass = StudioStatePass(
        computer,
        state_store,
        events,
        state=config.state,
        drift=config.drift,
        detectors=config.detectors,
    )
    runner = JobRunner(events, state_store, {STATE_JOB_NAME: lambda: studio_pass.run().summary})

    try:
        if loop:
            scheduler = IntervalScheduler(
                runner,
                STATE_JOB_NAME,
                interval_seconds=config.scheduler.interval_minutes * 60,
                run_on_start=config.scheduler.run_on_start,
                jitter_seconds=config.scheduler.jitter_seconds,
            )
            try:
                scheduler.run_forever()
            except KeyboardInterrupt:
                typer.echo("Stopped.")
            return

        try:
            run = runner.run(STATE_JOB_NAME)
        except Exception as e:
            typer.echo(f"Pass failed: {e}", err=True)
            raise typer.Exit(1) from None
        stats = runner.stats()[STATE_JOB_NAME]
        typer.echo(f"{STATE_JOB_NAME}: {stats.last_status} (run {run.run_id if run else '-'})")
        for record in state_store.list_recent_job_runs(1):
            if record.summary:
                typer.echo(record.summary)
    finally:
        db.close()


@app.command("lint-policy")
def lint_policy(
    settings: str | None = SETTINGS_OPTION,
    manifest: list[Path] = typer.Option([], "--manifest", "-m", help="Signed capability manifest to include."),
    output_format: str = typer.Option("console", "--format", "-f", help="'console' or 'json'."),
) -> None:
    """Lint the capability set. Exits 1 when any capability is blocked."""
    from studio_os.capabilities import CapabilityRegistry
    from studio_os.contracts.errors import ManifestTrustError
    from studio_os.core.security.signatures import SignatureVerifier

    config = _load(settings)
    manifests = [_read_manifest(path) for path in manifest]
    try:
        registry = CapabilityRegistry.from_manifests(manifests, SignatureVerifier(config.trust.trust_anchors))
    except ManifestTrustError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    issues = registry.issues()
    if output_format == "json":
        _echo_json({"capabilities": [c.id for c in registry.list_capabilities()], "issues": [i.to_dict() for i in issues]})
    else:
        for capability in registry.list_capabilities():
            blocked = registry.issues_for(capability.id)
            status = typer.style("BLOCKED", fg=typer.colors.RED) if blocked else typer.style("ok", fg=typer.colors.GREEN)
            typer.echo(f"{capability.id}: {status}")
            for issue in blocked:
                typer.echo(f"  - {issue.code.value}: {issue.message}")
    if issues:
        raise typer.Exit(1)


@app.command("verify-ledger")
def verify_ledger(settings: str | None = SETTINGS_OPTION) -> None:
    """Recompute the ledger hash chain."""
    from studio_os.ledger import EventStore, LedgerDB

    config = _load(settings)
    with LedgerDB.from_url(config.ledger.url, create_tables=False) as db:
        result = EventStore(db).verify_chain()
    if result.ok:
        typer.echo(f"Ledger OK: {result.records_checked} records")
        return
    typer.secho(
        f"Ledger broken at sequence {result.broken_at_sequence}: {result.detail} ({result.records_checked} records verified)",
        fg=typer.colors.RED,
        err=True,
    )
    raise typer.Exit(1)


@app.command("export-audit")
def export_audit(
    settings: str | None = SETTINGS_OPTION,
    limit: int = typer.Option(500, "--limit", "-n", min=1, help="Newest records to export."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the bundle here instead of stdout."),
) -> None:
    """Export the newest ledger records as a hashed (optionally signed) bundle."""
    from studio_os.core.clock import DEFAULT_CLOCK
    from studio_os.ledger import EventStore, LedgerDB
    from studio_os.ledger.export import build_audit_bundle

    config = _load(settings)
    with LedgerDB.from_url(config.ledger.url, create_tables=False) as db:
        records = EventStore(db).list_recent(limit)
    bundle = build_audit_bundle(records, generated_at=DEFAULT_CLOCK.now(), signing_key=config.trust.export_signing_key)
    if output is None:
        _echo_json(bundle)
        return
    output.write_text(json.dumps(bundle, indent=2, sort_keys=True), encoding="utf-8")
    typer.echo(f"Wrote {bundle['manifest']['row_count']} records to {output}")


@app.command("sign-manifest")
def sign_manifest_command(
    path: Path = typer.Argument(..., help="Manifest YAML/JSON to sign."),
    key_id: str = typer.Option(..., "--key-id", help="Trust anchor id recorded in the manifest."),
    key: str = typer.Option(..., "--key", envvar="STUDIO_OS_SIGNING_KEY", help="Trust anchor secret."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the signed manifest here."),
) -> None:
    """Attach an hmac-sha256 signature to a capability manifest."""
    from studio_os.core.security.signatures import attach_signature

    signed = attach_signature(_read_manifest(path), key_id=key_id, key=key)
    text = yaml.safe_dump(signed, sort_keys=False)
    if output is None:
        typer.echo(text)
        return
    output.write_text(text, encoding="utf-8")
    typer.echo(f"Signed {path} with key {key_id} -> {output}")


@app.command("verify-manifest")
def verify_manifest(
    path: Path = typer.Argument(..., help="Signed manifest to verify."),
    settings: str | None = SETTINGS_OPTION,
) -> None:
    """Check a manifest signature against the configured trust anchors."""
    from studio_os.core.security.signatures import SignatureVerifier

    config = _load(settings)
    result = SignatureVerifier(config.trust.trust_anchors).verify(_read_manifest(path))
    if result.ok:
        typer.echo(f"{path}: signature ok")
        return
    typer.secho(f"{path}: {result.describe()}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


@app.command("show-config")
def show_config(settings: str | None = SETTINGS_OPTION) -> None:
    """Print the resolved configuration with secrets fingerprinted."""
    config = _load(settings)
    _echo_json(resolve_config(config, redact_if_no_key=True))
