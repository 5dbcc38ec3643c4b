"""
linux-init — CLI entrypoint.

Usage:
    linux-init              provision this host (asks for confirmation)
    linux-init --yes        provision without the welcome prompt
    linux-init status       show the last run's progress
    linux-init probe        show what the environment probe detects
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from linux_init import __version__
from linux_init.core.config.loader import InitConfig, load_config
from linux_init.core.errors import ConfigError, ProbeError
from linux_init.core.observability.logging_config import setup_logging

_STATUS_MARKERS = {
    "done": ("✓", "green"),
    "success": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "failed": ("✗", "red"),
    "pending": ("·", "white"),
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="linux-init")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to linux-init.yml (default: $LINUX_INIT_CONFIG or /etc/linux-init.yml).",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the welcome confirmation.")
@click.option("--dry-run", is_flag=True, help="Log commands and fetches without executing them.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    assume_yes: bool,
    dry_run: bool,
) -> None:
    """Linux Init — provision a fresh Ubuntu, Debian or Alpine host."""
    ctx.ensure_object(dict)

    # ── Logging setup (console only until a run starts) ─────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("LINUX_INIT_LOG_LEVEL", "WARNING")
    setup_logging(level=level, quiet_third_party=not debug)

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e.message}", fg="red", err=True)
        sys.exit(int(e.exit_code))

    ctx.obj["level"] = level
    ctx.obj["config"] = config
    ctx.obj["dry_run"] = dry_run

    if ctx.invoked_subcommand is None:
        sys.exit(_provision(config, level=level, assume_yes=assume_yes, dry_run=dry_run))


# ── Provisioning ────────────────────────────────────────────────


def _show_welcome(titles: list[str]) -> None:
    click.secho("=" * 43, fg="green")
    click.secho("    Linux system initialization", fg="green", bold=True)
    click.secho("    Ubuntu, Debian and Alpine", fg="green")
    click.secho("=" * 43, fg="green")
    click.echo("This will run the following steps:")
    for n, title in enumerate(titles, start=1):
        click.echo(f"  {n}. {title}")
    click.echo()
    click.secho("Some steps ask for input.", fg="yellow")
    click.echo()


def _provision(config: InitConfig, *, level: str, assume_yes: bool, dry_run: bool) -> int:
    from linux_init.core.engine.orchestrator import Orchestrator
    from linux_init.core.persistence.ledger import ProgressLedger
    from linux_init.core.services.prompts import ClickPrompter
    from linux_init.core.steps import build_steps

    steps = build_steps()
    _show_welcome([s.display_name for s in steps])
    if not assume_yes and not click.confirm("Continue?", default=False):
        click.echo("Cancelled.")
        return 0

    setup_logging(level=level, log_file=config.paths.log_file)

    ledger = ProgressLedger(config.paths.progress_file, config.paths.progress_state_file)
    orchestrator = Orchestrator(config, ledger, ClickPrompter(), dry_run=dry_run)
    summary = orchestrator.execute(steps)

    click.echo()
    if summary.completed:
        click.secho("=" * 43, fg="green")
        title = "Linux initialization complete!"
        if summary.failed:
            title = f"Linux initialization complete with {summary.failed} failed step(s)"
        click.secho(f"    {title}", fg="green" if not summary.failed else "yellow", bold=True)
    else:
        click.secho("=" * 43, fg="red")
        click.secho(f"    Initialization aborted: {summary.abort_reason}", fg="red", bold=True)

    for step in steps:
        outcome = summary.outcomes.get(step.id)
        status = outcome.status if outcome else "pending"
        marker, color = _STATUS_MARKERS[status]
        click.secho(f"    {marker} {step.display_name}", fg=color, nl=False)
        detail = outcome.detail if outcome else ""
        click.echo(f" — {detail}" if detail else "")

    if summary.environment is not None:
        click.echo()
        click.echo(f"    Progress: {config.paths.progress_file}")
        click.echo(f"    Log:      {config.paths.log_file}")
    click.echo("=" * 43)
    return summary.exit_code


# ── Read-only commands ──────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the progress recorded by the last run."""
    from linux_init.core.persistence.ledger import load_ledger

    config: InitConfig = ctx.obj["config"]
    doc = load_ledger(config.paths.progress_state_file)

    if doc is None:
        if as_json:
            click.echo(json.dumps({"error": "no progress recorded"}))
        else:
            click.secho(f"❌ No progress recorded at {config.paths.progress_state_file}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(doc.model_dump(mode="json"), indent=2))
        return

    click.secho(f"\n📋 Run started {doc.started_at}", fg="cyan", bold=True)
    for entry in doc.entries.values():
        marker, color = _STATUS_MARKERS[entry.status.value]
        click.secho(f"   {marker} {entry.title or entry.step_id}", fg=color, nl=False)
        click.echo(f" — {entry.message}" if entry.message else "")
    counts = doc.counts()
    click.echo()
    click.echo(
        f"   {counts['done']} done, {counts['skipped']} skipped, "
        f"{counts['failed']} failed, {counts['pending']} pending"
    )
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def probe(as_json: bool) -> None:
    """Detect the host environment without changing anything."""
    from linux_init.core.services.probe import probe_environment

    try:
        env = probe_environment()
    except ProbeError as e:
        if as_json:
            click.echo(json.dumps(e.to_dict(), indent=2))
        else:
            click.secho(f"❌ {e.message}", fg="red")
        sys.exit(int(e.exit_code))

    if as_json:
        data = env.model_dump(mode="json")
        data["root_disk_size_gb"] = env.root_disk_size_gb
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"\n🔍 {env.pretty_name or env.distro_id}", fg="cyan", bold=True)
    click.echo(f"   Distro:          {env.distro_id} {env.distro_version}")
    virt = env.virtualization.value
    if env.virtualization_raw and env.virtualization_raw != virt:
        virt += f" ({env.virtualization_raw})"
    click.echo(f"   Virtualization:  {virt}")
    click.echo(f"   Root disk:       {env.root_disk_size_gb}GB")
    click.echo(f"   sudo:            {'yes' if env.has_privilege_elevation else 'no'}")
    click.echo(f"   Running as root: {'yes' if env.is_root else 'no'}")
    click.echo()


if __name__ == "__main__":
    cli()
