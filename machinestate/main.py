"""
machinestate — CLI entrypoint.

Usage:
    machinestate --help
    machinestate plan --manifest machine.yml
    machinestate apply --plan .machinestate/plans/20251219-010000.json --dry-run
    machinestate capabilities --json
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from machinestate import __version__
from machinestate.core.observability.logging_config import configure_cli_logging
from machinestate.ui.cli.context import get_registry, get_settings
from machinestate.ui.cli.output import (
    command_guard,
    emit_success,
    fail,
    print_warnings,
    status_color,
)


@click.group()
@click.version_option(version=__version__, prog_name="machinestate")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="State directory for plans and the audit ledger (default: ./.machinestate).",
)
@click.option(
    "--schema-version",
    default=None,
    help="Fail unless this build emits the given envelope schema version (e.g. 1.0).",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to a settings file (default: <state-dir>/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    state_dir: Path | None,
    schema_version: str | None,
    config_path: Path | None,
) -> None:
    """machinestate — reconcile this machine against a declarative manifest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["state_dir"] = state_dir
    ctx.obj["schema_version"] = schema_version
    ctx.obj["config_path"] = config_path

    # Console level from flags/env now; the settings file may retune it later.
    ctx.obj["log_choice"] = configure_cli_logging(debug=debug, verbose=verbose, quiet=quiet)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def capabilities(ctx: click.Context, as_json: bool) -> None:
    """Show supported schema versions, commands, flags and backends."""
    from machinestate.core.contract.capabilities import get_capabilities

    with command_guard("capabilities", as_json):
        get_settings(ctx)
        caps = get_capabilities(get_registry(ctx))

    if as_json:
        emit_success("capabilities", caps)
        return

    click.secho(f"\n🧭 machinestate {caps['cliVersion']}", fg="cyan", bold=True)
    versions = caps["schemaVersions"]
    click.echo(f"   Schema versions: {versions['min']} .. {versions['max']}")
    platform = caps["platform"]
    click.echo(f"   Platform:  {platform['os']}")
    click.echo(f"   Drivers:   {', '.join(platform['drivers']) or '(none)'}")
    click.echo(f"   Restorers: {', '.join(platform['restorers']) or '(none)'}")
    click.echo(f"   Verifiers: {', '.join(platform['verifiers']) or '(none)'}")
    click.echo()
    click.secho("   Commands:", fg="white", bold=True)
    for name, info in caps["commands"].items():
        click.echo(f"     • {name:<13} {' '.join(info['flags'])}")
    click.echo()


@cli.command()
@click.option(
    "--manifest",
    "manifest_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Manifest to plan from.",
)
@click.option(
    "--out",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the plan (default: <state-dir>/plans/<runId>.json).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, manifest_path: Path, out: Path | None, as_json: bool) -> None:
    """Compute what apply would do, and save the plan."""
    from machinestate.core.use_cases.plan import make_plan

    with command_guard("plan", as_json):
        settings = get_settings(ctx)
        result = make_plan(manifest_path, get_registry(ctx), settings, out=out)

    if result.error:
        fail("plan", result.error.to_json_error(), as_json)

    if as_json:
        emit_success("plan", result.to_dict(), run_id=result.run_id)
        return

    built = result.plan
    assert built is not None  # guaranteed after error check above
    print_warnings(result.warnings)
    click.secho(f"\n📋 Plan {built.run_id}", fg="cyan", bold=True)
    for action in built.actions:
        if action.status == "skip":
            click.secho(f"   ⊘ {action.type:<8} {action.id}  ({action.reason})", fg="bright_black")
        else:
            click.echo(f"   ➕ {action.type:<8} {action.id}  → {action.driver}:{action.ref}")
    summary = built.summary
    click.echo()
    click.echo(f"   {summary.install} to install, {summary.skip} to skip")
    if not ctx.obj.get("quiet"):
        click.echo(f"   Saved: {result.plan_path}")
    click.echo()


@cli.command()
@click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Plan from this manifest and apply it.",
)
@click.option(
    "--plan",
    "plan_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Apply a saved plan.",
)
@click.option("--dry-run", is_flag=True, help="Show what would happen without installing.")
@click.option("--fail-fast", is_flag=True, help="Stop after the first failed action.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(
    ctx: click.Context,
    manifest_path: Path | None,
    plan_path: Path | None,
    dry_run: bool,
    fail_fast: bool,
    as_json: bool,
) -> None:
    """Install what is missing, restore files, and run checks."""
    from machinestate.core.use_cases.apply import run_apply

    if (manifest_path is None) == (plan_path is None):
        raise click.UsageError("Specify exactly one of --manifest or --plan.")

    with command_guard("apply", as_json):
        settings = get_settings(ctx)
        run = run_apply(
            get_registry(ctx),
            settings,
            manifest_path=manifest_path,
            plan_path=plan_path,
            dry_run=dry_run,
            fail_fast=fail_fast,
        )

    if run.error:
        fail("apply", run.error.to_json_error(), as_json)

    result = run.result
    assert result is not None  # guaranteed after error check above

    if as_json:
        emit_success("apply", run.to_dict(), run_id=result.run_id)
        sys.exit(1 if run.has_failures else 0)

    print_warnings(run.warnings)
    if result.manifest_drift:
        click.secho("⚠️  Manifest changed since this plan was built", fg="yellow")

    mode = " (dry run)" if dry_run else ""
    click.secho(f"\n⚡ Apply {result.run_id}{mode}", fg="cyan", bold=True)
    if result.original_plan_run_id:
        click.echo(f"   From plan {result.original_plan_run_id}")
    for outcome in result.outcomes:
        icon = {"success": "✅", "failed": "❌"}.get(outcome.status, "⊘ ")
        line = f"   {icon} {outcome.action.type:<8} {outcome.action.id}"
        if outcome.status == "failed":
            click.secho(f"{line}  {outcome.reason}", fg="red")
        elif outcome.status == "skipped":
            click.secho(f"{line}  ({outcome.reason})", fg="bright_black")
        else:
            click.echo(line)

    click.echo()
    click.echo(f"   {result.success} succeeded, {result.skipped} skipped, ", nl=False)
    click.secho(f"{result.failed} failed", fg=status_color(result.status))
    click.echo()

    if run.has_failures:
        sys.exit(1)


@cli.command()
@click.option(
    "--manifest",
    "manifest_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Manifest to verify against.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, manifest_path: Path, as_json: bool) -> None:
    """Check installed apps and verify entries without changing anything."""
    from machinestate.core.use_cases.verify import run_verify

    with command_guard("verify", as_json):
        settings = get_settings(ctx)
        result = run_verify(manifest_path, get_registry(ctx), settings)

    if result.error:
        fail("verify", result.error.to_json_error(), as_json, run_id=result.run_id)

    if as_json:
        emit_success("verify", result.to_dict(), run_id=result.run_id)
        sys.exit(1 if result.fail_count else 0)

    print_warnings(result.warnings)
    click.secho(f"\n🔍 Verify {result.run_id}", fg="cyan", bold=True)
    for check in result.checks:
        if check.passed:
            click.echo(f"   ✅ {check.kind:<6} {check.id}")
        else:
            click.secho(f"   ❌ {check.kind:<6} {check.id}  {check.message}", fg="red")
    click.echo()
    click.echo(f"   {result.pass_count} passed, {result.fail_count} failed")
    click.echo()

    if result.fail_count:
        sys.exit(1)


@cli.command()
@click.option(
    "--out",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Manifest file to write (.yml, .yaml or .json).",
)
@click.option("--name", default=None, help="Manifest name (default: file stem).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def capture(ctx: click.Context, out: Path, name: str | None, as_json: bool) -> None:
    """Write a manifest from the packages installed on this machine."""
    from machinestate.core.use_cases.capture import run_capture

    with command_guard("capture", as_json):
        settings = get_settings(ctx)
        result = run_capture(out, get_registry(ctx), settings, name=name)

    if result.error:
        fail("capture", result.error.to_json_error(), as_json, run_id=result.run_id)

    if as_json:
        emit_success("capture", result.to_dict(), run_id=result.run_id)
        return

    click.secho(
        f"✅ Captured {result.app_count} apps via {result.driver} → {result.manifest_path}",
        fg="green",
    )


# ── Register sub-commands from machinestate/ui/cli/ ────────────

from machinestate.ui.cli.report import report  # noqa: E402

cli.add_command(report)


if __name__ == "__main__":
    cli()
