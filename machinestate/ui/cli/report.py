"""
CLI command for the audit ledger.

Usage::

    machinestate report
    machinestate report --limit 5 --json
    machinestate report --run-id 20251219-010000
"""

from __future__ import annotations

import click

from machinestate.ui.cli.context import get_settings
from machinestate.ui.cli.output import command_guard, emit_success, status_color


@click.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, help="Number of entries to show.")
@click.option("--run-id", default=None, help="Show every entry of one run.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def report(ctx: click.Context, limit: int, run_id: str | None, as_json: bool) -> None:
    """Show recent plan/apply/verify/capture runs from the audit ledger."""
    from machinestate.core.use_cases.report import run_report

    with command_guard("report", as_json):
        settings = get_settings(ctx)
        result = run_report(settings, limit=limit, run_id=run_id)

    if as_json:
        emit_success("report", result.to_dict())
        return

    if not result.entries:
        click.secho("📭 No audit entries.", fg="yellow")
        return

    click.secho(f"\n📜 Audit ledger ({result.total_entries} entries)", fg="cyan", bold=True)
    for entry in result.entries:
        dry = " (dry run)" if entry.dry_run else ""
        click.echo(f"   {entry.timestamp[:19]}  {entry.command:<8} {entry.run_id}{dry}  ", nl=False)
        click.secho(entry.status or "-", fg=status_color(entry.status))
        if entry.command in ("apply", "verify"):
            click.echo(
                f"      success={entry.success} skipped={entry.skipped} failed={entry.failed}"
            )
        for err in entry.errors:
            click.secho(f"      • {err}", fg="red")
    click.echo()
