"""
CLI output helpers — envelopes on stdout, human text, error exits.

With ``--json`` a command prints exactly one envelope on stdout and
nothing else; logs stay on stderr. Without it, human-readable text.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, NoReturn

import click

from machinestate.core.config.settings import ConfigError
from machinestate.core.contract.envelope import JsonError, error_envelope, new_envelope, new_error
from machinestate.core.contract.errors import EngineError, ErrorCode

logger = logging.getLogger(__name__)


def emit_success(command: str, data: Any, *, run_id: str | None = None) -> None:
    """Print a successful envelope."""
    click.echo(new_envelope(command, data, run_id=run_id).to_json())


def fail(
    command: str,
    error: JsonError,
    as_json: bool,
    *,
    run_id: str | None = None,
) -> NoReturn:
    """Report a top-level failure and exit 1."""
    if as_json:
        click.echo(error_envelope(command, error, run_id=run_id).to_json())
    else:
        click.secho(f"❌ [{error.code.value}] {error.message}", fg="red", err=True)
        if error.detail:
            click.echo(f"   {error.detail}", err=True)
        if error.remediation:
            click.secho(f"   → {error.remediation}", fg="yellow", err=True)
    sys.exit(1)


def print_warnings(warnings: list[JsonError]) -> None:
    if not warnings:
        return
    click.secho("⚠️  Warnings:", fg="yellow")
    for warning in warnings:
        click.echo(f"   • [{warning.code.value}] {warning.message}")


@contextmanager
def command_guard(command: str, as_json: bool) -> Iterator[None]:
    """Turn any error escaping a command into one error report.

    EngineError keeps its code, ConfigError becomes PARSE_ERROR, and
    anything else INTERNAL_ERROR. ``sys.exit`` and click's own
    exceptions pass through untouched.
    """
    try:
        yield
    except EngineError as e:
        fail(command, e.to_json_error(), as_json)
    except ConfigError as e:
        fail(command, new_error(ErrorCode.PARSE_ERROR, str(e)), as_json)
    except click.ClickException:
        raise
    except Exception as e:
        logger.debug("Unhandled error in %s", command, exc_info=True)
        fail(
            command,
            new_error(ErrorCode.INTERNAL_ERROR, f"Unexpected error: {e}", detail=type(e).__name__),
            as_json,
        )


def status_color(status: str) -> str:
    return {"ok": "green", "partial": "yellow", "failed": "red"}.get(status, "white")
