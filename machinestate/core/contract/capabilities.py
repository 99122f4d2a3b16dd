"""
Capabilities document — the negotiation surface for consumers.

A consumer reads this before parsing any other command's output to
find out which schema versions, commands, flags and backends this
build supports.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from machinestate import __version__
from machinestate.core.contract.envelope import MAX_SCHEMA_VERSION, MIN_SCHEMA_VERSION
from machinestate.core.contract.errors import EngineError, ErrorCode

if TYPE_CHECKING:
    from machinestate.adapters.registry import DriverRegistry

# Command -> flags it accepts. Kept in step with the click commands in main.py.
COMMANDS: dict[str, list[str]] = {
    "capture": ["--out", "--name", "--json"],
    "plan": ["--manifest", "--out", "--json"],
    "apply": ["--manifest", "--plan", "--dry-run", "--fail-fast", "--json"],
    "verify": ["--manifest", "--json"],
    "report": ["--limit", "--run-id", "--json"],
    "capabilities": ["--json"],
}

FEATURES: dict[str, bool] = {
    "jsonOutput": True,
    "dryRun": True,
    "planReplay": True,
    "manifestIncludes": True,
    "failFast": True,
    "auditLedger": True,
}

_VERSION_RE = re.compile(r"^\s*(\d+)(?:\.(\d+))?\s*$")


def parse_schema_version(value: str) -> tuple[int, int]:
    """Parse ``MAJOR[.MINOR]`` into a comparable tuple.

    Raises:
        EngineError: PARSE_ERROR if the string is not a version.
    """
    match = _VERSION_RE.match(value or "")
    if not match:
        raise EngineError(
            ErrorCode.PARSE_ERROR,
            f"Invalid schema version: {value!r}",
            detail="Expected MAJOR.MINOR, e.g. 1.0",
        )
    return int(match.group(1)), int(match.group(2) or 0)


def check_schema_version(requested: str | None) -> None:
    """Fail fast if asked to run under an unsupported schema version.

    ``None`` means "whatever this build emits" and always passes.

    Raises:
        EngineError: SCHEMA_INCOMPATIBLE outside [min, max].
    """
    if requested is None:
        return
    wanted = parse_schema_version(requested)
    low = parse_schema_version(MIN_SCHEMA_VERSION)
    high = parse_schema_version(MAX_SCHEMA_VERSION)
    if not low <= wanted <= high:
        raise EngineError(
            ErrorCode.SCHEMA_INCOMPATIBLE,
            f"Schema version {requested} is not supported "
            f"(supported: {MIN_SCHEMA_VERSION}..{MAX_SCHEMA_VERSION})",
        )


def get_capabilities(registry: DriverRegistry) -> dict[str, Any]:
    """Build the capabilities document for this build and host."""
    return {
        "cliVersion": __version__,
        "schemaVersions": {"min": MIN_SCHEMA_VERSION, "max": MAX_SCHEMA_VERSION},
        "commands": {
            name: {"supported": True, "flags": list(flags)}
            for name, flags in COMMANDS.items()
        },
        "features": dict(FEATURES),
        "platform": {
            "os": registry.platform,
            "drivers": registry.list_drivers(),
            "restorers": registry.list_restorers(),
            "verifiers": registry.list_verifiers(),
        },
    }
