"""Run identifiers and UTC timestamps in the contract formats."""

from __future__ import annotations

from datetime import UTC, datetime

RUN_ID_FORMAT = "%Y%m%d-%H%M%S"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def generate_run_id(now: datetime | None = None) -> str:
    """Run id for a new planning/apply pass, e.g. ``20251219-010000``."""
    return (now or datetime.now(UTC)).strftime(RUN_ID_FORMAT)


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with second precision, e.g. ``2025-12-19T01:00:00Z``."""
    moment = now or datetime.now(UTC)
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return moment.strftime(TIMESTAMP_FORMAT)
