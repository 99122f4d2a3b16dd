"""Report use case — read back the audit ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from machinestate.core.config.settings import Settings
from machinestate.core.persistence.audit import AuditEntry, AuditWriter


@dataclass
class ReportResult:
    entries: list[AuditEntry] = field(default_factory=list)
    total_entries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": len(self.entries),
            "totalEntries": self.total_entries,
            "entries": [e.model_dump(mode="json") for e in self.entries],
        }


def run_report(settings: Settings, limit: int = 20, run_id: str | None = None) -> ReportResult:
    """Most recent ledger entries, or every entry of one run."""
    writer = AuditWriter(state_dir=settings.state_dir)
    entries = writer.find(run_id) if run_id else writer.read_recent(limit)
    return ReportResult(entries=entries, total_entries=writer.entry_count())
