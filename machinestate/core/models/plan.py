"""
Plan model — the ordered list of actions for one reconciliation pass.

A Plan is a value object: built once by the planner, optionally written
to disk, and replayed by the executor. It is never mutated.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from machinestate.core.models.action import Action


class ManifestSnapshot(BaseModel):
    """Which manifest a plan was built from (for drift detection)."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    path: str | None = None
    hash: str = ""


class PlanSummary(BaseModel):
    """Per-status action counts."""

    model_config = ConfigDict(frozen=True)

    install: int = 0
    skip: int = 0


class Plan(BaseModel):
    """Immutable, ordered reconciliation plan."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    run_id: str = Field(alias="runId")
    manifest: ManifestSnapshot = Field(default_factory=ManifestSnapshot)
    actions: tuple[Action, ...] = ()

    @property
    def summary(self) -> PlanSummary:
        """Counts derived from the action list, never stored separately."""
        return PlanSummary(
            install=sum(1 for a in self.actions if a.status == "install"),
            skip=sum(1 for a in self.actions if a.status == "skip"),
        )

    @property
    def total_actions(self) -> int:
        return len(self.actions)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the persisted plan document layout."""
        summary = self.summary
        return {
            "runId": self.run_id,
            "manifest": {
                "name": self.manifest.name,
                "path": self.manifest.path,
                "hash": self.manifest.hash,
            },
            "actions": [a.to_document() for a in self.actions],
            "summary": {"install": summary.install, "skip": summary.skip},
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Plan:
        """Rebuild a Plan from its document. A stored ``summary`` is ignored."""
        return cls.model_validate(
            {
                "runId": data["runId"],
                "manifest": data.get("manifest") or {},
                "actions": data["actions"],
            }
        )
