"""
Plan use case — load a manifest, build the plan, persist it.

manifest file → loader → planner → plan file + audit entry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from machinestate.adapters.registry import DriverRegistry
from machinestate.core.config.manifest_loader import load_manifest
from machinestate.core.config.settings import Settings
from machinestate.core.contract.envelope import JsonError
from machinestate.core.contract.errors import EngineError
from machinestate.core.engine.planner import build_plan
from machinestate.core.models.plan import Plan
from machinestate.core.persistence.audit import AuditEntry, AuditWriter
from machinestate.core.persistence.plan_file import default_plan_path, save_plan

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """Result of a planning pass."""

    plan: Plan | None = None
    plan_path: Path | None = None
    warnings: list[JsonError] = field(default_factory=list)
    error: EngineError | None = None

    @property
    def run_id(self) -> str | None:
        return self.plan.run_id if self.plan else None

    def to_dict(self) -> dict[str, Any]:
        """Plan document, plus where it was written and any loader warnings."""
        if self.plan is None:
            return {}
        doc = self.plan.to_document()
        if self.plan_path is not None:
            doc["planPath"] = str(self.plan_path)
        if self.warnings:
            doc["warnings"] = [w.to_dict() for w in self.warnings]
        return doc


def make_plan(
    manifest_path: Path,
    registry: DriverRegistry,
    settings: Settings,
    out: Path | None = None,
    persist: bool = True,
) -> PlanResult:
    """Build (and by default persist) the plan for a manifest file.

    Args:
        manifest_path: Manifest to plan from.
        registry: Initialized backend registry.
        settings: Resolved settings (state dir for plan file and audit).
        out: Explicit plan file; default ``<state-dir>/plans/<runId>.json``.
        persist: Write the plan file and audit entry.

    Returns:
        PlanResult; ``error`` is set instead of raising for engine errors.
    """
    result = PlanResult()

    try:
        manifest, warnings = load_manifest(manifest_path)
        result.warnings = warnings
        plan = build_plan(manifest, registry, manifest_path=manifest_path)
    except EngineError as e:
        logger.error("Planning failed: %s", e.message)
        result.error = e
        return result

    result.plan = plan
    if not persist:
        return result

    path = out or default_plan_path(settings.state_dir, plan.run_id)
    result.plan_path = save_plan(plan, path)

    summary = plan.summary
    AuditWriter(state_dir=settings.state_dir).write(
        AuditEntry(
            run_id=plan.run_id,
            command="plan",
            manifest=str(manifest_path),
            plan_path=str(result.plan_path),
            status="ok",
            context={"install": summary.install, "skip": summary.skip},
        )
    )
    return result
