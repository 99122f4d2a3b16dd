"""
Apply use case — reconcile the machine from a manifest or a saved plan.

Exactly one source:
    --manifest  → load → plan (in memory) → apply
    --plan      → load plan file → drift check → apply

Every apply appends one entry to the audit ledger, dry runs included.
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
from machinestate.core.engine.executor import ApplyPolicy, ApplyResult, apply_plan, apply_plan_file
from machinestate.core.engine.planner import build_plan
from machinestate.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class ApplyRunResult:
    """Outcome of the apply command."""

    result: ApplyResult | None = None
    warnings: list[JsonError] = field(default_factory=list)
    error: EngineError | None = None

    @property
    def run_id(self) -> str | None:
        return self.result.run_id if self.result else None

    @property
    def has_failures(self) -> bool:
        return self.result is not None and self.result.failed > 0

    def to_dict(self) -> dict[str, Any]:
        """Result document, plus any loader warnings."""
        if self.result is None:
            return {}
        doc = self.result.to_document()
        if self.warnings:
            doc["Warnings"] = [w.to_dict() for w in self.warnings]
        return doc


def run_apply(
    registry: DriverRegistry,
    settings: Settings,
    manifest_path: Path | None = None,
    plan_path: Path | None = None,
    dry_run: bool = False,
    fail_fast: bool = False,
) -> ApplyRunResult:
    """Apply a manifest or a persisted plan.

    Args:
        registry: Initialized backend registry.
        settings: Resolved settings (failure policy, audit location).
        manifest_path: Plan fresh from this manifest.
        plan_path: Replay this plan file.
        dry_run: Count installs without calling any backend.
        fail_fast: Stop dispatching after the first failure. Overrides
            ``settings.continue_on_failure``.

    Raises:
        ValueError: If not exactly one of manifest_path/plan_path is given.
    """
    if (manifest_path is None) == (plan_path is None):
        raise ValueError("Exactly one of manifest_path or plan_path is required")

    policy = ApplyPolicy(continue_on_failure=settings.continue_on_failure and not fail_fast)
    run = ApplyRunResult()

    try:
        if plan_path is not None:
            run.result = apply_plan_file(plan_path, registry, dry_run=dry_run, policy=policy)
        else:
            manifest, warnings = load_manifest(manifest_path)
            run.warnings = warnings
            plan = build_plan(manifest, registry, manifest_path=manifest_path)
            run.result = apply_plan(plan, registry, dry_run=dry_run, policy=policy)
    except EngineError as e:
        logger.error("Apply aborted: %s", e.message)
        run.error = e
        return run

    result = run.result
    AuditWriter(state_dir=settings.state_dir).write(
        AuditEntry(
            run_id=result.run_id,
            command="apply",
            manifest=str(manifest_path) if manifest_path else None,
            plan_path=result.plan_path,
            dry_run=dry_run,
            status=result.status,
            success=result.success,
            skipped=result.skipped,
            failed=result.failed,
            errors=[
                f"{o.action.type}:{o.action.id}: {o.reason}"
                for o in result.outcomes
                if o.status == "failed"
            ],
            context={
                "originalPlanRunId": result.original_plan_run_id,
                "manifestDrift": result.manifest_drift,
                "failFast": not policy.continue_on_failure,
                "outcomes": [o.to_dict() for o in result.outcomes],
            },
        )
    )
    return run
