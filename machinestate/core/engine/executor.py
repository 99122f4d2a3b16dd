"""
Apply executor — the central execution loop.

Takes a Plan, walks its actions strictly in order, dispatches the ones
that need work through the registry, and tallies the outcome.

Flow:
    plan → for each action (in order): skip | dry-run | dispatch → Result

Actions run one at a time. Later actions may depend on earlier ones
(a verify after an install), and installers are not assumed safe to
run concurrently. A failed action is recorded, not raised; by default
the loop carries on with the next action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from machinestate.adapters.registry import DriverRegistry
from machinestate.core.clock import generate_run_id
from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.engine.planner import manifest_hash
from machinestate.core.models.action import REASON_NOT_ATTEMPTED, Action, Receipt
from machinestate.core.models.plan import Plan

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["success", "skipped", "failed"]
PLAN_STATUSES = ("install", "skip")


@dataclass(frozen=True)
class ApplyPolicy:
    """How the executor reacts to a failed action.

    ``continue_on_failure=True`` is best-effort: every remaining action
    is still attempted. ``False`` stops dispatching after the first
    failure; the rest are counted as skipped.
    """

    continue_on_failure: bool = True


@dataclass
class ActionOutcome:
    """What happened to one action during apply."""

    action: Action
    status: OutcomeStatus
    receipt: Receipt | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.action.type,
            "id": self.action.id,
            "ref": self.action.ref,
            "driver": self.action.driver,
            "status": self.status,
        }
        if self.reason:
            d["reason"] = self.reason
        if self.receipt is not None and self.receipt.failed:
            d["error"] = self.receipt.error
            d["code"] = self.receipt.code or ErrorCode.INSTALL_FAILED.value
        return d


@dataclass
class ApplyResult:
    """Result of applying a plan."""

    run_id: str = ""
    dry_run: bool = False
    original_plan_run_id: str | None = None
    plan_path: str | None = None
    outcomes: list[ActionOutcome] = field(default_factory=list)
    manifest_drift: bool = False

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "success")

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.success > 0:
            return "partial"
        return "failed"

    def to_document(self) -> dict[str, Any]:
        """Result document (the envelope ``data`` for apply)."""
        doc: dict[str, Any] = {"RunId": self.run_id}
        if self.original_plan_run_id is not None:
            doc["OriginalPlanRunId"] = self.original_plan_run_id
        if self.plan_path is not None:
            doc["PlanPath"] = self.plan_path
        doc["DryRun"] = self.dry_run
        doc["Success"] = self.success
        doc["Skipped"] = self.skipped
        doc["Failed"] = self.failed
        return doc


def apply_plan(
    plan: Plan,
    registry: DriverRegistry,
    *,
    dry_run: bool = False,
    policy: ApplyPolicy | None = None,
    plan_path: Path | None = None,
    run_id: str | None = None,
) -> ApplyResult:
    """Execute every action of a plan, in plan order.

    Args:
        plan: The plan to apply.
        registry: Backend registry for dispatch.
        dry_run: Count installs as successes without calling any backend.
        policy: Failure policy (default: best-effort).
        plan_path: Set when the plan was loaded from a file; the result
            then records the plan's run id as ``OriginalPlanRunId``.
        run_id: Override the generated run id for this apply.

    Returns:
        ApplyResult with one outcome per action.

    Raises:
        EngineError: PLAN_INVALID if an action is neither install nor
            skip. Checked before anything is dispatched.
    """
    policy = policy or ApplyPolicy()
    for action in plan.actions:
        if action.status not in PLAN_STATUSES:
            raise EngineError(
                ErrorCode.PLAN_INVALID,
                f"Action '{action.id}' has status '{action.status}'",
                detail=f"plan actions must be one of: {', '.join(PLAN_STATUSES)}",
            )

    result = ApplyResult(
        run_id=run_id or generate_run_id(),
        dry_run=dry_run,
        original_plan_run_id=plan.run_id if plan_path is not None else None,
        plan_path=str(plan_path) if plan_path is not None else None,
    )

    halted = False
    for action in plan.actions:
        if action.status == "skip":
            outcome = ActionOutcome(action=action, status="skipped", reason=action.reason)
        elif halted:
            outcome = ActionOutcome(action=action, status="skipped", reason=REASON_NOT_ATTEMPTED)
        elif dry_run:
            outcome = ActionOutcome(action=action, status="success", reason="dry-run")
        elif action.status == "install":
            receipt = registry.dispatch(action)
            if receipt.ok:
                outcome = ActionOutcome(action=action, status="success", receipt=receipt)
            else:
                if receipt.code is None:
                    receipt = receipt.model_copy(update={"code": ErrorCode.INSTALL_FAILED.value})
                outcome = ActionOutcome(
                    action=action,
                    status="failed",
                    receipt=receipt,
                    reason=receipt.error,
                )
                if not policy.continue_on_failure:
                    halted = True

        result.outcomes.append(outcome)

        status_marker = {"success": "✓", "failed": "✗"}.get(outcome.status, "⊘")
        logger.info(
            "%s %s:%s (%s) → %s",
            status_marker,
            action.type,
            action.id,
            action.driver,
            outcome.status,
        )

    logger.info(
        "Apply %s: %d success, %d skipped, %d failed%s",
        result.run_id,
        result.success,
        result.skipped,
        result.failed,
        " (dry-run)" if dry_run else "",
    )
    return result


def detect_manifest_drift(plan: Plan) -> bool:
    """True when the plan's source manifest changed since planning.

    The manifest is re-loaded with its includes and hashed the same way
    the planner hashed it. Only checked when the snapshot names a file
    that still exists; a manifest that no longer loads counts as drift.
    """
    from machinestate.core.config.manifest_loader import load_manifest

    if not plan.manifest.path or not plan.manifest.hash:
        return False
    path = Path(plan.manifest.path)
    if not path.is_file():
        return False
    try:
        manifest, _ = load_manifest(path)
    except EngineError as e:
        logger.warning("Manifest %s no longer loads: %s", path, e.message)
        return True
    return manifest_hash(manifest) != plan.manifest.hash


def apply_plan_file(
    path: Path,
    registry: DriverRegistry,
    *,
    dry_run: bool = False,
    policy: ApplyPolicy | None = None,
) -> ApplyResult:
    """Load a persisted plan and apply it.

    The plan is fully validated before any action runs.

    Raises:
        EngineError: PLAN_NOT_FOUND, PARSE_ERROR or PLAN_INVALID.
    """
    from machinestate.core.persistence.plan_file import load_plan

    plan = load_plan(path)
    drift = detect_manifest_drift(plan)
    if drift:
        logger.warning(
            "Manifest %s changed since plan %s was built; applying the plan as recorded",
            plan.manifest.path,
            plan.run_id,
        )
    result = apply_plan(plan, registry, dry_run=dry_run, policy=policy, plan_path=path)
    result.manifest_drift = drift
    return result
