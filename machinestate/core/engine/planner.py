"""
Plan builder — diff a manifest against the machine.

For every app that applies to this platform, ask the active driver
whether it is already installed and decide install or skip. Restore
and verify entries follow, in their declared order.

Flow:
    manifest → resolve platform refs → query driver (read-only) → Plan

Planning has no side effects on the machine, and a planning failure
never yields a partial plan.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path

from machinestate.adapters.registry import DriverRegistry
from machinestate.core.clock import generate_run_id
from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.models.action import REASON_ALREADY_INSTALLED, Action
from machinestate.core.models.manifest import SUPPORTED_MANIFEST_VERSION, Manifest
from machinestate.core.models.plan import ManifestSnapshot, Plan

logger = logging.getLogger(__name__)


def manifest_hash(manifest: Manifest) -> str:
    """Content hash of the resolved manifest a plan is built from.

    Hashes the canonical JSON of the normalized document, so content
    pulled in through ``includes`` is covered and formatting is not.
    """
    canonical = json.dumps(
        manifest.to_document(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_plan(
    manifest: Manifest,
    registry: DriverRegistry,
    *,
    manifest_path: Path | None = None,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Plan:
    """Build the reconciliation plan for a manifest.

    Args:
        manifest: Normalized manifest.
        registry: Backend registry; supplies the active driver.
        manifest_path: File the manifest was loaded from, if any.
        run_id: Override the generated run id.
        now: Clock override for the generated run id.

    Returns:
        Immutable Plan: app actions, then restore, then verify.

    Raises:
        EngineError: MANIFEST_INVALID or DRIVER_UNAVAILABLE.
    """
    if manifest.version != SUPPORTED_MANIFEST_VERSION:
        raise EngineError(
            ErrorCode.MANIFEST_INVALID,
            f"Manifest version {manifest.version} is not supported",
            detail=f"expected version {SUPPORTED_MANIFEST_VERSION}",
        )

    driver = registry.get_active_driver()
    platform = registry.platform
    actions: list[Action] = []

    for app in manifest.apps:
        ref = app.ref_for(platform)
        if ref is None:
            logger.debug("App '%s' has no ref for %s, excluded", app.id, platform)
            continue

        if driver.test_package_installed(ref):
            action = Action(
                type="app",
                status="skip",
                driver=driver.name,
                id=app.id,
                ref=ref,
                reason=REASON_ALREADY_INSTALLED,
            )
        else:
            action = Action(type="app", status="install", driver=driver.name, id=app.id, ref=ref)
        actions.append(action)

    for index, entry in enumerate(manifest.restore):
        actions.append(
            Action(
                type="restore",
                status="install",
                driver=entry.type,
                id=entry.id or f"restore-{index}",
                ref=entry.target,
                params=entry.params(),
            )
        )

    for index, entry in enumerate(manifest.verify):
        actions.append(
            Action(
                type="verify",
                status="install",
                driver=entry.type,
                id=entry.id or f"verify-{index}",
                ref=entry.target,
                params=entry.params(),
            )
        )

    plan = Plan(
        run_id=run_id or generate_run_id(now),
        manifest=ManifestSnapshot(
            name=manifest.name,
            path=str(manifest_path) if manifest_path else None,
            hash=manifest_hash(manifest),
        ),
        actions=tuple(actions),
    )
    summary = plan.summary
    logger.info(
        "Plan %s: %d actions (%d install, %d skip) via %s",
        plan.run_id,
        plan.total_actions,
        summary.install,
        summary.skip,
        driver.name,
    )
    return plan
