"""
Verify use case — check the machine against a manifest without changing it.

Each applicable app must be installed (asked of the active driver); each
verify entry is run through its verifier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from machinestate.adapters.registry import DriverRegistry
from machinestate.core.clock import generate_run_id
from machinestate.core.config.manifest_loader import load_manifest
from machinestate.core.config.settings import Settings
from machinestate.core.contract.envelope import JsonError
from machinestate.core.contract.errors import EngineError
from machinestate.core.models.action import Action
from machinestate.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """One verification check."""

    kind: str        # app, verify
    id: str
    ref: str
    passed: bool
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "id": self.id,
            "ref": self.ref,
            "passed": self.passed,
            "message": self.message,
        }


@dataclass
class VerifyResult:
    run_id: str = ""
    checks: list[CheckResult] = field(default_factory=list)
    warnings: list[JsonError] = field(default_factory=list)
    error: EngineError | None = None

    @property
    def pass_count(self) -> int:
        return sum(1 for c in self.checks if c.passed)

    @property
    def fail_count(self) -> int:
        return sum(1 for c in self.checks if not c.passed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "passCount": self.pass_count,
            "failCount": self.fail_count,
            "results": [c.to_dict() for c in self.checks],
        }


def run_verify(
    manifest_path: Path,
    registry: DriverRegistry,
    settings: Settings,
) -> VerifyResult:
    """Verify a manifest's apps and verify entries against this machine."""
    result = VerifyResult(run_id=generate_run_id())

    try:
        manifest, warnings = load_manifest(manifest_path)
        result.warnings = warnings
        driver = registry.get_active_driver()
    except EngineError as e:
        logger.error("Verify aborted: %s", e.message)
        result.error = e
        return result

    for app in manifest.apps:
        ref = app.ref_for(registry.platform)
        if ref is None:
            continue
        installed = driver.test_package_installed(ref)
        result.checks.append(
            CheckResult(
                kind="app",
                id=app.id,
                ref=ref,
                passed=installed,
                message="installed" if installed else f"not installed ({driver.name})",
            )
        )

    for index, entry in enumerate(manifest.verify):
        action = Action(
            type="verify",
            status="install",
            driver=entry.type,
            id=entry.id or f"verify-{index}",
            ref=entry.target,
            params=entry.params(),
        )
        receipt = registry.dispatch(action)
        result.checks.append(
            CheckResult(
                kind="verify",
                id=action.id,
                ref=action.ref,
                passed=receipt.ok,
                message=receipt.output if receipt.ok else (receipt.error or ""),
            )
        )

    logger.info("Verify %s: %d passed, %d failed", result.run_id, result.pass_count, result.fail_count)

    AuditWriter(state_dir=settings.state_dir).write(
        AuditEntry(
            run_id=result.run_id,
            command="verify",
            manifest=str(manifest_path),
            status="ok" if result.fail_count == 0 else "failed",
            success=result.pass_count,
            failed=result.fail_count,
            errors=[f"{c.kind}:{c.id}: {c.message}" for c in result.checks if not c.passed],
        )
    )
    return result
