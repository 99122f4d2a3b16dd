"""
Capture use case — write a manifest from what the active driver reports.

Every installed package becomes an app entry whose id is the package
ref and whose only ref is for the current platform.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from machinestate.adapters.registry import DriverRegistry
from machinestate.core.clock import generate_run_id, utc_timestamp
from machinestate.core.config.manifest_loader import write_manifest
from machinestate.core.config.settings import Settings
from machinestate.core.contract.errors import EngineError
from machinestate.core.models.manifest import SUPPORTED_MANIFEST_VERSION, AppEntry, Manifest
from machinestate.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    run_id: str = ""
    manifest_path: Path | None = None
    driver: str = ""
    app_count: int = 0
    error: EngineError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "manifestPath": str(self.manifest_path) if self.manifest_path else None,
            "driver": self.driver,
            "appCount": self.app_count,
        }


def run_capture(
    out: Path,
    registry: DriverRegistry,
    settings: Settings,
    name: str | None = None,
) -> CaptureResult:
    """Capture installed packages into a new manifest at ``out``."""
    result = CaptureResult(run_id=generate_run_id())

    try:
        driver = registry.get_active_driver()
    except EngineError as e:
        logger.error("Capture aborted: %s", e.message)
        result.error = e
        return result

    result.driver = driver.name
    platform = registry.platform
    apps: list[AppEntry] = []
    seen: set[str] = set()
    for ref in driver.get_installed_packages():
        if not ref or ref in seen:
            continue
        seen.add(ref)
        apps.append(AppEntry(id=ref, refs={platform: ref}))

    manifest = Manifest(
        version=SUPPORTED_MANIFEST_VERSION,
        name=name or out.stem,
        captured=utc_timestamp(),
        apps=apps,
        restore=[],
        verify=[],
    )
    result.manifest_path = write_manifest(manifest, out)
    result.app_count = len(apps)
    logger.info("Captured %d apps via %s into %s", result.app_count, driver.name, out)

    AuditWriter(state_dir=settings.state_dir).write(
        AuditEntry(
            run_id=result.run_id,
            command="capture",
            manifest=str(out),
            status="ok",
            success=result.app_count,
            context={"driver": driver.name},
        )
    )
    return result
