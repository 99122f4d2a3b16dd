"""
Copy restorer — put a captured file or directory back at its target.

Entry params:
    source (str): Captured file/directory.
    target (str): Where it belongs on this machine. ``~`` is expanded.
    backup (bool): Keep an existing target as ``<target>.bak-<timestamp>``
        before overwriting (default: True).
"""

from __future__ import annotations

import logging
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from machinestate.adapters.base import Restorer
from machinestate.core.models.action import Receipt

logger = logging.getLogger(__name__)


class CopyRestorer(Restorer):
    @property
    def name(self) -> str:
        return "copy"

    def restore(self, entry: dict[str, Any]) -> Receipt:
        action_id = str(entry.get("id", ""))
        raw_source = entry.get("source")
        raw_target = entry.get("target")
        if not raw_source or not raw_target:
            return Receipt.failure(
                backend=self.name,
                action_id=action_id,
                error="Missing required param: 'source' and 'target'",
            )

        source = Path(str(raw_source)).expanduser()
        target = Path(str(raw_target)).expanduser()

        if not source.exists():
            return Receipt.failure(
                backend=self.name,
                action_id=action_id,
                error=f"Source not found: {source}",
                metadata={"source": str(source)},
            )

        try:
            backup_path = None
            if target.exists() and entry.get("backup", True):
                backup_path = _backup(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, target, dirs_exist_ok=True)
            else:
                shutil.copy2(source, target)
        except OSError as e:
            return Receipt.failure(
                backend=self.name,
                action_id=action_id,
                error=f"Restore error: {e}",
                metadata={"source": str(source), "target": str(target)},
            )

        logger.debug("Restored %s -> %s", source, target)
        return Receipt.success(
            backend=self.name,
            action_id=action_id,
            output=f"Restored {source} to {target}",
            metadata={
                "source": str(source),
                "target": str(target),
                "backup": str(backup_path) if backup_path else None,
            },
        )


def _backup(target: Path) -> Path:
    stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    backup = target.with_name(f"{target.name}.bak-{stamp}")
    if target.is_dir():
        shutil.copytree(target, backup)
    else:
        shutil.copy2(target, backup)
    return backup
