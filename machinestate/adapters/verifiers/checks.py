"""
Built-in verifiers — simple postcondition checks.

    file-exists     entry ``path`` exists (``~`` expanded)
    command-exists  entry ``command`` resolves on PATH
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from machinestate.adapters.base import Verifier
from machinestate.core.models.action import Receipt


class FileExistsVerifier(Verifier):
    @property
    def name(self) -> str:
        return "file-exists"

    def verify(self, entry: dict[str, Any]) -> Receipt:
        action_id = str(entry.get("id", ""))
        raw_path = entry.get("path")
        if not raw_path:
            return Receipt.failure(
                backend=self.name,
                action_id=action_id,
                error="Missing required param: 'path'",
            )
        path = Path(str(raw_path)).expanduser()
        if path.exists():
            return Receipt.success(
                backend=self.name,
                action_id=action_id,
                output=f"Found {path}",
                metadata={"path": str(path), "is_dir": path.is_dir()},
            )
        return Receipt.failure(
            backend=self.name,
            action_id=action_id,
            error=f"File not found: {path}",
            metadata={"path": str(path)},
        )


class CommandExistsVerifier(Verifier):
    @property
    def name(self) -> str:
        return "command-exists"

    def verify(self, entry: dict[str, Any]) -> Receipt:
        action_id = str(entry.get("id", ""))
        command = entry.get("command")
        if not command:
            return Receipt.failure(
                backend=self.name,
                action_id=action_id,
                error="Missing required param: 'command'",
            )
        resolved = shutil.which(str(command))
        if resolved:
            return Receipt.success(
                backend=self.name,
                action_id=action_id,
                output=resolved,
                metadata={"command": command, "path": resolved},
            )
        return Receipt.failure(
            backend=self.name,
            action_id=action_id,
            error=f"Command not found on PATH: {command}",
            metadata={"command": command},
        )
