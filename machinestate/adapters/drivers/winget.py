"""
winget driver — Windows Package Manager.

Refs are winget package ids (e.g. ``Git.Git``), matched exactly.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path

from machinestate.adapters.drivers.cli_driver import CommandLineDriver

logger = logging.getLogger(__name__)


class WingetDriver(CommandLineDriver):
    executable = "winget"

    @property
    def name(self) -> str:
        return "winget"

    @property
    def platforms(self) -> tuple[str, ...]:
        return ("windows",)

    def _query_args(self, ref: str) -> list[str]:
        return [self.executable, "list", "--id", ref, "--exact", "--accept-source-agreements"]

    def _is_installed(self, ref: str, result: subprocess.CompletedProcess[str]) -> bool:
        # winget exits 0 with "No installed package found" on some versions
        return result.returncode == 0 and ref.lower() in (result.stdout or "").lower()

    def _install_args(self, ref: str) -> list[str]:
        return [
            self.executable,
            "install",
            "--id",
            ref,
            "--exact",
            "--silent",
            "--accept-package-agreements",
            "--accept-source-agreements",
        ]

    def get_installed_packages(self) -> list[str]:
        """Package ids from ``winget export``."""
        fd, tmp_name = tempfile.mkstemp(prefix="winget_export_", suffix=".json")
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            result = self._run(
                [self.executable, "export", "-o", str(tmp), "--accept-source-agreements"],
                timeout=300,
            )
            if result.returncode != 0 or not tmp.is_file():
                logger.warning("winget export failed: %s", (result.stderr or "").strip())
                return []
            data = json.loads(tmp.read_text(encoding="utf-8-sig") or "{}")
        except (OSError, subprocess.TimeoutExpired, json.JSONDecodeError) as e:
            logger.warning("winget export failed: %s", e)
            return []
        finally:
            tmp.unlink(missing_ok=True)

        refs: list[str] = []
        for source in data.get("Sources", []):
            for package in source.get("Packages", []):
                identifier = package.get("PackageIdentifier")
                if identifier:
                    refs.append(identifier)
        return refs
