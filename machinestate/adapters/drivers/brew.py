"""
Homebrew driver — macOS.

Refs are formula or cask names (e.g. ``git``).
"""

from __future__ import annotations

import logging
import subprocess

from machinestate.adapters.drivers.cli_driver import CommandLineDriver

logger = logging.getLogger(__name__)


class BrewDriver(CommandLineDriver):
    executable = "brew"

    @property
    def name(self) -> str:
        return "brew"

    @property
    def platforms(self) -> tuple[str, ...]:
        return ("macos",)

    def _query_args(self, ref: str) -> list[str]:
        return [self.executable, "list", "--versions", ref]

    def _is_installed(self, ref: str, result: subprocess.CompletedProcess[str]) -> bool:
        return result.returncode == 0 and bool((result.stdout or "").strip())

    def _install_args(self, ref: str) -> list[str]:
        return [self.executable, "install", ref]

    def get_installed_packages(self) -> list[str]:
        try:
            result = self._run([self.executable, "list", "-1"])
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("brew list failed: %s", e)
            return []
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]
