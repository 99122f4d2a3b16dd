"""
apt driver — Debian/Ubuntu.

Queries go through ``dpkg-query`` (read-only); installs through
``apt-get``. Refs are Debian package names.
"""

from __future__ import annotations

import logging
import shutil
import subprocess

from machinestate.adapters.drivers.cli_driver import CommandLineDriver

logger = logging.getLogger(__name__)

_INSTALLED_STATUS = "install ok installed"


class AptDriver(CommandLineDriver):
    executable = "apt-get"

    @property
    def name(self) -> str:
        return "apt"

    @property
    def platforms(self) -> tuple[str, ...]:
        return ("linux",)

    def test_available(self) -> bool:
        return shutil.which(self.executable) is not None and shutil.which("dpkg-query") is not None

    def _query_args(self, ref: str) -> list[str]:
        return ["dpkg-query", "-W", "-f=${Status}", ref]

    def _is_installed(self, ref: str, result: subprocess.CompletedProcess[str]) -> bool:
        return result.returncode == 0 and _INSTALLED_STATUS in (result.stdout or "")

    def _install_args(self, ref: str) -> list[str]:
        return [self.executable, "install", "-y", ref]

    def get_installed_packages(self) -> list[str]:
        try:
            result = self._run(["dpkg-query", "-W", "-f=${Package}\t${Status}\n"])
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("dpkg-query failed: %s", e)
            return []
        if result.returncode != 0:
            return []
        refs = []
        for line in result.stdout.splitlines():
            package, _, status = line.partition("\t")
            if package and _INSTALLED_STATUS in status:
                refs.append(package.strip())
        return refs
