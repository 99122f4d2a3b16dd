"""
Command-line driver base — package managers driven through their CLI.

Each concrete driver only says which argv to run for a query and for an
install; running the process and turning the outcome into a Receipt
lives here.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from abc import abstractmethod

from machinestate.adapters.base import PackageDriver
from machinestate.core.contract.errors import ErrorCode
from machinestate.core.models.action import Receipt

logger = logging.getLogger(__name__)

QUERY_TIMEOUT = 60
INSTALL_TIMEOUT = 1800


class CommandLineDriver(PackageDriver):
    """PackageDriver backed by an executable on PATH."""

    executable: str = ""

    def test_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def _run(self, args: list[str], timeout: int = QUERY_TIMEOUT) -> subprocess.CompletedProcess[str]:
        """Run a command and return the result."""
        logger.debug("Executing: %s", " ".join(args))
        return subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )

    # ── Per-driver hooks ─────────────────────────────────────────

    @abstractmethod
    def _query_args(self, ref: str) -> list[str]:
        """argv that asks the package manager about ``ref``."""

    @abstractmethod
    def _install_args(self, ref: str) -> list[str]:
        """argv that installs ``ref`` non-interactively."""

    def _is_installed(self, ref: str, result: subprocess.CompletedProcess[str]) -> bool:
        return result.returncode == 0

    # ── Capability contract ──────────────────────────────────────

    def test_package_installed(self, ref: str) -> bool:
        try:
            result = self._run(self._query_args(ref))
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("%s: query for %s failed: %s", self.name, ref, e)
            return False
        return self._is_installed(ref, result)

    def install_package(self, ref: str) -> Receipt:
        args = self._install_args(ref)
        start = time.monotonic()

        try:
            result = self._run(args, timeout=INSTALL_TIMEOUT)
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                backend=self.name,
                action_id=ref,
                error=f"Install timed out after {INSTALL_TIMEOUT}s",
                code=ErrorCode.INSTALL_FAILED.value,
                metadata={"command": args, "timeout": INSTALL_TIMEOUT},
            )
        except OSError as e:
            return Receipt.failure(
                backend=self.name,
                action_id=ref,
                error=f"Install execution error: {e}",
                code=ErrorCode.INSTALL_FAILED.value,
                metadata={"command": args},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()

        if result.returncode == 0:
            return Receipt.success(
                backend=self.name,
                action_id=ref,
                output=output,
                duration_ms=elapsed_ms,
                metadata={"command": args, "return_code": 0},
            )
        return Receipt.failure(
            backend=self.name,
            action_id=ref,
            error=stderr or output or f"Command exited with code {result.returncode}",
            code=ErrorCode.INSTALL_FAILED.value,
            duration_ms=elapsed_ms,
            metadata={"command": args, "return_code": result.returncode},
        )
