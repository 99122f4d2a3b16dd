"""
Mock backends — test doubles for every backend kind.

They simulate a package manager, restorer or verifier without touching
the machine. Installed state is kept in memory (a successful install
marks the ref installed), failures are configurable per ref/id, and
every call is logged so tests can assert on order and count.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from machinestate.adapters.base import PackageDriver, Restorer, Verifier
from machinestate.core.contract.errors import ErrorCode
from machinestate.core.models.action import Receipt


class MockDriver(PackageDriver):
    """In-memory package driver.

    By default every install succeeds and marks the ref installed.
    """

    def __init__(
        self,
        driver_name: str = "mock",
        platforms: Iterable[str] = ("windows", "macos", "linux"),
        available: bool = True,
        installed: Iterable[str] = (),
    ):
        self._name = driver_name
        self._platforms = tuple(platforms)
        self._available = available
        self._installed: list[str] = list(installed)
        self._failures: dict[str, str] = {}
        self._install_log: list[str] = []
        self._query_log: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def platforms(self) -> tuple[str, ...]:
        return self._platforms

    @property
    def install_log(self) -> list[str]:
        """Refs passed to install_package, in call order."""
        return self._install_log

    @property
    def install_count(self) -> int:
        return len(self._install_log)

    @property
    def query_log(self) -> list[str]:
        """Refs passed to test_package_installed, in call order."""
        return self._query_log

    def set_failure(self, ref: str, error: str = "Mock failure") -> None:
        """Configure installs of ``ref`` to fail."""
        self._failures[ref] = error

    def test_available(self) -> bool:
        return self._available

    def test_package_installed(self, ref: str) -> bool:
        self._query_log.append(ref)
        return ref in self._installed

    def install_package(self, ref: str) -> Receipt:
        self._install_log.append(ref)
        if ref in self._failures:
            return Receipt.failure(
                backend=self._name,
                action_id=ref,
                error=self._failures[ref],
                code=ErrorCode.INSTALL_FAILED.value,
            )
        if ref not in self._installed:
            self._installed.append(ref)
        return Receipt.success(
            backend=self._name,
            action_id=ref,
            output=f"[mock] installed {ref}",
            metadata={"mock": True},
        )

    def get_installed_packages(self) -> list[str]:
        return list(self._installed)

    def reset(self) -> None:
        """Clear call logs and configured failures."""
        self._install_log.clear()
        self._query_log.clear()
        self._failures.clear()


class _MockEntryBackend:
    """Shared call log and failure table for mock restorers/verifiers."""

    def __init__(self, backend_name: str):
        self._name = backend_name
        self._failures: dict[str, str] = {}
        self._call_log: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[dict[str, Any]]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def set_failure(self, entry_id: str, error: str = "Mock failure") -> None:
        self._failures[entry_id] = error

    def _handle(self, entry: dict[str, Any]) -> Receipt:
        self._call_log.append(entry)
        entry_id = str(entry.get("id", ""))
        if entry_id in self._failures:
            return Receipt.failure(
                backend=self._name,
                action_id=entry_id,
                error=self._failures[entry_id],
            )
        return Receipt.success(
            backend=self._name,
            action_id=entry_id,
            output=f"[mock] {self._name} {entry_id}",
            metadata={"mock": True},
        )


class MockRestorer(_MockEntryBackend, Restorer):
    def __init__(self, restorer_name: str = "copy"):
        super().__init__(restorer_name)

    def restore(self, entry: dict[str, Any]) -> Receipt:
        return self._handle(entry)


class MockVerifier(_MockEntryBackend, Verifier):
    def __init__(self, verifier_name: str = "file-exists"):
        super().__init__(verifier_name)

    def verify(self, entry: dict[str, Any]) -> Receipt:
        return self._handle(entry)
