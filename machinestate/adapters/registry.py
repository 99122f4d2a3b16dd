"""
Driver registry — central dispatch for all backend operations.

The registry is the single point of backend management. It handles
registration, the active-driver lookup for the host platform, and
action dispatch. The planner and executor never talk to backends
directly — always through the registry.

Lifecycle: construct, register (or ``initialize()`` for the built-in
set), then treat as read-only. ``initialize()`` seals the registry;
``reset()`` exists for test isolation only.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from machinestate.adapters.base import PackageDriver, Restorer, Verifier
from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.host import current_platform
from machinestate.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class DriverRegistry:
    """Registry and dispatcher for package drivers, restorers and verifiers."""

    def __init__(self, platform: str | None = None):
        self._platform = platform or current_platform()
        self._drivers: dict[str, PackageDriver] = {}
        self._restorers: dict[str, Restorer] = {}
        self._verifiers: dict[str, Verifier] = {}
        self._sealed = False

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ── Lifecycle ────────────────────────────────────────────────

    def initialize(self, include_builtin: bool = True) -> DriverRegistry:
        """Register the built-in backends for this platform, then seal.

        Never raises because a backend's tool is missing on this machine;
        availability is only probed when a driver is asked for.
        Calling it again on a sealed registry is a no-op.
        """
        if self._sealed:
            return self
        if include_builtin:
            for driver in _builtin_drivers():
                if self._platform in driver.platforms:
                    self.register_driver(driver)
            for restorer in _builtin_restorers():
                self.register_restorer(restorer)
            for verifier in _builtin_verifiers():
                self.register_verifier(verifier)
        self._sealed = True
        logger.debug(
            "Registry initialized for %s: drivers=%s restorers=%s verifiers=%s",
            self._platform,
            self.list_drivers(),
            self.list_restorers(),
            self.list_verifiers(),
        )
        return self

    def reset(self) -> None:
        """Drop every backend and unseal. Tests only."""
        self._drivers.clear()
        self._restorers.clear()
        self._verifiers.clear()
        self._sealed = False

    def _check_mutable(self) -> None:
        if self._sealed:
            raise RuntimeError("DriverRegistry is sealed; register backends before initialize()")

    # ── Registration ─────────────────────────────────────────────

    def register_driver(self, driver: PackageDriver) -> None:
        self._check_mutable()
        if driver.name in self._drivers:
            logger.warning("Overwriting existing driver: %s", driver.name)
        self._drivers[driver.name] = driver
        logger.debug("Registered driver: %s", driver.name)

    def register_restorer(self, restorer: Restorer) -> None:
        self._check_mutable()
        if restorer.name in self._restorers:
            logger.warning("Overwriting existing restorer: %s", restorer.name)
        self._restorers[restorer.name] = restorer
        logger.debug("Registered restorer: %s", restorer.name)

    def register_verifier(self, verifier: Verifier) -> None:
        self._check_mutable()
        if verifier.name in self._verifiers:
            logger.warning("Overwriting existing verifier: %s", verifier.name)
        self._verifiers[verifier.name] = verifier
        logger.debug("Registered verifier: %s", verifier.name)

    # ── Lookup ───────────────────────────────────────────────────

    def get_driver(self, name: str) -> PackageDriver | None:
        return self._drivers.get(name)

    def get_restorer(self, name: str) -> Restorer | None:
        return self._restorers.get(name)

    def get_verifier(self, name: str) -> Verifier | None:
        return self._verifiers.get(name)

    def list_drivers(self) -> list[str]:
        return list(self._drivers.keys())

    def list_restorers(self) -> list[str]:
        return list(self._restorers.keys())

    def list_verifiers(self) -> list[str]:
        return list(self._verifiers.keys())

    def get_active_driver(self) -> PackageDriver:
        """Resolve the one package driver for the host platform.

        Raises:
            EngineError: DRIVER_UNAVAILABLE if no registered driver serves
                this platform, or its tool is not available.
        """
        candidates = [d for d in self._drivers.values() if self._platform in d.platforms]
        if not candidates:
            raise EngineError(
                ErrorCode.DRIVER_UNAVAILABLE,
                f"No package driver registered for platform '{self._platform}'",
            )

        for driver in candidates:
            try:
                available = driver.test_available()
            except Exception as e:
                logger.warning("Driver %s availability probe raised: %s", driver.name, e)
                available = False
            if available:
                return driver

        names = ", ".join(d.name for d in candidates)
        raise EngineError(
            ErrorCode.DRIVER_UNAVAILABLE,
            f"Package driver not available on this machine: {names}",
            detail=f"platform={self._platform}",
        )

    def backend_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered package driver, plus the other kinds."""
        status: dict[str, dict[str, Any]] = {}
        for name, driver in self._drivers.items():
            try:
                available = driver.test_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "kind": "driver",
                "available": available,
                "type": driver.__class__.__name__,
            }
        for name, restorer in self._restorers.items():
            status[name] = {
                "name": name,
                "kind": "restorer",
                "available": True,
                "type": restorer.__class__.__name__,
            }
        for name, verifier in self._verifiers.items():
            status[name] = {
                "name": name,
                "kind": "verifier",
                "available": True,
                "type": verifier.__class__.__name__,
            }
        return status

    # ── Dispatch ─────────────────────────────────────────────────

    def dispatch(self, action: Action) -> Receipt:
        """Run one action through the backend its type and driver name select.

        This is the main dispatch method. It:
        1. Resolves the backend kind from ``action.type``
        2. Looks the backend up by ``action.driver``
        3. Calls it
        4. Returns a Receipt (never raises)
        """
        start_time = time.monotonic()

        try:
            if action.type == "app":
                driver = self._drivers.get(action.driver)
                if driver is None:
                    return self._missing(action, "driver")
                receipt = driver.install_package(action.ref)
            elif action.type == "restore":
                restorer = self._restorers.get(action.driver)
                if restorer is None:
                    return self._missing(action, "restorer")
                receipt = restorer.restore(_entry_for(action))
            elif action.type == "verify":
                verifier = self._verifiers.get(action.driver)
                if verifier is None:
                    return self._missing(action, "verifier")
                receipt = verifier.verify(_entry_for(action))
            else:
                return Receipt.failure(
                    backend=action.driver,
                    action_id=action.id,
                    error=f"Unknown action type '{action.type}'",
                    code=ErrorCode.INTERNAL_ERROR.value,
                )
        except Exception as e:
            # Backends should never raise, but defense in depth
            logger.error("Backend %s raised during %s:%s: %s", action.driver, action.type, action.id, e)
            receipt = Receipt.failure(
                backend=action.driver,
                action_id=action.id,
                error=f"Unexpected error: {e}",
                code=ErrorCode.INSTALL_FAILED.value,
            )

        if receipt.action_id != action.id:
            receipt = receipt.model_copy(update={"action_id": action.id})

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        receipt.duration_ms = receipt.duration_ms or elapsed_ms
        return receipt

    def _missing(self, action: Action, kind: str) -> Receipt:
        return Receipt.failure(
            backend=action.driver,
            action_id=action.id,
            error=f"No {kind} registered for '{action.driver}'",
            code=ErrorCode.DRIVER_UNAVAILABLE.value,
        )


def _entry_for(action: Action) -> dict[str, Any]:
    """Restore/verify entry as handed to the backend."""
    entry = dict(action.params)
    entry["id"] = action.id
    entry.setdefault("ref", action.ref)
    return entry


def _builtin_drivers() -> list[PackageDriver]:
    from machinestate.adapters.drivers.apt import AptDriver
    from machinestate.adapters.drivers.brew import BrewDriver
    from machinestate.adapters.drivers.winget import WingetDriver

    return [WingetDriver(), BrewDriver(), AptDriver()]


def _builtin_restorers() -> list[Restorer]:
    from machinestate.adapters.restorers.copy import CopyRestorer

    return [CopyRestorer()]


def _builtin_verifiers() -> list[Verifier]:
    from machinestate.adapters.verifiers.checks import CommandExistsVerifier, FileExistsVerifier

    return [FileExistsVerifier(), CommandExistsVerifier()]


def build_default_registry(platform: str | None = None) -> DriverRegistry:
    """Registry with every built-in backend for the host, sealed."""
    return DriverRegistry(platform=platform).initialize()
