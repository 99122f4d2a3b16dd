"""
Backend base classes — the capability contract between engine and tools.

There are three kinds of backend, each a small capability interface:

    PackageDriver   install / query software through a package manager
    Restorer        put captured files back in place
    Verifier        check a postcondition

The engine only talks to backends through these interfaces (via the
registry), never to a concrete package manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from machinestate.core.models.action import Receipt


class PackageDriver(ABC):
    """Abstract base class for package-manager drivers.

    To add a new package manager:
        1. Subclass PackageDriver
        2. Implement name, platforms and the four capability methods
        3. Register it in the DriverRegistry

    ``install_package`` NEVER raises; failures go in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The driver identifier (e.g. 'winget', 'brew', 'apt')."""

    @property
    @abstractmethod
    def platforms(self) -> tuple[str, ...]:
        """Platforms this driver can serve ('windows', 'macos', 'linux')."""

    @abstractmethod
    def test_available(self) -> bool:
        """Check whether the underlying tool is usable on this machine.

        Should be fast and never raise.
        """

    @abstractmethod
    def test_package_installed(self, ref: str) -> bool:
        """Read-only check whether ``ref`` is installed."""

    @abstractmethod
    def install_package(self, ref: str) -> Receipt:
        """Install ``ref`` and return a receipt."""

    @abstractmethod
    def get_installed_packages(self) -> list[str]:
        """List installed package refs, in the tool's own order."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class Restorer(ABC):
    """Abstract base class for restore backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The restorer identifier, matched against a restore entry's ``type``."""

    @abstractmethod
    def restore(self, entry: dict[str, Any]) -> Receipt:
        """Restore one entry. MUST never raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class Verifier(ABC):
    """Abstract base class for verify backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The verifier identifier, matched against a verify entry's ``type``."""

    @abstractmethod
    def verify(self, entry: dict[str, Any]) -> Receipt:
        """Check one entry. MUST never raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
