"""Adapters — package drivers, restorers and verifiers.

Public re-exports for convenient access.
"""

from machinestate.adapters.base import PackageDriver, Restorer, Verifier
from machinestate.adapters.mock import MockDriver, MockRestorer, MockVerifier
from machinestate.adapters.registry import DriverRegistry, build_default_registry

__all__ = [
    "DriverRegistry",
    "MockDriver",
    "MockRestorer",
    "MockVerifier",
    "PackageDriver",
    "Restorer",
    "Verifier",
    "build_default_registry",
]
