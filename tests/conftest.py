"""
Shared test fixtures and configuration.
"""

import json
from pathlib import Path

import pytest

from machinestate.adapters.mock import MockDriver, MockRestorer, MockVerifier
from machinestate.adapters.registry import DriverRegistry
from machinestate.core.config.settings import Settings


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def settings(tmp_state_dir: Path) -> Settings:
    return Settings(state_dir=tmp_state_dir)


@pytest.fixture
def mock_driver() -> MockDriver:
    return MockDriver()


@pytest.fixture
def mock_restorer() -> MockRestorer:
    return MockRestorer()


@pytest.fixture
def mock_verifier() -> MockVerifier:
    return MockVerifier()


@pytest.fixture
def registry(mock_driver, mock_restorer, mock_verifier) -> DriverRegistry:
    """Sealed windows registry backed entirely by mocks."""
    reg = DriverRegistry(platform="windows")
    reg.register_driver(mock_driver)
    reg.register_restorer(mock_restorer)
    reg.register_verifier(mock_verifier)
    return reg.initialize(include_builtin=False)


@pytest.fixture
def manifest_file(tmp_path: Path):
    """Factory: write a manifest dict as JSON and return its path."""

    def _write(data: dict, name: str = "machine.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _write
