"""
Runtime settings — where state lives and how runs behave.

Sources, lowest to highest precedence:

    defaults  <  config.yml  <  MACHINESTATE_* env vars  <  CLI flags

The YAML file is ``--config`` when given, else ``<state-dir>/config.yml``
when present. CLI flags are applied by the caller (main.py) on top of
what ``load_settings`` returns.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".machinestate"
CONFIG_FILE = "config.yml"
ENV_PREFIX = "MACHINESTATE_"

_ENV_KEYS = ("state_dir", "schema_version", "continue_on_failure", "log_level")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Raised when the settings file or environment is invalid."""


class Settings(BaseModel):
    """Validated runtime settings."""

    state_dir: Path = Path(DEFAULT_STATE_DIR)
    schema_version: str | None = None
    continue_on_failure: bool = True
    log_level: str | None = None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str | None) -> str | None:
        return v.upper() if v else None

    @property
    def plans_dir(self) -> Path:
        return self.state_dir / "plans"

    @property
    def audit_path(self) -> Path:
        return self.state_dir / "audit.ndjson"


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    unknown = sorted(set(data) - set(Settings.model_fields))
    if unknown:
        logger.warning("Ignoring unknown settings in %s: %s", path, ", ".join(unknown))
    return {k: v for k, v in data.items() if k in Settings.model_fields}


def _env_values(environ: dict[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key in _ENV_KEYS:
        raw = environ.get(ENV_PREFIX + key.upper())
        if raw is None or raw == "":
            continue
        if key == "continue_on_failure":
            lowered = raw.strip().lower()
            if lowered in _TRUTHY:
                values[key] = True
            elif lowered in _FALSY:
                values[key] = False
            else:
                raise ConfigError(f"{ENV_PREFIX}CONTINUE_ON_FAILURE must be a boolean, got {raw!r}")
        else:
            values[key] = raw
    return values


def load_settings(
    config_path: Path | None = None,
    state_dir_override: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Resolve settings from file and environment.

    Args:
        config_path: Explicit settings file (``--config``). Must exist.
        state_dir_override: ``--state-dir``; also decides where the
            implicit ``config.yml`` is looked up.
        environ: Environment mapping (default: ``os.environ``).

    Raises:
        ConfigError: If the file is missing/invalid or a value fails validation.
    """
    environ = dict(os.environ) if environ is None else environ
    env = _env_values(environ)

    if config_path is None:
        state_dir = state_dir_override or Path(env.get("state_dir") or DEFAULT_STATE_DIR)
        candidate = state_dir / CONFIG_FILE
        config_path = candidate if candidate.is_file() else None
    elif not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")

    values: dict[str, Any] = {}
    if config_path is not None:
        logger.debug("Loading settings from %s", config_path)
        values.update(_read_config_file(config_path))
    values.update(env)
    if state_dir_override is not None:
        values["state_dir"] = state_dir_override

    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
