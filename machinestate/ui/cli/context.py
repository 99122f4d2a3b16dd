"""
Per-invocation CLI state — settings and the backend registry.

Both are resolved lazily, on first use inside a command, and cached on
``ctx.obj``. A registry passed in ``obj`` (tests) is used as is.
"""

from __future__ import annotations

import click

from machinestate.adapters.registry import DriverRegistry
from machinestate.core.config.settings import Settings, load_settings
from machinestate.core.contract.capabilities import check_schema_version
from machinestate.core.observability.logging_config import apply_settings_level


def get_settings(ctx: click.Context) -> Settings:
    """Resolve settings once per invocation and check the schema version.

    Raises:
        ConfigError: Invalid settings file or environment.
        EngineError: SCHEMA_INCOMPATIBLE / PARSE_ERROR for the schema version.
    """
    obj = ctx.ensure_object(dict)
    if "settings" in obj:
        return obj["settings"]

    settings = load_settings(
        config_path=obj.get("config_path"),
        state_dir_override=obj.get("state_dir"),
    )
    if obj.get("schema_version"):
        settings = settings.model_copy(update={"schema_version": obj["schema_version"]})

    choice = obj.get("log_choice")
    if choice is not None:
        apply_settings_level(settings.log_level, choice)

    check_schema_version(settings.schema_version)
    obj["settings"] = settings
    return settings


def get_registry(ctx: click.Context) -> DriverRegistry:
    """The registry for this invocation, built and sealed on first use."""
    obj = ctx.ensure_object(dict)
    if obj.get("registry") is None:
        from machinestate.adapters import registry as registry_module

        obj["registry"] = registry_module.build_default_registry()
    return obj["registry"]
