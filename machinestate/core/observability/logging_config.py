"""
Logging configuration for the machinestate CLI.

stdout belongs to command output (one envelope under ``--json``), so
every handler installed here writes to stderr or to a file.

The console level is settled in two steps:

    1. The root command resolves it from flags, then
       ``MACHINESTATE_LOG_LEVEL``, then WARNING, and installs handlers.
    2. Settings are read lazily, once a command needs them. A
       ``log_level`` from the settings file then retunes the console
       handler in place, but only when step 1 fell back to the default.

Optional file output via MACHINESTATE_LOG_FILE / MACHINESTATE_LOG_FILE_LEVEL.
The file handler keeps its own level through step 2.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

ENV_LOG_LEVEL = "MACHINESTATE_LOG_LEVEL"
ENV_LOG_FILE = "MACHINESTATE_LOG_FILE"
ENV_LOG_FILE_LEVEL = "MACHINESTATE_LOG_FILE_LEVEL"

CONSOLE_HANDLER = "machinestate.console"
FILE_HANDLER = "machinestate.file"

# ── Formats ─────────────────────────────────────────────────────

_FMT_MINIMAL = "%(levelname)s: %(message)s"
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING; left alone only at DEBUG
_NOISY_LOGGERS = ("urllib3", "asyncio")

LevelSource = Literal["flag", "env", "default"]


@dataclass(frozen=True)
class LevelChoice:
    """The console level and where it came from."""

    level: str
    source: LevelSource

    @property
    def explicit(self) -> bool:
        return self.source != "default"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> LevelChoice:
    """Pick the console level: --debug > --verbose > --quiet > env > WARNING."""
    if debug:
        return LevelChoice("DEBUG", "flag")
    if verbose:
        return LevelChoice("INFO", "flag")
    if quiet:
        return LevelChoice("ERROR", "flag")
    if env_level and env_level.strip():
        return LevelChoice(env_level.strip().upper(), "env")
    return LevelChoice("WARNING", "default")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console handler, and a file handler when asked.

    Replaces whatever handlers the root logger had; handlers installed
    by an earlier call are closed first.
    """
    numeric_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.name = CONSOLE_HANDLER
    _tune_console(console, numeric_level)
    handlers: list[logging.Handler] = [console]

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.name = FILE_HANDLER
        fh.setLevel(_parse_level(log_file_level) if log_file_level else numeric_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        handlers.append(fh)

    root = logging.getLogger()
    _replace_handlers(root, handlers)
    _sync_root_level(root)
    _quiet_noisy_loggers(numeric_level if quiet_third_party else logging.DEBUG)

    logging.raiseExceptions = False


def configure_cli_logging(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> LevelChoice:
    """Step 1: configure logging from CLI flags and the environment."""
    env = os.environ if environ is None else environ
    choice = resolve_level(debug=debug, verbose=verbose, quiet=quiet, env_level=env.get(ENV_LOG_LEVEL))
    setup_logging(
        level=choice.level,
        log_file=env.get(ENV_LOG_FILE) or None,
        log_file_level=env.get(ENV_LOG_FILE_LEVEL) or None,
        quiet_third_party=not debug,
    )
    return choice


def apply_settings_level(level: str | None, choice: LevelChoice) -> bool:
    """Step 2: let a settings-file level retune the console handler.

    Returns:
        True if the console level changed hands to the settings file.
    """
    if not level or choice.explicit:
        return False
    root = logging.getLogger()
    console = next((h for h in root.handlers if h.name == CONSOLE_HANDLER), None)
    if console is None:
        return False

    numeric_level = _parse_level(level)
    _tune_console(console, numeric_level)
    _sync_root_level(root)
    _quiet_noisy_loggers(numeric_level)
    logging.getLogger(__name__).debug("Console log level set to %s from settings", level)
    return True


# ── Helpers ─────────────────────────────────────────────────────


def _tune_console(handler: logging.Handler, numeric_level: int) -> None:
    if numeric_level <= logging.DEBUG:
        formatter = logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_CONSOLE)
    elif numeric_level <= logging.INFO:
        formatter = logging.Formatter(_FMT_VERBOSE, datefmt=_DATEFMT_CONSOLE)
    else:
        formatter = logging.Formatter(_FMT_MINIMAL)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)


def _replace_handlers(root: logging.Logger, handlers: list[logging.Handler]) -> None:
    for old in root.handlers[:]:
        root.removeHandler(old)
        if old.name in (CONSOLE_HANDLER, FILE_HANDLER):
            old.close()
    for handler in handlers:
        root.addHandler(handler)


def _sync_root_level(root: logging.Logger) -> None:
    """Root passes records down to the most verbose handler we own."""
    levels = [h.level for h in root.handlers if h.name in (CONSOLE_HANDLER, FILE_HANDLER)]
    if levels:
        root.setLevel(min(levels))


def _quiet_noisy_loggers(numeric_level: int) -> None:
    if numeric_level <= logging.DEBUG:
        return
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant; WARNING if unknown."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
