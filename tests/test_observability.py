"""
Tests for observability — logging setup and level resolution.
"""

import logging
from pathlib import Path

import pytest

from machinestate.core.observability.logging_config import (
    CONSOLE_HANDLER,
    FILE_HANDLER,
    LevelChoice,
    _parse_level,
    apply_settings_level,
    configure_cli_logging,
    resolve_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _handler(name: str) -> logging.Handler | None:
    return next((h for h in logging.getLogger().handlers if h.name == name), None)


class TestResolveLevel:
    def test_default(self):
        assert resolve_level() == LevelChoice("WARNING", "default")
        assert not resolve_level().explicit

    def test_env_used_without_flags(self):
        choice = resolve_level(env_level=" info ")
        assert choice == LevelChoice("INFO", "env")
        assert choice.explicit

    @pytest.mark.parametrize(
        "flags, expected",
        [
            ({"debug": True, "verbose": True, "quiet": True}, "DEBUG"),
            ({"verbose": True, "quiet": True}, "INFO"),
            ({"quiet": True}, "ERROR"),
        ],
    )
    def test_flags_beat_env(self, flags, expected):
        assert resolve_level(env_level="CRITICAL", **flags) == LevelChoice(expected, "flag")


class TestParseLevel:
    def test_known_names(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("ERROR") == logging.ERROR

    @pytest.mark.parametrize("value", [None, "", "loud", "handlers"])
    def test_unknown_falls_back_to_warning(self, value):
        assert _parse_level(value) == logging.WARNING


class TestSetupLogging:
    def test_console_handler_only(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert [h.name for h in root.handlers] == [CONSOLE_HANDLER]
        assert root.handlers[0].level == logging.INFO

    def test_file_handler_with_own_level(self, tmp_path: Path):
        log_file = tmp_path / "machinestate.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        file_handler = _handler(FILE_HANDLER)
        assert file_handler.level == logging.DEBUG
        assert _handler(CONSOLE_HANDLER).level == logging.WARNING

        logging.getLogger("machinestate.test").debug("written to file only")
        file_handler.flush()
        assert "written to file only" in log_file.read_text()

    def test_repeated_setup_closes_previous_file_handler(self, tmp_path: Path):
        setup_logging("WARNING", log_file=str(tmp_path / "first.log"))
        first = _handler(FILE_HANDLER)
        setup_logging("DEBUG")
        assert first not in logging.getLogger().handlers
        assert first.stream is None
        assert [h.name for h in logging.getLogger().handlers] == [CONSOLE_HANDLER]

    def test_noisy_loggers_quieted(self):
        logging.getLogger("urllib3").setLevel(logging.DEBUG)
        setup_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_debug_leaves_third_party_alone(self):
        logging.getLogger("asyncio").setLevel(logging.NOTSET)
        setup_logging("DEBUG")
        assert logging.getLogger("asyncio").level == logging.NOTSET


class TestCliLogging:
    def test_configure_from_environment(self, tmp_path: Path):
        log_file = tmp_path / "cli.log"
        choice = configure_cli_logging(
            environ={
                "MACHINESTATE_LOG_LEVEL": "error",
                "MACHINESTATE_LOG_FILE": str(log_file),
                "MACHINESTATE_LOG_FILE_LEVEL": "INFO",
            }
        )
        assert choice == LevelChoice("ERROR", "env")
        assert _handler(CONSOLE_HANDLER).level == logging.ERROR
        assert _handler(FILE_HANDLER).level == logging.INFO

    def test_settings_level_retunes_console_in_place(self, tmp_path: Path):
        choice = configure_cli_logging(environ={"MACHINESTATE_LOG_FILE": str(tmp_path / "cli.log")})
        console, file_handler = _handler(CONSOLE_HANDLER), _handler(FILE_HANDLER)

        assert apply_settings_level("DEBUG", choice)

        assert _handler(CONSOLE_HANDLER) is console
        assert _handler(FILE_HANDLER) is file_handler
        assert console.level == logging.DEBUG
        assert file_handler.level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_choice_wins_over_settings(self):
        choice = configure_cli_logging(quiet=True, environ={})
        assert not apply_settings_level("DEBUG", choice)
        assert _handler(CONSOLE_HANDLER).level == logging.ERROR

    def test_no_settings_level(self):
        choice = configure_cli_logging(environ={})
        assert not apply_settings_level(None, choice)
        assert _handler(CONSOLE_HANDLER).level == logging.WARNING
