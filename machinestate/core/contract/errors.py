"""
Error taxonomy — the closed set of codes a command can fail with.

Every top-level failure surfaces as exactly one of these codes in the
envelope's ``error.code``. Lookups of unknown names resolve to
``INTERNAL_ERROR`` instead of failing.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from machinestate.core.contract.envelope import JsonError


class ErrorCode(StrEnum):
    """Stable machine-readable error codes."""

    MANIFEST_NOT_FOUND = "MANIFEST_NOT_FOUND"
    MISSING_VERSION = "MISSING_VERSION"
    INVALID_VERSION_TYPE = "INVALID_VERSION_TYPE"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"
    MISSING_APPS = "MISSING_APPS"
    INVALID_APPS_TYPE = "INVALID_APPS_TYPE"
    INVALID_APP_ENTRY = "INVALID_APP_ENTRY"  # warning only
    MANIFEST_INVALID = "MANIFEST_INVALID"
    DRIVER_UNAVAILABLE = "DRIVER_UNAVAILABLE"
    INSTALL_FAILED = "INSTALL_FAILED"
    SCHEMA_INCOMPATIBLE = "SCHEMA_INCOMPATIBLE"
    PARSE_ERROR = "PARSE_ERROR"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    PLAN_INVALID = "PLAN_INVALID"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorInfo(NamedTuple):
    remediation: str | None
    docs_key: str | None


_CATALOG: dict[ErrorCode, ErrorInfo] = {
    ErrorCode.MANIFEST_NOT_FOUND: ErrorInfo(
        "Check the --manifest path, or run 'machinestate capture' to create one.",
        "errors/manifest-not-found",
    ),
    ErrorCode.MISSING_VERSION: ErrorInfo(
        "Add 'version: 1' at the top level of the manifest.",
        "manifest/version",
    ),
    ErrorCode.INVALID_VERSION_TYPE: ErrorInfo(
        "The manifest 'version' must be an integer (e.g. 1).",
        "manifest/version",
    ),
    ErrorCode.UNSUPPORTED_VERSION: ErrorInfo(
        "Only manifest version 1 is supported by this build.",
        "manifest/version",
    ),
    ErrorCode.MISSING_APPS: ErrorInfo(
        "Add an 'apps' list to the manifest (it may be empty).",
        "manifest/apps",
    ),
    ErrorCode.INVALID_APPS_TYPE: ErrorInfo(
        "The manifest 'apps' field must be a list of app entries.",
        "manifest/apps",
    ),
    ErrorCode.INVALID_APP_ENTRY: ErrorInfo(
        "Give every app entry an 'id'.",
        "manifest/apps",
    ),
    ErrorCode.MANIFEST_INVALID: ErrorInfo(
        "Fix the manifest errors listed in 'detail' and retry.",
        "manifest/schema",
    ),
    ErrorCode.DRIVER_UNAVAILABLE: ErrorInfo(
        "Install the platform package manager (winget, brew or apt) and make sure it is on PATH.",
        "errors/driver-unavailable",
    ),
    ErrorCode.INSTALL_FAILED: ErrorInfo(
        "Inspect the package manager output and retry the apply.",
        "errors/install-failed",
    ),
    ErrorCode.SCHEMA_INCOMPATIBLE: ErrorInfo(
        "Run 'machinestate capabilities --json' to see the supported schema versions.",
        "contract/schema-versions",
    ),
    ErrorCode.PARSE_ERROR: ErrorInfo(
        "The file is not valid JSON/YAML; fix the syntax and retry.",
        "errors/parse-error",
    ),
    ErrorCode.PLAN_NOT_FOUND: ErrorInfo(
        "Check the --plan path, or run 'machinestate plan' to create one.",
        "errors/plan-not-found",
    ),
    ErrorCode.PLAN_INVALID: ErrorInfo(
        "Regenerate the plan with 'machinestate plan'.",
        "contract/plan",
    ),
    ErrorCode.INTERNAL_ERROR: ErrorInfo(None, None),
}


def get_error_code(name: str | None) -> ErrorCode:
    """Resolve a code name; anything unknown is INTERNAL_ERROR."""
    if not name:
        return ErrorCode.INTERNAL_ERROR
    try:
        return ErrorCode(name.strip().upper())
    except ValueError:
        return ErrorCode.INTERNAL_ERROR


def error_info(code: ErrorCode | str) -> ErrorInfo:
    """Default remediation and docs key for a code."""
    return _CATALOG.get(get_error_code(str(code)), ErrorInfo(None, None))


class EngineError(Exception):
    """A contract-level failure that aborts the whole command.

    Raised before any action executes (bad manifest, bad plan, no
    driver, incompatible schema). Converted to the envelope's ``error``
    at the CLI boundary.
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        *,
        detail: str | None = None,
        remediation: str | None = None,
        docs_key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = get_error_code(str(code))
        self.message = message
        self.detail = detail
        self.remediation = remediation
        self.docs_key = docs_key

    def to_json_error(self) -> JsonError:
        """Convert to the serializable envelope error."""
        from machinestate.core.contract.envelope import new_error

        return new_error(
            self.code,
            self.message,
            detail=self.detail,
            remediation=self.remediation,
            docs_key=self.docs_key,
        )

    def __repr__(self) -> str:
        return f"<EngineError code={self.code.value} message={self.message!r}>"
