"""
JSON envelope — the stable external shape of every command's output.

The envelope is versioned independently of the engine's internal types.
Field order is part of the contract, so serialization walks a fixed
field tuple instead of relying on dict insertion order.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from machinestate import __version__
from machinestate.core.clock import generate_run_id, utc_timestamp
from machinestate.core.contract.errors import ErrorCode, error_info, get_error_code

SCHEMA_VERSION = "1.0"
MIN_SCHEMA_VERSION = "1.0"
MAX_SCHEMA_VERSION = "1.0"

ENVELOPE_FIELDS = (
    "schemaVersion",
    "cliVersion",
    "command",
    "runId",
    "timestampUtc",
    "success",
    "data",
    "error",
)

ERROR_FIELDS = ("code", "message", "detail", "remediation", "docsKey")


class JsonError(BaseModel):
    """Envelope error. Unset optional fields are omitted on output."""

    code: ErrorCode
    message: str
    detail: str | None = None
    remediation: str | None = None
    docs_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        values = {
            "code": self.code.value,
            "message": self.message,
            "detail": self.detail,
            "remediation": self.remediation,
            "docsKey": self.docs_key,
        }
        return {key: values[key] for key in ERROR_FIELDS if values[key] is not None}


class Envelope(BaseModel):
    """Versioned wrapper around one command's output."""

    schema_version: str = SCHEMA_VERSION
    cli_version: str = __version__
    command: str
    run_id: str
    timestamp_utc: str
    success: bool
    data: Any = None
    error: JsonError | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the contract field order."""
        values = {
            "schemaVersion": self.schema_version,
            "cliVersion": self.cli_version,
            "command": self.command,
            "runId": self.run_id,
            "timestampUtc": self.timestamp_utc,
            "success": self.success,
            "data": _plain(self.data),
            "error": self.error.to_dict() if self.error is not None else None,
        }
        return {key: values[key] for key in ENVELOPE_FIELDS}

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _plain(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    return data


def new_error(
    code: ErrorCode | str,
    message: str,
    *,
    detail: str | None = None,
    remediation: str | None = None,
    docs_key: str | None = None,
) -> JsonError:
    """Build an envelope error.

    Unknown codes become INTERNAL_ERROR. Remediation and docs key fall
    back to the catalog entry for the code when not supplied.
    """
    resolved = get_error_code(str(code))
    info = error_info(resolved)
    return JsonError(
        code=resolved,
        message=message,
        detail=detail or None,
        remediation=remediation or info.remediation,
        docs_key=docs_key or info.docs_key,
    )


def new_envelope(
    command: str,
    data: Any = None,
    *,
    success: bool = True,
    error: JsonError | None = None,
    run_id: str | None = None,
    now: datetime | None = None,
) -> Envelope:
    """Wrap command output in a contract envelope.

    Raises:
        ValueError: If ``success`` and ``error`` disagree.
    """
    if success and error is not None:
        raise ValueError("A successful envelope must not carry an error")
    if not success and error is None:
        raise ValueError("A failed envelope requires an error")
    return Envelope(
        command=command,
        run_id=run_id or generate_run_id(now),
        timestamp_utc=utc_timestamp(now),
        success=success,
        data=data,
        error=error,
    )


def error_envelope(
    command: str,
    error: JsonError,
    *,
    run_id: str | None = None,
) -> Envelope:
    """Shorthand for a failed envelope with no data."""
    return new_envelope(command, None, success=False, error=error, run_id=run_id)
