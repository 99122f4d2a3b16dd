"""
Action and Receipt models — the execution contract.

Actions are the planned units of work. Receipts are what a backend hands
back after running one. The engine sends Actions to backends through the
registry and gets Receipts back. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ActionType = Literal["app", "restore", "verify"]
ActionStatus = Literal["install", "skip"]  # plan-time decisions; failures are apply outcomes

REASON_ALREADY_INSTALLED = "already installed"
REASON_NOT_ATTEMPTED = "not attempted after earlier failure"


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """One planned unit of work with a decided status.

    ``driver`` names the backend that will run the action. It is copied
    from the registry at plan time, so a persisted plan replays against
    the same backend without the engine knowing any backend by name.
    """

    model_config = ConfigDict(frozen=True)

    type: ActionType
    status: ActionStatus
    driver: str
    id: str
    ref: str
    reason: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """Serialize for the plan document (optional keys omitted)."""
        doc: dict[str, Any] = {
            "type": self.type,
            "status": self.status,
            "driver": self.driver,
            "id": self.id,
            "ref": self.ref,
        }
        if self.reason is not None:
            doc["reason"] = self.reason
        if self.params:
            doc["params"] = dict(self.params)
        return doc


class Receipt(BaseModel):
    """Result of one backend call.

    Backends NEVER raise from install/restore/verify; failures are
    captured here with ``status='failed'``.
    """

    backend: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    code: str | None = None  # error taxonomy code when failed

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        backend: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            backend=backend,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        backend: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            backend=backend,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        backend: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(
            backend=backend,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )
