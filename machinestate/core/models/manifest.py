"""
Manifest models — the normalized desired-state document.

The loader (``core.config.manifest_loader``) turns YAML/JSON/JSONC files
into these models. Everything downstream of the loader works on these
types only, never on raw text.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SUPPORTED_MANIFEST_VERSION = 1


class AppEntry(BaseModel):
    """One piece of software the machine should have."""

    id: str
    refs: dict[str, str] = Field(default_factory=dict)  # platform -> package ref

    def ref_for(self, platform: str) -> str | None:
        """Package ref for a platform, or None when the app does not apply."""
        ref = self.refs.get(platform)
        return ref or None


class RestoreEntry(BaseModel):
    """A file or directory to put back in place."""

    model_config = ConfigDict(extra="allow")

    type: str = "copy"              # restorer name
    source: str
    target: str
    id: str | None = None
    backup: bool = True

    def params(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id"}, exclude_none=True)


class VerifyEntry(BaseModel):
    """A postcondition to check after apply."""

    model_config = ConfigDict(extra="allow")

    type: str = "file-exists"       # verifier name
    path: str | None = None
    command: str | None = None
    id: str | None = None

    @property
    def target(self) -> str:
        return self.path or self.command or ""

    def params(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id"}, exclude_none=True)


class Manifest(BaseModel):
    """Normalized manifest.

    ``restore`` and ``verify`` are required here (possibly empty); the
    loader fills them in when the source file leaves them out.
    """

    version: int
    name: str = ""
    captured: str | None = None
    apps: list[AppEntry]
    restore: list[RestoreEntry]
    verify: list[VerifyEntry]

    def to_document(self) -> dict[str, Any]:
        """Serialize in the on-disk manifest layout."""
        doc: dict[str, Any] = {"version": self.version, "name": self.name}
        if self.captured:
            doc["captured"] = self.captured
        doc["apps"] = [a.model_dump(mode="json") for a in self.apps]
        doc["restore"] = [r.model_dump(mode="json", exclude_none=True) for r in self.restore]
        doc["verify"] = [v.model_dump(mode="json", exclude_none=True) for v in self.verify]
        return doc
