"""
Manifest loader — reads manifest files into the normalized model.

Accepts YAML (``.yml``/``.yaml``), JSON (``.json``) and JSON with
comments (``.jsonc``). Resolves ``includes`` relative to the including
file, validates the top-level shape, and returns a ``Manifest`` plus
any non-fatal warnings.

The plan builder only ever sees the result of this module.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from machinestate.core.contract.envelope import JsonError, new_error
from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.models.manifest import (
    SUPPORTED_MANIFEST_VERSION,
    AppEntry,
    Manifest,
    RestoreEntry,
    VerifyEntry,
)

logger = logging.getLogger(__name__)

JSON_SUFFIXES = (".json", ".jsonc")
MAX_INCLUDE_DEPTH = 16


class ManifestError(EngineError):
    """Raised when a manifest is missing, unparseable or malformed."""


# ── Parsing ─────────────────────────────────────────────────────


def strip_json_comments(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments outside of string literals."""
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False

    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def parse_manifest_text(text: str, suffix: str = ".yml", source: str = "Manifest") -> Any:
    """Parse manifest text according to the file suffix.

    Raises:
        ManifestError: PARSE_ERROR on invalid syntax.
    """
    suffix = suffix.lower()
    try:
        if suffix == ".jsonc":
            return json.loads(strip_json_comments(text))
        if suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except json.JSONDecodeError as e:
        raise ManifestError(ErrorCode.PARSE_ERROR, f"{source} is not valid JSON", detail=str(e)) from e
    except yaml.YAMLError as e:
        raise ManifestError(ErrorCode.PARSE_ERROR, f"{source} is not valid YAML", detail=str(e)) from e


def _read_document(path: Path) -> Any:
    if not path.is_file():
        raise ManifestError(ErrorCode.MANIFEST_NOT_FOUND, f"Manifest not found: {path}")
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(ErrorCode.PARSE_ERROR, f"Cannot read {path}: {e}") from e
    return parse_manifest_text(raw, path.suffix, source=str(path))


# ── Includes ────────────────────────────────────────────────────


def _concat(base: Any, extra: Any) -> Any:
    """Append included entries; a malformed base is left for validation to reject."""
    if not isinstance(extra, list) or not extra:
        return base
    if base is None:
        return list(extra)
    if isinstance(base, list):
        return base + extra
    return base


def _resolve_includes(
    data: dict[str, Any],
    base_dir: Path,
    seen: set[Path],
    depth: int = 0,
) -> dict[str, Any]:
    """Merge included documents into ``data``.

    Apps merge by ``id`` with the first occurrence winning, so the
    including file overrides what it includes. Restore and verify
    entries are appended in include order. Files already on the
    include chain are skipped.
    """
    includes = data.get("includes") or []
    if isinstance(includes, str):
        includes = [includes]
    if not isinstance(includes, list):
        raise ManifestError(ErrorCode.MANIFEST_INVALID, "'includes' must be a list of paths")
    if not includes:
        return data

    if depth >= MAX_INCLUDE_DEPTH:
        raise ManifestError(
            ErrorCode.MANIFEST_INVALID,
            f"Includes nested deeper than {MAX_INCLUDE_DEPTH} levels",
        )

    merged = dict(data)
    has_apps = "apps" in data
    apps = data.get("apps")
    apps = list(apps) if isinstance(apps, list) else apps
    restore = data.get("restore")
    verify = data.get("verify")

    for item in includes:
        include_path = (base_dir / str(item)).resolve()
        if include_path in seen:
            logger.warning("Include cycle at %s, skipped", include_path)
            continue

        child = _read_document(include_path)
        if child is None:
            continue
        if not isinstance(child, dict):
            raise ManifestError(
                ErrorCode.MANIFEST_INVALID,
                f"Included manifest must be a mapping: {include_path}",
            )
        child = _resolve_includes(child, include_path.parent, seen | {include_path}, depth + 1)
        logger.debug("Merged include %s", include_path)

        if "apps" in child and not has_apps:
            has_apps, apps = True, []
        child_apps = child.get("apps") or []
        if isinstance(apps, list) and isinstance(child_apps, list):
            known = {a.get("id") for a in apps if isinstance(a, dict)}
            for app in child_apps:
                app_id = app.get("id") if isinstance(app, dict) else None
                if app_id is not None and app_id in known:
                    continue
                apps.append(app)
                known.add(app_id)
        restore = _concat(restore, child.get("restore"))
        verify = _concat(verify, child.get("verify"))

    if has_apps:
        merged["apps"] = apps
    if restore is not None:
        merged["restore"] = restore
    if verify is not None:
        merged["verify"] = verify
    merged.pop("includes", None)
    return merged


# ── Validation ──────────────────────────────────────────────────


def _app_from_raw(raw: Any, index: int) -> tuple[AppEntry | None, JsonError | None]:
    if not isinstance(raw, dict):
        return None, new_error(
            ErrorCode.INVALID_APP_ENTRY,
            f"App entry {index} is not a mapping, dropped",
        )
    app_id = raw.get("id")
    if app_id is None or not str(app_id).strip():
        return None, new_error(
            ErrorCode.INVALID_APP_ENTRY,
            f"App entry {index} has no 'id', dropped",
        )
    refs_raw = raw.get("refs") or {}
    if not isinstance(refs_raw, dict):
        return None, new_error(
            ErrorCode.INVALID_APP_ENTRY,
            f"App '{app_id}' has non-mapping 'refs', dropped",
        )
    refs = {str(k): str(v) for k, v in refs_raw.items() if v is not None and str(v).strip()}
    return AppEntry(id=str(app_id).strip(), refs=refs), None


def validate_manifest_data(data: Any) -> tuple[Manifest, list[JsonError]]:
    """Validate a parsed manifest document.

    Returns:
        (manifest, warnings). Warnings are INVALID_APP_ENTRY errors for
        app entries that were dropped.

    Raises:
        ManifestError: For any top-level shape problem.
    """
    if not isinstance(data, dict):
        raise ManifestError(
            ErrorCode.MANIFEST_INVALID,
            f"Manifest must be a mapping, got {type(data).__name__}",
        )

    if "version" not in data:
        raise ManifestError(ErrorCode.MISSING_VERSION, "Manifest has no 'version'")
    version = data["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        raise ManifestError(
            ErrorCode.INVALID_VERSION_TYPE,
            f"Manifest 'version' must be an integer, got {type(version).__name__}",
        )
    if version != SUPPORTED_MANIFEST_VERSION:
        raise ManifestError(
            ErrorCode.UNSUPPORTED_VERSION,
            f"Manifest version {version} is not supported",
            detail=f"supported: {SUPPORTED_MANIFEST_VERSION}",
        )

    if "apps" not in data:
        raise ManifestError(ErrorCode.MISSING_APPS, "Manifest has no 'apps'")
    if not isinstance(data["apps"], list):
        raise ManifestError(
            ErrorCode.INVALID_APPS_TYPE,
            f"Manifest 'apps' must be a list, got {type(data['apps']).__name__}",
        )

    warnings: list[JsonError] = []
    apps: list[AppEntry] = []
    for index, raw in enumerate(data["apps"]):
        app, warning = _app_from_raw(raw, index)
        if warning is not None:
            logger.warning("%s", warning.message)
            warnings.append(warning)
        else:
            apps.append(app)

    restore = data.get("restore")
    verify = data.get("verify")
    restore = [] if restore is None else restore
    verify = [] if verify is None else verify
    for key, value in (("restore", restore), ("verify", verify)):
        if not isinstance(value, list):
            raise ManifestError(ErrorCode.MANIFEST_INVALID, f"Manifest '{key}' must be a list")

    try:
        manifest = Manifest(
            version=version,
            name=str(data.get("name") or ""),
            captured=str(data["captured"]) if data.get("captured") else None,
            apps=apps,
            restore=[RestoreEntry.model_validate(r) for r in restore],
            verify=[VerifyEntry.model_validate(v) for v in verify],
        )
    except ValidationError as e:
        raise ManifestError(
            ErrorCode.MANIFEST_INVALID,
            "Manifest restore/verify entries are malformed",
            detail=str(e),
        ) from e

    return manifest, warnings


def load_manifest(path: Path) -> tuple[Manifest, list[JsonError]]:
    """Load, resolve includes, and validate a manifest file.

    Raises:
        ManifestError: MANIFEST_NOT_FOUND, PARSE_ERROR or a shape error.
    """
    path = Path(path)
    logger.debug("Loading manifest from %s", path)

    data = _read_document(path)
    if isinstance(data, dict):
        data = _resolve_includes(data, path.parent, {path.resolve()})

    manifest, warnings = validate_manifest_data(data)
    logger.info(
        "Loaded manifest '%s': %d apps, %d restore, %d verify",
        manifest.name or path.name,
        len(manifest.apps),
        len(manifest.restore),
        len(manifest.verify),
    )
    return manifest, warnings


def write_manifest(manifest: Manifest, path: Path) -> Path:
    """Write a manifest as JSON (``.json``/``.jsonc``) or YAML (anything else)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = manifest.to_document()
    if path.suffix.lower() in JSON_SUFFIXES:
        content = json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
    else:
        content = yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    path.write_text(content, encoding="utf-8")
    logger.debug("Manifest written to %s", path)
    return path
