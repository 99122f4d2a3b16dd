"""
Plan file persistence — atomic write and validated read of plan documents.

Plans are stored as indented JSON, by default under
``<state-dir>/plans/<runId>.json``. Writes are atomic (write to temp
file, then rename). Reads validate the document before anything is
executed from it.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.models.plan import Plan

logger = logging.getLogger(__name__)

DEFAULT_PLANS_DIR = "plans"
REQUIRED_PLAN_KEYS = ("runId", "actions")


def default_plan_path(state_dir: Path, run_id: str) -> Path:
    """Default location of a persisted plan."""
    return state_dir / DEFAULT_PLANS_DIR / f"{run_id}.json"


def save_plan(plan: Plan, path: Path) -> Path:
    """Write a plan document atomically.

    Args:
        plan: The plan to persist.
        path: Target file.

    Returns:
        The path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(plan.to_document(), indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".plan_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save plan to %s", path)
        raise

    logger.debug("Plan %s saved to %s", plan.run_id, path)
    return path


def load_plan(path: Path) -> Plan:
    """Load and validate a persisted plan.

    Raises:
        EngineError: PLAN_NOT_FOUND if the file is missing, PARSE_ERROR
            if it is not JSON, PLAN_INVALID if ``runId`` is empty or
            ``actions`` is missing or an action is malformed.
    """
    if not path.is_file():
        raise EngineError(ErrorCode.PLAN_NOT_FOUND, f"Plan file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise EngineError(
            ErrorCode.PARSE_ERROR,
            f"Plan file is not valid JSON: {path}",
            detail=str(e),
        ) from e
    except OSError as e:
        raise EngineError(ErrorCode.PARSE_ERROR, f"Cannot read plan {path}: {e}") from e

    if not isinstance(data, dict):
        raise EngineError(
            ErrorCode.PLAN_INVALID,
            f"Plan document must be a JSON object, got {type(data).__name__}",
        )

    missing = [key for key in REQUIRED_PLAN_KEYS if data.get(key) is None]
    if missing:
        raise EngineError(
            ErrorCode.PLAN_INVALID,
            f"Plan {path} is missing required field(s): {', '.join(missing)}",
        )
    run_id = data["runId"]
    if not isinstance(run_id, str) or not run_id.strip():
        raise EngineError(ErrorCode.PLAN_INVALID, f"Plan {path}: 'runId' must be a non-empty string")
    if not isinstance(data["actions"], list):
        raise EngineError(ErrorCode.PLAN_INVALID, f"Plan {path}: 'actions' must be a list")

    try:
        plan = Plan.from_document(data)
    except ValidationError as e:
        raise EngineError(
            ErrorCode.PLAN_INVALID,
            f"Plan {path} has malformed actions",
            detail=str(e),
        ) from e

    logger.debug("Loaded plan %s from %s (%d actions)", plan.run_id, path, plan.total_actions)
    return plan
