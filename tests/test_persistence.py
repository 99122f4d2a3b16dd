"""
Tests for persistence — plan files and audit ledger.
"""

import json
from pathlib import Path

import pytest

from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.models.action import Action
from machinestate.core.models.plan import ManifestSnapshot, Plan
from machinestate.core.persistence.audit import AuditEntry, AuditWriter
from machinestate.core.persistence.plan_file import default_plan_path, load_plan, save_plan


def _sample_plan() -> Plan:
    return Plan(
        run_id="20251219-010000",
        manifest=ManifestSnapshot(name="work", path="/tmp/work.yml", hash="abc123"),
        actions=(
            Action(type="app", status="install", driver="winget", id="git", ref="Git.Git"),
            Action(
                type="app",
                status="skip",
                driver="winget",
                id="node",
                ref="OpenJS.NodeJS",
                reason="already installed",
            ),
            Action(
                type="restore",
                status="install",
                driver="copy",
                id="restore-0",
                ref="~/.gitconfig",
                params={"type": "copy", "source": "files/gitconfig", "target": "~/.gitconfig", "backup": True},
            ),
        ),
    )


class TestPlanFile:
    def test_save_and_load(self, tmp_path: Path):
        """A saved plan loads back with the same run id and actions."""
        plan = _sample_plan()
        path = save_plan(plan, tmp_path / "plans" / "p.json")
        loaded = load_plan(path)
        assert loaded.run_id == plan.run_id
        assert loaded.actions == plan.actions
        assert loaded.manifest == plan.manifest

    def test_document_layout(self, tmp_path: Path):
        path = save_plan(_sample_plan(), tmp_path / "p.json")
        data = json.loads(path.read_text())
        assert list(data) == ["runId", "manifest", "actions", "summary"]
        assert data["summary"] == {"install": 2, "skip": 1}
        assert list(data["actions"][0]) == ["type", "status", "driver", "id", "ref"]
        assert data["actions"][1]["reason"] == "already installed"
        assert "params" not in data["actions"][0]
        assert data["actions"][2]["params"]["source"] == "files/gitconfig"

    def test_stored_summary_is_ignored(self, tmp_path: Path):
        path = save_plan(_sample_plan(), tmp_path / "p.json")
        data = json.loads(path.read_text())
        data["summary"] = {"install": 99, "skip": 99}
        path.write_text(json.dumps(data))
        assert load_plan(path).summary.install == 2

    def test_no_temp_files_left(self, tmp_path: Path):
        save_plan(_sample_plan(), tmp_path / "p.json")
        assert list(tmp_path.glob(".plan_*.tmp")) == []

    def test_default_plan_path(self, tmp_path: Path):
        assert default_plan_path(tmp_path, "20251219-010000") == tmp_path / "plans" / "20251219-010000.json"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(EngineError) as exc_info:
            load_plan(tmp_path / "nope.json")
        assert exc_info.value.code == ErrorCode.PLAN_NOT_FOUND

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("not json {{{")
        with pytest.raises(EngineError) as exc_info:
            load_plan(path)
        assert exc_info.value.code == ErrorCode.PARSE_ERROR

    @pytest.mark.parametrize(
        "doc",
        [
            {"actions": []},
            {"runId": "r"},
            {"runId": "r", "actions": "nope"},
            {"runId": "", "actions": []},
            {"runId": 42, "actions": []},
            ["not", "an", "object"],
        ],
    )
    def test_invalid_documents(self, tmp_path: Path, doc):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps(doc))
        with pytest.raises(EngineError) as exc_info:
            load_plan(path)
        assert exc_info.value.code == ErrorCode.PLAN_INVALID

    def test_empty_actions_is_valid(self, tmp_path: Path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"runId": "r", "actions": []}))
        assert load_plan(path).total_actions == 0


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path)
        writer.write(AuditEntry(run_id="r1", command="plan", status="ok"))
        writer.write(AuditEntry(run_id="r2", command="apply", status="partial", success=1, failed=1))

        entries = writer.read_all()
        assert [e.run_id for e in entries] == ["r1", "r2"]
        assert entries[1].failed == 1
        assert writer.path == tmp_path / "audit.ndjson"

    def test_append_only_ndjson(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        writer.write(AuditEntry(run_id="a"))
        writer.write(AuditEntry(run_id="b"))
        lines = writer.path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["run_id"] == "a"

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path)
        for i in range(5):
            writer.write(AuditEntry(run_id=f"r{i}"))
        assert [e.run_id for e in writer.read_recent(2)] == ["r3", "r4"]
        assert writer.read_recent(0) == []
        assert writer.entry_count() == 5

    def test_find_by_run_id(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path)
        writer.write(AuditEntry(run_id="x", command="plan"))
        writer.write(AuditEntry(run_id="y", command="plan"))
        writer.write(AuditEntry(run_id="x", command="apply"))
        assert [e.command for e in writer.find("x")] == ["plan", "apply"]

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        path.write_text('{"run_id": "ok"}\nnot json\n\n{"run_id": "ok2", "success": "many"}\n')
        entries = AuditWriter(path=path).read_all()
        assert [e.run_id for e in entries] == ["ok"]

    def test_missing_ledger(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path / "none")
        assert writer.read_all() == []
        assert writer.entry_count() == 0
