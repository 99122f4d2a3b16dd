"""
Tests for the engine — plan builder and apply executor.
"""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from machinestate.adapters.mock import MockDriver
from machinestate.adapters.registry import DriverRegistry
from machinestate.core.config.manifest_loader import load_manifest
from machinestate.core.contract.errors import EngineError, ErrorCode
from machinestate.core.engine.executor import (
    ApplyPolicy,
    apply_plan,
    apply_plan_file,
    detect_manifest_drift,
)
from machinestate.core.engine.planner import build_plan, manifest_hash
from machinestate.core.models.action import REASON_ALREADY_INSTALLED, REASON_NOT_ATTEMPTED, Action
from machinestate.core.models.manifest import AppEntry, Manifest, RestoreEntry, VerifyEntry
from machinestate.core.models.plan import ManifestSnapshot, Plan
from machinestate.core.persistence.plan_file import load_plan, save_plan


def _app(app_id: str, **refs: str) -> AppEntry:
    return AppEntry(id=app_id, refs=refs)


def make_manifest(*apps: AppEntry) -> Manifest:
    return Manifest(version=1, name="test", apps=list(apps), restore=[], verify=[])


def _install(app_id: str, ref: str | None = None) -> Action:
    return Action(type="app", status="install", driver="mock", id=app_id, ref=ref or app_id)


def _skip(app_id: str, ref: str | None = None) -> Action:
    return Action(
        type="app",
        status="skip",
        driver="mock",
        id=app_id,
        ref=ref or app_id,
        reason=REASON_ALREADY_INSTALLED,
    )


# ── Plan Builder ─────────────────────────────────────────────────────


class TestBuildPlan:
    def test_one_action_per_applicable_app(self, registry):
        manifest = make_manifest(
            _app("git", windows="Git.Git"),
            _app("vscode", windows="Microsoft.VisualStudioCode"),
            _app("node", windows="OpenJS.NodeJS"),
        )
        plan = build_plan(manifest, registry)
        assert plan.total_actions == 3
        assert plan.summary.install + plan.summary.skip == 3

    def test_preserves_manifest_order(self, registry):
        manifest = make_manifest(
            _app("zebra", windows="Z.Z"),
            _app("alpha", windows="A.A"),
            _app("beta", windows="B.B"),
        )
        plan = build_plan(manifest, registry)
        assert [a.id for a in plan.actions] == ["zebra", "alpha", "beta"]

    def test_installed_apps_are_skipped(self):
        reg = DriverRegistry(platform="windows")
        reg.register_driver(MockDriver(installed=["Git.Git"]))
        reg.initialize(include_builtin=False)
        manifest = make_manifest(_app("git", windows="Git.Git"), _app("node", windows="OpenJS.NodeJS"))

        plan = build_plan(manifest, reg)

        assert [a.status for a in plan.actions] == ["skip", "install"]
        assert plan.actions[0].reason == REASON_ALREADY_INSTALLED
        assert plan.summary.skip == 1
        assert plan.summary.install == 1

    def test_apps_without_platform_ref_are_excluded(self, registry):
        manifest = make_manifest(
            _app("mac-only", macos="iterm2"),
            _app("git", windows="Git.Git"),
            _app("empty", windows=""),
        )
        plan = build_plan(manifest, registry)
        assert [a.id for a in plan.actions] == ["git"]

    def test_driver_name_comes_from_registry(self, registry):
        plan = build_plan(make_manifest(_app("git", windows="Git.Git")), registry)
        assert plan.actions[0].driver == "mock"

    def test_no_install_side_effects(self, registry, mock_driver):
        build_plan(make_manifest(_app("git", windows="Git.Git")), registry)
        assert mock_driver.install_count == 0
        assert mock_driver.query_log == ["Git.Git"]

    def test_restore_and_verify_follow_apps(self, registry):
        manifest = Manifest(
            version=1,
            apps=[_app("git", windows="Git.Git")],
            restore=[RestoreEntry(source="files/gitconfig", target="~/.gitconfig")],
            verify=[VerifyEntry(type="command-exists", command="git", id="git-on-path")],
        )
        plan = build_plan(manifest, registry)

        assert [a.type for a in plan.actions] == ["app", "restore", "verify"]
        restore, verify = plan.actions[1], plan.actions[2]
        assert restore.id == "restore-0"
        assert restore.driver == "copy"
        assert restore.ref == "~/.gitconfig"
        assert restore.params["source"] == "files/gitconfig"
        assert verify.id == "git-on-path"
        assert verify.driver == "command-exists"
        assert verify.ref == "git"

    def test_run_id_format(self, registry):
        now = datetime(2025, 12, 19, 1, 0, 0, tzinfo=UTC)
        plan = build_plan(make_manifest(), registry, now=now)
        assert plan.run_id == "20251219-010000"

    def test_unsupported_version(self, registry):
        manifest = Manifest(version=2, apps=[], restore=[], verify=[])
        with pytest.raises(EngineError) as exc_info:
            build_plan(manifest, registry)
        assert exc_info.value.code == ErrorCode.MANIFEST_INVALID

    def test_driver_unavailable(self):
        reg = DriverRegistry(platform="linux").initialize(include_builtin=False)
        with pytest.raises(EngineError) as exc_info:
            build_plan(make_manifest(_app("git", linux="git")), reg)
        assert exc_info.value.code == ErrorCode.DRIVER_UNAVAILABLE


class TestManifestHash:
    def test_plan_records_resolved_manifest_hash(self, registry, tmp_path: Path):
        path = tmp_path / "m.json"
        path.write_text('{"version": 1, "apps": []}')
        manifest = make_manifest(_app("git", windows="Git.Git"))
        plan = build_plan(manifest, registry, manifest_path=path)
        assert plan.manifest.hash == manifest_hash(manifest)
        assert plan.manifest.path == str(path)

    def test_canonical_hash_is_stable(self):
        a = make_manifest(_app("git", windows="Git.Git"))
        b = make_manifest(_app("git", windows="Git.Git"))
        assert manifest_hash(a) == manifest_hash(b)
        assert manifest_hash(a) != manifest_hash(make_manifest())


# ── Apply Executor ───────────────────────────────────────────────────


def _plan(*actions: Action, run_id: str = "20251219-010000") -> Plan:
    return Plan(run_id=run_id, actions=actions)


class TestApplyPlan:
    def test_mixed_scenario_counts(self, registry):
        plan = _plan(_install("A"), _skip("B"), _install("C"))
        result = apply_plan(plan, registry)
        assert (result.success, result.skipped, result.failed) == (2, 1, 0)

    def test_count_invariant(self, registry, mock_driver):
        mock_driver.set_failure("C")
        plan = _plan(_install("A"), _skip("B"), _install("C"), _install("D"))
        result = apply_plan(plan, registry)
        assert result.success + result.skipped + result.failed == plan.total_actions

    def test_dispatch_order_equals_plan_order(self, registry, mock_driver):
        plan = _plan(_install("zebra"), _install("alpha"), _skip("gamma"), _install("beta"))
        apply_plan(plan, registry)
        assert mock_driver.install_log == ["zebra", "alpha", "beta"]

    def test_skip_never_calls_backend(self, registry, mock_driver):
        apply_plan(_plan(_skip("A"), _skip("B")), registry)
        assert mock_driver.install_count == 0

    def test_dry_run(self, registry, mock_driver):
        plan = _plan(_install("A"), _install("B"), _skip("C"))
        result = apply_plan(plan, registry, dry_run=True)
        assert result.success == 2
        assert result.failed == 0
        assert result.dry_run
        assert mock_driver.install_count == 0

    def test_failure_continues(self, registry, mock_driver):
        mock_driver.set_failure("B", "broken")
        result = apply_plan(_plan(_install("A"), _install("B"), _install("C")), registry)
        assert (result.success, result.skipped, result.failed) == (2, 0, 1)
        assert mock_driver.install_log == ["A", "B", "C"]
        failed = [o for o in result.outcomes if o.status == "failed"][0]
        assert failed.receipt.code == ErrorCode.INSTALL_FAILED.value
        assert failed.to_dict()["code"] == "INSTALL_FAILED"

    def test_fail_fast(self, registry, mock_driver):
        mock_driver.set_failure("B")
        result = apply_plan(
            _plan(_install("A"), _install("B"), _install("C"), _skip("D")),
            registry,
            policy=ApplyPolicy(continue_on_failure=False),
        )
        assert mock_driver.install_log == ["A", "B"]
        assert (result.success, result.skipped, result.failed) == (1, 2, 1)
        assert result.outcomes[2].reason == REASON_NOT_ATTEMPTED
        assert result.status == "partial"

    def test_idempotent_second_apply(self, registry, mock_driver):
        manifest = make_manifest(_app("git", windows="Git.Git"), _app("node", windows="OpenJS.NodeJS"))
        first = apply_plan(build_plan(manifest, registry), registry)
        assert first.success == 2

        second = apply_plan(build_plan(manifest, registry), registry)
        assert second.skipped == 2
        assert second.success == 0
        assert mock_driver.install_count == 2

    def test_restore_and_verify_dispatch(self, registry, mock_restorer, mock_verifier):
        restore = Action(type="restore", status="install", driver="copy", id="r", ref="t")
        verify = Action(type="verify", status="install", driver="file-exists", id="v", ref="p")
        mock_verifier.set_failure("v")
        result = apply_plan(_plan(restore, verify), registry)
        assert mock_restorer.call_count == 1
        assert (result.success, result.failed) == (1, 1)

    def test_result_document(self, registry):
        result = apply_plan(_plan(_install("A")), registry, run_id="20251219-020000")
        assert result.to_document() == {
            "RunId": "20251219-020000",
            "DryRun": False,
            "Success": 1,
            "Skipped": 0,
            "Failed": 0,
        }

    def test_empty_plan(self, registry):
        result = apply_plan(_plan(), registry)
        assert result.total == 0
        assert result.status == "ok"

    def test_unknown_status_rejected_before_dispatch(self, registry, mock_driver):
        bad = Action.model_construct(type="app", status="fail", driver="mock", id="B", ref="B", reason=None, params={})
        with pytest.raises(EngineError) as exc_info:
            apply_plan(_plan(_install("A"), bad), registry)
        assert exc_info.value.code == ErrorCode.PLAN_INVALID
        assert mock_driver.install_count == 0


class TestApplyPlanFile:
    def test_replay_records_original_run(self, registry, tmp_path: Path):
        path = save_plan(_plan(_install("A"), run_id="20250101-000000"), tmp_path / "plan.json")
        result = apply_plan_file(path, registry)
        assert result.original_plan_run_id == "20250101-000000"
        assert result.run_id != ""
        assert result.to_document()["PlanPath"] == str(path)
        assert result.to_document()["OriginalPlanRunId"] == "20250101-000000"

    def test_missing_actions_rejected_before_backend_calls(self, registry, mock_driver, tmp_path: Path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"runId": "20250101-000000"}))
        with pytest.raises(EngineError) as exc_info:
            apply_plan_file(path, registry)
        assert exc_info.value.code == ErrorCode.PLAN_INVALID
        assert mock_driver.install_count == 0

    def test_malformed_action_rejected_before_backend_calls(self, registry, mock_driver, tmp_path: Path):
        path = tmp_path / "plan.json"
        path.write_text(
            json.dumps(
                {
                    "runId": "r",
                    "actions": [
                        {"type": "app", "status": "install", "driver": "mock", "id": "A", "ref": "A"},
                        {"type": "bogus", "status": "install"},
                    ],
                }
            )
        )
        with pytest.raises(EngineError) as exc_info:
            apply_plan_file(path, registry)
        assert exc_info.value.code == ErrorCode.PLAN_INVALID
        assert mock_driver.install_count == 0

    def test_fail_status_in_plan_file_rejected(self, registry, mock_driver, tmp_path: Path):
        path = tmp_path / "plan.json"
        path.write_text(
            json.dumps(
                {
                    "runId": "20250101-000000",
                    "actions": [{"type": "app", "status": "fail", "driver": "mock", "id": "A", "ref": "A"}],
                }
            )
        )
        with pytest.raises(EngineError) as exc_info:
            apply_plan_file(path, registry)
        assert exc_info.value.code == ErrorCode.PLAN_INVALID
        assert mock_driver.install_count == 0

    def test_empty_run_id_rejected(self, registry, mock_driver, tmp_path: Path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"runId": "", "actions": []}))
        with pytest.raises(EngineError) as exc_info:
            apply_plan_file(path, registry)
        assert exc_info.value.code == ErrorCode.PLAN_INVALID


class TestManifestDrift:
    def _save_plan_for(self, manifest_path: Path, registry, tmp_path: Path) -> Path:
        manifest, _ = load_manifest(manifest_path)
        plan = build_plan(manifest, registry, manifest_path=manifest_path)
        return save_plan(plan, tmp_path / "plan.json")

    def test_no_drift_when_unchanged(self, registry, tmp_path: Path):
        manifest = tmp_path / "m.json"
        manifest.write_text(json.dumps({"version": 1, "apps": [{"id": "git", "refs": {"windows": "Git.Git"}}]}))
        path = self._save_plan_for(manifest, registry, tmp_path)
        assert not apply_plan_file(path, registry).manifest_drift

    def test_reformatting_is_not_drift(self, registry, tmp_path: Path):
        doc = {"version": 1, "apps": [{"id": "git", "refs": {"windows": "Git.Git"}}]}
        manifest = tmp_path / "m.json"
        manifest.write_text(json.dumps(doc))
        path = self._save_plan_for(manifest, registry, tmp_path)
        manifest.write_text(json.dumps(doc, indent=4))
        assert not detect_manifest_drift(load_plan(path))

    def test_drift_when_changed(self, registry, tmp_path: Path):
        manifest = tmp_path / "m.json"
        manifest.write_text(json.dumps({"version": 1, "apps": [{"id": "git", "refs": {"windows": "Git.Git"}}]}))
        path = self._save_plan_for(manifest, registry, tmp_path)
        manifest.write_text(json.dumps({"version": 1, "apps": []}))

        result = apply_plan_file(path, registry)

        assert result.manifest_drift
        assert result.success == 1

    def test_drift_when_included_file_changed(self, registry, tmp_path: Path):
        (tmp_path / "inc.json").write_text(json.dumps({"apps": [{"id": "node", "refs": {"windows": "OpenJS.NodeJS"}}]}))
        top = tmp_path / "top.json"
        top.write_text(json.dumps({"version": 1, "includes": ["inc.json"], "apps": []}))
        path = self._save_plan_for(top, registry, tmp_path)

        (tmp_path / "inc.json").write_text(json.dumps({"apps": [{"id": "node", "refs": {"windows": "Node.LTS"}}]}))

        assert apply_plan_file(path, registry, dry_run=True).manifest_drift

    def test_unloadable_manifest_is_drift(self, registry, tmp_path: Path):
        manifest = tmp_path / "m.json"
        manifest.write_text(json.dumps({"version": 1, "apps": []}))
        path = self._save_plan_for(manifest, registry, tmp_path)
        manifest.write_text("{not json")
        assert detect_manifest_drift(load_plan(path))

    def test_missing_manifest_is_not_drift(self, tmp_path: Path):
        plan = Plan(
            run_id="r",
            manifest=ManifestSnapshot(path=str(tmp_path / "gone.json"), hash="abc"),
        )
        assert not detect_manifest_drift(plan)
