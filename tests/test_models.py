"""
Tests for domain models.
"""

import pytest
from pydantic import ValidationError

from machinestate.core.models import (
    Action,
    AppEntry,
    Manifest,
    ManifestSnapshot,
    Plan,
    RestoreEntry,
    VerifyEntry,
)


class TestAction:
    def test_frozen(self):
        action = Action(type="app", status="install", driver="winget", id="git", ref="Git.Git")
        with pytest.raises(ValidationError):
            action.status = "skip"

    @pytest.mark.parametrize("status", ["maybe", "fail"])
    def test_rejects_non_plan_status(self, status):
        with pytest.raises(ValidationError):
            Action(type="app", status=status, driver="winget", id="git", ref="Git.Git")

    def test_document_omits_empty_optionals(self):
        doc = Action(type="app", status="install", driver="brew", id="git", ref="git").to_document()
        assert doc == {"type": "app", "status": "install", "driver": "brew", "id": "git", "ref": "git"}


class TestManifestModels:
    def test_ref_for(self):
        app = AppEntry(id="git", refs={"windows": "Git.Git", "linux": ""})
        assert app.ref_for("windows") == "Git.Git"
        assert app.ref_for("linux") is None
        assert app.ref_for("macos") is None

    def test_restore_defaults_and_params(self):
        entry = RestoreEntry(source="files/gitconfig", target="~/.gitconfig", id="cfg")
        assert entry.type == "copy"
        assert entry.params() == {
            "type": "copy",
            "source": "files/gitconfig",
            "target": "~/.gitconfig",
            "backup": True,
        }

    def test_verify_target(self):
        assert VerifyEntry(path="~/.gitconfig").target == "~/.gitconfig"
        assert VerifyEntry(type="command-exists", command="git").target == "git"
        assert VerifyEntry().target == ""

    def test_extra_keys_kept_in_params(self):
        entry = VerifyEntry(type="file-exists", path="/etc/hosts", minSize=10)
        assert entry.params()["minSize"] == 10

    def test_manifest_document_layout(self):
        manifest = Manifest(version=1, name="m", apps=[AppEntry(id="git")], restore=[], verify=[])
        doc = manifest.to_document()
        assert list(doc) == ["version", "name", "apps", "restore", "verify"]


class TestPlanModel:
    def test_summary_derived(self):
        plan = Plan(
            run_id="r",
            actions=(
                Action(type="app", status="install", driver="mock", id="a", ref="A"),
                Action(type="app", status="skip", driver="mock", id="b", ref="B", reason="already installed"),
            ),
        )
        assert plan.summary.install == 1
        assert plan.summary.skip == 1
        assert plan.total_actions == 2

    def test_from_document_accepts_alias(self):
        plan = Plan.from_document(
            {"runId": "r", "manifest": {"name": "m", "hash": "h"}, "actions": []}
        )
        assert plan.run_id == "r"
        assert plan.manifest == ManifestSnapshot(name="m", hash="h")

    def test_from_document_rejects_bad_action(self):
        with pytest.raises(ValidationError):
            Plan.from_document({"runId": "r", "actions": [{"type": "app"}]})
