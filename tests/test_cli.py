"""Tests for the command line interface."""

from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from reco_autopilot.cli.main import cli
from reco_autopilot.models import (
    ApplyOutcome,
    ApplyState,
    BuildEvent,
    RecommendationCategory,
    ReconcileOutcome,
    ReconcileState,
)
from reco_autopilot.utils.errors import CollaboratorFailure, WorkflowStep


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("AUTOPILOT_CONFIG", raising=False)
    monkeypatch.delenv("GITHUB_ACCOUNT", raising=False)
    return CliRunner()


@pytest.fixture
def coordinators():
    apply_coordinator, reconciler = MagicMock(), MagicMock()
    with patch("reco_autopilot.cli.main.create_coordinators", return_value=(apply_coordinator, reconciler)), \
            patch("reco_autopilot.cli.main.setup_logging"):
        yield apply_coordinator, reconciler


def invoke(runner, *args):
    with runner.isolated_filesystem():
        with open("autopilot.yaml", "w") as f:
            yaml.safe_dump({"github": {"account": "acme"}}, f)
        return runner.invoke(cli, ["--config", "autopilot.yaml", *args])


class TestApplyCommand:

    def test_applies(self, runner, coordinators):
        apply_coordinator, _ = coordinators
        apply_coordinator.apply.return_value = ApplyOutcome(
            state=ApplyState.DONE,
            repository_name="infra",
            category=RecommendationCategory.VM,
            listed_ids=["r1", "r2"],
            claimed_ids=["r1"],
            commit_id="abc123",
            branch="recommendations-1",
            commit_message="Recommended VM Rightsizing as on 2024-01-01 00:00:00 UTC",
        )

        result = invoke(runner, "apply", "vm", "--repo", "infra", "--project", "p1", "--project", "p2")

        assert result.exit_code == 0, result.output
        request = apply_coordinator.apply.call_args.args[0]
        assert request.repository_name == "infra"
        assert request.project_ids == ["p1", "p2"]
        assert request.category == "vm"
        assert "abc123" in result.output

    def test_failure_exits_non_zero(self, runner, coordinators):
        apply_coordinator, _ = coordinators
        apply_coordinator.apply.side_effect = CollaboratorFailure(WorkflowStep.CLONE, RuntimeError("denied"))

        result = invoke(runner, "apply", "vm", "--repo", "infra", "--project", "p1")

        assert result.exit_code == 1
        assert "clone failed: denied" in result.output


class TestReconcileCommand:

    def test_reconciles_as_success(self, runner, coordinators):
        _, reconciler = coordinators
        reconciler.reconcile.return_value = ReconcileOutcome(
            state=ReconcileState.SUCCEEDED,
            commit_id="m1",
            repository_name="infra",
            ancestor_commits=["m1"],
            recommendation_ids=["r1"],
            marked_ids=["r1"],
        )

        result = invoke(runner, "reconcile", "--repo", "infra", "--commit", "m1")

        assert result.exit_code == 0, result.output
        event = reconciler.reconcile.call_args.args[0]
        assert event == BuildEvent(status="SUCCESS", commit_id="m1", repository_name="infra")


class TestResumeClaimCommand:

    def test_resume(self, runner, coordinators):
        apply_coordinator, _ = coordinators
        apply_coordinator.resume_claim.return_value = ApplyOutcome(
            state=ApplyState.DONE, repository_name="infra", listed_ids=["r1", "r2"], claimed_ids=["r2"], commit_id="c1"
        )

        result = invoke(runner, "resume-claim", "--repo", "infra", "--commit", "c1")

        assert result.exit_code == 0, result.output
        apply_coordinator.resume_claim.assert_called_once_with("infra", "c1")
        assert "Claimed 1 of 2" in result.output


def test_missing_config_file(runner):
    with patch("reco_autopilot.cli.main.setup_logging"):
        result = runner.invoke(cli, ["--config", "does-not-exist.yaml", "apply", "vm", "--repo", "r", "--project", "p"])

    assert result.exit_code == 1
    assert "Configuration file not found" in result.output
