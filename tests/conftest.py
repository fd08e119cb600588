"""Shared fixtures: in-memory collaborators that record every call in order."""

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from reco_autopilot.collaborators.base import (
    ChangeApplier,
    CommitIndex,
    RecommendationSource,
    ReviewSystem,
    VersionControl,
)
from reco_autopilot.config.models import AutopilotConfig
from reco_autopilot.models import (
    CommitRecord,
    CommitResult,
    Recommendation,
    RecommendationCategory,
    RecommendationStatus,
    Workspace,
)
from reco_autopilot.orchestrator import ApplyCoordinator, BuildReconciler
from reco_autopilot.utils.retry import RetryStrategy

FIXED_TIME = datetime(2024, 3, 5, 14, 30, 0, tzinfo=timezone.utc)


def make_recommendation(
    rid: str,
    status: RecommendationStatus = RecommendationStatus.ACTIVE,
    category: RecommendationCategory = RecommendationCategory.VM
) -> Recommendation:
    return Recommendation(id=rid, etag=f"etag-{rid}", category=category, status=status, project_id="proj-1")


class CallLog(list):
    """Ordered (collaborator, operation) pairs."""

    def operations(self) -> List[str]:
        return [operation for operation, _ in self]


class FakeSource(RecommendationSource):

    def __init__(self, calls: CallLog, listed: Iterable[Recommendation] = ()):
        self.calls = calls
        self.listed = list(listed)
        self.store: Dict[str, Recommendation] = {r.id: r for r in self.listed}
        self.marks = Counter()
        self.fail_on: Optional[str] = None

    def add(self, *recommendations: Recommendation) -> None:
        for recommendation in recommendations:
            self.store[recommendation.id] = recommendation

    def status_of(self, rid: str) -> RecommendationStatus:
        return self.store[rid].status

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"{operation} unavailable")

    def list(self, category, project_ids):
        self.calls.append(("list", (category, tuple(project_ids))))
        self._maybe_fail("list")
        return [r.model_copy() for r in self.listed]

    def get_fresh_tokens(self, recommendation_ids):
        self.calls.append(("get_fresh_tokens", tuple(recommendation_ids)))
        self._maybe_fail("get_fresh_tokens")
        return [self.store[rid].model_copy() for rid in recommendation_ids if rid in self.store]

    def set_status(self, recommendations, target_status):
        self.calls.append(("set_status", (tuple(r.id for r in recommendations), target_status)))
        self._maybe_fail("set_status")
        for recommendation in recommendations:
            self.marks[(recommendation.id, target_status)] += 1
            current = self.store.get(recommendation.id, recommendation)
            self.store[recommendation.id] = current.model_copy(update={"status": target_status})


class FakeApplier(ChangeApplier):

    def __init__(self, calls: CallLog, changed_ids: Optional[Iterable[str]] = None):
        self.calls = calls
        self.changed_ids = None if changed_ids is None else set(changed_ids)
        self.error: Optional[Exception] = None

    def apply(self, category, workspace, recommendations):
        self.calls.append(("apply", (category, workspace.path, tuple(r.id for r in recommendations))))
        if self.error is not None:
            raise self.error
        if self.changed_ids is None:
            return list(recommendations)
        return [r for r in recommendations if r.id in self.changed_ids]


class FakeVersionControl(VersionControl):

    def __init__(self, calls: CallLog, root: Path, commit_id: str = "c0ffee"):
        self.calls = calls
        self.root = root
        self.commit_id = commit_id
        self.ancestors: Dict[str, List[str]] = {}
        self.discarded: List[Workspace] = []
        self.clone_count = 0
        self.commit_error: Optional[Exception] = None

    def clone(self, remote, local_name):
        self.calls.append(("clone", (remote, local_name)))
        self.clone_count += 1
        return Workspace(repository_name=local_name, remote=remote, path=self.root / f"{local_name}-{self.clone_count}")

    def commit(self, message, workspace):
        self.calls.append(("commit", (message, workspace.path)))
        if self.commit_error is not None:
            raise self.commit_error
        return CommitResult(commit_id=self.commit_id, branch="recommendations-test")

    def resolve_ancestors(self, full_repository_name, commit_id, limit):
        self.calls.append(("resolve_ancestors", (full_repository_name, commit_id, limit)))
        return list(self.ancestors.get(commit_id, [commit_id]))

    def discard(self, workspace):
        self.discarded.append(workspace)


class FakeReviewSystem(ReviewSystem):

    def __init__(self, calls: CallLog):
        self.calls = calls

    def create_review_request(self, remote, branch, title):
        self.calls.append(("create_review_request", (remote, branch, title)))


class FakeCommitIndex(CommitIndex):

    def __init__(self, calls: CallLog):
        self.calls = calls
        self.records: Dict[tuple, CommitRecord] = {}
        self.fail_for: Optional[str] = None

    def add(self, repository_name: str, commit_id: str, recommendation_ids: List[str]) -> None:
        self.records[(repository_name, commit_id)] = CommitRecord(
            repository_name=repository_name,
            commit_id=commit_id,
            recommendation_ids=recommendation_ids,
        )

    def put_commit_record(self, record):
        self.calls.append(("put_commit_record", (record.repository_name, record.commit_id)))
        self.records[(record.repository_name, record.commit_id)] = record

    def get_commit_record(self, repository_name, commit_id):
        self.calls.append(("get_commit_record", (repository_name, commit_id)))
        if self.fail_for == commit_id:
            raise ConnectionError(f"index unreachable for {commit_id}")
        return self.records.get((repository_name, commit_id))


@pytest.fixture
def config():
    return AutopilotConfig(
        github={"account": "acme"},
        retry={"max_retries": 0},
        reconcile={"max_workers": 4},
    )


@pytest.fixture
def calls():
    return CallLog()


@pytest.fixture
def retry_strategy():
    return RetryStrategy(max_retries=2, base_delay=0, jitter=False, sleep=lambda delay: None)


@pytest.fixture
def source(calls):
    return FakeSource(calls)


@pytest.fixture
def applier(calls):
    return FakeApplier(calls)


@pytest.fixture
def version_control(calls, tmp_path):
    return FakeVersionControl(calls, tmp_path)


@pytest.fixture
def review_system(calls):
    return FakeReviewSystem(calls)


@pytest.fixture
def commit_index(calls):
    return FakeCommitIndex(calls)


@pytest.fixture
def coordinator(config, source, applier, version_control, review_system, commit_index, retry_strategy):
    return ApplyCoordinator(
        config=config,
        source=source,
        applier=applier,
        version_control=version_control,
        review_system=review_system,
        commit_index=commit_index,
        retry_strategy=retry_strategy,
        clock=lambda: FIXED_TIME,
    )


@pytest.fixture
def reconciler(config, source, version_control, commit_index, retry_strategy):
    return BuildReconciler(
        config=config,
        source=source,
        version_control=version_control,
        commit_index=commit_index,
        retry_strategy=retry_strategy,
    )
