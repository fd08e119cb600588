"""Apply workflow: list, clone, apply, commit, review, persist, claim."""

from datetime import datetime, timezone
from typing import Callable, Optional

from reco_autopilot.collaborators.base import (
    ChangeApplier,
    CommitIndex,
    RecommendationSource,
    ReviewSystem,
    VersionControl,
)
from reco_autopilot.config.models import AutopilotConfig
from reco_autopilot.models import (
    ApplyOutcome,
    ApplyRequest,
    ApplyState,
    CommitRecord,
    RecommendationStatus,
)
from reco_autopilot.orchestrator.cancellation import CancelToken
from reco_autopilot.orchestrator.steps import StepRunner
from reco_autopilot.strategy import resolve_strategy
from reco_autopilot.utils.errors import CollaboratorFailure, ErrorContext, WorkflowStep
from reco_autopilot.utils.logging import LogContext, get_logger
from reco_autopilot.utils.retry import RetryStrategy

logger = get_logger(__name__)


class CommitRecordNotFound(LookupError):
    """No commit record exists for the requested commit."""

    pass


class ApplyCoordinator:
    """Drives one apply workflow run per request.

    Steps run strictly in order and any failure aborts the rest of the run
    without undoing completed steps. The commit record is written before
    the claim so that an interrupted run can be finished with
    :meth:`resume_claim` instead of re-running the applier.
    """

    def __init__(
        self,
        config: AutopilotConfig,
        source: RecommendationSource,
        applier: ChangeApplier,
        version_control: VersionControl,
        review_system: ReviewSystem,
        commit_index: CommitIndex,
        retry_strategy: Optional[RetryStrategy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize apply coordinator.

        Args:
            config: Process configuration
            source: Recommendation source
            applier: Change applier
            version_control: Clone and commit provider
            review_system: Pull request provider
            commit_index: Commit record store
            retry_strategy: Retry policy for read-only calls
            clock: Returns the current time, used for commit messages
        """
        self.config = config
        self.source = source
        self.applier = applier
        self.version_control = version_control
        self.review_system = review_system
        self.commit_index = commit_index
        self.retry_strategy = retry_strategy or RetryStrategy(
            max_retries=config.retry.max_retries,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger(__name__)

    def apply(self, request: ApplyRequest, cancel_token: Optional[CancelToken] = None) -> ApplyOutcome:
        """Run the apply workflow for one request.

        Args:
            request: Repository, projects and category to apply
            cancel_token: Stops the run at the next step boundary when cancelled

        Returns:
            ApplyOutcome in one of the EMPTY_DONE, NOOP_DONE or DONE states

        Raises:
            UnsupportedCategoryError: Before any collaborator call
            WorkflowCancelledError: If cancelled between steps
            AutopilotError: Carrying the failing step
        """
        token = cancel_token or CancelToken()
        repository = request.repository_name

        strategy = resolve_strategy(request.category, self.source, self.applier)
        category = strategy.category

        log = LogContext(self.logger, repository=repository, category=category.value)
        context = ErrorContext(repository=repository, category=category.value)
        steps = StepRunner(log, token, self.retry_strategy, context)

        log.info(f"Apply requested for projects {request.project_ids}")

        listed = steps.run(WorkflowStep.LIST, strategy.list, request.project_ids, retry=True)
        listed_ids = [r.id for r in listed]
        if not listed:
            log.info("Nothing to apply")
            return ApplyOutcome(state=ApplyState.EMPTY_DONE, repository_name=repository, category=category)

        remote = self.config.github.remote_address(repository)
        workspace = steps.run(WorkflowStep.CLONE, self.version_control.clone, remote, repository)

        claimed = steps.run(WorkflowStep.APPLY, strategy.apply, workspace, listed)
        if not claimed:
            log.info(f"None of {len(listed)} recommendation(s) changed the repository")
            self.version_control.discard(workspace)
            return ApplyOutcome(
                state=ApplyState.NOOP_DONE,
                repository_name=repository,
                category=category,
                listed_ids=listed_ids,
            )

        claimed_ids = [r.id for r in claimed]
        message = strategy.commit_message(self.clock())
        commit = steps.run(WorkflowStep.COMMIT, self.version_control.commit, message, workspace)

        context.commit_id = commit.commit_id
        steps.log = log.bind(commit_id=commit.commit_id)

        steps.run(
            WorkflowStep.REVIEW_REQUEST,
            self.review_system.create_review_request,
            remote,
            commit.branch,
            message,
        )

        record = CommitRecord(
            repository_name=repository,
            commit_id=commit.commit_id,
            recommendation_ids=claimed_ids,
        )
        steps.run(WorkflowStep.PERSIST, self.commit_index.put_commit_record, record)

        # Etags from the listing are still current: nothing has changed status since.
        steps.run(WorkflowStep.CLAIM, self.source.set_status, claimed, RecommendationStatus.CLAIMED)

        self.version_control.discard(workspace)
        log.info(f"Claimed {len(claimed_ids)} of {len(listed_ids)} recommendation(s) in {commit.commit_id}")

        return ApplyOutcome(
            state=ApplyState.DONE,
            repository_name=repository,
            category=category,
            listed_ids=listed_ids,
            claimed_ids=claimed_ids,
            commit_id=commit.commit_id,
            branch=commit.branch,
            commit_message=message,
        )

    def resume_claim(
        self,
        repository_name: str,
        commit_id: str,
        cancel_token: Optional[CancelToken] = None
    ) -> ApplyOutcome:
        """Claim the recommendations of an already persisted commit record.

        Used when a run stopped between persisting and claiming. Recommendations
        that are no longer ACTIVE are left alone.

        Raises:
            CollaboratorFailure: At the lookup step if no record exists
            AutopilotError: Carrying the failing step
        """
        token = cancel_token or CancelToken()
        log = LogContext(self.logger, repository=repository_name, commit_id=commit_id)
        context = ErrorContext(repository=repository_name, commit_id=commit_id)
        steps = StepRunner(log, token, self.retry_strategy, context)

        record = steps.run(
            WorkflowStep.LOOKUP,
            self.commit_index.get_commit_record,
            repository_name,
            commit_id,
            retry=True,
        )
        if record is None:
            raise CollaboratorFailure(
                WorkflowStep.LOOKUP,
                CommitRecordNotFound(f"No commit record for {repository_name}@{commit_id}"),
                context=context,
            )

        fresh = steps.run(WorkflowStep.REFRESH, self.source.get_fresh_tokens, record.recommendation_ids, retry=True)
        pending = [r for r in fresh if r.status == RecommendationStatus.ACTIVE]

        if pending:
            steps.run(WorkflowStep.CLAIM, self.source.set_status, pending, RecommendationStatus.CLAIMED)
        log.info(f"Resumed claim of {len(pending)} recommendation(s)")

        return ApplyOutcome(
            state=ApplyState.DONE,
            repository_name=repository_name,
            listed_ids=list(record.recommendation_ids),
            claimed_ids=[r.id for r in pending],
            commit_id=commit_id,
        )
