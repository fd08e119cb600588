"""Build reconciliation workflow: mark claimed recommendations succeeded."""

from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional

from reco_autopilot.collaborators.base import CommitIndex, RecommendationSource, VersionControl
from reco_autopilot.config.models import AutopilotConfig
from reco_autopilot.models import (
    BuildEvent,
    ReconcileOutcome,
    ReconcileState,
    RecommendationStatus,
)
from reco_autopilot.orchestrator.cancellation import CancelToken
from reco_autopilot.orchestrator.steps import StepRunner
from reco_autopilot.utils.errors import ErrorContext, WorkflowStep
from reco_autopilot.utils.logging import LogContext, get_logger
from reco_autopilot.utils.retry import RetryStrategy

logger = get_logger(__name__)


class FailedBuildPolicy:
    """What happens to claimed recommendations when their build fails."""
    LEAVE_CLAIMED = "leave_claimed"
    MARK_FAILED = "mark_failed"


class BuildReconciler:
    """Correlates build events with commit records and updates recommendation status."""

    def __init__(
        self,
        config: AutopilotConfig,
        source: RecommendationSource,
        version_control: VersionControl,
        commit_index: CommitIndex,
        retry_strategy: Optional[RetryStrategy] = None
    ):
        """Initialize build reconciler.

        Args:
            config: Process configuration
            source: Recommendation source
            version_control: Provides commit ancestry
            commit_index: Commit record store
            retry_strategy: Retry policy for read-only calls
        """
        self.config = config
        self.source = source
        self.version_control = version_control
        self.commit_index = commit_index
        self.retry_strategy = retry_strategy or RetryStrategy(
            max_retries=config.retry.max_retries,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
        )
        self.max_workers = config.reconcile.max_workers
        self.max_ancestor_depth = config.reconcile.max_ancestor_depth
        self.failed_build_policy = config.reconcile.failed_build_policy
        self.logger = get_logger(__name__)

    def reconcile(self, event: BuildEvent, cancel_token: Optional[CancelToken] = None) -> ReconcileOutcome:
        """Process one build event.

        Successful builds mark every CLAIMED recommendation reachable through
        the commit's ancestry SUCCEEDED. Failed builds are handled according
        to the failed build policy. Everything else is ignored.

        Args:
            event: Decoded build event
            cancel_token: Stops the run at the next step boundary when cancelled

        Returns:
            ReconcileOutcome; redelivered events end in NOTHING_TO_DO

        Raises:
            WorkflowCancelledError: If cancelled between steps
            AutopilotError: Carrying the failing step
        """
        if event.is_actionable:
            target, mark_step = RecommendationStatus.SUCCEEDED, WorkflowStep.MARK_SUCCEEDED
        elif event.is_failure and self.failed_build_policy == FailedBuildPolicy.MARK_FAILED:
            target, mark_step = RecommendationStatus.FAILED, WorkflowStep.MARK_FAILED
        else:
            if event.is_failure:
                self.logger.warning(
                    f"Build {event.build_id or ''} for {event.repository_name}@{event.commit_id} "
                    f"finished with {event.status}; recommendations stay CLAIMED"
                )
            else:
                self.logger.info(f"Ignoring build event with status {event.status or 'unknown'}")
            return ReconcileOutcome(
                state=ReconcileState.IGNORED,
                commit_id=event.commit_id,
                repository_name=event.repository_name,
            )

        token = cancel_token or CancelToken()
        repository = event.repository_name
        commit_id = event.commit_id

        log = LogContext(self.logger, repository=repository, commit_id=commit_id)
        context = ErrorContext(repository=repository, commit_id=commit_id)
        steps = StepRunner(log, token, self.retry_strategy, context)

        ancestors = steps.run(
            WorkflowStep.RESOLVE_ANCESTORS,
            self.version_control.resolve_ancestors,
            self.config.github.full_repository_name(repository),
            commit_id,
            self.max_ancestor_depth,
            retry=True,
        )

        recommendation_ids = steps.run(WorkflowStep.LOOKUP, self._lookup_all, repository, ancestors)
        outcome = ReconcileOutcome(
            state=ReconcileState.NOTHING_TO_DO,
            commit_id=commit_id,
            repository_name=repository,
            ancestor_commits=list(ancestors),
            recommendation_ids=recommendation_ids,
        )
        if not recommendation_ids:
            log.info(f"No commit records among {len(ancestors)} commit(s)")
            return outcome

        fresh = steps.run(WorkflowStep.REFRESH, self.source.get_fresh_tokens, recommendation_ids, retry=True)

        pending = []
        for recommendation in fresh:
            if recommendation.status == RecommendationStatus.CLAIMED:
                pending.append(recommendation)
            elif recommendation.status == target:
                log.debug(f"{recommendation.id} already {target.value}")
            else:
                log.warning(
                    f"{recommendation.id} is {recommendation.status.value}, not CLAIMED; leaving it unchanged"
                )

        if not pending:
            log.info(f"All {len(recommendation_ids)} recommendation(s) already handled")
            return outcome

        steps.run(mark_step, self.source.set_status, pending, target)

        outcome.state = (
            ReconcileState.SUCCEEDED if target == RecommendationStatus.SUCCEEDED
            else ReconcileState.FAILED_RECORDED
        )
        outcome.marked_ids = [r.id for r in pending]
        log.info(f"Marked {len(pending)} recommendation(s) {target.value}")
        return outcome

    def _lookup_all(self, repository_name: str, commit_ids: List[str]) -> List[str]:
        """Look up all commit records concurrently and union their IDs.

        Every lookup is awaited before results are used; the first failure
        (in commit order) is raised.
        """
        if not commit_ids:
            return []

        workers = min(self.max_workers, len(commit_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="commit-lookup") as executor:
            futures = [
                executor.submit(
                    self.retry_strategy.execute_with_retry,
                    self.commit_index.get_commit_record,
                    repository_name,
                    commit_id,
                )
                for commit_id in commit_ids
            ]
            wait(futures)

        recommendation_ids = []
        for future in futures:
            record = future.result()
            if record is not None:
                recommendation_ids.extend(record.recommendation_ids)

        return list(dict.fromkeys(recommendation_ids))
