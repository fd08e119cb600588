"""Construction of the workflow coordinators from configuration."""

from typing import Tuple

from reco_autopilot.collaborators import (
    CommandChangeApplier,
    GitHubClient,
    GitVersionControl,
    RecommenderClient,
    create_commit_index,
)
from reco_autopilot.config.models import AutopilotConfig
from reco_autopilot.orchestrator import ApplyCoordinator, BuildReconciler
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)


def create_coordinators(config: AutopilotConfig) -> Tuple[ApplyCoordinator, BuildReconciler]:
    """Create both workflow coordinators with shared collaborators.

    Args:
        config: Loaded process configuration

    Returns:
        Tuple of (apply coordinator, build reconciler)
    """
    source = RecommenderClient(config.recommender)
    github = GitHubClient(config.github)
    version_control = GitVersionControl(config.git, config.workspace, ancestry=github)
    applier = CommandChangeApplier(config.appliers)
    commit_index = create_commit_index(config.commit_index)

    logger.debug(
        f"Collaborators ready: account={config.github.account}, "
        f"commit index backend={config.commit_index.backend}, "
        f"appliers={sorted(config.appliers)}"
    )

    apply_coordinator = ApplyCoordinator(
        config=config,
        source=source,
        applier=applier,
        version_control=version_control,
        review_system=github,
        commit_index=commit_index,
    )
    reconciler = BuildReconciler(
        config=config,
        source=source,
        version_control=version_control,
        commit_index=commit_index,
    )
    return apply_coordinator, reconciler
