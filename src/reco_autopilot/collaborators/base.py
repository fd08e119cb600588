"""Interfaces of the external systems the workflows coordinate."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from reco_autopilot.models import (
    CommitRecord,
    CommitResult,
    Recommendation,
    RecommendationCategory,
    RecommendationStatus,
    Workspace,
)


class RecommendationSource(ABC):
    """Lists recommendations and changes their status."""

    @abstractmethod
    def list(self, category: RecommendationCategory, project_ids: Sequence[str]) -> List[Recommendation]:
        """List ACTIVE recommendations of a category.

        Args:
            category: Recommendation category
            project_ids: Projects to scope the listing to

        Returns:
            Recommendations with current etags
        """
        pass

    @abstractmethod
    def get_fresh_tokens(self, recommendation_ids: Sequence[str]) -> List[Recommendation]:
        """Fetch current etags and status for the given recommendations."""
        pass

    @abstractmethod
    def set_status(
        self,
        recommendations: Sequence[Recommendation],
        target_status: RecommendationStatus
    ) -> None:
        """Transition recommendations to a new status.

        Args:
            recommendations: Recommendations carrying current etags
            target_status: CLAIMED, SUCCEEDED or FAILED

        Raises:
            StaleTokenError: If an etag is no longer current
        """
        pass


class ChangeApplier(ABC):
    """Stages recommendation changes in a working copy."""

    @abstractmethod
    def apply(
        self,
        category: RecommendationCategory,
        workspace: Workspace,
        recommendations: Sequence[Recommendation]
    ) -> List[Recommendation]:
        """Apply recommendations to the working copy.

        Returns:
            The recommendations for which a change was actually staged
        """
        pass


class VersionControl(ABC):
    """Clones, commits and walks history."""

    @abstractmethod
    def clone(self, remote: str, local_name: str) -> Workspace:
        """Clone a repository into a fresh workspace."""
        pass

    @abstractmethod
    def commit(self, message: str, workspace: Workspace) -> CommitResult:
        """Commit and publish all staged changes on a new branch."""
        pass

    @abstractmethod
    def resolve_ancestors(self, full_repository_name: str, commit_id: str, limit: int) -> List[str]:
        """Commits covered by a reported commit, including itself.

        Raises:
            AncestorBoundExceededError: If more than ``limit`` commits are covered
        """
        pass

    def discard(self, workspace: Workspace) -> None:
        """Remove a workspace once the workflow is done with it."""
        pass


class ReviewSystem(ABC):
    """Opens review requests."""

    @abstractmethod
    def create_review_request(self, remote: str, branch: str, title: str) -> None:
        """Open a pull request for ``branch`` against the default branch."""
        pass


class CommitIndex(ABC):
    """Durable commit to recommendation correlation."""

    @abstractmethod
    def put_commit_record(self, record: CommitRecord) -> None:
        """Persist a commit record. Writing the same record twice is allowed."""
        pass

    @abstractmethod
    def get_commit_record(self, repository_name: str, commit_id: str) -> Optional[CommitRecord]:
        """Look up a commit record, or None if the commit claimed nothing."""
        pass
