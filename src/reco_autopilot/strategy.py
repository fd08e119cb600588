"""Per-category list/apply operations used by the apply workflow."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Sequence

from reco_autopilot.collaborators.base import ChangeApplier, RecommendationSource
from reco_autopilot.models import Recommendation, RecommendationCategory, Workspace
from reco_autopilot.utils.errors import UnsupportedCategoryError

# Commit message title per category
COMMIT_TITLES: Dict[RecommendationCategory, str] = {
    RecommendationCategory.VM: "VM Rightsizing",
    RecommendationCategory.IAM: "IAM Updates",
}


def parse_category(tag: str) -> RecommendationCategory:
    """Parse a category tag case-insensitively.

    Raises:
        UnsupportedCategoryError: If the tag is not a supported category
    """
    try:
        return RecommendationCategory(str(tag).strip().upper())
    except ValueError:
        raise UnsupportedCategoryError(str(tag))


def format_commit_message(category: RecommendationCategory, when: datetime) -> str:
    """Commit message and review title for a run of ``category`` at ``when``."""
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return f"Recommended {COMMIT_TITLES[category]} as on {when.strftime('%Y-%m-%d %H:%M:%S')} UTC"


@dataclass
class TypeStrategy:
    """The list and apply operations bound to one category."""

    category: RecommendationCategory
    source: RecommendationSource
    applier: ChangeApplier

    def list(self, project_ids: Sequence[str]) -> List[Recommendation]:
        """List pending recommendations of this category."""
        return self.source.list(self.category, project_ids)

    def apply(self, workspace: Workspace, recommendations: Sequence[Recommendation]) -> List[Recommendation]:
        """Apply recommendations and return the subset that changed the working copy.

        The result is restricted to the input IDs and keeps input order.
        """
        changed = {r.id for r in self.applier.apply(self.category, workspace, recommendations)}
        return [r for r in recommendations if r.id in changed]

    def commit_message(self, when: datetime) -> str:
        """Commit message for a run at ``when``."""
        return format_commit_message(self.category, when)


def resolve_strategy(
    category: str,
    source: RecommendationSource,
    applier: ChangeApplier
) -> TypeStrategy:
    """Resolve the strategy for a category tag.

    Args:
        category: Category tag, e.g. ``vm`` or ``IAM``
        source: Recommendation source to list from
        applier: Change applier to stage changes with

    Returns:
        TypeStrategy for the category

    Raises:
        UnsupportedCategoryError: If the tag is not a supported category
    """
    parsed = parse_category(category)
    if parsed not in COMMIT_TITLES:
        raise UnsupportedCategoryError(category)
    return TypeStrategy(category=parsed, source=source, applier=applier)
