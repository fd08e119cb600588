"""Data models shared by the apply and reconciliation workflows."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class RecommendationCategory(Enum):
    """Supported recommendation categories."""
    VM = "VM"
    IAM = "IAM"


class RecommendationStatus(Enum):
    """Lifecycle states held by the recommendation source."""
    ACTIVE = "ACTIVE"
    CLAIMED = "CLAIMED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DISMISSED = "DISMISSED"


class Recommendation(BaseModel):
    """A proposed infrastructure change tracked by the recommendation source."""

    id: str = Field(..., min_length=1, description="Full resource name of the recommendation")
    etag: str = Field(..., description="Optimistic-concurrency token")
    category: Optional[RecommendationCategory] = Field(None, description="Recommendation category")
    status: RecommendationStatus = Field(RecommendationStatus.ACTIVE, description="Current state")
    project_id: Optional[str] = Field(None, description="Project the recommendation belongs to")
    description: str = Field("", description="Human-readable summary")
    content: Dict[str, Any] = Field(
        default_factory=dict, description="Raw recommendation payload for the change applier"
    )


class ApplyRequest(BaseModel):
    """Input to the apply workflow."""

    repository_name: str = Field(..., min_length=1, description="Target repository name")
    project_ids: List[str] = Field(..., min_length=1, description="Projects to list recommendations for")
    category: str = Field(..., min_length=1, description="Recommendation category tag")

    @field_validator("repository_name")
    @classmethod
    def validate_repository_name(cls, v: str) -> str:
        """Repository names are single path segments."""
        if "/" in v or v in (".", ".."):
            raise ValueError(f"Invalid repository name: {v}")
        return v


class CommitRecord(BaseModel):
    """Persisted correlation between a commit and the recommendations it claims."""

    repository_name: str = Field(..., min_length=1)
    commit_id: str = Field(..., min_length=1)
    recommendation_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("recommendation_ids")
    @classmethod
    def dedupe_ids(cls, v: List[str]) -> List[str]:
        """Keep first occurrence order, drop duplicates."""
        return list(dict.fromkeys(v))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {
            "repository_name": self.repository_name,
            "commit_id": self.commit_id,
            "recommendation_ids": self.recommendation_ids,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitRecord":
        """Create CommitRecord from dictionary."""
        return cls(
            repository_name=data["repository_name"],
            commit_id=data["commit_id"],
            recommendation_ids=list(data.get("recommendation_ids", [])),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.utcnow(),
        )


class BuildEvent(BaseModel):
    """Build completion notification decoded from the inbound envelope."""

    status: str = Field("", description="Build status (SUCCESS, FAILURE, ...)")
    commit_id: Optional[str] = Field(None, description="Commit the build ran against")
    repository_name: Optional[str] = Field(None, description="Repository the build ran against")
    build_id: Optional[str] = Field(None, description="Build identifier, for logging")

    SUCCESS_STATUS: ClassVar[str] = "SUCCESS"
    FAILURE_STATUSES: ClassVar[Tuple[str, ...]] = ("FAILURE", "INTERNAL_ERROR", "TIMEOUT")

    @property
    def has_correlation(self) -> bool:
        """Both commit and repository are known."""
        return bool(self.commit_id) and bool(self.repository_name)

    @property
    def is_actionable(self) -> bool:
        """A successful build that can be correlated to recommendations."""
        return self.status == self.SUCCESS_STATUS and self.has_correlation

    @property
    def is_failure(self) -> bool:
        """A build that finished unsuccessfully and can be correlated."""
        return self.status in self.FAILURE_STATUSES and self.has_correlation


@dataclass
class Workspace:
    """A local working copy of a repository."""

    repository_name: str
    remote: str
    path: Path


@dataclass
class CommitResult:
    """Result of committing a workspace."""

    commit_id: str
    branch: str


class ApplyState(Enum):
    """Terminal states of the apply workflow."""
    EMPTY_DONE = "empty_done"
    NOOP_DONE = "noop_done"
    DONE = "done"


@dataclass
class ApplyOutcome:
    """Result of one apply workflow run."""

    state: ApplyState
    repository_name: str
    category: Optional[RecommendationCategory] = None
    listed_ids: List[str] = field(default_factory=list)
    claimed_ids: List[str] = field(default_factory=list)
    commit_id: Optional[str] = None
    branch: Optional[str] = None
    commit_message: Optional[str] = None

    def is_noop(self) -> bool:
        """Check if the run finished without committing anything."""
        return self.state != ApplyState.DONE


class ReconcileState(Enum):
    """Terminal states of the build reconciliation workflow."""
    IGNORED = "ignored"
    NOTHING_TO_DO = "nothing_to_do"
    SUCCEEDED = "succeeded"
    FAILED_RECORDED = "failed_recorded"


@dataclass
class ReconcileOutcome:
    """Result of one reconciliation run."""

    state: ReconcileState
    commit_id: Optional[str] = None
    repository_name: Optional[str] = None
    ancestor_commits: List[str] = field(default_factory=list)
    recommendation_ids: List[str] = field(default_factory=list)
    marked_ids: List[str] = field(default_factory=list)

    def is_ignored(self) -> bool:
        """Check if the event was not actionable."""
        return self.state == ReconcileState.IGNORED
