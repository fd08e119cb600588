"""Pydantic models for configuration schema."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class GitHubConfig(BaseModel):
    """Remote repository hosting configuration."""

    account: str = Field(..., min_length=1, description="Account or organisation owning the repositories")
    host: str = Field("github.com", min_length=1, description="SSH host used for clone and push")
    api_url: str = Field("https://api.github.com", description="REST API base URL")
    token: Optional[str] = Field(None, description="API token for pull requests and commit lookups")
    timeout: int = Field(30, ge=1, le=300)

    @field_validator("account")
    @classmethod
    def validate_account(cls, v: str) -> str:
        """Account is a single path segment."""
        v = v.strip().strip("/")
        if not v or "/" in v:
            raise ValueError(f"Account must be a single name, got: {v!r}")
        return v

    def remote_address(self, repository_name: str) -> str:
        """SSH address of a repository under the account."""
        return f"git@{self.host}:{self.account}/{repository_name}.git"

    def full_repository_name(self, repository_name: str) -> str:
        """``<account>/<repository>`` as used by the REST API."""
        return f"{self.account}/{repository_name}"


class RecommenderConfig(BaseModel):
    """Recommendation source configuration."""

    api_url: str = Field("https://recommender.googleapis.com/v1")
    token: Optional[str] = Field(None, description="Bearer token for the recommender API")
    timeout: int = Field(30, ge=1, le=300)
    page_size: int = Field(100, ge=1, le=1000)
    locations: Dict[str, List[str]] = Field(
        default_factory=lambda: {"VM": ["us-central1-a"], "IAM": ["global"]},
        description="Locations to list per category",
    )

    @field_validator("locations")
    @classmethod
    def validate_locations(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """Normalise category keys and require at least one location."""
        normalised = {}
        for category, locations in v.items():
            if not locations:
                raise ValueError(f"At least one location is required for category '{category}'")
            normalised[category.upper()] = locations
        return normalised


class WorkspaceConfig(BaseModel):
    """Local working copy configuration."""

    root: str = Field(".autopilot/workspaces", min_length=1)
    cleanup: bool = True


class GitConfig(BaseModel):
    """Git client configuration."""

    clone_depth: Optional[int] = Field(1, ge=1)
    author_name: str = Field("reco-autopilot", min_length=1)
    author_email: str = Field("reco-autopilot@localhost", min_length=3)
    timeout: int = Field(300, ge=1, le=3600)
    push: bool = True


class ApplierConfig(BaseModel):
    """External change applier command for one category."""

    command: List[str] = Field(..., min_length=1)
    timeout: int = Field(600, ge=1, le=3600)


class CommitIndexConfig(BaseModel):
    """Commit record persistence configuration."""

    backend: str = Field("dynamodb", pattern="^(dynamodb|file)$")
    table_name: str = Field("reco-autopilot-commits", min_length=3, max_length=255)
    region: Optional[str] = None
    profile: Optional[str] = None
    path: str = Field(".autopilot/commits.json", min_length=1)


class ReconcileConfig(BaseModel):
    """Build reconciliation configuration."""

    max_ancestor_depth: int = Field(50, ge=1, le=250)
    max_workers: int = Field(8, ge=1, le=64)
    failed_build_policy: str = Field("leave_claimed", pattern="^(leave_claimed|mark_failed)$")


class RetryConfig(BaseModel):
    """Retry policy for read-only collaborator calls."""

    max_retries: int = Field(3, ge=0, le=10)
    base_delay: float = Field(0.5, ge=0)
    max_delay: float = Field(10.0, ge=0)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)
    request_deadline_seconds: float = Field(600, gt=0)


class AutopilotConfig(BaseModel):
    """Process configuration, built once at start-up."""

    github: GitHubConfig
    recommender: RecommenderConfig = Field(default_factory=lambda: RecommenderConfig())
    workspace: WorkspaceConfig = Field(default_factory=lambda: WorkspaceConfig())
    git: GitConfig = Field(default_factory=lambda: GitConfig())
    appliers: Dict[str, ApplierConfig] = Field(default_factory=dict)
    commit_index: CommitIndexConfig = Field(default_factory=lambda: CommitIndexConfig())
    reconcile: ReconcileConfig = Field(default_factory=lambda: ReconcileConfig())
    retry: RetryConfig = Field(default_factory=lambda: RetryConfig())
    server: ServerConfig = Field(default_factory=lambda: ServerConfig())
    log_level: str = Field("info", pattern="^(debug|info|warning|error)$")

    @field_validator("appliers")
    @classmethod
    def normalise_appliers(cls, v: Dict[str, ApplierConfig]) -> Dict[str, ApplierConfig]:
        """Applier keys are category tags, stored upper-case."""
        return {category.upper(): applier for category, applier in v.items()}
