"""External collaborators used by the workflows."""

from reco_autopilot.collaborators.base import (
    RecommendationSource,
    ChangeApplier,
    VersionControl,
    ReviewSystem,
    CommitIndex,
)
from reco_autopilot.collaborators.recommender import RecommenderClient
from reco_autopilot.collaborators.applier import CommandChangeApplier, ApplierError
from reco_autopilot.collaborators.github import GitHubClient, parse_remote
from reco_autopilot.collaborators.git import GitVersionControl, GitCommandError
from reco_autopilot.collaborators.commit_index import (
    DynamoDBCommitIndex,
    FileCommitIndex,
    CommitIndexError,
    CommitRecordConflictError,
    create_commit_index,
)

__all__ = [
    'RecommendationSource',
    'ChangeApplier',
    'VersionControl',
    'ReviewSystem',
    'CommitIndex',
    'RecommenderClient',
    'CommandChangeApplier',
    'ApplierError',
    'GitHubClient',
    'parse_remote',
    'GitVersionControl',
    'GitCommandError',
    'DynamoDBCommitIndex',
    'FileCommitIndex',
    'CommitIndexError',
    'CommitRecordConflictError',
    'create_commit_index',
]
