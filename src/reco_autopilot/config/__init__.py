"""Configuration management for the autopilot service."""

from .models import (
    AutopilotConfig,
    GitHubConfig,
    RecommenderConfig,
    WorkspaceConfig,
    GitConfig,
    ApplierConfig,
    CommitIndexConfig,
    ReconcileConfig,
    RetryConfig,
    ServerConfig,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "AutopilotConfig",
    "GitHubConfig",
    "RecommenderConfig",
    "WorkspaceConfig",
    "GitConfig",
    "ApplierConfig",
    "CommitIndexConfig",
    "ReconcileConfig",
    "RetryConfig",
    "ServerConfig",
    "Config",
    "ConfigValidationError",
]
