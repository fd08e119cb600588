"""Utility modules for logging, AWS client management, and helpers."""

from reco_autopilot.utils.aws_client import AWSClientManager
from reco_autopilot.utils.retry import RetryStrategy
from reco_autopilot.utils.errors import (
    WorkflowStep,
    ErrorSeverity,
    ErrorContext,
    AutopilotError,
    UnsupportedCategoryError,
    CollaboratorFailure,
    StaleTokenError,
    MalformedEventError,
    AncestorBoundExceededError,
    WorkflowCancelledError,
    ErrorHandler,
    error_handler
)
from reco_autopilot.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',

    # Retry
    'RetryStrategy',

    # Errors
    'WorkflowStep',
    'ErrorSeverity',
    'ErrorContext',
    'AutopilotError',
    'UnsupportedCategoryError',
    'CollaboratorFailure',
    'StaleTokenError',
    'MalformedEventError',
    'AncestorBoundExceededError',
    'WorkflowCancelledError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
