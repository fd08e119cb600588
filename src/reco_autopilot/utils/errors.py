"""Typed workflow errors and their conversion from collaborator exceptions."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from reco_autopilot.utils.logging import get_logger


class WorkflowStep(Enum):
    """Stages of the apply and reconciliation workflows."""
    RESOLVE = "resolve_strategy"
    LIST = "list"
    CLONE = "clone"
    APPLY = "apply"
    COMMIT = "commit"
    REVIEW_REQUEST = "review_request"
    PERSIST = "persist"
    CLAIM = "claim"
    DECODE = "decode"
    RESOLVE_ANCESTORS = "resolve_ancestors"
    LOOKUP = "lookup"
    REFRESH = "refresh"
    MARK_SUCCEEDED = "mark_succeeded"
    MARK_FAILED = "mark_failed"


class ErrorSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ErrorContext:
    """Where in a workflow an error happened."""
    repository: Optional[str] = None
    commit_id: Optional[str] = None
    category: Optional[str] = None
    recommendation_id: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class AutopilotError(Exception):
    """Base class for errors a workflow reports to its caller.

    Args:
        message: Summary shown first to the operator
        step: Workflow step that failed; filled in by ErrorHandler.wrap when
            the raising collaborator does not know it
        severity: How the error is logged
        context: Repository, commit and request identifiers
        cause: Underlying exception, if any
        suggestions: Remediation hints listed under the message
    """

    def __init__(
        self,
        message: str,
        step: Optional[WorkflowStep] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def _detail_lines(self) -> List[Tuple[str, Optional[str]]]:
        return [
            ('Step', self.step.value if self.step else None),
            ('Repository', self.context.repository),
            ('Commit', self.context.commit_id),
            ('Cause', str(self.cause) if self.cause else None),
        ]

    def to_user_message(self) -> str:
        """Multi-line text for the CLI and the service log."""
        lines = [f"{self.severity.value.upper()}: {self.message}"]
        lines.extend(f"   {label}: {value}" for label, value in self._detail_lines() if value)
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            lines.extend(f"   {number}. {hint}" for number, hint in enumerate(self.suggestions, 1))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': type(self).__name__,
            'message': self.message,
            'step': self.step.value if self.step else None,
            'severity': self.severity.value,
            'context': asdict(self.context),
            'cause': str(self.cause) if self.cause else None,
            'suggestions': list(self.suggestions),
        }


class UnsupportedCategoryError(AutopilotError):
    """Recommendation category outside the supported set."""

    def __init__(self, category: str, **kwargs):
        super().__init__(
            f"Unsupported recommendation category: {category}",
            step=WorkflowStep.RESOLVE,
            **kwargs
        )
        self.category = category


class CollaboratorFailure(AutopilotError):
    """An external collaborator call failed during a workflow step."""

    def __init__(self, step: WorkflowStep, cause: Exception, **kwargs):
        super().__init__(
            f"{step.value} failed: {cause}",
            step=step,
            cause=cause,
            **kwargs
        )


class StaleTokenError(AutopilotError):
    """A status change was rejected because the etag is no longer current."""

    def __init__(self, recommendation_id: str, **kwargs):
        kwargs.setdefault('context', ErrorContext(recommendation_id=recommendation_id))
        super().__init__(
            f"Stale etag for recommendation {recommendation_id}",
            suggestions=['Fetch fresh etags and retry the status change'],
            **kwargs
        )
        self.recommendation_id = recommendation_id


class MalformedEventError(AutopilotError):
    """Build event envelope or payload could not be decoded."""

    def __init__(self, reason: str, **kwargs):
        super().__init__(
            f"Malformed build event: {reason}",
            step=WorkflowStep.DECODE,
            **kwargs
        )


class AncestorBoundExceededError(AutopilotError):
    """Ancestor traversal would exceed the configured horizon."""

    def __init__(self, commit_id: str, limit: int, found: int, **kwargs):
        kwargs.setdefault('context', ErrorContext(commit_id=commit_id))
        super().__init__(
            f"Commit {commit_id} covers {found} commits, more than the limit of {limit}",
            step=WorkflowStep.RESOLVE_ANCESTORS,
            suggestions=[
                'Raise reconcile.max_ancestor_depth in the configuration',
                'Replay the claimed commits with the reconcile command',
            ],
            **kwargs
        )
        self.commit_id = commit_id
        self.limit = limit
        self.found = found


class WorkflowCancelledError(AutopilotError):
    """Workflow stopped at a step boundary after cancellation."""

    def __init__(self, step: WorkflowStep, reason: str = 'cancelled', **kwargs):
        super().__init__(
            f"Workflow {reason} before {step.value}",
            step=step,
            severity=ErrorSeverity.WARNING,
            **kwargs
        )
        self.reason = reason


# Commit index (DynamoDB) error codes: (summary, suggestions)
COMMIT_INDEX_ERRORS: Dict[str, Tuple[str, List[str]]] = {
    'ResourceNotFoundException': (
        'Commit index table not found',
        ['Verify commit_index.table_name and commit_index.region',
         'Create the table with hash key repository_name and range key commit_id'],
    ),
    'AccessDeniedException': (
        'Access denied to the commit index',
        ['Grant dynamodb:GetItem and dynamodb:PutItem on the table',
         'Verify the credentials the service runs with'],
    ),
    'ProvisionedThroughputExceededException': (
        'Commit index throughput exceeded',
        ['Switch the table to on-demand capacity',
         'Lookups are retried automatically; replay failed writes with resume-claim'],
    ),
}

CREDENTIAL_HINTS = [
    'Configure AWS credentials for the commit index',
    'Use an IAM role if running on EC2/ECS/Lambda',
]

NETWORK_HINTS = [
    'Check network connectivity to the collaborator',
    'Retry the request',
]

NETWORK_ERRORS = (ConnectionError, TimeoutError, requests.ConnectionError, requests.Timeout)


class ErrorHandler:
    """Turns whatever a collaborator raised into an AutopilotError."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def wrap(
        self,
        step: WorkflowStep,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> AutopilotError:
        """Attach the failing step and context to an exception.

        An AutopilotError keeps its type; only its missing step, repository
        and commit are filled in. Anything else becomes a CollaboratorFailure
        with hints matching the exception.

        Args:
            step: The step that was executing
            error: What the collaborator raised
            context: Identifiers of the running workflow

        Returns:
            AutopilotError carrying the failing step
        """
        context = context or ErrorContext()

        if isinstance(error, AutopilotError):
            error.step = error.step or step
            error.context.repository = error.context.repository or context.repository
            error.context.commit_id = error.context.commit_id or context.commit_id
            return error

        failure = CollaboratorFailure(step, error, context=context)
        if isinstance(error, ClientError):
            self._annotate_client_error(failure, error)
        elif isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            failure.suggestions = list(CREDENTIAL_HINTS)
        elif isinstance(error, requests.HTTPError) and error.response is not None:
            failure.context.additional_info = {
                'status_code': error.response.status_code,
                'url': error.response.url,
            }
        elif isinstance(error, NETWORK_ERRORS):
            failure.suggestions = list(NETWORK_HINTS)
        return failure

    @staticmethod
    def _annotate_client_error(failure: CollaboratorFailure, error: ClientError) -> None:
        code = error.response.get('Error', {}).get('Code', 'Unknown')
        failure.context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')

        if code not in COMMIT_INDEX_ERRORS:
            failure.suggestions = [f'AWS Request ID: {failure.context.request_id}']
            return
        summary, hints = COMMIT_INDEX_ERRORS[code]
        failure.message = f"{failure.step.value} failed: {summary} ({code})"
        failure.suggestions = list(hints)

    def log_error(self, error: AutopilotError) -> None:
        """Log the user message at a level matching the severity, details at debug."""
        level = 'warning' if error.severity == ErrorSeverity.WARNING else 'error'
        getattr(self.logger, level)(error.to_user_message())
        self.logger.debug(f"Error details: {error.to_dict()}")


error_handler = ErrorHandler()
