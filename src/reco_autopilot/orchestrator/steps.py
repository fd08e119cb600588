"""Step execution shared by the workflow coordinators."""

import time
from typing import Callable, Optional, TypeVar

from reco_autopilot.orchestrator.cancellation import CancelToken
from reco_autopilot.utils.errors import ErrorContext, WorkflowStep, error_handler
from reco_autopilot.utils.logging import LogContext
from reco_autopilot.utils.retry import RetryStrategy

T = TypeVar('T')


class StepRunner:
    """Runs one workflow step at a time with cancellation, retry and error wrapping."""

    def __init__(
        self,
        log: LogContext,
        token: CancelToken,
        retry_strategy: RetryStrategy,
        context: Optional[ErrorContext] = None
    ):
        """Initialize step runner.

        Args:
            log: Logger carrying the run's structured fields
            token: Cancellation token checked before each step
            retry_strategy: Strategy used for steps marked retryable
            context: Error context attached to failures
        """
        self.log = log
        self.token = token
        self.retry_strategy = retry_strategy
        self.context = context or ErrorContext()

    def run(self, step: WorkflowStep, func: Callable[..., T], *args, retry: bool = False, **kwargs) -> T:
        """Execute ``func`` as ``step``.

        Args:
            step: Step identity used in logs and errors
            func: Collaborator call
            retry: Retry transient failures; only for idempotent reads

        Returns:
            Result of the call

        Raises:
            WorkflowCancelledError: If cancelled before the step started
            AutopilotError: Wrapping any failure of the call
        """
        self.token.check(step)

        log = self.log.bind(step=step.value)
        log.info(f"Starting {step.value}")
        start_time = time.time()

        try:
            if retry:
                result = self.retry_strategy.execute_with_retry(func, *args, **kwargs)
            else:
                result = func(*args, **kwargs)
        except Exception as e:
            error = error_handler.wrap(step, e, self.context)
            log.debug(f"{step.value} raised {type(e).__name__}: {e}")
            if error is e:
                raise
            raise error from e

        elapsed = time.time() - start_time
        log.info(f"Finished {step.value} in {elapsed:.2f}s", extra={'duration': round(elapsed, 3)})
        return result
