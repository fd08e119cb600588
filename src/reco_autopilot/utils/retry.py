"""Backoff retries for the read-only collaborator calls."""

import random
import subprocess
import time
from typing import Callable, TypeVar

import requests
from botocore.exceptions import ClientError

from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# Commit index (DynamoDB) error codes worth another attempt
TRANSIENT_AWS_CODES = frozenset({
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'RequestTimeout',
    'ServiceUnavailable',
    'InternalServerError',
    'InternalFailure',
})

# Recommender and GitHub REST statuses worth another attempt
TRANSIENT_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

TRANSIENT_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    requests.ConnectionError,
    requests.Timeout,
    subprocess.TimeoutExpired,
)


def is_transient(error: Exception) -> bool:
    """Whether ``error`` may go away if the same call is made again."""
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code') in TRANSIENT_AWS_CODES
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code in TRANSIENT_HTTP_STATUSES
    return False


def describe_error(error: Exception) -> str:
    """Short description of an error for retry log lines."""
    if isinstance(error, ClientError):
        details = error.response.get('Error', {})
        return f"{details.get('Code', 'Unknown')}: {details.get('Message', error)}"
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return f"HTTP {error.response.status_code} from {error.response.url}"
    return f"{type(error).__name__}: {error}"


class RetryStrategy:
    """Exponential backoff with jitter.

    Wrap only idempotent calls: listing, etag refresh, ancestor resolution
    and commit record lookups. Commits, pushes, review requests, record
    writes and status changes go through exactly once.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            max_retries: Attempts after the first one
            base_delay: Wait before the first retry, in seconds
            max_delay: Upper bound for any single wait
            exponential_base: Growth factor between waits
            jitter: Add up to 10% random spread to each wait
            sleep: Called with each wait; tests pass a recorder
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.sleep = sleep

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """True if attempts remain and the error is transient."""
        return attempt < self.max_retries and is_transient(error)

    def get_delay(self, attempt: int) -> float:
        """Wait before retry number ``attempt + 1``."""
        delay = min(self.base_delay * self.exponential_base ** attempt, self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)
        return delay

    def execute_with_retry(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Call ``func`` until it succeeds or a non-transient error occurs.

        Raises:
            The error of the final attempt
        """
        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    if attempt and attempt >= self.max_retries:
                        logger.error(f"Giving up after {attempt + 1} attempts: {describe_error(e)}")
                    raise
                delay = self.get_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries + 1} failed ({describe_error(e)}), "
                    f"retrying in {delay:.2f}s"
                )
                self.sleep(delay)
                continue

            if attempt:
                logger.info(f"Succeeded on attempt {attempt + 1}")
            return result
