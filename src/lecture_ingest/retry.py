"""
Retry with exponential backoff for external calls.

One policy object is shared by every call site (transcription, structuring).
Delays grow as base_delay * 2**attempt. Errors matching the non-retryable
predicate fail fast; everything else is retried until the attempts are
spent, after which a TransientProviderError is raised.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from .cancellation import CancellationToken
from .errors import AuthError, InvalidInput, JobCanceled, PayloadTooLarge, PipelineError, TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Error signatures that retrying cannot fix: bad credentials or malformed input
NON_RETRYABLE_SIGNATURES = ("Invalid API Key", "401", "Invalid file format")

NON_RETRYABLE_TYPES = (AuthError, InvalidInput, PayloadTooLarge, JobCanceled)


def is_non_retryable(error: BaseException) -> bool:
    """Default predicate: typed pipeline failures plus known message signatures."""
    if isinstance(error, NON_RETRYABLE_TYPES):
        return True
    message = str(error)
    return any(signature in message for signature in NON_RETRYABLE_SIGNATURES)


class RetryPolicy:
    """Bounded exponential backoff, parameterized by a non-retryable predicate."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        non_retryable: Callable[[BaseException], bool] = is_non_retryable,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            max_retries: Retries after the first attempt (total attempts = max_retries + 1)
            base_delay: Delay in seconds before the first retry
            non_retryable: Predicate returning True for errors that must fail fast
            sleep: Sleep function, injectable for tests (default: time.sleep)
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.non_retryable = non_retryable
        self._sleep = sleep or time.sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)."""
        return self.base_delay * (2**attempt)

    def call(
        self,
        fn: Callable[[], T],
        description: str = "call",
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Run `fn` with retries.

        Args:
            fn: Zero-argument callable performing the external call
            description: Label used in log messages
            cancel_token: Checked before every attempt and during backoff

        Returns:
            Whatever `fn` returns

        Raises:
            JobCanceled: If the token is canceled
            TransientProviderError: If all attempts failed with retryable errors
            Exception: Non-retryable errors are re-raised unchanged
        """
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries + 1):
            if cancel_token is not None:
                cancel_token.raise_if_canceled()

            try:
                return fn()
            except Exception as e:
                last_error = e
                if self.non_retryable(e):
                    logger.error(f"{description} failed with non-retryable error: {e}")
                    raise

                if attempt < self.max_retries:
                    delay = self.delay_for(attempt)
                    logger.warning(f"{description} attempt {attempt + 1} failed ({e}), retrying in {delay:.1f}s...")
                    self._wait(delay, cancel_token)

        logger.error(f"{description} failed after {self.max_retries + 1} attempt(s): {last_error}")
        if isinstance(last_error, PipelineError) and not isinstance(last_error, TransientProviderError):
            raise last_error
        raise TransientProviderError(
            f"{description} failed after {self.max_retries + 1} attempt(s): {last_error}"
        ) from last_error

    def _wait(self, delay: float, cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is None:
            self._sleep(delay)
            return
        if cancel_token.wait(delay):
            raise JobCanceled("Job was canceled")
