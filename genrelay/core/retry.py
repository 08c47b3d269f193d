"""
Retry executor with error classification and exponential backoff.

State machine for one execute() call:
- Attempting(n): run the task (optionally under a per-attempt timeout)
- success -> Done
- retryable failure (rate limit, 5xx, timeout) and n < max_attempts
  -> sleep backoff, Attempting(n + 1)
- non-retryable failure -> Failed immediately
- retryable failure with attempts exhausted -> Failed, annotated

Backoff for attempt n (1-based):
    min(initial * multiplier ** (n - 1) * (1 + jitter * U[0, 1)), max_delay)

The sleep is a cooperative asyncio yield; no lock is held while waiting.
"""
import asyncio
import random
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from pydantic import BaseModel, Field

from genrelay.core.errors import (
    ErrorClass,
    RemoteServiceError,
    RemoteTimeoutError,
    TIMEOUT_MESSAGE,
    classify_error,
    to_remote_error,
)
from genrelay.core.logging import get_logger
from genrelay.core.metrics import record_retry_attempt

logger = get_logger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException], ErrorClass]


class RetryPolicy(BaseModel):
    """Retry semantics for one remote call path."""

    model_config = {"frozen": True}

    max_attempts: int = Field(3, ge=1, description="Total attempts, including the first")
    initial_delay_seconds: float = Field(1.0, ge=0.0)
    max_delay_seconds: float = Field(10.0, ge=0.0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    jitter: float = Field(0.3, ge=0.0, le=1.0, description="Max extra delay as a fraction")
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Per-attempt timeout")

    def delay_for(self, attempt: int, rand: float = 0.0) -> float:
        """
        Backoff before the attempt following ``attempt``.

        Args:
            attempt: The attempt that just failed (1-based)
            rand: Uniform sample in [0, 1) scaling the jitter
        """
        base = self.initial_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
        delay = base * (1.0 + self.jitter * rand)
        return min(delay, self.max_delay_seconds)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay_seconds=settings.retry_initial_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
            jitter=settings.retry_jitter,
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryExecutor:
    """Runs one remote task under a RetryPolicy."""

    def __init__(
        self,
        classifier: Classifier = classify_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self._classifier = classifier
        self._sleep = sleep
        self._rand = rand

    async def execute(
        self,
        task: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        operation: str = "remote",
        secrets: Iterable[Optional[str]] = (),
    ) -> T:
        """
        Execute ``task`` with retries.

        Args:
            task: Zero-argument coroutine function performing one attempt
            policy: Retry policy (defaults to DEFAULT_RETRY_POLICY)
            operation: Label for logs and metrics
            secrets: Values to redact from surfaced error messages

        Returns:
            The task result

        Raises:
            RemoteServiceError subclass once the call has failed for good.
            asyncio.CancelledError is propagated untouched.
        """
        policy = policy or DEFAULT_RETRY_POLICY
        secrets = list(secrets)
        attempt = 1

        while True:
            try:
                if policy.timeout_seconds is not None:
                    return await asyncio.wait_for(task(), timeout=policy.timeout_seconds)
                return await task()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error_class = self._classify(exc)

                if isinstance(exc, asyncio.TimeoutError) and not isinstance(exc, RemoteServiceError):
                    error: RemoteServiceError = RemoteTimeoutError(
                        f"Attempt {attempt} timed out after {policy.timeout_seconds}s",
                        user_message=TIMEOUT_MESSAGE,
                    )
                    error_class = ErrorClass.TRANSIENT_SERVER
                else:
                    error = to_remote_error(exc, error_class, secrets)
                error.attempts = attempt
                record_retry_attempt(operation, error_class.value)

                if not error_class.retryable:
                    logger.warning(
                        "retry_not_retryable",
                        operation=operation,
                        attempt=attempt,
                        error_class=error_class.value,
                        status=error.status,
                        error_type=type(exc).__name__,
                    )
                    raise _chained(error, exc)

                if attempt >= policy.max_attempts:
                    logger.warning(
                        "retry_exhausted",
                        operation=operation,
                        attempts=attempt,
                        error_class=error_class.value,
                        status=error.status,
                    )
                    raise _chained(error.mark_exhausted(attempt), exc)

                delay = policy.delay_for(attempt, self._rand())
                logger.info(
                    "retry_scheduled",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    delay_seconds=round(delay, 3),
                    error_class=error_class.value,
                    status=error.status,
                )
                await self._sleep(delay)
                attempt += 1

    def _classify(self, exc: BaseException) -> ErrorClass:
        try:
            return self._classifier(exc)
        except Exception as e:
            logger.error(
                "retry_classifier_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return ErrorClass.UNKNOWN


def _chained(error: RemoteServiceError, cause: BaseException) -> RemoteServiceError:
    """Attach the original failure as __cause__ unless it is the same object."""
    if error is not cause:
        error.__cause__ = cause
    return error
