"""Retry policy with exponential backoff for vector store calls, driven by tenacity."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Tuple, TypeVar, Union

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ragcontext.errors import InvalidInputError, NotFoundError, UnsupportedOperationError
from ragcontext.metrics.observability import PipelineMetrics

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE: Tuple[type[BaseException], ...] = (
    InvalidInputError,
    NotFoundError,
    UnsupportedOperationError,
)


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    attempts: int


@dataclass(frozen=True)
class Failure:
    """Outcome of an operation that did not succeed.

    ``retryable`` is False when the error belongs to a kind that is never retried,
    True when every attempt failed.
    """

    error: Exception
    attempts: int
    retryable: bool

    @property
    def kind(self) -> str:
        return "exhausted" if self.retryable else "non_retryable"


Outcome = Union[Success[T], Failure]


@dataclass(frozen=True)
class RetryPolicy:
    """Run an operation up to ``max_attempts`` times, sleeping ``base_delay * 2**(n-1)`` between tries.

    Every retried attempt is counted in ``PipelineMetrics.vector_retries`` before
    ``on_retry`` is called.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    give_up_on: Tuple[type[BaseException], ...] = NON_RETRYABLE
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)
    on_retry: Callable[[str, int, Exception], None] | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise InvalidInputError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise InvalidInputError("base_delay must not be negative")

    def backoff(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.base_delay * (2 ** (attempt - 1))

    def _retrying(self, name: str) -> Retrying:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            LOGGER.warning(
                "%s failed (attempt %d/%d): %s", name, retry_state.attempt_number, self.max_attempts, error
            )
            PipelineMetrics.record_retry(name)
            if self.on_retry is not None:
                self.on_retry(name, retry_state.attempt_number, error)

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, min=0),
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(self.give_up_on),
            sleep=self.sleep,
            before_sleep=before_sleep,
            reraise=True,
        )

    def execute(self, operation: Callable[[], T], *, name: str = "operation") -> Outcome:
        attempts = 0

        def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return operation()

        try:
            value = self._retrying(name)(attempt)
        except self.give_up_on as exc:  # type: ignore[misc]
            return Failure(error=exc, attempts=attempts, retryable=False)
        except Exception as exc:
            LOGGER.error("%s failed after %d attempts: %s", name, attempts, exc)
            return Failure(error=exc, attempts=attempts, retryable=True)
        return Success(value=value, attempts=attempts)

    def single_attempt(self) -> "RetryPolicy":
        return RetryPolicy(
            max_attempts=1,
            base_delay=self.base_delay,
            give_up_on=self.give_up_on,
            sleep=self.sleep,
            on_retry=self.on_retry,
        )
