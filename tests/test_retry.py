from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from ragcontext.errors import InvalidInputError, NotFoundError
from ragcontext.vector.retry import Failure, RetryPolicy, Success


class Flaky:
    def __init__(self, failures: int, error: BaseException | None = None) -> None:
        self.failures = failures
        self.error = error or ConnectionError("boom")
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def test_backoff_doubles_from_base():
    policy = RetryPolicy(base_delay=1.0)
    assert [policy.backoff(attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]


def test_success_after_transient_failures(no_sleep):
    operation = Flaky(failures=2)
    outcome = RetryPolicy(max_attempts=3, base_delay=0.5, sleep=no_sleep).execute(operation)
    assert outcome == Success(value="ok", attempts=3)
    assert operation.calls == 3
    assert no_sleep.delays == [0.5, 1.0]


def test_exhaustion_returns_retryable_failure(no_sleep):
    operation = Flaky(failures=10)
    outcome = RetryPolicy(max_attempts=3, sleep=no_sleep).execute(operation)
    assert isinstance(outcome, Failure)
    assert outcome.retryable
    assert outcome.kind == "exhausted"
    assert outcome.attempts == 3
    assert operation.calls == 3
    assert len(no_sleep.delays) == 2


@pytest.mark.parametrize("error", [InvalidInputError("bad"), NotFoundError("missing")])
def test_non_retryable_errors_stop_immediately(no_sleep, error):
    operation = Flaky(failures=10, error=error)
    outcome = RetryPolicy(max_attempts=3, sleep=no_sleep).execute(operation)
    assert isinstance(outcome, Failure)
    assert not outcome.retryable
    assert outcome.error is error
    assert operation.calls == 1
    assert no_sleep.delays == []


def test_on_retry_hook_sees_each_retried_attempt(no_sleep):
    seen = []
    policy = RetryPolicy(max_attempts=3, sleep=no_sleep, on_retry=lambda name, attempt, exc: seen.append((name, attempt)))
    policy.execute(Flaky(failures=10), name="search")
    assert seen == [("search", 1), ("search", 2)]


def test_single_attempt_does_not_retry(no_sleep):
    operation = Flaky(failures=1)
    outcome = RetryPolicy(max_attempts=5, sleep=no_sleep).single_attempt().execute(operation)
    assert isinstance(outcome, Failure)
    assert operation.calls == 1


def test_invalid_policy_rejected():
    with pytest.raises(InvalidInputError):
        RetryPolicy(max_attempts=0)


def test_retried_attempts_are_counted_in_metrics(no_sleep):
    before = _retries("count")
    RetryPolicy(max_attempts=3, sleep=no_sleep).execute(Flaky(failures=10), name="count")
    assert _retries("count") == before + 2


class Cancelled(BaseException):
    pass


def test_base_exceptions_are_not_retried(no_sleep):
    operation = Flaky(failures=10, error=Cancelled())
    with pytest.raises(Cancelled):
        RetryPolicy(max_attempts=3, sleep=no_sleep).execute(operation)
    assert operation.calls == 1


def _retries(operation: str) -> float:
    return REGISTRY.get_sample_value("ragcontext_vector_retries_total", {"operation": operation}) or 0.0
