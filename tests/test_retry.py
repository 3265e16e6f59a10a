"""Tests for the retry policy."""

import threading

import pytest

from dependency_audit.config import NetworkConfig
from dependency_audit.models import FailureKind, SourceKind, SourceOutcome
from dependency_audit.retry import RetryPolicy


def _scripted(*outcomes):
    calls = []
    pending = list(outcomes)

    def op():
        calls.append(1)
        return pending.pop(0) if len(pending) > 1 else pending[0]

    return op, calls


def _failure(kind, retry_after=None):
    return SourceOutcome.failed(SourceKind.GITHUB, kind, "boom", retry_after)


def _policy(**kwargs):
    sleeps = []
    kwargs.setdefault("base_delay", 1.0)
    kwargs.setdefault("max_delay", 30.0)
    policy = RetryPolicy(sleep=sleeps.append, rng=lambda: 0.5, **kwargs)
    return policy, sleeps


def test_transient_failures_are_retried_until_success():
    policy, sleeps = _policy(max_retries=3)
    op, calls = _scripted(
        _failure(FailureKind.TIMEOUT),
        _failure(FailureKind.SERVER_ERROR),
        SourceOutcome.success(SourceKind.GITHUB, {"star_count": 3}),
    )

    outcome = policy.execute(op)

    assert outcome.ok
    assert outcome.attempts == 3
    assert len(calls) == 3
    assert sleeps == [1.5, 2.5]


def test_permanent_failure_is_not_retried():
    policy, sleeps = _policy(max_retries=3)
    op, calls = _scripted(_failure(FailureKind.NOT_FOUND))

    outcome = policy.execute(op)

    assert outcome.failure is FailureKind.NOT_FOUND
    assert outcome.attempts == 1
    assert len(calls) == 1
    assert sleeps == []


def test_retries_are_bounded():
    policy, sleeps = _policy(max_retries=2)
    op, calls = _scripted(_failure(FailureKind.RATE_LIMITED))

    outcome = policy.execute(op)

    assert outcome.failure is FailureKind.RATE_LIMITED
    assert outcome.attempts == 3
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_zero_retries_makes_a_single_attempt():
    policy, _ = _policy(max_retries=0)
    op, calls = _scripted(_failure(FailureKind.TIMEOUT))
    assert policy.execute(op).attempts == 1
    assert len(calls) == 1


def test_retry_after_raises_the_delay():
    policy, sleeps = _policy(max_retries=1, base_delay=0.25)
    op, _ = _scripted(
        _failure(FailureKind.RATE_LIMITED, retry_after=5.0),
        SourceOutcome.success(SourceKind.GITHUB, {}),
    )
    policy.execute(op)
    assert sleeps == [5.0]


def test_backoff_is_capped_and_jitter_bounded():
    policy, _ = _policy(base_delay=1.0, max_delay=10.0)
    assert policy.backoff(0) == 1.5
    assert policy.backoff(2) == 4.5
    assert policy.backoff(10) == 10.0
    assert policy.backoff(0, retry_after=60.0) == 10.0

    no_jitter = RetryPolicy(base_delay=1.0, rng=lambda: 0.0)
    full_jitter = RetryPolicy(base_delay=1.0, rng=lambda: 0.999)
    assert 1.0 <= no_jitter.backoff(0) <= full_jitter.backoff(0) < 2.0


def test_max_total_delay():
    policy = RetryPolicy(max_retries=3, base_delay=1.0, max_delay=30.0)
    assert policy.max_total_delay() == pytest.approx(2 + 3 + 5)

    capped = RetryPolicy(max_retries=3, base_delay=1.0, max_delay=2.5)
    assert capped.max_total_delay() == pytest.approx(2 + 2.5 + 2.5)


def test_cancel_stops_retrying():
    policy = RetryPolicy(max_retries=5, base_delay=10.0)
    cancel = threading.Event()
    cancel.set()
    op, calls = _scripted(_failure(FailureKind.TIMEOUT))

    outcome = policy.execute(op, cancel)

    assert outcome.failure is FailureKind.TIMEOUT
    assert outcome.attempts == 1
    assert len(calls) == 1


def test_from_network():
    policy = RetryPolicy.from_network(
        NetworkConfig(max_retries=4, backoff_base_ms=500, max_backoff_secs=8.0)
    )
    assert policy.max_retries == 4
    assert policy.base_delay == 0.5
    assert policy.max_delay == 8.0
