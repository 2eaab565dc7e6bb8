from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ocdc_scheduler.retry import (
    ErrorKind,
    ErrorRetryPolicy,
    calculate_backoff,
    is_retryable,
    max_attempts,
)
from ocdc_scheduler.storage import StateDocumentError, StateStore


class Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "processed.json")


@pytest.fixture
def policy(store: StateStore, clock: Clock) -> ErrorRetryPolicy:
    return ErrorRetryPolicy(store, clock=clock, rng=random.Random(7))


def test_taxonomy() -> None:
    assert is_retryable("rate_limited") and max_attempts("rate_limited") == 0
    assert is_retryable(ErrorKind.NETWORK_TIMEOUT) and max_attempts(ErrorKind.NETWORK_TIMEOUT) == 0
    assert is_retryable("clone_failed") and max_attempts("clone_failed") == 3
    assert is_retryable("devcontainer_failed") and max_attempts("devcontainer_failed") == 3
    assert not is_retryable("auth_failed")
    assert not is_retryable("repo_not_found")
    assert not is_retryable("something_new")
    assert ErrorKind.parse("something_new") is ErrorKind.UNKNOWN
    assert ErrorKind.parse(None) is ErrorKind.UNKNOWN


def test_backoff_first_attempt_range() -> None:
    rng = random.Random(1)
    for _ in range(200):
        assert 48 <= calculate_backoff(1, rng=rng) <= 72


def test_backoff_doubles_then_caps() -> None:
    rng = random.Random(2)
    for _ in range(200):
        assert 768 <= calculate_backoff(5, rng=rng) <= 1152
        assert calculate_backoff(5, rng=rng) <= 3600 * 1.2
        assert 2880 <= calculate_backoff(7, rng=rng) <= 4320
        assert 2880 <= calculate_backoff(30, rng=rng) <= 4320


def test_backoff_floor_is_one_second() -> None:
    assert calculate_backoff(1, base_delay=0, rng=random.Random(3)) == 1


def test_mark_error_document_shape(policy: ErrorRetryPolicy, store: StateStore, clock: Clock) -> None:
    state = policy.mark_error("org/a-issue-1", "org/a", "clone_failed", "git clone exited 128")

    entry = store.read()["org/a-issue-1"]
    assert entry["state"] == "error"
    assert entry["config"] == "org/a"
    assert entry["error"]["type"] == "clone_failed"
    assert entry["error"]["message"] == "git clone exited 128"
    assert entry["error"]["occurred_at"] == "2024-05-01T09:00:00Z"
    assert entry["error"]["attempts"] == 1
    assert entry["error"]["max_attempts"] == 3
    assert entry["error"]["next_retry"].endswith("Z")
    assert timedelta(seconds=48) <= state.next_retry - clock.now <= timedelta(seconds=72)


def test_attempts_increment_for_same_kind(policy: ErrorRetryPolicy) -> None:
    policy.mark_error("k", "org/a", "network_timeout", "one")
    state = policy.mark_error("k", "org/a", "network_timeout", "two")

    assert state.attempts == 2
    assert policy.info("k").message == "two"


def test_attempts_reset_when_kind_changes(policy: ErrorRetryPolicy) -> None:
    policy.mark_error("k", "org/a", "network_timeout", "one")
    policy.mark_error("k", "org/a", "network_timeout", "two")

    state = policy.mark_error("k", "org/a", "clone_failed", "three")

    assert state.attempts == 1
    assert state.kind == "clone_failed"


def test_should_retry_waits_for_backoff(policy: ErrorRetryPolicy, clock: Clock) -> None:
    policy.mark_error("k", "org/a", "rate_limited", "slow down")

    assert policy.is_errored("k")
    assert not policy.should_retry("k")
    assert not policy.should_skip("k")

    clock.advance(seconds=73)
    assert policy.should_retry("k")


def test_unlimited_kinds_keep_retrying(policy: ErrorRetryPolicy, clock: Clock) -> None:
    for _ in range(10):
        policy.mark_error("k", "org/a", "network_timeout", "again")

    clock.advance(hours=2)
    assert policy.should_retry("k")
    assert not policy.should_skip("k")


def test_capped_kind_stops_after_max_attempts(policy: ErrorRetryPolicy, clock: Clock) -> None:
    for _ in range(3):
        policy.mark_error("k", "org/a", "clone_failed", "failed")

    clock.advance(days=1)
    assert not policy.should_retry("k")
    assert policy.should_skip("k")


def test_fourth_clone_failure_is_permanently_skipped(policy: ErrorRetryPolicy, clock: Clock) -> None:
    for _ in range(4):
        policy.mark_error("k", "org/a", ErrorKind.CLONE_FAILED, "failed")

    assert policy.info("k").attempts == 4
    assert policy.should_skip("k")
    clock.advance(days=365)
    assert policy.should_skip("k")
    assert not policy.should_retry("k")


@pytest.mark.parametrize("kind", ["auth_failed", "repo_not_found", "mystery"])
def test_non_retryable_kinds_skip_immediately(policy: ErrorRetryPolicy, clock: Clock, kind: str) -> None:
    state = policy.mark_error("k", "org/a", kind, "nope")

    clock.advance(days=1)
    assert policy.should_skip("k")
    assert not policy.should_retry("k")
    assert state.kind in {"auth_failed", "repo_not_found", "unknown"}


def test_clear_is_idempotent(policy: ErrorRetryPolicy) -> None:
    policy.mark_error("k", "org/a", "clone_failed", "failed")

    assert policy.clear("k") is True
    assert policy.clear("k") is False
    assert not policy.is_errored("k")
    assert not policy.should_skip("k")
    assert not policy.should_retry("k")


def test_non_error_records_are_ignored(policy: ErrorRetryPolicy, store: StateStore) -> None:
    store.update(lambda document: {"done": {"state": "processed", "config": "org/a"}})

    assert not policy.is_errored("done")
    assert policy.info("done") is None
    assert policy.list_errors() == []

    policy.mark_error("k", "org/a", "rate_limited", "x")
    assert store.read()["done"] == {"state": "processed", "config": "org/a"}
    assert [state.key for state in policy.list_errors()] == ["k"]


def test_malformed_counter_names_document(policy: ErrorRetryPolicy, store: StateStore) -> None:
    store.update(
        lambda document: {
            "k": {"state": "error", "config": "org/a", "error": {"type": "clone_failed", "attempts": "many"}}
        }
    )

    with pytest.raises(StateDocumentError) as excinfo:
        policy.info("k")

    assert excinfo.value.path == store.path
    assert "'k'" in str(excinfo.value)
    with pytest.raises(StateDocumentError):
        policy.mark_error("k", "org/a", "clone_failed", "again")
    assert store.read()["k"]["error"]["attempts"] == "many"
