"""Error taxonomy, backoff and retry decisions for provisioning failures."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from .storage import ErrorState, StateDocumentError, StateStore

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 60
MAX_DELAY_SECONDS = 3600
JITTER_FRACTION = 0.2


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NETWORK_TIMEOUT = "network_timeout"
    REPO_NOT_FOUND = "repo_not_found"
    CLONE_FAILED = "clone_failed"
    DEVCONTAINER_FAILED = "devcontainer_failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "ErrorKind | str | None") -> "ErrorKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class RetryRule:
    retryable: bool
    max_attempts: int


RETRY_RULES: dict[ErrorKind, RetryRule] = {
    ErrorKind.RATE_LIMITED: RetryRule(retryable=True, max_attempts=0),
    ErrorKind.NETWORK_TIMEOUT: RetryRule(retryable=True, max_attempts=0),
    ErrorKind.CLONE_FAILED: RetryRule(retryable=True, max_attempts=3),
    ErrorKind.DEVCONTAINER_FAILED: RetryRule(retryable=True, max_attempts=3),
    ErrorKind.AUTH_FAILED: RetryRule(retryable=False, max_attempts=0),
    ErrorKind.REPO_NOT_FOUND: RetryRule(retryable=False, max_attempts=0),
    ErrorKind.UNKNOWN: RetryRule(retryable=False, max_attempts=0),
}


def is_retryable(kind: ErrorKind | str) -> bool:
    return RETRY_RULES[ErrorKind.parse(kind)].retryable


def max_attempts(kind: ErrorKind | str) -> int:
    """Attempt cap for ``kind``; 0 means retry on every cycle once backoff elapses."""

    return RETRY_RULES[ErrorKind.parse(kind)].max_attempts


def calculate_backoff(
    attempt: int,
    *,
    base_delay: int = BASE_DELAY_SECONDS,
    max_delay: int = MAX_DELAY_SECONDS,
    rng: random.Random | None = None,
) -> int:
    """Exponential backoff in seconds with +/-20% jitter, never below 1."""

    exponent = max(0, attempt - 1)
    delay = min(max_delay, base_delay * (2**exponent))
    jitter = (rng or random).uniform(-JITTER_FRACTION, JITTER_FRACTION) * delay
    return max(1, round(delay + jitter))


class ErrorRetryPolicy:
    """Persist per-item failures and answer retry/skip questions about them."""

    def __init__(
        self,
        store: StateStore,
        *,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng

    def _load(self, key: str, entry: dict[str, Any]) -> ErrorState:
        try:
            return ErrorState.from_document(key, entry)
        except ValueError as exc:
            raise StateDocumentError(self._store.path, str(exc)) from exc

    def mark_error(
        self,
        key: str,
        project_id: str,
        kind: ErrorKind | str,
        message: str,
    ) -> ErrorState:
        error_kind = ErrorKind.parse(kind)
        written: list[ErrorState] = []

        def _mark(document: dict[str, Any]) -> None:
            previous = document.get(key)
            attempts = 0
            if isinstance(previous, dict) and previous.get("state") == "error":
                prior = self._load(key, previous)
                if ErrorKind.parse(prior.kind) is error_kind:
                    attempts = prior.attempts
            attempts += 1
            now = self._clock()
            delay = calculate_backoff(attempts, rng=self._rng)
            state = ErrorState(
                key=key,
                config=project_id,
                kind=error_kind.value,
                message=message,
                occurred_at=now,
                attempts=attempts,
                max_attempts=max_attempts(error_kind),
                next_retry=now + timedelta(seconds=delay),
            )
            document[key] = state.to_document()
            written.append(state)

        self._store.update(_mark)
        state = written[0]
        logger.warning(
            "Work item failed",
            extra={
                "key": key,
                "repo_key": project_id,
                "error_type": state.kind,
                "attempts": state.attempts,
                "max_attempts": state.max_attempts,
                "next_retry": state.next_retry.isoformat() if state.next_retry else None,
            },
        )
        return state

    def info(self, key: str) -> ErrorState | None:
        entry = self._store.read().get(key)
        if not isinstance(entry, dict) or entry.get("state") != "error":
            return None
        return self._load(key, entry)

    def is_errored(self, key: str) -> bool:
        return self.info(key) is not None

    def list_errors(self) -> list[ErrorState]:
        return [
            self._load(key, entry)
            for key, entry in self._store.read().items()
            if isinstance(entry, dict) and entry.get("state") == "error"
        ]

    @staticmethod
    def _exhausted(state: ErrorState) -> bool:
        return state.max_attempts > 0 and state.attempts >= state.max_attempts

    def should_retry(self, key: str) -> bool:
        state = self.info(key)
        if state is None or not is_retryable(state.kind) or self._exhausted(state):
            return False
        return state.next_retry is None or self._clock() >= state.next_retry

    def should_skip(self, key: str) -> bool:
        """True for permanent failures and for capped kinds out of attempts."""

        state = self.info(key)
        if state is None:
            return False
        return not is_retryable(state.kind) or self._exhausted(state)

    def clear(self, key: str) -> bool:
        removed: list[str] = []

        def _clear(document: dict[str, Any]) -> None:
            if document.pop(key, None) is not None:
                removed.append(key)

        self._store.update(_clear)
        if removed:
            logger.info("Cleared error state", extra={"key": key})
        return bool(removed)


__all__ = [
    "ErrorKind",
    "ErrorRetryPolicy",
    "RETRY_RULES",
    "RetryRule",
    "calculate_backoff",
    "is_retryable",
    "max_attempts",
]
