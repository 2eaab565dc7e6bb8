"""Data models for persistent scheduler state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(value: datetime) -> str:
    """Render a datetime as an ISO 8601 UTC string with a ``Z`` suffix."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp; returns None for empty or invalid input."""

    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(slots=True)
class WipSession:
    key: str
    repo_key: str
    priority: str
    started_at: datetime | None

    def to_document(self) -> dict[str, Any]:
        return {
            "repo_key": self.repo_key,
            "priority": self.priority,
            "started_at": format_timestamp(self.started_at) if self.started_at else None,
        }

    @classmethod
    def from_document(cls, key: str, document: dict[str, Any]) -> "WipSession":
        return cls(
            key=key,
            repo_key=str(document.get("repo_key", "")),
            priority=str(document.get("priority", "medium")),
            started_at=parse_timestamp(document.get("started_at")),
        )


def _counter(key: str, error: dict[str, Any], name: str) -> int:
    value = error.get(name, 0) or 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"entry {key!r} has non-numeric {name}: {value!r}") from None


@dataclass(slots=True)
class ErrorState:
    key: str
    config: str
    kind: str
    message: str
    occurred_at: datetime | None
    attempts: int
    max_attempts: int
    next_retry: datetime | None

    def to_document(self) -> dict[str, Any]:
        return {
            "state": "error",
            "config": self.config,
            "error": {
                "type": self.kind,
                "message": self.message,
                "occurred_at": format_timestamp(self.occurred_at) if self.occurred_at else None,
                "attempts": self.attempts,
                "max_attempts": self.max_attempts,
                "next_retry": format_timestamp(self.next_retry) if self.next_retry else None,
            },
        }

    @classmethod
    def from_document(cls, key: str, document: dict[str, Any]) -> "ErrorState":
        error = document.get("error") or {}
        return cls(
            key=key,
            config=str(document.get("config", "")),
            kind=str(error.get("type", "")),
            message=str(error.get("message", "")),
            occurred_at=parse_timestamp(error.get("occurred_at")),
            attempts=_counter(key, error, "attempts"),
            max_attempts=_counter(key, error, "max_attempts"),
            next_retry=parse_timestamp(error.get("next_retry")),
        )


__all__ = ["ErrorState", "WipSession", "format_timestamp", "parse_timestamp"]
