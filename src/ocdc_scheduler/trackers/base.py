"""Interfaces to the issue trackers the scheduler reads from and writes to."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from ..readiness import WorkItem
from ..repos import IssueTracker, ReadyAction


class TrackerError(RuntimeError):
    """Raised when a tracker command fails or a source is unsupported."""

    def __init__(self, message: str, *, command: Sequence[str] | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.command = tuple(command or ())
        self.stderr = stderr


class ReadyActionError(TrackerError):
    """Raised when a ready action cannot be applied to an item."""


class ItemFetcher(Protocol):
    def fetch(self, tracker: IssueTracker, repo: str) -> list[dict[str, Any]]:
        """Return raw open items for ``repo`` in the tracker's own shape."""


class ReadyActionExecutor(Protocol):
    def apply(self, tracker: IssueTracker, repo: str, item: WorkItem, action: ReadyAction) -> None:
        """Mark ``item`` as ready. Must be a no-op if it already is."""


__all__ = ["ItemFetcher", "ReadyActionError", "ReadyActionExecutor", "TrackerError"]
