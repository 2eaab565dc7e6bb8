"""Work-in-progress tracking and admission limits."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from .repos import RepoConfigResolver
from .storage import StateStore, WipSession

logger = logging.getLogger(__name__)

DEFAULT_GLOBAL_LIMIT = 5


def _sessions(document: dict[str, Any]) -> dict[str, dict[str, Any]]:
    sessions = document.get("sessions")
    if not isinstance(sessions, dict):
        sessions = {}
        document["sessions"] = sessions
    return sessions


def _count_for(sessions: dict[str, dict[str, Any]], project_id: str) -> int:
    return sum(1 for entry in sessions.values() if entry.get("repo_key") == project_id)


class WipTracker:
    """Track active sessions globally and per project.

    All mutations go through the state store lock. Plain counts and listings
    read without the lock; limit decisions re-read under it.
    """

    def __init__(
        self,
        store: StateStore,
        repos: RepoConfigResolver,
        *,
        global_limit: int = DEFAULT_GLOBAL_LIMIT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._repos = repos
        self._global_limit = global_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def global_limit(self) -> int:
        return self._global_limit

    def add_session(self, key: str, project_id: str, priority: str = "medium") -> WipSession:
        session = WipSession(key=key, repo_key=project_id, priority=priority, started_at=self._clock())

        def _add(document: dict[str, Any]) -> None:
            _sessions(document)[key] = session.to_document()

        self._store.update(_add)
        logger.info("WIP session added", extra={"key": key, "repo_key": project_id, "priority": priority})
        return session

    def remove_session(self, key: str) -> bool:
        """Drop ``key`` if tracked. Returns whether anything was removed."""

        removed: list[str] = []

        def _remove(document: dict[str, Any]) -> None:
            if _sessions(document).pop(key, None) is not None:
                removed.append(key)

        self._store.update(_remove)
        if removed:
            logger.info("WIP session removed", extra={"key": key})
        return bool(removed)

    def _read_sessions(self) -> dict[str, dict[str, Any]]:
        return _sessions(self._store.read())

    def get_session(self, key: str) -> WipSession | None:
        entry = self._read_sessions().get(key)
        return WipSession.from_document(key, entry) if entry is not None else None

    def is_active(self, key: str) -> bool:
        return key in self._read_sessions()

    def count_active(self) -> int:
        return len(self._read_sessions())

    def count_for_project(self, project_id: str) -> int:
        return _count_for(self._read_sessions(), project_id)

    def list_sessions(self) -> list[WipSession]:
        return [WipSession.from_document(key, entry) for key, entry in self._read_sessions().items()]

    def list_sessions_for_project(self, project_id: str) -> list[WipSession]:
        return [session for session in self.list_sessions() if session.repo_key == project_id]

    def project_limit(self, project_id: str) -> int:
        return self._repos.get_with_defaults(project_id).wip_limits.max_concurrent

    def under_global_limit(self) -> bool:
        count = self._store.read_locked(lambda document: len(_sessions(document)))
        return count < self._global_limit

    def under_project_limit(self, project_id: str) -> bool:
        limit = self.project_limit(project_id)
        count = self._store.read_locked(lambda document: _count_for(_sessions(document), project_id))
        return count < limit

    def available_slots(self, project_id: str) -> int:
        """Free admission slots for ``project_id``: the tighter of both limits."""

        project_limit = self.project_limit(project_id)

        def _slots(document: dict[str, Any]) -> int:
            sessions = _sessions(document)
            project_free = project_limit - _count_for(sessions, project_id)
            global_free = self._global_limit - len(sessions)
            return max(0, min(project_free, global_free))

        return self._store.read_locked(_slots)

    def sync_with_external(self, live_keys: Iterable[str]) -> list[str]:
        """Forget sessions whose keys are not in ``live_keys``."""

        live = set(live_keys)
        dropped: list[str] = []

        def _sync(document: dict[str, Any]) -> None:
            sessions = _sessions(document)
            for key in list(sessions):
                if key not in live:
                    del sessions[key]
                    dropped.append(key)

        self._store.update(_sync)
        if dropped:
            logger.info("Dropped stale WIP sessions", extra={"keys": dropped})
        return dropped


__all__ = ["DEFAULT_GLOBAL_LIMIT", "WipTracker"]
