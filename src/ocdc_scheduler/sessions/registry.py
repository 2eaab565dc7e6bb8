"""Reconcile managed tmux sessions against their workspaces."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .tmux import TmuxRunner

if TYPE_CHECKING:
    from ..retry import ErrorRetryPolicy
    from ..wip import WipTracker

logger = logging.getLogger(__name__)

ENV_WORKSPACE = "OCDC_WORKSPACE"
ENV_POLL_CONFIG = "OCDC_POLL_CONFIG"
ENV_ITEM_KEY = "OCDC_ITEM_KEY"
ENV_BRANCH = "OCDC_BRANCH"
ENV_SOURCE_URL = "OCDC_SOURCE_URL"
ENV_SOURCE_TYPE = "OCDC_SOURCE_TYPE"


class SessionNotFoundError(RuntimeError):
    """Raised when a named tmux session does not exist."""


@dataclass(slots=True)
class SessionRecord:
    name: str
    workspace: str
    poll_config: str
    item_key: str
    branch: str
    source_url: str
    source_type: str
    created: int

    @property
    def is_managed(self) -> bool:
        return bool(self.poll_config)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def workspace_missing(workspace: str) -> bool:
    """A session is orphaned when its workspace is unset or not a directory."""

    return not workspace or not Path(workspace).is_dir()


class SessionRegistry:
    """Observe and reclaim the tmux sessions this scheduler launched."""

    def __init__(
        self,
        tmux: TmuxRunner,
        errors: "ErrorRetryPolicy",
        *,
        wip: "WipTracker | None" = None,
    ) -> None:
        self._tmux = tmux
        self._errors = errors
        self._wip = wip

    def _record(self, name: str, env: dict[str, str]) -> SessionRecord:
        return SessionRecord(
            name=name,
            workspace=env.get(ENV_WORKSPACE, ""),
            poll_config=env.get(ENV_POLL_CONFIG, ""),
            item_key=env.get(ENV_ITEM_KEY, ""),
            branch=env.get(ENV_BRANCH, ""),
            source_url=env.get(ENV_SOURCE_URL, ""),
            source_type=env.get(ENV_SOURCE_TYPE, ""),
            created=self._tmux.session_created(name),
        )

    def list_managed_sessions(self) -> list[SessionRecord]:
        records: list[SessionRecord] = []
        for name in self._tmux.list_sessions():
            env = self._tmux.show_environment(name)
            if not env.get(ENV_POLL_CONFIG):
                continue
            records.append(self._record(name, env))
        return records

    def get_metadata(self, name: str) -> SessionRecord:
        if not self._tmux.has_session(name):
            raise SessionNotFoundError(f"Session not found: {name}")
        return self._record(name, self._tmux.show_environment(name))

    def is_orphan(self, name: str) -> bool:
        workspace = self._tmux.show_environment(name).get(ENV_WORKSPACE, "")
        return workspace_missing(workspace)

    def list_orphans(self) -> list[SessionRecord]:
        return [record for record in self.list_managed_sessions() if workspace_missing(record.workspace)]

    def live_item_keys(self) -> set[str]:
        """Item keys of every live session, managed or launched by hand."""

        keys: set[str] = set()
        for name in self._tmux.list_sessions():
            item_key = self._tmux.show_environment(name).get(ENV_ITEM_KEY)
            if item_key:
                keys.add(item_key)
        return keys

    def live_workspaces(self) -> set[str]:
        """Workspaces of every live session, managed or launched by hand."""

        workspaces: set[str] = set()
        for name in self._tmux.list_sessions():
            workspace = self._tmux.show_environment(name).get(ENV_WORKSPACE)
            if workspace:
                workspaces.add(workspace)
        return workspaces

    def kill(self, name: str) -> SessionRecord | None:
        """Terminate ``name`` and forget its item state.

        State cleanup is best effort: the session is gone either way.
        """

        env = self._tmux.show_environment(name)
        item_key = env.get(ENV_ITEM_KEY, "")
        record = self._record(name, env) if self._tmux.has_session(name) else None
        self._tmux.kill_session(name)
        logger.info("Killed session", extra={"session": name, "item_key": item_key or None})

        if item_key:
            try:
                self._errors.clear(item_key)
            except Exception as exc:
                logger.warning(
                    "Failed to clear error state after kill",
                    extra={"session": name, "item_key": item_key, "error": str(exc)},
                )
            if self._wip is not None:
                try:
                    self._wip.remove_session(item_key)
                except Exception as exc:
                    logger.warning(
                        "Failed to remove WIP session after kill",
                        extra={"session": name, "item_key": item_key, "error": str(exc)},
                    )
        return record


__all__ = [
    "ENV_BRANCH",
    "ENV_ITEM_KEY",
    "ENV_POLL_CONFIG",
    "ENV_SOURCE_TYPE",
    "ENV_SOURCE_URL",
    "ENV_WORKSPACE",
    "SessionNotFoundError",
    "SessionRecord",
    "SessionRegistry",
    "workspace_missing",
]
