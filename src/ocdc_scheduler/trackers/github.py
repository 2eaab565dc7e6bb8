"""GitHub access through the ``gh`` CLI."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ..process import CommandResult, resolve_executable, run_command
from ..readiness import WorkItem
from ..repos import IssueTracker, ReadyAction, ReadyActionType, SourceType
from .base import ReadyActionError, TrackerError

logger = logging.getLogger(__name__)

DEFAULT_FETCH_LIMIT = 100
PR_JSON_FIELDS = (
    "number",
    "title",
    "body",
    "labels",
    "createdAt",
    "comments",
    "reactionGroups",
    "assignees",
    "milestone",
    "state",
    "url",
)


class GhCliTracker:
    """Fetch GitHub issues and pull requests and apply ready labels via ``gh``."""

    def __init__(self, executable: Path | str | None = None, *, timeout: float = 60.0) -> None:
        self._executable_path = resolve_executable("gh", executable)
        self._timeout = timeout

    @property
    def executable(self) -> Path:
        return self._executable_path

    def _invoke(self, *args: str) -> CommandResult:
        command = [str(self._executable_path), *args]
        result = run_command(command, timeout=self._timeout)
        if not result.ok:
            raise TrackerError(
                f"gh exited with {result.returncode}: {result.stderr.strip()}",
                command=command,
                stderr=result.stderr,
            )
        return result

    def _invoke_json(self, *args: str) -> Any:
        result = self._invoke(*args)
        try:
            return json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            raise TrackerError(f"gh returned invalid JSON: {exc}", command=result.args) from exc

    def fetch(self, tracker: IssueTracker, repo: str) -> list[dict[str, Any]]:
        options = tracker.fetch
        state = str(options.get("state", "open"))
        limit = int(options.get("limit", DEFAULT_FETCH_LIMIT))

        if tracker.type is SourceType.GITHUB_ISSUE:
            payload = self._invoke_json(
                "api",
                "-X",
                "GET",
                f"/repos/{repo}/issues",
                "-f",
                f"state={state}",
                "-f",
                f"per_page={limit}",
            )
            # The issues endpoint also lists pull requests.
            items = [item for item in payload or [] if isinstance(item, dict) and "pull_request" not in item]
        elif tracker.type is SourceType.GITHUB_PR:
            payload = self._invoke_json(
                "pr",
                "list",
                "--repo",
                repo,
                "--state",
                state,
                "--limit",
                str(limit),
                "--json",
                ",".join(PR_JSON_FIELDS),
            )
            items = [item for item in payload or [] if isinstance(item, dict)]
        else:
            raise TrackerError(f"Unsupported tracker type for gh: {tracker.type.value}")

        logger.debug("Fetched work items", extra={"repo": repo, "source": tracker.type.value, "count": len(items)})
        return items

    def apply(self, tracker: IssueTracker, repo: str, item: WorkItem, action: ReadyAction) -> None:
        if action.type is not ReadyActionType.ADD_LABEL:
            raise ReadyActionError(f"gh cannot apply ready action '{action.type.value}'")
        if tracker.type is SourceType.LINEAR:
            raise ReadyActionError("gh cannot label Linear issues")
        if not action.label:
            raise ReadyActionError(f"No ready label configured for {repo}")
        if action.label.lower() in item.label_set:
            return

        subcommand = "pr" if item.is_pull_request else "issue"
        self._invoke(subcommand, "edit", str(item.number), "--repo", repo, "--add-label", action.label)
        logger.info(
            "Applied ready label",
            extra={"repo": repo, "number": item.number, "label": action.label},
        )


__all__ = ["GhCliTracker", "PR_JSON_FIELDS"]
