"""Normalization of tracker payloads into one work item shape.

GitHub's REST API, the ``gh`` CLI and Linear disagree on field names and
on how they represent comments, reactions, labels and assignees. Every
such difference is resolved here; nothing downstream looks at raw
payloads except to hand them back to callers.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..repos import SourceType
from ..storage import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

_POSITIVE_REACTIONS = {"THUMBS_UP", "+1"}


def _nodes(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, dict):
        nodes = value.get("nodes")
        return list(nodes) if isinstance(nodes, list) else []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, (list, tuple)):
        return len(value)
    if isinstance(value, dict):
        if "totalCount" in value:
            return _count(value["totalCount"])
        return len(_nodes(value))
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return 0


def _label_names(value: Any) -> list[str]:
    names: list[str] = []
    for label in _nodes(value):
        if isinstance(label, str):
            name = label
        elif isinstance(label, dict):
            name = label.get("name") or ""
        else:
            continue
        if name:
            names.append(str(name))
    return names


def _positive_reactions(raw: dict[str, Any]) -> int:
    reactions = raw.get("reactions")
    if isinstance(reactions, dict) and "+1" in reactions:
        return _count(reactions["+1"])
    groups = raw.get("reactionGroups") or raw.get("reaction_groups")
    if isinstance(groups, list):
        total = 0
        for group in groups:
            if isinstance(group, dict) and group.get("content") in _POSITIVE_REACTIONS:
                total += _count(group.get("users") or group.get("totalCount"))
        return total
    if isinstance(reactions, (dict, list)):
        return sum(
            1
            for reaction in _nodes(reactions)
            if isinstance(reaction, dict) and reaction.get("content") in _POSITIVE_REACTIONS
        )
    return 0


def _assignees(raw: dict[str, Any]) -> list[Any]:
    assignees = _nodes(raw.get("assignees"))
    if not assignees and raw.get("assignee"):
        assignees = [raw["assignee"]]
    return assignees


def _state(raw: dict[str, Any]) -> str | None:
    state = raw.get("state")
    if isinstance(state, dict):
        state = state.get("name")
    return str(state) if state else None


class WorkItem(BaseModel):
    """Canonical projection of an issue, pull request or Linear ticket."""

    source: SourceType = SourceType.GITHUB_ISSUE
    number: int | str
    title: str = ""
    body: str = ""
    labels: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    comments: int = 0
    positive_reactions: int = 0
    assignees: list[Any] = Field(default_factory=list)
    milestone: dict[str, Any] | None = None
    repository: dict[str, Any] | None = None
    state: str | None = None
    url: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _normalize_payload(cls, value: Any):
        if not isinstance(value, dict):
            return value
        raw = value
        number = raw.get("number")
        if number is None:
            number = raw.get("identifier") or raw.get("id")
        created_at = raw.get("created_at") or raw.get("createdAt")
        if not isinstance(created_at, datetime):
            created_at = parse_timestamp(created_at)
        elif created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        reactions = raw.get("positive_reactions")
        if reactions is None:
            reactions = _positive_reactions(raw)
        milestone = raw.get("milestone")
        repository = raw.get("repository")
        return {
            "source": raw.get("source") or SourceType.GITHUB_ISSUE,
            "number": number,
            "title": raw.get("title") or "",
            "body": raw.get("body") or raw.get("description") or "",
            "labels": _label_names(raw.get("labels")),
            "created_at": created_at,
            "comments": _count(raw.get("comments")),
            "positive_reactions": _count(reactions),
            "assignees": _assignees(raw),
            "milestone": milestone if isinstance(milestone, dict) and milestone else None,
            "repository": repository if isinstance(repository, dict) else None,
            "state": _state(raw),
            "url": raw.get("html_url") or raw.get("url"),
            "raw": raw.get("raw") or {key: val for key, val in raw.items() if key != "source"},
        }

    @classmethod
    def from_raw(cls, raw: dict[str, Any], source: SourceType | str = SourceType.GITHUB_ISSUE) -> "WorkItem":
        return cls.model_validate({**raw, "source": SourceType(source)})

    @property
    def label_set(self) -> set[str]:
        return {label.lower() for label in self.labels}

    @property
    def is_pull_request(self) -> bool:
        return self.source is SourceType.GITHUB_PR

    def to_document(self) -> dict[str, Any]:
        """Render the normalized snake_case form used in state and logs."""

        return {
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "labels": [{"name": label} for label in self.labels],
            "created_at": format_timestamp(self.created_at) if self.created_at else None,
            "comments": self.comments,
            "reactions": {"+1": self.positive_reactions},
            "assignees": list(self.assignees),
            "milestone": self.milestone,
            "repository": self.repository,
        }


def normalize_items(
    payload: str | Iterable[dict[str, Any]] | None,
    source: SourceType | str = SourceType.GITHUB_ISSUE,
) -> list[WorkItem]:
    """Normalize a batch of raw items; empty, null or blank input gives []."""

    if payload is None:
        return []
    if isinstance(payload, str):
        if not payload.strip():
            return []
        payload = json.loads(payload)
        if payload is None:
            return []
    items: list[WorkItem] = []
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        try:
            items.append(WorkItem.from_raw(raw, source))
        except ValidationError as exc:
            logger.warning("Skipping malformed work item", extra={"source": str(source), "error": str(exc)})
    return items


__all__ = ["WorkItem", "normalize_items"]
