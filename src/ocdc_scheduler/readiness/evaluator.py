"""Readiness gating and priority scoring for work items."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from ..repos import RepoConfig
from .items import WorkItem

DEPENDENCY_PHRASES: tuple[str, ...] = (
    "blocked by",
    "depends on",
    "requires",
    "waiting on",
    "waiting for",
    "after",
)

_DEPENDENCY_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(phrase) for phrase in DEPENDENCY_PHRASES) + r")"
    r"\s+(?:[a-z0-9_.-]+/[a-z0-9_.-]+)?#\d+"
)
_CHECKBOX_RE = re.compile(r"^\s*[-*]\s*\[([ xX])\]", re.MULTILINE)

MILESTONE_BONUS = 20
REACTION_BONUS_PER = 5
REACTION_BONUS_CAP = 30
COMMENT_BONUS_PER = 2
COMMENT_BONUS_CAP = 20
ASSIGNEE_BONUS = 15


class NotReadyReason(str, Enum):
    HAS_BLOCKING_LABEL = "has_blocking_label"
    HAS_DEPENDENCY = "has_dependency"


@dataclass(slots=True)
class Evaluation:
    eligible: bool
    score: int
    reason: NotReadyReason | None = None


def has_dependency_reference(body: str) -> bool:
    """True if the body points at another issue it waits on (``blocked by #12``)."""

    return bool(_DEPENDENCY_RE.search((body or "").lower()))


def is_unfinished_tracking_issue(body: str, *, min_checkboxes: int = 2) -> bool:
    """True if the body is a checklist of subtasks with at least one open.

    Below ``min_checkboxes`` a checkbox reads as a reminder, not a subtask
    list, and never blocks.
    """

    marks = _CHECKBOX_RE.findall(body or "")
    if len(marks) < min_checkboxes:
        return False
    return any(mark == " " for mark in marks)


class ReadinessEvaluator:
    """Decide whether items may be admitted, and in which order."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def check_labels(self, item: WorkItem, config: RepoConfig) -> bool:
        rules = config.readiness
        blocked = {label.lower() for label in rules.labels.exclude}
        blocked.update(label.lower() for label in rules.dependencies.blocking_labels)
        return not (item.label_set & blocked)

    def check_dependencies(self, item: WorkItem, config: RepoConfig) -> bool:
        rules = config.readiness.dependencies
        if not rules.check_body_references:
            return True
        if has_dependency_reference(item.body):
            return False
        return not is_unfinished_tracking_issue(item.body, min_checkboxes=rules.tracking_checkbox_min)

    def age_in_days(self, item: WorkItem) -> int:
        if item.created_at is None:
            return 0
        elapsed = (self._clock() - item.created_at).total_seconds()
        return max(0, math.floor(elapsed / 86400))

    def calculate_priority(self, item: WorkItem, config: RepoConfig) -> int:
        priority = config.readiness.priority
        labels = item.label_set

        label_score = 0
        for entry in priority.labels:
            if entry.label.lower() in labels and entry.weight > label_score:
                label_score = entry.weight

        inferred = 0
        if label_score == 0:
            if item.milestone:
                inferred += MILESTONE_BONUS
            inferred += min(REACTION_BONUS_CAP, REACTION_BONUS_PER * item.positive_reactions)
            inferred += min(COMMENT_BONUS_CAP, COMMENT_BONUS_PER * item.comments)
            if item.assignees:
                inferred += ASSIGNEE_BONUS

        return label_score + inferred + self.age_in_days(item) * priority.age_weight

    def evaluate(self, item: WorkItem, config: RepoConfig) -> Evaluation:
        if not self.check_labels(item, config):
            return Evaluation(eligible=False, score=0, reason=NotReadyReason.HAS_BLOCKING_LABEL)
        if not self.check_dependencies(item, config):
            return Evaluation(eligible=False, score=0, reason=NotReadyReason.HAS_DEPENDENCY)
        return Evaluation(eligible=True, score=self.calculate_priority(item, config))

    def evaluate_batch(
        self, items: Iterable[WorkItem], config: RepoConfig
    ) -> list[tuple[WorkItem, Evaluation]]:
        """Evaluate every item, highest score first; ties keep input order."""

        results = [(item, self.evaluate(item, config)) for item in items]
        return sorted(results, key=lambda pair: -pair[1].score)

    def top_eligible_items(self, items: Iterable[WorkItem], config: RepoConfig, limit: int) -> list[WorkItem]:
        if limit <= 0:
            return []
        ranked = [item for item, evaluation in self.evaluate_batch(items, config) if evaluation.eligible]
        return ranked[:limit]

    def top_eligible(self, items: Iterable[WorkItem], config: RepoConfig, limit: int) -> list[dict[str, Any]]:
        """Original payloads of the ``limit`` best eligible items."""

        return [item.raw for item in self.top_eligible_items(items, config, limit)]


__all__ = [
    "DEPENDENCY_PHRASES",
    "Evaluation",
    "NotReadyReason",
    "ReadinessEvaluator",
    "has_dependency_reference",
    "is_unfinished_tracking_issue",
]
