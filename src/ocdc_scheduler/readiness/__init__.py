"""Work item normalization and readiness evaluation."""

from .evaluator import (
    Evaluation,
    NotReadyReason,
    ReadinessEvaluator,
    has_dependency_reference,
    is_unfinished_tracking_issue,
)
from .items import WorkItem, normalize_items

__all__ = [
    "Evaluation",
    "NotReadyReason",
    "ReadinessEvaluator",
    "WorkItem",
    "has_dependency_reference",
    "is_unfinished_tracking_issue",
    "normalize_items",
]
