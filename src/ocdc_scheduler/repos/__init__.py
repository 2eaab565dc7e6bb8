"""Repository configuration models and resolver exports."""

from .loader import DEFAULT_REPO_CONFIG, RepoConfigError, RepoConfigResolver, deep_merge
from .models import (
    IssueTracker,
    PriorityLabel,
    ReadyAction,
    ReadyActionType,
    RepoConfig,
    SourceType,
)

__all__ = [
    "DEFAULT_REPO_CONFIG",
    "IssueTracker",
    "PriorityLabel",
    "ReadyAction",
    "ReadyActionType",
    "RepoConfig",
    "RepoConfigError",
    "RepoConfigResolver",
    "SourceType",
    "deep_merge",
]
