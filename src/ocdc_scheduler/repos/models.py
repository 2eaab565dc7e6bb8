"""Repository configuration models for managed projects."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SourceType(str, Enum):
    """Issue trackers a project can pull work items from."""

    GITHUB_ISSUE = "github_issue"
    GITHUB_PR = "github_pr"
    LINEAR = "linear"


class ReadyActionType(str, Enum):
    """How a selected item is marked as ready for a session."""

    ADD_LABEL = "add_label"
    UPDATE_STATUS = "update_status"


class ReadyAction(BaseModel):
    type: ReadyActionType = ReadyActionType.ADD_LABEL
    label: str | None = Field(
        default=None,
        description="Label to add; falls back to the global ready label when unset.",
    )
    status: str | None = Field(default=None, description="Target status for update_status.")


class IssueTracker(BaseModel):
    type: SourceType = SourceType.GITHUB_ISSUE
    repo: str | None = Field(
        default=None,
        description="Tracker-side repository; defaults to the project id.",
    )
    fetch: dict[str, Any] = Field(default_factory=dict, description="Source-specific fetch options.")
    ready_action: ReadyAction = Field(default_factory=ReadyAction)

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_source_type(cls, value: Any):
        # Older configs say just "github".
        if isinstance(value, str) and value.strip().lower() == "github":
            return SourceType.GITHUB_ISSUE
        return value


class LabelRules(BaseModel):
    exclude: list[str] = Field(default_factory=list)
    required: list[str] = Field(default_factory=list)
    any_of: list[str] = Field(default_factory=list)


class PriorityLabel(BaseModel):
    label: str
    weight: int = 0

    @field_validator("label")
    @classmethod
    def _normalize_label(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Priority label must not be empty")
        return normalized


class PriorityRules(BaseModel):
    labels: list[PriorityLabel] = Field(default_factory=list)
    age_weight: int = 1


class DependencyRules(BaseModel):
    check_body_references: bool = True
    check_github_dependencies: bool = False
    blocking_labels: list[str] = Field(default_factory=lambda: ["blocked"])
    tracking_checkbox_min: int = Field(
        default=2,
        ge=1,
        description="Checkbox lines needed before a body counts as a tracking issue.",
    )


class ReadinessRules(BaseModel):
    labels: LabelRules = Field(default_factory=LabelRules)
    priority: PriorityRules = Field(default_factory=PriorityRules)
    dependencies: DependencyRules = Field(default_factory=DependencyRules)


class WipLimits(BaseModel):
    max_concurrent: int = Field(default=3, ge=0)


class CommentRules(BaseModel):
    on_start: bool = False
    on_pr_created: bool = False


class RepoConfig(BaseModel):
    """Resolved configuration for one managed project."""

    id: str = Field(..., description="Stable project identifier, e.g. org/repo.")
    repo_path: str | None = Field(default=None, description="Local checkout path.")
    issue_tracker: IssueTracker = Field(default_factory=IssueTracker)
    readiness: ReadinessRules = Field(default_factory=ReadinessRules)
    wip_limits: WipLimits = Field(default_factory=WipLimits)
    comments: CommentRules = Field(default_factory=CommentRules)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Project id must not be empty")
        return normalized

    @property
    def tracker_repo(self) -> str:
        return self.issue_tracker.repo or self.id


__all__ = [
    "CommentRules",
    "DependencyRules",
    "IssueTracker",
    "LabelRules",
    "PriorityLabel",
    "PriorityRules",
    "ReadinessRules",
    "ReadyAction",
    "ReadyActionType",
    "RepoConfig",
    "SourceType",
    "WipLimits",
]
