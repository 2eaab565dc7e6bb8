"""Per-cycle composition of admission, readiness, retry and reconciliation."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from .config import GlobalConfig
from .readiness import ReadinessEvaluator, WorkItem, normalize_items
from .repos import ReadyAction, ReadyActionType, RepoConfig, RepoConfigResolver
from .retry import ErrorKind, ErrorRetryPolicy
from .sessions import SessionRegistry
from .storage import ErrorState
from .trackers import ItemFetcher, ReadyActionExecutor
from .wip import WipTracker

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleResult:
    """What one project's poll cycle did."""

    project_id: str
    slots: int = 0
    selected: list[str] = field(default_factory=list)
    marked: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped_reason: str | None = None
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ReconcileReport:
    dropped_sessions: list[str] = field(default_factory=list)
    killed_sessions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CoordinatorError(RuntimeError):
    """Raised when an operation needs a collaborator that was not supplied."""


class Coordinator:
    """Decide which items become ready each cycle and keep state honest.

    The coordinator owns no state of its own. Admission counts live in the
    WIP tracker, failures in the retry policy and sessions in tmux; each
    cycle re-reads all of them.
    """

    def __init__(
        self,
        global_config: GlobalConfig,
        repos: RepoConfigResolver,
        wip: WipTracker,
        evaluator: ReadinessEvaluator,
        fetcher: ItemFetcher,
        actions: ReadyActionExecutor,
        errors: ErrorRetryPolicy | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self._global_config = global_config
        self._repos = repos
        self._wip = wip
        self._evaluator = evaluator
        self._fetcher = fetcher
        self._actions = actions
        self._errors = errors
        self._registry = registry

    @property
    def dry_run(self) -> bool:
        return self._global_config.self_iteration.dry_run

    @staticmethod
    def item_key(project_id: str, item: WorkItem) -> str:
        kind = "pr" if item.is_pull_request else "issue"
        return f"{project_id}-{kind}-{item.number}"

    def available_slots(self, project_id: str) -> int:
        return self._wip.available_slots(project_id)

    def ready_action(self, config: RepoConfig) -> ReadyAction:
        """The project's ready action with the global label filled in."""

        action = config.issue_tracker.ready_action
        if action.type is ReadyActionType.ADD_LABEL and not action.label:
            return action.model_copy(update={"label": self._global_config.self_iteration.ready_label})
        return action

    def is_already_ready(self, item: WorkItem, action: ReadyAction) -> bool:
        if action.type is ReadyActionType.UPDATE_STATUS:
            return bool(action.status and item.state and item.state.lower() == action.status.lower())
        return bool(action.label) and action.label.lower() in item.label_set

    def _held_back_by_error(self, key: str) -> bool:
        if self._errors is None:
            return False
        if self._errors.should_skip(key):
            return True
        return self._errors.is_errored(key) and not self._errors.should_retry(key)

    def select_candidates(
        self,
        project_id: str,
        items: Iterable[WorkItem],
        slots: int | None = None,
    ) -> list[WorkItem]:
        """Best eligible items for ``project_id``, at most ``slots`` of them."""

        if slots is None:
            slots = self.available_slots(project_id)
        if slots <= 0:
            return []

        config = self._repos.get_with_defaults(project_id)
        action = self.ready_action(config)
        pending: list[WorkItem] = []
        for item in items:
            if self.is_already_ready(item, action):
                continue
            key = self.item_key(project_id, item)
            # A live session means the item was admitted already, label or not.
            if self._wip.is_active(key) or self._held_back_by_error(key):
                continue
            pending.append(item)
        return self._evaluator.top_eligible_items(pending, config, slots)

    def run_project(self, project_id: str) -> CycleResult:
        result = CycleResult(project_id=project_id, dry_run=self.dry_run)
        if self._repos.get(project_id) is None:
            logger.warning("No config for project", extra={"repo_key": project_id})
            result.skipped_reason = "unknown project"
            return result

        config = self._repos.get_with_defaults(project_id)
        result.slots = self.available_slots(project_id)
        if result.slots <= 0:
            logger.info("No slots available", extra={"repo_key": project_id})
            result.skipped_reason = "no slots"
            return result

        tracker = config.issue_tracker
        raw_items = self._fetcher.fetch(tracker, config.tracker_repo)
        items = normalize_items(raw_items, tracker.type)
        candidates = self.select_candidates(project_id, items, result.slots)
        if not candidates:
            logger.info("No eligible candidates", extra={"repo_key": project_id, "fetched": len(items)})
            return result

        action = self.ready_action(config)
        for item in candidates:
            key = self.item_key(project_id, item)
            result.selected.append(key)
            if self.dry_run:
                logger.info(
                    "[dry-run] Would mark item ready",
                    extra={"key": key, "title": item.title, "action": action.type.value},
                )
                continue
            try:
                self._actions.apply(tracker, config.tracker_repo, item, action)
            except Exception as exc:
                logger.warning("Failed to mark item ready", extra={"key": key, "error": str(exc)})
                result.failed[key] = str(exc)
                continue
            result.marked.append(key)

        logger.info(
            "Poll cycle finished",
            extra={
                "repo_key": project_id,
                "slots": result.slots,
                "selected": len(result.selected),
                "marked": len(result.marked),
                "failed": len(result.failed),
            },
        )
        return result

    def run_all(self) -> list[CycleResult]:
        if not self._global_config.self_iteration.enabled:
            logger.debug("Self-iteration disabled; nothing to do")
            return []

        results: list[CycleResult] = []
        for project_id in self._repos.list():
            try:
                results.append(self.run_project(project_id))
            except Exception as exc:
                logger.error("Poll cycle failed", extra={"repo_key": project_id, "error": str(exc)})
                results.append(CycleResult(project_id=project_id, skipped_reason=f"error: {exc}"))
        return results

    def record_launch(self, key: str, project_id: str, priority: str = "medium") -> None:
        """Admit ``key`` after its session started; earlier failures are forgotten."""

        self._wip.add_session(key, project_id, priority)
        if self._errors is not None:
            self._errors.clear(key)

    def record_failure(
        self,
        key: str,
        project_id: str,
        kind: ErrorKind | str,
        message: str,
    ) -> ErrorState:
        if self._errors is None:
            raise CoordinatorError("record_failure requires an error retry policy")
        return self._errors.mark_error(key, project_id, kind, message)

    def reconcile(self) -> ReconcileReport:
        """Forget sessions that died and kill sessions whose workspace is gone."""

        report = ReconcileReport()
        if self._registry is None:
            logger.debug("No session registry configured; skipping reconcile")
            return report

        report.dropped_sessions = self._wip.sync_with_external(self._registry.live_item_keys())
        for record in self._registry.list_orphans():
            self._registry.kill(record.name)
            report.killed_sessions.append(record.name)
        if report.dropped_sessions or report.killed_sessions:
            logger.info("Reconciled sessions", extra=report.to_dict())
        return report


__all__ = ["Coordinator", "CoordinatorError", "CycleResult", "ReconcileReport"]
