"""Repository configuration loading and default resolution."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .models import RepoConfig

logger = logging.getLogger(__name__)

DEFAULT_REPO_CONFIG: dict[str, Any] = {
    "wip_limits": {"max_concurrent": 3},
    "readiness": {
        "labels": {"required": [], "any_of": [], "exclude": []},
        "priority": {"labels": [], "age_weight": 1},
        "dependencies": {
            "check_body_references": True,
            "check_github_dependencies": False,
            "blocking_labels": ["blocked"],
            "tracking_checkbox_min": 2,
        },
    },
    "comments": {"on_start": False, "on_pr_created": False},
    "issue_tracker": {
        "type": "github_issue",
        "repo": None,
        "fetch": {},
        "ready_action": {"type": "add_label", "label": None, "status": None},
    },
}


class RepoConfigError(RuntimeError):
    """Raised when the repos file cannot be parsed or fails validation."""


def deep_merge(defaults: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` over ``defaults`` recursively.

    Nested mappings merge key by key; any other value in ``override``
    (lists included) replaces the default wholesale. A None override counts
    as absent.
    """

    merged: dict[str, Any] = copy.deepcopy(dict(defaults))
    for key, value in override.items():
        if value is None:
            merged.setdefault(key, None)
            continue
        base = merged.get(key)
        if isinstance(base, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(base, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _normalize_path(raw: str | Path) -> Path:
    path = Path(raw).expanduser()
    try:
        return path.resolve()
    except OSError:  # pragma: no cover - unresolvable on some platforms
        return path.absolute()


class RepoConfigResolver:
    """Resolve per-project configuration from a YAML ``repos`` file."""

    def __init__(self, repos_file: Path) -> None:
        self._repos_file = Path(repos_file)

    @property
    def repos_file(self) -> Path:
        return self._repos_file

    def _read_document(self) -> Any:
        if not self._repos_file.exists():
            return None
        try:
            return yaml.safe_load(self._repos_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise RepoConfigError(f"Failed to parse YAML in {self._repos_file}: {exc}") from exc

    def load_all(self) -> dict[str, dict[str, Any]]:
        """Return the raw per-project mappings keyed by project id."""

        document = self._read_document()
        if document is None:
            return {}
        if not isinstance(document, dict):
            raise RepoConfigError(f"Expected a mapping at the top of {self._repos_file}")
        repos = document.get("repos") or {}
        if not isinstance(repos, dict):
            raise RepoConfigError(f"'repos' must be a mapping in {self._repos_file}")
        return {str(key): value or {} for key, value in repos.items()}

    def list(self) -> list[str]:
        return list(self.load_all().keys())

    def get(self, project_id: str) -> dict[str, Any] | None:
        """Exact lookup without defaults; None when the project is unknown."""

        config = self.load_all().get(project_id)
        return copy.deepcopy(config) if config is not None else None

    def resolve(self, project_id: str) -> dict[str, Any]:
        """Return the project document with defaults merged underneath."""

        return deep_merge(DEFAULT_REPO_CONFIG, self.get(project_id) or {})

    def get_with_defaults(self, project_id: str) -> RepoConfig:
        document = self.resolve(project_id)
        try:
            return RepoConfig.model_validate({**document, "id": project_id})
        except ValidationError as exc:
            raise RepoConfigError(
                f"Repo config validation error for '{project_id}' in {self._repos_file}: {exc}"
            ) from exc

    def find_by_local_path(self, path: str | Path) -> str | None:
        """Map a filesystem location back to the project configured there."""

        target = _normalize_path(path)
        for project_id, config in self.load_all().items():
            repo_path = config.get("repo_path") if isinstance(config, dict) else None
            if not repo_path:
                continue
            if _normalize_path(repo_path) == target:
                return project_id
        return None

    def validate(self) -> None:
        """Check the repos file structure, reporting every problem at once."""

        document = self._read_document()
        if document is None:
            return
        if not isinstance(document, dict) or "repos" not in document:
            raise RepoConfigError(f"Missing 'repos' key in {self._repos_file}")

        errors: list[str] = []
        repos = document.get("repos") or {}
        if not isinstance(repos, dict):
            raise RepoConfigError(f"'repos' must be a mapping in {self._repos_file}")
        for project_id, config in repos.items():
            if not isinstance(config, dict) or not config.get("repo_path"):
                errors.append(f"Repo '{project_id}' is missing repo_path")
                continue
            try:
                RepoConfig.model_validate(
                    {**deep_merge(DEFAULT_REPO_CONFIG, config), "id": str(project_id)}
                )
            except ValidationError as exc:
                errors.append(f"Repo '{project_id}' failed validation: {exc}")

        if errors:
            raise RepoConfigError("; ".join(errors))
        logger.debug("Repo config validated", extra={"path": str(self._repos_file), "repos": len(repos)})


__all__ = ["DEFAULT_REPO_CONFIG", "RepoConfigError", "RepoConfigResolver", "deep_merge"]
