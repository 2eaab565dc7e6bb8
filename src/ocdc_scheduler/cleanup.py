"""Detection and removal of clone directories no session uses any more."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .process import CommandNotFoundError, resolve_executable, run_command

logger = logging.getLogger(__name__)

UNCOMMITTED_CHANGES = "uncommitted changes"
UNPUSHED_COMMITS = "unpushed commits"


@dataclass(slots=True)
class SkippedClone:
    path: Path
    reason: str


@dataclass(slots=True)
class CleanupReport:
    removed: list[Path] = field(default_factory=list)
    would_remove: list[Path] = field(default_factory=list)
    skipped: list[SkippedClone] = field(default_factory=list)

    def to_dict(self) -> dict[str, list]:
        return {
            "removed": [str(path) for path in self.removed],
            "would_remove": [str(path) for path in self.would_remove],
            "skipped": [{"path": str(entry.path), "reason": entry.reason} for entry in self.skipped],
        }


def _resolve(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def find_orphaned_clones(clones_dir: Path, tracked_paths: Iterable[str | Path]) -> list[Path]:
    """Return ``<repo>/<branch>`` directories under ``clones_dir`` nobody tracks."""

    clones_dir = Path(clones_dir)
    if not clones_dir.is_dir():
        return []
    tracked = {_resolve(path) for path in tracked_paths if path}
    orphans: list[Path] = []
    for repo_dir in sorted(clones_dir.iterdir()):
        if not repo_dir.is_dir():
            continue
        for clone in sorted(repo_dir.iterdir()):
            if clone.is_dir() and clone.resolve() not in tracked:
                orphans.append(clone)
    return orphans


def workspace_block_reason(path: Path) -> str | None:
    """Why deleting ``path`` would lose work, or None if it is safe."""

    if not (Path(path) / ".git").exists():
        return None
    try:
        git = str(resolve_executable("git"))
    except CommandNotFoundError:
        logger.warning("git not found; cannot inspect clone", extra={"path": str(path)})
        return None

    status = run_command([git, "status", "--porcelain"], cwd=path, timeout=30.0)
    if status.ok and status.stdout.strip():
        return UNCOMMITTED_CHANGES

    # Fails when no upstream is configured; nothing to compare against then.
    ahead = run_command([git, "rev-list", "--count", "@{upstream}..HEAD"], cwd=path, timeout=30.0)
    if ahead.ok and ahead.stdout.strip().isdigit() and int(ahead.stdout.strip()) > 0:
        return UNPUSHED_COMMITS
    return None


def _prune_empty_parents(path: Path, root: Path) -> None:
    parent = path.parent
    root = root.resolve()
    while parent.resolve() != root and root in parent.resolve().parents:
        try:
            parent.rmdir()
        except OSError:
            return
        parent = parent.parent


def clean_clones(
    clones_dir: Path,
    tracked_paths: Iterable[str | Path],
    *,
    dry_run: bool = False,
    force: bool = False,
) -> CleanupReport:
    """Remove orphaned clones, keeping ones with unsaved work unless forced."""

    clones_dir = Path(clones_dir)
    report = CleanupReport()
    for clone in find_orphaned_clones(clones_dir, tracked_paths):
        reason = workspace_block_reason(clone)
        if reason and not force:
            report.skipped.append(SkippedClone(path=clone, reason=reason))
            logger.info("Skipped clone", extra={"path": str(clone), "reason": reason})
            continue
        if dry_run:
            report.would_remove.append(clone)
            continue
        shutil.rmtree(clone)
        _prune_empty_parents(clone, clones_dir)
        report.removed.append(clone)
        logger.info("Removed clone", extra={"path": str(clone), "forced": bool(reason)})
    return report


__all__ = [
    "CleanupReport",
    "SkippedClone",
    "UNCOMMITTED_CHANGES",
    "UNPUSHED_COMMITS",
    "clean_clones",
    "find_orphaned_clones",
    "workspace_block_reason",
]
