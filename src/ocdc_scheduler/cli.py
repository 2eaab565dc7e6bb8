"""Command line entry point for poll cycles, status and cleanup."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass

from . import __version__
from .cleanup import clean_clones
from .config import ConfigError, GlobalConfig, SchedulerSettings, get_settings, load_global_config
from .coordinator import Coordinator
from .process import CommandNotFoundError
from .readiness import ReadinessEvaluator
from .repos import RepoConfigError, RepoConfigResolver
from .retry import ErrorRetryPolicy
from .sessions import SessionRegistry, TmuxRunner
from .storage import StateStore, StateStoreError, format_timestamp
from .trackers import GhCliTracker
from .wip import WipTracker

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for scheduler commands."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def load_tmux(settings: SchedulerSettings) -> TmuxRunner | None:
    try:
        return TmuxRunner(settings.tmux_path)
    except CommandNotFoundError as exc:
        logger.warning("tmux unavailable; session reconciliation disabled", extra={"error": str(exc)})
        return None


def load_tracker(settings: SchedulerSettings) -> GhCliTracker:
    try:
        return GhCliTracker(settings.gh_path)
    except CommandNotFoundError as exc:
        print(f"gh unavailable: {exc}")
        raise SystemExit(1)


@dataclass(slots=True)
class Components:
    settings: SchedulerSettings
    global_config: GlobalConfig
    repos: RepoConfigResolver
    wip: WipTracker
    errors: ErrorRetryPolicy
    registry: SessionRegistry | None


def build_components(settings: SchedulerSettings) -> Components:
    try:
        global_config = load_global_config(settings.config_file)
    except ConfigError as exc:
        print(f"Invalid config: {exc}")
        raise SystemExit(1)

    repos = RepoConfigResolver(settings.repos_file)
    wip = WipTracker(
        StateStore(settings.wip_state_file, lock_timeout=settings.lock_timeout),
        repos,
        global_limit=global_config.wip_limits.global_max,
    )
    errors = ErrorRetryPolicy(StateStore(settings.error_state_file, lock_timeout=settings.lock_timeout))
    tmux = load_tmux(settings)
    registry = SessionRegistry(tmux, errors, wip=wip) if tmux is not None else None
    return Components(
        settings=settings,
        global_config=global_config,
        repos=repos,
        wip=wip,
        errors=errors,
        registry=registry,
    )


def cmd_poll(args: argparse.Namespace) -> None:
    components = build_components(get_settings())
    tracker = load_tracker(components.settings)
    coordinator = Coordinator(
        components.global_config,
        components.repos,
        components.wip,
        ReadinessEvaluator(),
        tracker,
        tracker,
        errors=components.errors,
        registry=components.registry,
    )
    try:
        reconcile = coordinator.reconcile()
        results = coordinator.run_all()
    except (StateStoreError, RepoConfigError) as exc:
        print(f"Poll failed: {exc}")
        raise SystemExit(1)

    payload = {
        "reconcile": reconcile.to_dict(),
        "projects": [result.to_dict() for result in results],
    }
    print(json.dumps(payload, indent=2))


def cmd_status(args: argparse.Namespace) -> None:
    components = build_components(get_settings())
    try:
        sessions = components.wip.list_sessions()
        errors = components.errors.list_errors()
    except StateStoreError as exc:
        print(f"State unavailable: {exc}")
        raise SystemExit(1)
    orphans = components.registry.list_orphans() if components.registry is not None else []

    payload = {
        "version": __version__,
        "wip": {
            "global_limit": components.wip.global_limit,
            "active": len(sessions),
            "sessions": [
                {
                    "key": session.key,
                    "repo_key": session.repo_key,
                    "priority": session.priority,
                    "started_at": format_timestamp(session.started_at) if session.started_at else None,
                }
                for session in sessions
            ],
        },
        "errors": [{"key": state.key, **state.to_document()} for state in errors],
        "orphans": [record.to_dict() for record in orphans],
    }
    print(json.dumps(payload, indent=2))


def _clean_sessions(components: Components, dry_run: bool) -> None:
    registry = components.registry
    if registry is None:
        print("tmux unavailable; skipping sessions")
        return
    orphans = registry.list_orphans()
    if not orphans:
        print("No orphaned sessions")
        return
    for record in orphans:
        if dry_run:
            print(f"Would kill session {record.name} (workspace: {record.workspace or 'unset'})")
            continue
        registry.kill(record.name)
        print(f"Killed session {record.name}")


def _clean_clones(components: Components, dry_run: bool, force: bool) -> None:
    if components.registry is None:
        # Without tmux no workspace can be proven unused.
        print("tmux unavailable; skipping clones")
        return
    tracked = components.registry.live_workspaces()
    report = clean_clones(components.settings.clones_dir, tracked, dry_run=dry_run, force=force)
    if not (report.removed or report.would_remove or report.skipped):
        print("No orphaned clones")
        return
    for path in report.would_remove:
        print(f"Would remove {path}")
    for path in report.removed:
        print(f"Removed {path}")
    for entry in report.skipped:
        print(f"Skipped {entry.path} ({entry.reason}); use --force to remove")


def cmd_clean(args: argparse.Namespace) -> None:
    components = build_components(get_settings())
    run_sessions = args.sessions or not args.clones
    run_clones = args.clones or not args.sessions
    try:
        # Sessions go first so their workspaces stop counting as tracked.
        if run_sessions:
            _clean_sessions(components, args.dry_run)
        if run_clones:
            _clean_clones(components, args.dry_run, args.force)
    except StateStoreError as exc:
        print(f"Clean failed: {exc}")
        raise SystemExit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ocdc-scheduler", description="Work item scheduler")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_poll = sub.add_parser("poll", help="Reconcile sessions, then mark ready items for every project")
    p_poll.set_defaults(func=cmd_poll)

    p_status = sub.add_parser("status", help="Show WIP sessions, errors and orphaned sessions as JSON")
    p_status.set_defaults(func=cmd_status)

    p_clean = sub.add_parser("clean", help="Kill orphaned sessions and remove orphaned clones")
    p_clean.add_argument("--dry-run", action="store_true", help="Report what would be removed")
    p_clean.add_argument("--force", action="store_true", help="Remove clones with unsaved work")
    p_clean.add_argument("--sessions", action="store_true", help="Only clean sessions")
    p_clean.add_argument("--clones", action="store_true", help="Only clean clones")
    p_clean.set_defaults(func=cmd_clean)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    configure_logging(get_settings().log_level)
    args.func(args)


if __name__ == "__main__":
    main()
