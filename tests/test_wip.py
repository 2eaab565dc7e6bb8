from __future__ import annotations

import textwrap
from datetime import datetime, timezone
from pathlib import Path

from ocdc_scheduler.repos import RepoConfigResolver
from ocdc_scheduler.storage import StateStore
from ocdc_scheduler.wip import WipTracker

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_tracker(tmp_path: Path, *, global_limit: int = 5, project_limit: int = 3) -> WipTracker:
    repos_file = tmp_path / "repos.yaml"
    repos_file.write_text(
        textwrap.dedent(
            f"""
            repos:
              org/a:
                repo_path: /src/a
                wip_limits:
                  max_concurrent: {project_limit}
              org/b:
                repo_path: /src/b
            """
        ),
        encoding="utf-8",
    )
    return WipTracker(
        StateStore(tmp_path / "wip-state.json"),
        RepoConfigResolver(repos_file),
        global_limit=global_limit,
        clock=lambda: NOW,
    )


def test_add_and_remove_are_symmetric(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path)

    tracker.add_session("org/a-issue-1", "org/a", "high")
    session = tracker.get_session("org/a-issue-1")

    assert tracker.is_active("org/a-issue-1")
    assert session is not None
    assert session.repo_key == "org/a"
    assert session.priority == "high"
    assert session.started_at == NOW

    assert tracker.remove_session("org/a-issue-1") is True
    assert not tracker.is_active("org/a-issue-1")
    assert tracker.count_active() == 0


def test_remove_unknown_key_is_noop(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path)
    assert tracker.remove_session("missing") is False


def test_add_session_is_idempotent(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path)

    tracker.add_session("k", "org/a")
    tracker.add_session("k", "org/a", "low")

    assert tracker.count_active() == 1
    assert tracker.get_session("k").priority == "low"


def test_document_shape(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path)
    tracker.add_session("k", "org/a")

    document = StateStore(tmp_path / "wip-state.json").read()

    assert document == {
        "sessions": {"k": {"repo_key": "org/a", "priority": "medium", "started_at": "2024-03-01T12:00:00Z"}}
    }


def test_counts_per_project(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path)
    tracker.add_session("a1", "org/a")
    tracker.add_session("a2", "org/a")
    tracker.add_session("b1", "org/b")

    assert tracker.count_active() == 3
    assert tracker.count_for_project("org/a") == 2
    assert {session.key for session in tracker.list_sessions_for_project("org/b")} == {"b1"}
    assert len(tracker.list_sessions()) == 3


def test_limits(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path, global_limit=2, project_limit=1)

    assert tracker.under_global_limit()
    assert tracker.under_project_limit("org/a")

    tracker.add_session("a1", "org/a")
    assert not tracker.under_project_limit("org/a")
    assert tracker.under_global_limit()

    tracker.add_session("b1", "org/b")
    assert not tracker.under_global_limit()


def test_project_limit_defaults(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path, project_limit=2)

    assert tracker.project_limit("org/a") == 2
    assert tracker.project_limit("org/b") == 3
    assert tracker.project_limit("org/unknown") == 3


def test_available_slots_takes_tighter_limit(tmp_path: Path) -> None:
    # Project limit 3 with one active, global limit 5 with four active.
    tracker = make_tracker(tmp_path, global_limit=5, project_limit=3)
    tracker.add_session("a1", "org/a")
    for index in range(3):
        tracker.add_session(f"b{index}", "org/b")

    assert tracker.available_slots("org/a") == 1


def test_available_slots_never_negative(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path, global_limit=1, project_limit=1)
    tracker.add_session("a1", "org/a")
    tracker.add_session("a2", "org/a")

    assert tracker.available_slots("org/a") == 0
    assert tracker.available_slots("org/b") == 0


def test_sync_with_external_drops_dead_sessions(tmp_path: Path) -> None:
    tracker = make_tracker(tmp_path)
    tracker.add_session("live", "org/a")
    tracker.add_session("dead", "org/a")

    dropped = tracker.sync_with_external({"live", "unrelated"})

    assert dropped == ["dead"]
    assert [session.key for session in tracker.list_sessions()] == ["live"]
    assert tracker.sync_with_external({"live"}) == []
