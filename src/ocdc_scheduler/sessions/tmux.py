"""Thin synchronous wrapper around the tmux CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..process import CommandResult, resolve_executable, run_command


class TmuxRunner:
    """List, inspect and kill tmux sessions."""

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = resolve_executable("tmux", executable)

    @property
    def executable(self) -> Path:
        return self._executable_path

    def _invoke(self, *args: str) -> CommandResult:
        return run_command([str(self._executable_path), *args], timeout=15.0)

    def list_sessions(self) -> list[str]:
        result = self._invoke("list-sessions", "-F", "#{session_name}")
        if not result.ok:
            # tmux exits non-zero when no server is running.
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def has_session(self, name: str) -> bool:
        return self._invoke("has-session", "-t", name).ok

    def show_environment(self, name: str) -> dict[str, str]:
        result = self._invoke("show-environment", "-t", name)
        if not result.ok:
            return {}
        env: dict[str, str] = {}
        for line in result.stdout.splitlines():
            # "-NAME" marks a variable removed from the session.
            if not line or line.startswith("-") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            env[key] = value
        return env

    def session_created(self, name: str) -> int:
        result = self._invoke("display-message", "-t", name, "-p", "#{session_created}")
        try:
            return int(result.stdout.strip()) if result.ok else 0
        except ValueError:
            return 0

    def kill_session(self, name: str) -> bool:
        return self._invoke("kill-session", "-t", name).ok


@dataclass
class _FakeSession:
    env: dict[str, str] = field(default_factory=dict)
    created: int = 0


class FakeTmuxRunner(TmuxRunner):
    """Test double that keeps sessions in memory."""

    def __init__(self, sessions: dict[str, dict[str, str]] | None = None) -> None:  # type: ignore[override]
        self._executable_path = Path("/tmp/fake-tmux")
        self._sessions: dict[str, _FakeSession] = {
            name: _FakeSession(env=dict(env)) for name, env in (sessions or {}).items()
        }
        self.killed: list[str] = []

    def add_session(self, name: str, env: dict[str, str] | None = None, *, created: int = 0) -> None:
        self._sessions[name] = _FakeSession(env=dict(env or {}), created=created)

    def list_sessions(self) -> list[str]:  # type: ignore[override]
        return list(self._sessions)

    def has_session(self, name: str) -> bool:  # type: ignore[override]
        return name in self._sessions

    def show_environment(self, name: str) -> dict[str, str]:  # type: ignore[override]
        session = self._sessions.get(name)
        return dict(session.env) if session else {}

    def session_created(self, name: str) -> int:  # type: ignore[override]
        session = self._sessions.get(name)
        return session.created if session else 0

    def kill_session(self, name: str) -> bool:  # type: ignore[override]
        self.killed.append(name)
        return self._sessions.pop(name, None) is not None


__all__ = ["FakeTmuxRunner", "TmuxRunner"]
