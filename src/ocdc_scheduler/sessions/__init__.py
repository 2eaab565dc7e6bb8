"""tmux session observation and reclamation."""

from .registry import SessionNotFoundError, SessionRecord, SessionRegistry, workspace_missing
from .tmux import FakeTmuxRunner, TmuxRunner

__all__ = [
    "FakeTmuxRunner",
    "SessionNotFoundError",
    "SessionRecord",
    "SessionRegistry",
    "TmuxRunner",
    "workspace_missing",
]
