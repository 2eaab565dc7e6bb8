"""Subprocess helpers shared by the tmux, git and gh adapters."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}


class CommandNotFoundError(RuntimeError):
    """Raised when a required executable cannot be located."""


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def resolve_executable(name: str, explicit: Path | str | None = None) -> Path:
    if explicit is not None:
        candidate = Path(explicit)
        if candidate.exists() and candidate.is_file():
            return candidate
        raise CommandNotFoundError(f"{name} executable not found at {candidate}")

    binary = shutil.which(name)
    if binary is None:
        raise CommandNotFoundError(f"{name} executable not found on PATH")
    return Path(binary)


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | str | None = None,
    timeout: float | None = 60.0,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run ``args`` and capture its output; a non-zero exit is not an exception."""

    completed = subprocess.run(
        list(args),
        cwd=str(cwd) if cwd is not None else None,
        capture_output=True,
        text=True,
        errors="replace",
        timeout=timeout,
        env=sanitize_environment(env),
        check=False,
    )
    return CommandResult(
        args=tuple(args),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


__all__ = [
    "CommandNotFoundError",
    "CommandResult",
    "resolve_executable",
    "run_command",
    "sanitize_environment",
]
