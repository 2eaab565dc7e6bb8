"""Lock-guarded JSON documents shared between scheduler processes."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

Document = dict[str, Any]
T = TypeVar("T")


class StateStoreError(RuntimeError):
    """Base class for state store failures."""


class LockTimeoutError(StateStoreError):
    """Raised when the advisory lock cannot be acquired within the timeout."""

    def __init__(self, lock_path: Path, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:.1f}s waiting for lock {lock_path}")
        self.lock_path = lock_path
        self.timeout = timeout


class StateDocumentError(StateStoreError):
    """Raised when a state document exists but cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Malformed state document {path}: {reason}")
        self.path = path


class StateStore:
    """Serialize read/modify/write cycles on a JSON document across processes.

    The lock is an ``flock`` on a sibling ``<path>.lock`` file, so it holds
    between independent invocations and not just between threads. Writes go
    to a temporary file in the same directory and are renamed into place.
    """

    def __init__(
        self,
        path: Path,
        *,
        lock_timeout: float = 10.0,
        poll_interval: float = 0.05,
    ) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._lock_timeout = lock_timeout
        self._poll_interval = poll_interval

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self._lock_timeout
        with open(self._lock_path, "a", encoding="utf-8") as handle:
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise LockTimeoutError(self._lock_path, self._lock_timeout) from None
                    time.sleep(self._poll_interval)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _load(self) -> Document:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        if not text.strip():
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StateDocumentError(self._path, str(exc)) from exc
        if not isinstance(document, dict):
            raise StateDocumentError(self._path, f"expected an object, got {type(document).__name__}")
        return document

    def _write(self, document: Document) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def read(self) -> Document:
        """Return the current document without locking. May be stale."""

        return self._load()

    def read_locked(self, fn: Callable[[Document], T]) -> T:
        """Evaluate ``fn`` over a fresh document while holding the lock."""

        with self._locked():
            return fn(self._load())

    def update(self, fn: Callable[[Document], Document | None]) -> Document:
        """Apply ``fn`` to the current document and persist the result.

        ``fn`` may return a replacement document or mutate its argument in
        place and return None. Nothing is written if ``fn`` raises.
        """

        with self._locked():
            document = self._load()
            result = fn(document)
            if result is None:
                result = document
            if not isinstance(result, dict):
                raise StateDocumentError(self._path, "update must produce an object")
            self._write(result)
            logger.debug("State document updated", extra={"path": str(self._path)})
            return result


def with_lock(
    path: Path,
    fn: Callable[[Document], Document | None],
    *,
    timeout: float = 10.0,
) -> Document:
    """Convenience wrapper for a single locked update of ``path``."""

    return StateStore(path, lock_timeout=timeout).update(fn)


__all__ = [
    "Document",
    "LockTimeoutError",
    "StateDocumentError",
    "StateStore",
    "StateStoreError",
    "with_lock",
]
