"""Storage abstractions for scheduler state."""

from .models import ErrorState, WipSession, format_timestamp, parse_timestamp
from .state_store import (
    LockTimeoutError,
    StateDocumentError,
    StateStore,
    StateStoreError,
    with_lock,
)

__all__ = [
    "ErrorState",
    "LockTimeoutError",
    "StateDocumentError",
    "StateStore",
    "StateStoreError",
    "WipSession",
    "format_timestamp",
    "parse_timestamp",
    "with_lock",
]
