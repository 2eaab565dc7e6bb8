"""Tracker collaborators: fetching items and applying ready actions."""

from .base import ItemFetcher, ReadyActionError, ReadyActionExecutor, TrackerError
from .github import GhCliTracker

__all__ = [
    "GhCliTracker",
    "ItemFetcher",
    "ReadyActionError",
    "ReadyActionExecutor",
    "TrackerError",
]
