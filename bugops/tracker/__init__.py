"""Tracker access: records, the remote client, caching and debug decoration."""

from bugops.tracker.cache import CachedTrackerClient, CacheEntry, CacheStore, fingerprint
from bugops.tracker.client import READ_METHODS, WRITE_METHODS, RestTrackerClient, TrackerClient, TrackerError
from bugops.tracker.debug import ReadOnlyDebugClient
from bugops.tracker.models import (
    OPEN_STATUSES,
    Bug,
    BugFlag,
    BugUpdate,
    Comment,
    FieldChange,
    HistoryEntry,
    SearchQuery,
)

__all__ = [
    "Bug",
    "BugFlag",
    "BugUpdate",
    "CacheEntry",
    "CacheStore",
    "CachedTrackerClient",
    "Comment",
    "FieldChange",
    "HistoryEntry",
    "OPEN_STATUSES",
    "READ_METHODS",
    "ReadOnlyDebugClient",
    "RestTrackerClient",
    "SearchQuery",
    "TrackerClient",
    "TrackerError",
    "WRITE_METHODS",
    "fingerprint",
]
