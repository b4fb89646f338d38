"""Read-through cache in front of a TrackerClient.

Entries are addressed by a fingerprint of the read operation and its
arguments. Any mutation drops the entries of the mutated bug and every
search result, since search membership may have changed.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import os
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, TypeAdapter

from bugops.tracker.client import TrackerClient, TrackerError
from bugops.tracker.models import Bug, BugUpdate, Comment, HistoryEntry, SearchQuery

logger = logging.getLogger(__name__)

IMAGE_VERSION = 1

_ADAPTERS: dict[str, TypeAdapter[Any]] = {
    "get_bug": TypeAdapter(Bug),
    "get_bugs": TypeAdapter(list[Bug]),
    "search": TypeAdapter(list[Bug]),
    "get_comments": TypeAdapter(list[Comment]),
    "get_history": TypeAdapter(list[HistoryEntry]),
}


def _canonical(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _canonical(item) for key, item in value.items()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def fingerprint(method: str, *args: Any, **kwargs: Any) -> str:
    """Deterministic key for a read operation and its arguments."""
    body = json.dumps(
        {"method": method, "args": _canonical(list(args)), "kwargs": _canonical(kwargs)},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """Last successful remote result for one fingerprint."""

    method: str
    value: Any
    fetched_at: float
    bug_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "value": self.value,
            "fetched_at": self.fetched_at,
            "bug_ids": list(self.bug_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            method=str(data["method"]),
            value=data["value"],
            fetched_at=float(data["fetched_at"]),
            bug_ids=tuple(int(item) for item in data.get("bug_ids", ())),
        )


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    remote_calls: int = 0
    shared: int = 0
    invalidations: int = 0
    flush_errors: int = 0


class CacheStore:
    """Fingerprint-addressed entries shared by every cached client.

    Optionally persisted as a JSON image at *path*; persistence problems are
    logged and otherwise ignored.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        flush_interval_seconds: float = 300.0,
        max_age_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = Path(path) if path else None
        self.flush_interval_seconds = max(0.01, float(flush_interval_seconds))
        self.max_age_seconds = max_age_seconds
        self.stats = CacheStats()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # in-flight fetches, tagged with the generation they started in
        self._inflight: dict[str, tuple[int, asyncio.Future[CacheEntry]]] = {}
        self._generation = 0
        self._dirty = False
        self._flusher: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> float:
        return self._clock()

    # -- lifecycle -------------------------------------------------------

    async def open(self) -> None:
        """Load the persisted image and start the periodic flush."""
        if self.path is None:
            return
        self._load()
        if self._flusher is None:
            self._flusher = asyncio.create_task(self._flush_loop(), name="bugops-cache-flush")

    async def close(self) -> None:
        """Stop the periodic flush and write the final image."""
        if self._flusher is not None:
            self._flusher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flusher
            self._flusher = None
        await self.flush()

    async def flush(self) -> None:
        if self.path is None or not self._dirty:
            return
        image = {
            "version": IMAGE_VERSION,
            "entries": {key: entry.to_dict() for key, entry in self._entries.items()},
        }
        self._dirty = False
        try:
            await asyncio.to_thread(self._write_image, self.path, image)
        except (OSError, TypeError, ValueError) as exc:
            self._dirty = True
            self.stats.flush_errors += 1
            logger.warning("cache_flush_failed path=%s error=%s", self.path, exc)

    @staticmethod
    def _write_image(path: Path, image: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(image), encoding="utf-8")
        os.replace(tmp, path)

    def _load(self) -> None:
        assert self.path is not None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError) as exc:
            logger.warning("cache_load_failed path=%s error=%s", self.path, exc)
            return
        if not isinstance(raw, dict) or raw.get("version") != IMAGE_VERSION:
            logger.warning("cache_load_skipped path=%s reason=unsupported_image", self.path)
            return
        loaded = 0
        for key, data in (raw.get("entries") or {}).items():
            try:
                entry = CacheEntry.from_dict(data)
            except (KeyError, TypeError, ValueError):
                continue
            if entry.method in _ADAPTERS:
                self._entries[str(key)] = entry
                loaded += 1
        logger.info("cache_loaded path=%s entries=%d", self.path, loaded)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval_seconds)
            await self.flush()

    # -- entries ---------------------------------------------------------

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.max_age_seconds is not None and self._clock() - entry.fetched_at > self.max_age_seconds:
            self._entries.pop(key, None)
            self._dirty = True
            return None
        return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry
        self._dirty = True

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[CacheEntry]]) -> CacheEntry:
        """Return the cached entry or run *loader* once for all concurrent callers."""
        entry = self.get(key)
        if entry is not None:
            self.stats.hits += 1
            return entry
        pending = self._inflight.get(key)
        # a fetch that started before the last invalidation may return stale data
        if pending is not None and pending[0] == self._generation:
            self.stats.shared += 1
            return await asyncio.shield(pending[1])

        self.stats.misses += 1
        future: asyncio.Future[CacheEntry] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_retrieve_exception)
        generation = self._generation
        self._inflight[key] = (generation, future)
        try:
            self.stats.remote_calls += 1
            entry = await loader()
        except asyncio.CancelledError:
            # joined waiters were not cancelled themselves
            future.set_exception(TrackerError(f"fetch for {key[:12]} was cancelled"))
            raise
        except Exception as exc:
            future.set_exception(exc)
            raise
        finally:
            current = self._inflight.get(key)
            if current is not None and current[1] is future:
                del self._inflight[key]
        # an invalidation while fetching may have made this result stale
        if generation == self._generation:
            self.put(key, entry)
        future.set_result(entry)
        return entry

    def invalidate_bug(self, bug_id: int) -> int:
        """Drop entries that depend on *bug_id* plus every search result.

        Fetches already in flight are not joined by later readers.
        """
        doomed = [
            key
            for key, entry in self._entries.items()
            if entry.method == "search" or bug_id in entry.bug_ids
        ]
        for key in doomed:
            del self._entries[key]
        self._generation += 1
        self.stats.invalidations += 1
        if doomed:
            self._dirty = True
        logger.debug("cache_invalidated bug_id=%s entries=%d", bug_id, len(doomed))
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1
        self._dirty = True


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


class CachedTrackerClient:
    """TrackerClient that serves reads from a shared CacheStore."""

    def __init__(self, delegate: TrackerClient, store: CacheStore) -> None:
        self._delegate = delegate
        self._store = store

    @property
    def store(self) -> CacheStore:
        return self._store

    async def get_bug(self, bug_id: int) -> Bug:
        return await self._read("get_bug", (bug_id,), lambda: self._delegate.get_bug(bug_id), (bug_id,))

    async def get_bugs(self, bug_ids: Sequence[int]) -> list[Bug]:
        ids = tuple(sorted(set(bug_ids)))
        return await self._read("get_bugs", (ids,), lambda: self._delegate.get_bugs(ids), ids)

    async def search(self, query: SearchQuery) -> list[Bug]:
        return await self._read("search", (query,), lambda: self._delegate.search(query), None)

    async def get_comments(self, bug_id: int) -> list[Comment]:
        return await self._read("get_comments", (bug_id,), lambda: self._delegate.get_comments(bug_id), (bug_id,))

    async def get_history(self, bug_id: int) -> list[HistoryEntry]:
        return await self._read("get_history", (bug_id,), lambda: self._delegate.get_history(bug_id), (bug_id,))

    async def add_comment(self, bug_id: int, text: str, *, private: bool = False) -> int:
        try:
            return await self._delegate.add_comment(bug_id, text, private=private)
        finally:
            self._store.invalidate_bug(bug_id)

    async def update_bug(self, bug_id: int, update: BugUpdate) -> None:
        try:
            await self._delegate.update_bug(bug_id, update)
        finally:
            self._store.invalidate_bug(bug_id)

    async def _read(
        self,
        method: str,
        args: tuple[Any, ...],
        fetch: Callable[[], Awaitable[Any]],
        bug_ids: tuple[int, ...] | None,
    ) -> Any:
        adapter = _ADAPTERS[method]

        async def _load() -> CacheEntry:
            result = await fetch()
            ids = bug_ids if bug_ids is not None else tuple(bug.id for bug in result)
            return CacheEntry(
                method=method,
                value=adapter.dump_python(result, mode="json"),
                fetched_at=self._store.now(),
                bug_ids=ids,
            )

        entry = await self._store.get_or_load(fingerprint(method, *args), _load)
        # rebuild from the stored dump so callers never share mutable objects
        return adapter.validate_python(entry.value)
