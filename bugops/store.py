"""Small key/value store for state that must survive restarts.

The operator checks reachability at startup; an unreachable store aborts
startup before any job is scheduled.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Protocol


class ConfigStore(Protocol):
    async def ping(self) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class InMemoryConfigStore:
    """ConfigStore for tests and local runs."""

    def __init__(self, data: dict[str, str] | None = None, *, reachable: bool = True) -> None:
        self.data: dict[str, str] = dict(data or {})
        self.reachable = reachable

    async def ping(self) -> None:
        if not self.reachable:
            raise ConnectionError("config store unreachable")

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileConfigStore:
    """ConfigStore kept in a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def ping(self) -> None:
        directory = self.path.parent if str(self.path.parent) else Path(".")
        if not directory.is_dir():
            raise FileNotFoundError(f"state directory does not exist: {directory}")
        if not os.access(directory, os.W_OK):
            raise PermissionError(f"state directory is not writable: {directory}")

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._read().get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            tmp = self.path.with_name(self.path.name + ".tmp")
            tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self.path)

    def _read(self) -> dict[str, str]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        return {str(key): str(value) for key, value in raw.items()} if isinstance(raw, dict) else {}
