"""Process-wide access to the loaded operator configuration."""

from __future__ import annotations

import json
import os
from threading import Lock
from typing import Any, ClassVar

from bugops.config.loader import load_config_file, resolve_config_path
from bugops.config.models import OperatorConfig

ENV_PREFIX = "BUGOPS_"


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in updates.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(raw: str) -> Any:
    value = raw.strip()
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    if value[:1] in {"[", "{"}:
        try:
            return json.loads(value)
        except ValueError:
            return value
    try:
        return float(value) if "." in value else int(value)
    except ValueError:
        return value


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Turn BUGOPS_A__B=value variables into {"a": {"b": value}}."""
    source = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for key, raw_value in source.items():
        if not key.startswith(ENV_PREFIX) or key == "BUGOPS_CONFIG":
            continue
        path = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not path:
            continue
        cursor = overrides
        for part in path[:-1]:
            nested = cursor.get(part)
            if not isinstance(nested, dict):
                nested = cursor[part] = {}
            cursor = nested
        cursor[path[-1]] = _coerce_env_value(raw_value)
    return overrides


class ConfigManager:
    """Thread-safe singleton holding the active OperatorConfig."""

    _instance: ClassVar[ConfigManager | None] = None
    _class_lock: ClassVar[Lock] = Lock()

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = OperatorConfig()
        self._config_path: str | None = None

    @classmethod
    def instance(cls) -> ConfigManager:
        if cls._instance is not None:
            return cls._instance
        with cls._class_lock:
            if cls._instance is None:
                cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        with cls._class_lock:
            cls._instance = None

    @classmethod
    def load(
        cls,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConfigManager:
        """Load defaults <- YAML <- environment <- explicit overrides.

        Raises:
            ConfigLoadError: the YAML file is malformed.
            pydantic.ValidationError: the merged values do not validate.
        """
        manager = cls.instance()
        path = resolve_config_path(config_path)
        merged = _deep_merge(load_config_file(path), env_overrides())
        merged = _deep_merge(merged, overrides or {})
        config = OperatorConfig.model_validate(merged)
        with manager._lock:
            manager._config = config
            manager._config_path = str(path)
        return manager

    def get(self) -> OperatorConfig:
        with self._lock:
            return self._config

    @property
    def config_path(self) -> str | None:
        with self._lock:
            return self._config_path
