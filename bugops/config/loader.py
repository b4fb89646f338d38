"""Locate and read the bugops YAML file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

CONFIG_ENV = "BUGOPS_CONFIG"
DEFAULT_FILENAME = "bugops.yaml"


class ConfigLoadError(ValueError):
    """Raised when the config file exists but is not a usable YAML mapping."""


def resolve_config_path(cli_path: str | None = None) -> Path:
    """Pick the config file: $BUGOPS_CONFIG, then --config, then ./bugops.yaml."""
    for candidate in (os.environ.get(CONFIG_ENV, ""), cli_path or ""):
        if candidate.strip():
            return Path(candidate.strip())
    return Path.cwd() / DEFAULT_FILENAME


def load_config_file(path: str | Path | None = None) -> dict[str, Any]:
    """Return the parsed mapping; a missing or blank file is an empty mapping."""
    target = Path(path) if path is not None else resolve_config_path()
    try:
        text = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f"{target}:{mark.line + 1}:{mark.column + 1}" if mark is not None else str(target)
        raise ConfigLoadError(f"Invalid YAML at {where}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Config root must be a mapping: {target}")
    return data
