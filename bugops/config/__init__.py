"""Operator configuration: models, YAML loading and the shared manager."""

from bugops.config.loader import ConfigLoadError, load_config_file, resolve_config_path
from bugops.config.manager import ConfigManager, env_overrides
from bugops.config.models import (
    CacheConfig,
    ChatConfig,
    CredentialsConfig,
    OperatorConfig,
    RunnerConfig,
    ScheduleEntry,
    StaleConfig,
    TrackerConfig,
)

__all__ = [
    "CacheConfig",
    "ChatConfig",
    "ConfigLoadError",
    "ConfigManager",
    "CredentialsConfig",
    "OperatorConfig",
    "RunnerConfig",
    "ScheduleEntry",
    "StaleConfig",
    "TrackerConfig",
    "env_overrides",
    "load_config_file",
    "resolve_config_path",
]
