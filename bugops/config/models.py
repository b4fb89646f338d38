"""Configuration models for bugops."""

from __future__ import annotations

from typing import Any

from croniter import croniter  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DISABLED_JOBS = ("new",)


class CredentialsConfig(BaseModel):
    """Tracker credentials. The API key wins over username and password."""

    username: str = Field(default="")
    password: SecretStr = Field(default=SecretStr(""))
    api_key: SecretStr = Field(default=SecretStr(""))


class TrackerConfig(BaseModel):
    """Remote tracker endpoint settings."""

    endpoint: str = Field(default="https://bugzilla.redhat.com")
    timeout_seconds: float = Field(default=30.0, gt=0)
    product: str = Field(default="")


class CacheConfig(BaseModel):
    """Read-through cache settings. No path means in-memory only."""

    path: str | None = Field(default=None)
    flush_interval_seconds: float = Field(default=300.0, gt=0)
    max_age_seconds: float | None = Field(default=None, gt=0)


class ChatConfig(BaseModel):
    """Chat surface settings."""

    admin_channel: str = Field(default="#bugops-admin", min_length=1)
    admin_group: str = Field(default="admins", min_length=1)


class RunnerConfig(BaseModel):
    """Recurring loop timing."""

    resync_seconds: float = Field(default=3600.0, gt=0)
    min_interval_seconds: float = Field(default=60.0, ge=0)


class StaleConfig(BaseModel):
    """Thresholds and texts used by the stale bug controllers."""

    stale_after_days: int = Field(default=30, ge=1)
    close_after_days: int = Field(default=7, ge=1)
    keyword: str = Field(default="Stale", min_length=1)
    bot_login: str = Field(default="")
    comment: str = Field(
        default=(
            "This bug hasn't had any activity in the last 30 days. It has been marked as "
            "stale and will be closed if there is no further activity."
        )
    )
    close_comment: str = Field(default="This bug has been closed after a period of inactivity.")
    close_resolution: str = Field(default="WONTFIX")
    lookback_days: int = Field(default=7, ge=1)


class ScheduleEntry(BaseModel):
    """One scheduled group of reports posted to a channel."""

    channel: str = Field(min_length=1)
    components: list[str] = Field(default_factory=list)
    reports: list[str] = Field(default_factory=list)
    when: list[str] = Field(default_factory=list)

    @field_validator("when")
    @classmethod
    def _valid_cron(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        for expression in cleaned:
            if not croniter.is_valid(expression):
                raise ValueError(f"invalid cron expression: {expression!r}")
        return cleaned

    @field_validator("components")
    @classmethod
    def _unique_components(cls, value: list[str]) -> list[str]:
        return sorted({item.strip() for item in value if item.strip()})


class OperatorConfig(BaseSettings):
    """Root configuration model for bugops."""

    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    stale: StaleConfig = Field(default_factory=StaleConfig)

    components: list[str] = Field(default_factory=list)
    disabled_jobs: list[str] = Field(default_factory=list)
    schedules: list[ScheduleEntry] = Field(default_factory=list)
    groups: dict[str, list[str]] = Field(default_factory=dict)
    store_path: str = Field(default=".bugops-state.json")

    model_config = SettingsConfigDict(
        env_prefix="BUGOPS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    def effective_disabled_jobs(self) -> list[str]:
        """Configured disabled jobs plus the ones disabled by default."""
        return sorted(set(self.disabled_jobs) | set(DEFAULT_DISABLED_JOBS))

    def anonymize(self) -> dict[str, Any]:
        """Dump config with every secret replaced by a placeholder."""
        data = self.model_dump(mode="json")
        credentials = data.get("credentials", {})
        for key, value in list(credentials.items()):
            if value:
                credentials[key] = "<redacted>"
        return data
