"""Typed records exchanged with the ticket tracker."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

OPEN_STATUSES = ("NEW", "ASSIGNED", "POST", "MODIFIED", "ON_DEV")


class BugFlag(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    status: str = ""
    setter: str = ""

    def __str__(self) -> str:
        return f"{self.name}{self.status}"


class Bug(BaseModel):
    """One tracker ticket as returned by lookup and search."""

    model_config = ConfigDict(extra="ignore")

    id: int
    summary: str = ""
    status: str = ""
    resolution: str = ""
    severity: str = ""
    priority: str = ""
    product: str = ""
    component: list[str] = Field(default_factory=list)
    assigned_to: str = ""
    creator: str = ""
    keywords: list[str] = Field(default_factory=list)
    whiteboard: str = ""
    target_release: list[str] = Field(default_factory=list)
    flags: list[BugFlag] = Field(default_factory=list)
    creation_time: datetime | None = None
    last_change_time: datetime | None = None

    def has_flag(self, flag: str) -> bool:
        return any(str(item) == flag for item in self.flags)


class Comment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    bug_id: int
    text: str = ""
    creator: str = ""
    count: int = 0
    is_private: bool = False
    creation_time: datetime | None = None


class FieldChange(BaseModel):
    model_config = ConfigDict(extra="ignore")

    field_name: str
    removed: str = ""
    added: str = ""


class HistoryEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    who: str = ""
    when: datetime | None = None
    changes: list[FieldChange] = Field(default_factory=list)


class BugUpdate(BaseModel):
    """Field changes applied by update_bug; unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    status: str | None = None
    resolution: str | None = None
    whiteboard: str | None = None
    keywords_add: list[str] = Field(default_factory=list)
    keywords_remove: list[str] = Field(default_factory=list)
    comment: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key in ("status", "resolution", "whiteboard"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        keywords: dict[str, list[str]] = {}
        if self.keywords_add:
            keywords["add"] = list(self.keywords_add)
        if self.keywords_remove:
            keywords["remove"] = list(self.keywords_remove)
        if keywords:
            payload["keywords"] = keywords
        if self.comment:
            payload["comment"] = {"body": self.comment}
        return payload

    def describe(self) -> str:
        parts = [f"{key}={value!r}" for key, value in self.to_payload().items() if key != "comment"]
        if self.comment:
            parts.append(f"comment={self.comment!r}")
        return ", ".join(parts) or "no changes"


class SearchQuery(BaseModel):
    """Search filter. Frozen so it can be part of a cache fingerprint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    product: str = ""
    component: tuple[str, ...] = ()
    status: tuple[str, ...] = ()
    resolution: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    without_keywords: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()
    changed_before: datetime | None = None
    changed_after: datetime | None = None
    created_after: datetime | None = None
    limit: int = Field(default=0, ge=0)

    def to_params(self) -> list[tuple[str, str]]:
        """Render as Bugzilla REST query parameters."""
        params: list[tuple[str, str]] = []
        if self.product:
            params.append(("product", self.product))
        for key, values in (("component", self.component), ("bug_status", self.status), ("resolution", self.resolution)):
            params.extend((key, value) for value in values)
        if self.keywords:
            params += [("keywords", ",".join(self.keywords)), ("keywords_type", "allwords")]
        # custom search fields are numbered f1/o1/v1, f2/o2/v2 ...
        advanced: list[tuple[str, str, str]] = []
        advanced += [("keywords", "notsubstring", word) for word in self.without_keywords]
        advanced += [("flagtypes.name", "substring", flag) for flag in self.flags]
        if self.changed_before is not None:
            advanced.append(("delta_ts", "lessthan", self.changed_before.isoformat()))
        for index, (field_name, operator, value) in enumerate(advanced, start=1):
            params += [(f"f{index}", field_name), (f"o{index}", operator), (f"v{index}", value)]
        if self.changed_after is not None:
            params.append(("last_change_time", self.changed_after.isoformat()))
        if self.created_after is not None:
            params.append(("creation_time", self.created_after.isoformat()))
        if self.limit:
            params.append(("limit", str(self.limit)))
        return params
