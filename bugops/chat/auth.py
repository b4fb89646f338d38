"""Group membership checks for privileged chat commands."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol


class GroupAuthorizer(Protocol):
    async def is_member(self, user: str, group: str) -> bool: ...


class ConfigGroupAuthorizer:
    """Membership read from the ``groups`` section of the configuration.

    Group members may reference other groups as ``group:<name>``.
    """

    def __init__(self, groups: Mapping[str, Iterable[str]]) -> None:
        self._groups = {name: list(members) for name, members in groups.items()}

    async def is_member(self, user: str, group: str) -> bool:
        return user in self._expand(group, set())

    def _expand(self, group: str, visiting: set[str]) -> set[str]:
        if group in visiting:
            return set()
        visiting.add(group)
        users: set[str] = set()
        for member in self._groups.get(group, []):
            if member.startswith("group:"):
                users |= self._expand(member[len("group:") :], visiting)
            else:
                users.add(member)
        return users
