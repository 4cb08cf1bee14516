"""Directory protocol and an in-memory user/group directory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable


@runtime_checkable
class Directory(Protocol):
    """User and group lookups consumed by the sharing engine."""

    def user_exists(self, user_id: str) -> bool: ...

    def group_exists(self, group_id: str) -> bool: ...

    def get_user_group_ids(self, user_id: str) -> list[str]: ...

    def group_members(self, group_id: str) -> list[str]: ...

    def display_name(self, user_id: str) -> str | None: ...

    def cloud_display_name(self, cloud_id: str) -> str | None:
        """Contact name for a federated cloud id, if the address book has one."""
        ...


class InMemoryDirectory:
    """Dict-backed :class:`Directory` for embedding and tests.

    Usage::

        directory = InMemoryDirectory()
        directory.add_user("alice", display_name="Alice A.")
        directory.add_group("staff", ["alice", "bob"])
    """

    def __init__(self) -> None:
        self._users: dict[str, str | None] = {}
        self._groups: dict[str, list[str]] = {}
        self._contacts: dict[str, str] = {}

    def add_user(self, user_id: str, *, display_name: str | None = None) -> None:
        self._users[user_id] = display_name

    def add_group(self, group_id: str, members: Iterable[str] = ()) -> None:
        group = self._groups.setdefault(group_id, [])
        for member in members:
            if member not in self._users:
                self.add_user(member)
            if member not in group:
                group.append(member)

    def remove_from_group(self, group_id: str, user_id: str) -> None:
        members = self._groups.get(group_id, [])
        if user_id in members:
            members.remove(user_id)

    def add_contact(self, cloud_id: str, name: str) -> None:
        self._contacts[cloud_id] = name

    def user_exists(self, user_id: str) -> bool:
        return user_id in self._users

    def group_exists(self, group_id: str) -> bool:
        return group_id in self._groups

    def get_user_group_ids(self, user_id: str) -> list[str]:
        return [gid for gid, members in self._groups.items() if user_id in members]

    def group_members(self, group_id: str) -> list[str]:
        return list(self._groups.get(group_id, []))

    def display_name(self, user_id: str) -> str | None:
        return self._users.get(user_id)

    def cloud_display_name(self, cloud_id: str) -> str | None:
        return self._contacts.get(cloud_id)
