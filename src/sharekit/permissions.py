"""Permission bitmask for shares."""

from __future__ import annotations

from enum import IntFlag


class Permission(IntFlag):
    """CRUDS permission bits stored on every share row.

    Combine with ``|``, test with ``&`` and remove with ``& ~``::

        perms = Permission.READ | Permission.UPDATE
        perms &= ~Permission.UPDATE
    """

    NONE = 0
    READ = 1
    UPDATE = 2
    CREATE = 4
    DELETE = 8
    SHARE = 16
    ALL = READ | UPDATE | CREATE | DELETE | SHARE


def strip(permissions: int, *bits: Permission) -> int:
    """Return *permissions* with every bit in *bits* cleared."""
    for bit in bits:
        permissions &= ~bit
    return int(permissions)


def exceeds(requested: int, granted: int) -> bool:
    """True when *requested* holds a bit that *granted* does not."""
    return bool(~int(granted) & int(requested))
