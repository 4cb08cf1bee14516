"""Share types, typed share records and collaborator value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sharekit.models.shares import ShareBase

FORMAT_NONE = -1
"""Return deduplicated :class:`ShareRecord` objects unchanged."""

FORMAT_STATUSES = -2
"""Return a ``{target: {"link": bool, "path": str}}`` projection."""

FILE_ITEM_TYPES = ("file", "folder")


class ShareType(IntEnum):
    """Kind of recipient a share row points at.

    ``GROUP_USER_UNIQUE`` is internal: a per-member row below a ``GROUP``
    row, written when the member needs its own target or was excluded.
    """

    USER = 0
    GROUP = 1
    GROUP_USER_UNIQUE = 2
    LINK = 3
    REMOTE = 6


class ShareScope(Enum):
    """Query scopes that are not a single :class:`ShareType`."""

    USER_AND_GROUPS = "user_and_groups"
    """Direct user shares, per-member rows and shares to the user's groups."""


def is_file_dependent(item_type: str) -> bool:
    """True for item types addressed through the file cache."""
    return item_type in FILE_ITEM_TYPES


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass
class ShareRecord:
    """One share row, strongly typed, plus the fields a query attaches.

    Built from a database row by :meth:`from_row`, which is the only place
    raw column values are converted.
    """

    id: int
    item_type: str
    item_source: str
    share_type: ShareType
    uid_owner: str
    permissions: int
    share_time: datetime
    item_target: str | None = None
    share_with: str | None = None
    uid_initiator: str | None = None
    parent: int | None = None
    file_source: int | None = None
    file_target: str | None = None
    token: str | None = None
    expiration: datetime | None = None
    mail_send: bool = False

    # Attached by queries
    path: str | None = None
    storage: int | None = None
    storage_id: str | None = None
    file_parent: int | None = None
    share_with_displayname: str | None = None
    displayname_owner: str | None = None
    unique_name: bool = False
    file_path: str | None = None
    collection: dict[str, Any] | None = None
    grouped: list[ShareRecord] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: ShareBase) -> ShareRecord:
        """Convert a stored row into a record.

        Expiration only means something on link shares; a value on any
        other share type is discarded.
        """
        share_type = ShareType(row.share_type)
        expiration = _as_utc(row.expiration) if share_type == ShareType.LINK else None
        return cls(
            id=int(row.id),  # type: ignore[arg-type]
            item_type=row.item_type,
            item_source=row.item_source,
            item_target=row.item_target,
            share_type=share_type,
            share_with=row.share_with,
            uid_owner=row.uid_owner,
            uid_initiator=row.uid_initiator,
            permissions=int(row.permissions),
            share_time=_as_utc(row.share_time) or datetime.now(UTC),
            parent=row.parent,
            file_source=row.file_source,
            file_target=row.file_target,
            token=row.token,
            expiration=expiration,
            mail_send=bool(row.mail_send),
        )

    def column(self, name: str) -> Any:
        """Value of the source/target column *name*."""
        return getattr(self, name)


@dataclass(frozen=True)
class ChildItem:
    """A child of a collection item, as enumerated by a collection backend."""

    source: str
    target: str | None = None
    file_path: str | None = None


@dataclass(frozen=True)
class FileMeta:
    """File-cache metadata for one file id."""

    file_id: int
    path: str
    """Storage-relative path, e.g. ``files/docs/a.txt``."""
    storage: int
    """Numeric storage id."""
    storage_id: str
    """Storage identifier, e.g. ``home::alice``."""
    parent: int = 0
    """Parent file id; ``-1`` marks the root of a mounted storage."""


@dataclass(frozen=True)
class MountInfo:
    """A mount point as reported by the filesystem resolver."""

    mount_point: str
    storage_id: str
    is_shared_storage: bool = False
    """True for storages that are themselves shares received from someone else."""


@dataclass
class ReshareInfo:
    """Outcome of the reshare check for a new share."""

    parent: int | None
    item_source: str
    file_source: int | None = None
    file_path: str | None = None
    suggested_item_target: str | None = None
    suggested_file_target: str | None = None
    expiration: datetime | None = None


@dataclass
class ShareQuery:
    """Filters for one share lookup.

    ``item`` is a source when ``uid_owner`` or ``by_source`` is set and a
    recipient-side target otherwise.  ``viewer`` is the user the result
    is presented to; it decides which link statuses are visible and
    whether the SHARE bit survives.
    """

    item_type: str
    item: str | int | None = None
    share_type: ShareType | ShareScope | None = None
    share_with: str | None = None
    uid_owner: str | None = None
    limit: int = -1
    include_collections: bool = False
    by_source: bool = False
    check_expire_date: bool = True
    viewer: str | None = None
