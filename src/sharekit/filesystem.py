"""FilesystemResolver protocol — the file-cache and mount view of the host.

The sharing engine never touches storage itself.  It asks a resolver to
turn file ids into paths, to describe mounts, and to report the
file-cache row behind a share so reachability and display paths can be
computed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sharekit.types import FileMeta, MountInfo


@runtime_checkable
class FilesystemResolver(Protocol):
    """Path and mount lookups for file-dependent shares."""

    async def get_path(self, file_id: int, user_id: str) -> str | None:
        """Path of *file_id* relative to *user_id*'s files root, or None."""
        ...

    async def get_file_id(self, path: str, user_id: str) -> int | None:
        """File id of *path* in *user_id*'s files root, or None."""
        ...

    async def get_file_meta(self, file_id: int) -> FileMeta | None:
        """File-cache row for *file_id*; None when the file is gone."""
        ...

    async def get_parent_id(self, file_id: int) -> int | None:
        """Parent folder id of *file_id*; None at the top of the tree."""
        ...

    async def get_children(self, file_id: int) -> list[FileMeta]:
        """Direct and nested children of folder *file_id*."""
        ...

    async def is_sharable(self, path: str, user_id: str) -> bool: ...

    async def find_mounts_in(self, path: str) -> list[MountInfo]:
        """Mounts below the absolute path *path* (``/user/files/...``)."""
        ...

    async def find_mounts_by_storage_id(self, storage_id: str) -> list[MountInfo]: ...

    async def get_mount_by_numeric_id(self, storage: int) -> MountInfo | None: ...

    def get_root(self, user_id: str) -> str:
        """Absolute files root of *user_id*, e.g. ``/alice/files``."""
        ...
