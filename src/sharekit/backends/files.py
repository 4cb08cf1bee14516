"""Built-in ``file`` and ``folder`` backends on top of a FilesystemResolver."""

from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING, Any

from sharekit.types import ChildItem, ShareType

if TYPE_CHECKING:
    from sharekit.filesystem import FilesystemResolver
    from sharekit.types import ShareRecord

FORMAT_SHARED_STORAGE = 0
"""``{file_target: record}`` mapping, one entry per mounted share."""

FORMAT_TARGET_NAMES = 1
"""Sorted list of recipient-side file targets."""


class FileShareBackend:
    """Shares single files, addressed by file id."""

    def __init__(self, filesystem: FilesystemResolver) -> None:
        self._fs = filesystem

    @staticmethod
    def _file_id(item_source: str) -> int | None:
        try:
            return int(item_source)
        except (TypeError, ValueError):
            return None

    async def is_valid_source(self, item_source: str, uid_owner: str) -> bool:
        return await self.get_file_path(item_source, uid_owner) is not None

    async def get_file_path(self, item_source: str, uid_owner: str) -> str | None:
        file_id = self._file_id(item_source)
        if file_id is None:
            return None
        return await self._fs.get_path(file_id, uid_owner)

    async def display_name(self, item_source: str, uid_owner: str) -> str | None:
        path = await self.get_file_path(item_source, uid_owner)
        if path is None:
            return None
        return posixpath.basename(path.rstrip("/")) or None

    def is_share_type_allowed(self, share_type: ShareType) -> bool:
        return share_type in (ShareType.USER, ShareType.GROUP, ShareType.LINK, ShareType.REMOTE)

    def format_items(self, items: list[ShareRecord], format: int, parameters: Any = None) -> Any:
        if format == FORMAT_SHARED_STORAGE:
            return {item.file_target: item for item in items if item.file_target}
        if format == FORMAT_TARGET_NAMES:
            return sorted({item.file_target for item in items if item.file_target})
        raise ValueError(f"Unknown format {format} for {type(self).__name__}")


class FolderShareBackend(FileShareBackend):
    """Shares folders; a folder is a collection of files and folders."""

    async def get_children(self, item_source: str) -> list[ChildItem]:
        file_id = self._file_id(item_source)
        if file_id is None:
            return []
        children = await self._fs.get_children(file_id)
        return [
            ChildItem(source=str(meta.file_id), file_path=posixpath.basename(meta.path))
            for meta in children
        ]

    async def get_parents(self, item_source: str) -> list[str]:
        file_id = self._file_id(item_source)
        parents: list[str] = []
        if file_id is None:
            return parents
        parent = await self._fs.get_parent_id(file_id)
        while parent:
            parents.append(str(parent))
            parent = await self._fs.get_parent_id(parent)
        return parents
