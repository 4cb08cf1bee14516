"""TargetAllocator — collision-free recipient-side names for new shares."""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING

from .store import ShareFilter
from .types import FILE_ITEM_TYPES, ShareType, is_file_dependent
from .utils import unique_name

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from .backends.registry import BackendRegistry
    from .directory import Directory
    from .store import ShareStore
    from .types import ShareRecord

logger = logging.getLogger(__name__)


class TargetAllocator:
    """Allocates the name a recipient sees for a newly shared item.

    Names are unique among everything already shared with the recipient:
    a collision gets a ``" (2)"``, ``" (3)"``... suffix before the
    extension.  An item the recipient already has keeps its existing
    target, so re-running allocation for a persisted share is stable.
    Link and remote shares live outside any recipient's namespace and
    always get the canonical name.
    """

    def __init__(
        self,
        store: ShareStore,
        registry: BackendRegistry,
        directory: Directory,
    ) -> None:
        self._store = store
        self._registry = registry
        self._directory = directory

    async def item_target(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str,
        share_type: ShareType,
        share_with: str | None,
        uid_owner: str,
        suggested: str | None = None,
    ) -> str:
        """Allocate the ``item_target`` column for one recipient."""
        if suggested is not None:
            name = suggested
        else:
            backend = self._registry.resolve(item_type)
            name = await backend.display_name(item_source, uid_owner) or item_source
        if is_file_dependent(item_type):
            name = "/" + posixpath.basename(name.rstrip("/"))
        return await self._allocate(
            session,
            name=name,
            item_types=(item_type,),
            target_column="item_target",
            source_column="item_source",
            source=item_source,
            share_type=share_type,
            share_with=share_with,
        )

    async def file_target(
        self,
        session: AsyncSession,
        file_source: int,
        file_path: str | None,
        share_type: ShareType,
        share_with: str | None,
        suggested: str | None = None,
    ) -> str:
        """Allocate the ``file_target`` column for one recipient."""
        base = suggested or file_path or str(file_source)
        name = "/" + posixpath.basename(base.rstrip("/"))
        return await self._allocate(
            session,
            name=name,
            item_types=FILE_ITEM_TYPES,
            target_column="file_target",
            source_column="file_source",
            source=file_source,
            share_type=share_type,
            share_with=share_with,
        )

    async def _allocate(
        self,
        session: AsyncSession,
        *,
        name: str,
        item_types: tuple[str, ...],
        target_column: str,
        source_column: str,
        source: str | int,
        share_type: ShareType,
        share_with: str | None,
    ) -> str:
        if share_type in (ShareType.LINK, ShareType.REMOTE) or share_with is None:
            return name

        existing = await self._existing(session, item_types, share_type, share_with)
        taken: set[str] = set()
        current: str | None = None
        for row in existing:
            target = row.column(target_column)
            if target is None or row.permissions <= 0:
                continue
            if row.column(source_column) == source:
                # a per-member row overrides the group default
                if current is None or row.share_type == ShareType.GROUP_USER_UNIQUE:
                    current = target
                continue
            taken.add(target)
        if current is not None:
            return current

        target = unique_name(name, taken)
        if target != name:
            logger.debug("Target %s taken for %s, using %s", name, share_with, target)
        return target

    async def _existing(
        self,
        session: AsyncSession,
        item_types: tuple[str, ...],
        share_type: ShareType,
        share_with: str,
    ) -> list[ShareRecord]:
        if share_type == ShareType.GROUP:
            flt = ShareFilter(
                item_types=item_types,
                share_types=(int(ShareType.GROUP),),
                share_with=share_with,
            )
        else:
            flt = ShareFilter(
                item_types=item_types,
                recipient=share_with,
                recipient_groups=tuple(self._directory.get_user_group_ids(share_with)),
            )
        return await self._store.select(session, flt)
