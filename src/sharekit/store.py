"""ShareStore — share row CRUD with no sharing policy.

Stateless service that receives the share model at construction
and a session at call time.  Every read converts rows to
:class:`ShareRecord` on the way out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, or_, update
from sqlmodel import select

from .types import ShareRecord, ShareType

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from sharekit.models.shares import ShareBase

logger = logging.getLogger(__name__)


@dataclass
class ShareFilter:
    """Conjunction of conditions on the share relation.

    Empty fields do not constrain.  ``recipient`` with
    ``recipient_groups`` selects the "user and their groups" view:
    user and per-member rows addressed to the recipient, group rows
    addressed to one of the groups, never rows the recipient owns.
    """

    item_types: tuple[str, ...] = ()
    share_types: tuple[int, ...] = ()
    exclude_share_types: tuple[int, ...] = ()
    share_with: str | None = None
    share_with_in: tuple[str, ...] = ()
    recipient: str | None = None
    recipient_groups: tuple[str, ...] = ()
    uid_owner: str | None = None
    match: dict[str, Any] = field(default_factory=dict)
    """Column name -> value equality conditions."""
    match_or_item_types: tuple[str, ...] = ()
    """Widen ``match`` to also accept any row of these item types."""
    require_file_target: bool = False
    token: str | None = None


class ShareStore:
    """Parameterized access to the share table.

    Constructor receives the concrete share model so deployments can use
    a prefixed table name.
    """

    def __init__(self, share_model: type[ShareBase]) -> None:
        self._share_model = share_model

    @property
    def model(self) -> type[ShareBase]:
        return self._share_model

    def _conditions(self, flt: ShareFilter) -> list[Any]:
        model = self._share_model
        conds: list[Any] = []
        if flt.item_types:
            conds.append(model.item_type.in_(flt.item_types))  # type: ignore[union-attr]
        if flt.share_types:
            conds.append(model.share_type.in_(flt.share_types))  # type: ignore[union-attr]
        for excluded in flt.exclude_share_types:
            conds.append(model.share_type != excluded)
        if flt.share_with is not None:
            conds.append(model.share_with == flt.share_with)
        if flt.share_with_in:
            conds.append(model.share_with.in_(flt.share_with_in))  # type: ignore[union-attr]
        if flt.recipient is not None:
            direct = and_(
                model.share_type.in_(  # type: ignore[union-attr]
                    (int(ShareType.USER), int(ShareType.GROUP_USER_UNIQUE))
                ),
                model.share_with == flt.recipient,
            )
            if flt.recipient_groups:
                via_group = and_(
                    model.share_type == int(ShareType.GROUP),
                    model.share_with.in_(flt.recipient_groups),  # type: ignore[union-attr]
                )
                conds.append(or_(direct, via_group))
            else:
                conds.append(direct)
            conds.append(model.uid_owner != flt.recipient)
        if flt.uid_owner is not None:
            conds.append(model.uid_owner == flt.uid_owner)
        if flt.match:
            matched = and_(*(getattr(model, col) == value for col, value in flt.match.items()))
            if flt.match_or_item_types:
                matched = or_(matched, model.item_type.in_(flt.match_or_item_types))  # type: ignore[union-attr]
            conds.append(matched)
        if flt.require_file_target:
            conds.append(model.file_target.is_not(None))  # type: ignore[union-attr]
        if flt.token is not None:
            conds.append(model.token == flt.token)
        return conds

    async def insert(self, session: AsyncSession, **values: Any) -> int:
        """Insert one share row and return its id. Flushes but does not commit."""
        share = self._share_model(**values)
        session.add(share)
        await session.flush()
        assert share.id is not None
        return share.id

    async def get(self, session: AsyncSession, share_id: int) -> ShareRecord | None:
        row = await session.get(self._share_model, share_id)
        return ShareRecord.from_row(row) if row is not None else None

    async def select(
        self,
        session: AsyncSession,
        flt: ShareFilter,
        *,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[ShareRecord]:
        """Rows matching *flt*, ordered by id (ascending unless *descending*)."""
        model = self._share_model
        stmt = select(model).where(*self._conditions(flt))
        stmt = stmt.order_by(model.id.desc() if descending else model.id.asc())  # type: ignore[union-attr]
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return [ShareRecord.from_row(row) for row in result.scalars().all()]

    async def find_by_token(self, session: AsyncSession, token: str) -> ShareRecord | None:
        rows = await self.select(session, ShareFilter(token=token), limit=1)
        return rows[0] if rows else None

    async def children(
        self,
        session: AsyncSession,
        parents: list[int],
        *,
        uid_owner: str | None = None,
        exclude_group_children: bool = False,
    ) -> list[ShareRecord]:
        """Rows whose ``parent`` is one of *parents*."""
        model = self._share_model
        stmt = select(model).where(model.parent.in_(parents))  # type: ignore[union-attr]
        if uid_owner is not None:
            stmt = stmt.where(model.uid_owner == uid_owner)
        if exclude_group_children:
            stmt = stmt.where(model.share_type != int(ShareType.GROUP_USER_UNIQUE))
        stmt = stmt.order_by(model.id.asc())  # type: ignore[union-attr]
        result = await session.execute(stmt)
        return [ShareRecord.from_row(row) for row in result.scalars().all()]

    async def delete_cascading(
        self,
        session: AsyncSession,
        share_id: int,
        *,
        exclude_parent: bool = False,
        uid_owner: str | None = None,
        new_parent: int | None = None,
        exclude_group_children: bool = False,
    ) -> list[ShareRecord]:
        """Delete *share_id* and, recursively, every row derived from it.

        With *new_parent* the direct children are re-parented to it
        instead of being deleted.  *uid_owner* limits the first level of
        children to rows created by that user.  Returns the deleted
        children (not the row itself).
        """
        ids = [share_id]
        deleted: list[ShareRecord] = []
        change_parent: list[int] = []
        parents = [share_id]
        first_level = True
        while parents:
            rows = await self.children(
                session,
                parents,
                uid_owner=uid_owner if first_level else None,
                exclude_group_children=exclude_group_children,
            )
            first_level = False
            parents = []
            for row in rows:
                if new_parent is not None:
                    change_parent.append(row.id)
                else:
                    deleted.append(row)
                    ids.append(row.id)
                    parents.append(row.id)

        if exclude_parent:
            ids.remove(share_id)

        model = self._share_model
        if change_parent:
            await session.execute(
                update(model)
                .where(model.id.in_(change_parent))  # type: ignore[union-attr]
                .values(parent=new_parent)
            )
        if ids:
            await session.execute(
                delete(model).where(model.id.in_(ids))  # type: ignore[union-attr]
            )
        await session.flush()
        logger.debug("Deleted shares %s (re-parented %s)", ids, change_parent)
        return deleted

    async def update_mail_send(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str,
        share_type: int,
        share_with: str,
        status: bool,
    ) -> int:
        """Set the mail-sent flag on matching rows. Returns the number updated."""
        model = self._share_model
        result = await session.execute(
            update(model)
            .where(
                model.item_type == item_type,
                model.item_source == item_source,
                model.share_type == int(share_type),
                model.share_with == share_with,
            )
            .values(mail_send=status)
        )
        await session.flush()
        return result.rowcount  # type: ignore[return-value]

    async def update_expiration(
        self,
        session: AsyncSession,
        share_id: int,
        expiration: datetime | None,
    ) -> None:
        model = self._share_model
        await session.execute(
            update(model).where(model.id == share_id).values(expiration=expiration)
        )
        await session.flush()
