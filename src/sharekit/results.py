"""Result building for share queries: per-member folding and de-duplication.

The query engine streams rows through a :class:`ResultBuilder`; the
merge rules themselves are pure functions over two records so they can
be tested without a database.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from .permissions import Permission
from .types import ShareType

if TYPE_CHECKING:
    from .types import ShareRecord


def _can_share(record: ShareRecord) -> bool:
    return bool(record.permissions & Permission.SHARE)


def fold_member_row(group: ShareRecord, member: ShareRecord) -> ShareRecord:
    """Fold a per-member row into the group row it overrides.

    The member keeps its own target but is presented as the group share.
    Permissions come from the group row, which always carries the current
    group permissions, unless the member row is zero: that member was
    excluded and stays at zero.
    """
    return replace(
        member,
        share_type=ShareType.GROUP,
        share_with=group.share_with,
        unique_name=True,
        permissions=group.permissions if member.permissions > 0 else 0,
    )


def merge_duplicate(kept: ShareRecord, incoming: ShareRecord) -> tuple[ShareRecord, bool]:
    """Merge two rows that reach the same viewer with the same target.

    Returns the merged record and whether *incoming* became its identity.
    The merged share is labelled a group share, so a reshare through it
    cannot claim more than a group member could.  If only *incoming*
    carries SHARE, its id and parent become the merged identity so a
    later reshare hangs below the path that actually allows it.
    """
    merged = replace(kept, grouped=list(kept.grouped))
    if merged.share_type != ShareType.GROUP:
        merged.share_type = ShareType.GROUP
        merged.share_with = incoming.share_with
    switched = not _can_share(kept) and _can_share(incoming)
    if switched:
        merged.id = incoming.id
        merged.parent = incoming.parent
    merged.permissions = kept.permissions | incoming.permissions
    return merged, switched


def _same_item(a: ShareRecord, b: ShareRecord, file_sharing: bool) -> bool:
    if file_sharing:
        return a.file_source == b.file_source and a.file_target == b.file_target
    return a.item_source == b.item_source and a.item_target == b.item_target


def group_items(items: list[ShareRecord], file_sharing: bool) -> list[ShareRecord]:
    """Collapse entries pointing at the same source under the same target.

    Items shared before target reuse existed may point at one source
    under different targets; those stay separate.  The kept entry lists
    every contributing row in ``grouped`` and carries the OR of their
    permissions; the first row holding SHARE becomes its identity.
    """
    result: list[ShareRecord] = []
    for item in items:
        for index, existing in enumerate(result):
            if not _same_item(item, existing, file_sharing):
                continue
            members = existing.grouped or [existing]
            representative = existing
            if not _can_share(existing) and _can_share(item):
                representative = item
            result[index] = replace(
                representative,
                permissions=existing.permissions | item.permissions,
                grouped=[*members, item],
            )
            break
        else:
            result.append(item)
    return result


class ResultBuilder:
    """Accumulates query rows keyed by share id, in first-seen order.

    *owner_view* is set when listing an owner's own shares; duplicates
    are only merged for the recipient view.
    """

    def __init__(self, *, owner_view: bool) -> None:
        self._owner_view = owner_view
        self._items: dict[int, ShareRecord] = {}
        self._targets: dict[int, int] = {}

    def absorb(self, row: ShareRecord) -> ShareRecord | None:
        """Fold *row* into what is already collected.

        Returns the row to keep processing, or None when it was consumed
        by an earlier entry or dropped.
        """
        if row.share_type == ShareType.GROUP_USER_UNIQUE and row.parent in self._items:
            group = self._items.pop(row.parent)  # type: ignore[arg-type]
            folded = fold_member_row(group, row)
            return folded if folded.permissions > 0 else None

        if self._owner_view:
            return row

        if row.id in self._targets:
            kept_id = self._targets[row.id]
            kept = self._items.get(kept_id)
            if kept is not None and kept.uid_owner == row.uid_owner:
                merged, switched = merge_duplicate(kept, row)
                if switched:
                    del self._items[kept_id]
                self._items[merged.id] = merged
            return None
        if row.parent:
            self._targets[row.parent] = row.id
        return row

    def add(self, row: ShareRecord) -> None:
        if row.permissions > 0:
            self._items[row.id] = row

    def items(self) -> list[ShareRecord]:
        return list(self._items.values())
