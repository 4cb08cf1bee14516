"""Tests for ShareEngine queries — recipient and owner views, merging, formats."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sharekit.backends.files import FORMAT_SHARED_STORAGE, FORMAT_TARGET_NAMES
from sharekit.permissions import Permission
from sharekit.types import FORMAT_STATUSES, ShareQuery, ShareScope, ShareType

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from sharekit.engine import ShareEngine

    from .conftest import FakeFilesystem

READ = int(Permission.READ)
UPDATE = int(Permission.UPDATE)
RESHARE = int(Permission.READ | Permission.UPDATE | Permission.SHARE)


# =========================================================================
# Recipient view
# =========================================================================


class TestSharedWithUser:
    async def test_direct_share(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        items = await engine.get_items_shared_with_user(async_session, "file", "bob")
        assert len(items) == 1
        item = items[0]
        assert item.file_target == "/notes.txt"
        assert item.uid_owner == "alice"
        assert item.displayname_owner == "Alice Adams"
        assert item.share_with_displayname == "Bob Brown"
        assert item.storage_id == "home::alice"

    async def test_nothing_for_owner(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        assert await engine.get_items_shared_with_user(async_session, "file", "alice") == []

    async def test_group_share_reaches_members(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.GROUP, "staff", READ)
        for member in ("bob", "carol"):
            items = await engine.get_items_shared_with_user(async_session, "file", member)
            assert [(i.share_type, i.file_target) for i in items] == [(ShareType.GROUP, "/notes.txt")]
        assert await engine.get_items_shared_with_user(async_session, "file", "dave") == []

    async def test_member_row_overrides_group_target(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.GROUP, "staff", READ)
        items = await engine.get_items_shared_with_user(async_session, "file", "bob")
        by_owner = {i.uid_owner: i for i in items}
        assert len(items) == 2
        assert by_owner["alice"].file_target == "/notes (2).txt"
        assert by_owner["alice"].share_type == ShareType.GROUP
        assert by_owner["alice"].share_with == "staff"
        assert by_owner["dave"].file_target == "/notes.txt"

    async def test_user_and_group_share_merged(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.GROUP, "staff", READ)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ | UPDATE)
        items = await engine.get_items_shared_with_user(async_session, "file", "bob")
        assert len(items) == 1
        assert items[0].permissions == READ | UPDATE
        assert len(items[0].grouped) == 2

    async def test_share_bit_stripped_when_resharing_disabled(
        self, make_engine: Callable[..., ShareEngine], async_session: AsyncSession
    ):
        engine = make_engine(allow_resharing=False)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", RESHARE)
        items = await engine.get_items_shared_with_user(async_session, "file", "bob")
        assert items[0].permissions == READ | UPDATE

    async def test_deleted_file_hidden(
        self, engine: ShareEngine, filesystem: FakeFilesystem, async_session: AsyncSession
    ):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        filesystem.remove_file(42)
        assert await engine.get_items_shared_with_user(async_session, "file", "bob") == []

    async def test_limit(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        items = await engine.get_items_shared_with_user(async_session, "file", "bob", limit=1)
        assert len(items) >= 1


class TestSingleItemLookups:
    async def test_by_target(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        item = await engine.get_item_shared_with(async_session, "bob", "file", "notes.txt")
        assert item is not None
        assert item.file_source == 42

    async def test_by_target_missing(self, engine: ShareEngine, async_session: AsyncSession):
        assert await engine.get_item_shared_with(async_session, "bob", "file", "/nothing.txt") is None

    async def test_by_source(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        item = await engine.get_item_shared_with_by_source(async_session, "file", 42, "bob")
        assert item is not None
        assert item.file_target == "/notes.txt"

    async def test_child_of_shared_folder(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "folder", 10, ShareType.USER, "bob", READ)
        assert await engine.get_item_shared_with_by_source(async_session, "file", 11, "bob") is None
        item = await engine.get_item_shared_with_by_source(
            async_session, "file", 11, "bob", include_collections=True
        )
        assert item is not None
        assert item.item_type == "folder"
        assert item.collection == {"item_type": "folder", "path": "docs"}

    async def test_member_row_lookup_without_resharing(
        self, make_engine: Callable[..., ShareEngine], async_session: AsyncSession
    ):
        engine = make_engine(allow_resharing=False)
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.GROUP, "staff", RESHARE)
        item = await engine.get_item_shared_with_by_source(async_session, "file", 42, "bob")
        assert item is not None
        assert item.file_target == "/notes (2).txt"
        assert not item.permissions & Permission.SHARE
        assert item.permissions == READ | UPDATE

    async def test_find_item_forces_single_result(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        query = ShareQuery(item_type="file", share_type=ShareScope.USER_AND_GROUPS, share_with="bob")
        item = await engine.find_item(async_session, query)
        assert item is not None and item.file_source == 42


# =========================================================================
# Owner view
# =========================================================================


class TestItemsShared:
    async def test_owner_lists_own_shares(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "carol", READ)
        items = await engine.get_items_shared(async_session, "alice", "file")
        assert sorted(i.share_with for i in items) == ["bob", "carol"]
        assert all(i.path == "/notes.txt" for i in items)

    async def test_member_rows_hidden_from_owner(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.GROUP, "staff", READ)
        items = await engine.get_items_shared(async_session, "alice", "file")
        assert [i.share_type for i in items] == [ShareType.GROUP]

    async def test_reshare_path_follows_parent_target(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", RESHARE)
        await engine.share_item(async_session, "bob", "file", 42, ShareType.USER, "carol", READ)
        items = await engine.get_items_shared(async_session, "bob", "file")
        assert len(items) == 1
        assert items[0].path == "/notes.txt"

    async def test_single_item(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        items = await engine.get_item_shared(async_session, "alice", "file", 42)
        assert [i.file_source for i in items] == [42]

    async def test_shared_items_owners(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        owners = await engine.get_shared_items_owners(async_session, "bob", "file")
        assert sorted(owners) == ["alice", "dave"]
        owners = await engine.get_shared_items_owners(async_session, "bob", "file", include_owner=True)
        assert owners[0] == "bob"


# =========================================================================
# Formats
# =========================================================================


class TestFormats:
    async def test_statuses(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "alice", "file", 42, ShareType.LINK, None, READ)
        statuses = await engine.get_items_shared(async_session, "alice", "file", format=FORMAT_STATUSES)
        assert statuses == {42: {"link": True, "path": "/notes.txt"}}

    async def test_statuses_without_link(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        statuses = await engine.get_items_shared(async_session, "alice", "file", format=FORMAT_STATUSES)
        assert statuses[42]["link"] is False

    async def test_backend_target_names(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        await engine.share_item(async_session, "dave", "file", 60, ShareType.USER, "bob", READ)
        names = await engine.get_items_shared_with_user(async_session, "file", "bob", format=FORMAT_TARGET_NAMES)
        assert names == ["/notes (2).txt", "/notes.txt"]

    async def test_backend_shared_storage(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        mapping = await engine.get_items_shared_with_user(
            async_session, "file", "bob", format=FORMAT_SHARED_STORAGE
        )
        assert list(mapping) == ["/notes.txt"]


# =========================================================================
# Raw lookups
# =========================================================================


class TestItemSharedWithUser:
    async def test_direct_rows(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        rows = await engine.get_item_shared_with_user(async_session, "file", 42, "bob")
        assert [r.share_with for r in rows] == ["bob"]
        assert rows[0].path == "files/notes.txt"

    async def test_falls_back_to_groups(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.GROUP, "staff", READ)
        rows = await engine.get_item_shared_with_user(async_session, "file", 42, "carol")
        assert [r.share_with for r in rows] == ["staff"]

    async def test_owner_filter(self, engine: ShareEngine, async_session: AsyncSession):
        await engine.share_item(async_session, "alice", "file", 42, ShareType.USER, "bob", READ)
        assert await engine.get_item_shared_with_user(async_session, "file", 42, "bob", owner="dave") == []

    async def test_unreachable_file_hidden(
        self, engine: ShareEngine, filesystem: FakeFilesystem, async_session: AsyncSession
    ):
        filesystem.add_file("alice", 70, "_trashbin/old.txt")
        await engine.store.insert(
            async_session,
            item_type="file",
            item_source="70",
            file_source=70,
            file_target="/old.txt",
            share_type=int(ShareType.USER),
            share_with="bob",
            uid_owner="alice",
            permissions=READ,
        )
        assert await engine.get_item_shared_with_user(async_session, "file", 70, "bob") == []
