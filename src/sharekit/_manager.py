"""ShareManager — synchronous facade over ShareManagerAsync."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import create_async_engine

from ._manager_async import ShareManagerAsync
from .types import FORMAT_NONE

if TYPE_CHECKING:
    from datetime import date, datetime

    import httpx

    from .config import SharingConfig
    from .directory import Directory
    from .events import ShareEventBus
    from .filesystem import FilesystemResolver
    from .types import ShareRecord, ShareType

logger = logging.getLogger(__name__)


class ShareManager:
    """Synchronous sharing API backed by a private event loop in a background thread.

    The async manager, its database engine and every collaborator call
    run on that loop, so the filesystem resolver and backends may stay
    async even when the caller is plain sync code.

    Usage::

        with ShareManager("sqlite+aiosqlite:///shares.db", directory=d, filesystem=fs) as shares:
            shares.share_item("file", 42, ShareType.USER, "bob", Permission.READ, user_id="alice")
            shares.get_items_shared_with("file", user_id="bob")
    """

    def __init__(
        self,
        url: str = "sqlite+aiosqlite://",
        *,
        directory: Directory,
        filesystem: FilesystemResolver,
        config: SharingConfig | None = None,
        event_bus: ShareEventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        register_file_backends: bool = True,
    ) -> None:
        self._closed = False

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        self._async: ShareManagerAsync = self._run(
            self._async_init(url, directory, filesystem, config, event_bus, transport, register_file_backends)
        )

    async def _async_init(
        self,
        url: str,
        directory: Directory,
        filesystem: FilesystemResolver,
        config: SharingConfig | None,
        event_bus: ShareEventBus | None,
        transport: httpx.AsyncBaseTransport | None,
        register_file_backends: bool,
    ) -> ShareManagerAsync:
        engine = create_async_engine(url, echo=False)
        manager = ShareManagerAsync(
            engine=engine,
            directory=directory,
            filesystem=filesystem,
            config=config,
            event_bus=event_bus,
            transport=transport,
        )
        await manager.create_tables()
        if register_file_backends:
            manager.register_file_backends()
        return manager

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Dispose of the database engine, stop the event loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async.close())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)

    def __enter__(self) -> ShareManager:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def manager(self) -> ShareManagerAsync:
        """The async manager; only await its methods on this manager's loop."""
        return self._async

    def register_backend(
        self,
        item_type: str,
        backend: type | Any,
        collection_of: str | None = None,
    ) -> bool:
        return self._async.register_backend(item_type, backend, collection_of)

    # ------------------------------------------------------------------
    # Mutations (sync)
    # ------------------------------------------------------------------

    def share_item(
        self,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        share_with: str | None,
        permissions: int,
        *,
        user_id: str,
        item_source_name: str | None = None,
        expiration: date | datetime | None = None,
        password_changed: bool | None = None,
    ) -> bool | str:
        """Share an item. Returns the token for link shares, True otherwise."""
        return self._run(
            self._async.share_item(
                item_type,
                item_source,
                share_type,
                share_with,
                permissions,
                user_id=user_id,
                item_source_name=item_source_name,
                expiration=expiration,
                password_changed=password_changed,
            )
        )

    def unshare(
        self,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        share_with: str | None,
        *,
        user_id: str,
    ) -> bool:
        """Remove a share created by *user_id*. Returns False if there was none."""
        return self._run(self._async.unshare(item_type, item_source, share_type, share_with, user_id=user_id))

    def set_send_mail_status(
        self,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        recipient: str,
        status: bool,
    ) -> None:
        self._run(self._async.set_send_mail_status(item_type, item_source, share_type, recipient, status))

    def set_expiration_date(
        self,
        item_type: str,
        item_source: str | int,
        expire_date: date | datetime | None,
        *,
        user_id: str,
    ) -> bool:
        return self._run(self._async.set_expiration_date(item_type, item_source, expire_date, user_id=user_id))

    # ------------------------------------------------------------------
    # Queries (sync)
    # ------------------------------------------------------------------

    def get_items_shared_with(
        self,
        item_type: str,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        return self._run(
            self._async.get_items_shared_with(
                item_type,
                user_id=user_id,
                format=format,
                parameters=parameters,
                limit=limit,
                include_collections=include_collections,
            )
        )

    def get_items_shared_with_user(
        self,
        item_type: str,
        user: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        return self._run(
            self._async.get_items_shared_with_user(item_type, user, format, parameters, limit, include_collections)
        )

    def get_item_shared_with(
        self,
        item_type: str,
        item_target: str,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        return self._run(
            self._async.get_item_shared_with(
                item_type,
                item_target,
                user_id=user_id,
                format=format,
                parameters=parameters,
                include_collections=include_collections,
            )
        )

    def get_item_shared_with_by_source(
        self,
        item_type: str,
        item_source: str | int,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        return self._run(
            self._async.get_item_shared_with_by_source(
                item_type,
                item_source,
                user_id=user_id,
                format=format,
                parameters=parameters,
                include_collections=include_collections,
            )
        )

    def get_item_shared_with_user(
        self,
        item_type: str,
        item_source: str | int,
        user: str | None,
        owner: str | None = None,
        share_type: ShareType | None = None,
    ) -> list[ShareRecord]:
        return self._run(self._async.get_item_shared_with_user(item_type, item_source, user, owner, share_type))

    def get_items_shared(
        self,
        item_type: str,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        return self._run(
            self._async.get_items_shared(
                item_type,
                user_id=user_id,
                format=format,
                parameters=parameters,
                limit=limit,
                include_collections=include_collections,
            )
        )

    def get_item_shared(
        self,
        item_type: str,
        item_source: str | int,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        return self._run(
            self._async.get_item_shared(
                item_type,
                item_source,
                user_id=user_id,
                format=format,
                parameters=parameters,
                include_collections=include_collections,
            )
        )

    def get_shared_items_owners(
        self,
        user: str,
        item_type: str,
        include_collections: bool = False,
        include_owner: bool = False,
    ) -> list[str]:
        return self._run(self._async.get_shared_items_owners(user, item_type, include_collections, include_owner))

    def get_share_by_token(
        self,
        token: str,
        check_password_protection: bool = True,
        authenticated_share_id: int | str | None = None,
    ) -> ShareRecord | None:
        return self._run(self._async.get_share_by_token(token, check_password_protection, authenticated_share_id))

    def check_password_protected_share(
        self,
        record: ShareRecord,
        authenticated_share_id: int | str | None = None,
    ) -> bool:
        return self._async.check_password_protected_share(record, authenticated_share_id)

    def verify_link_password(self, record: ShareRecord, password: str) -> bool:
        return self._async.verify_link_password(record, password)

    def is_sharing_disabled_for_user(self, user_id: str) -> bool:
        return self._async.is_sharing_disabled_for_user(user_id)
