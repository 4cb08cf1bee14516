"""ShareManagerAsync — async entry point owning sessions and collaborators."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .backends.files import FileShareBackend, FolderShareBackend
from .backends.registry import BackendRegistry
from .config import SharingConfig
from .engine import ShareEngine
from .events import ShareEventBus
from .models.shares import Share
from .remote import RemoteNotifier
from .store import ShareStore
from .types import FORMAT_NONE

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from datetime import date, datetime

    import httpx
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .directory import Directory
    from .filesystem import FilesystemResolver
    from .models.shares import ShareBase
    from .types import ShareRecord, ShareType

logger = logging.getLogger(__name__)


class ShareManagerAsync:
    """Async facade over :class:`ShareEngine`.

    Every public operation runs in its own session: committed when the
    operation returns, rolled back when it raises, so a failed share
    leaves no rows behind.

    Usage::

        engine = create_async_engine("sqlite+aiosqlite:///shares.db")
        manager = ShareManagerAsync(engine=engine, directory=directory, filesystem=fs)
        await manager.create_tables()
        manager.register_file_backends()
        token = await manager.share_item("file", 42, ShareType.LINK, None, Permission.READ, user_id="alice")
    """

    def __init__(
        self,
        *,
        directory: Directory,
        filesystem: FilesystemResolver,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        config: SharingConfig | None = None,
        share_model: type[ShareBase] | None = None,
        event_bus: ShareEventBus | None = None,
        notifier: RemoteNotifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if engine is not None and session_factory is not None:
            raise ValueError("Provide engine or session_factory, not both")
        if engine is None and session_factory is None:
            raise ValueError("Provide engine or session_factory")

        self._db_engine = engine
        self._session_factory = session_factory or async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._config = config or SharingConfig()
        self._event_bus = event_bus or ShareEventBus()
        self._filesystem = filesystem
        self._registry = BackendRegistry(enabled=self._config.enabled)
        self._store = ShareStore(share_model or Share)
        if notifier is None:
            notifier = RemoteNotifier(self._config, self._event_bus, transport=transport)
        self._engine = ShareEngine(
            self._config,
            self._registry,
            self._store,
            directory,
            filesystem,
            event_bus=self._event_bus,
            notifier=notifier,
        )

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def create_tables(self) -> None:
        """Create the share table if it does not exist yet."""
        if self._db_engine is None:
            raise ValueError("create_tables() needs an engine")
        model = self._store.model
        async with self._db_engine.begin() as conn:
            await conn.run_sync(
                lambda c: model.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
            )

    def register_backend(
        self,
        item_type: str,
        backend: type | Any,
        collection_of: str | None = None,
    ) -> bool:
        return self._registry.register(item_type, backend, collection_of)

    def register_file_backends(self) -> None:
        """Register the built-in ``file`` and ``folder`` backends."""
        self._registry.register("file", FileShareBackend(self._filesystem))
        self._registry.register("folder", FolderShareBackend(self._filesystem), collection_of="file")

    @property
    def engine(self) -> ShareEngine:
        return self._engine

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    @property
    def event_bus(self) -> ShareEventBus:
        return self._event_bus

    @property
    def config(self) -> SharingConfig:
        return self._config

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Dispose of the database engine, if this manager was given one."""
        if self._db_engine is not None:
            await self._db_engine.dispose()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def share_item(
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
        async with self._session() as session:
            return await self._engine.share_item(
                session,
                user_id,
                item_type,
                item_source,
                share_type,
                share_with,
                permissions,
                item_source_name,
                expiration,
                password_changed,
            )

    async def unshare(
        self,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        share_with: str | None,
        *,
        user_id: str,
    ) -> bool:
        async with self._session() as session:
            return await self._engine.unshare(session, item_type, item_source, share_type, share_with, user_id)

    async def set_send_mail_status(
        self,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        recipient: str,
        status: bool,
    ) -> None:
        async with self._session() as session:
            await self._engine.set_send_mail_status(session, item_type, item_source, share_type, recipient, status)

    async def set_expiration_date(
        self,
        item_type: str,
        item_source: str | int,
        expire_date: date | datetime | None,
        *,
        user_id: str,
    ) -> bool:
        async with self._session() as session:
            return await self._engine.set_expiration_date(session, user_id, item_type, item_source, expire_date)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_items_shared_with(
        self,
        item_type: str,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        """Items of *item_type* shared with the acting user."""
        return await self.get_items_shared_with_user(
            item_type, user_id, format, parameters, limit, include_collections
        )

    async def get_items_shared_with_user(
        self,
        item_type: str,
        user: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        async with self._session() as session:
            return await self._engine.get_items_shared_with_user(
                session, item_type, user, format, parameters, limit, include_collections
            )

    async def get_item_shared_with(
        self,
        item_type: str,
        item_target: str,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        async with self._session() as session:
            return await self._engine.get_item_shared_with(
                session, user_id, item_type, item_target, format, parameters, include_collections
            )

    async def get_item_shared_with_by_source(
        self,
        item_type: str,
        item_source: str | int,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        async with self._session() as session:
            return await self._engine.get_item_shared_with_by_source(
                session, item_type, item_source, user_id, format, parameters, include_collections
            )

    async def get_item_shared_with_user(
        self,
        item_type: str,
        item_source: str | int,
        user: str | None,
        owner: str | None = None,
        share_type: ShareType | None = None,
    ) -> list[ShareRecord]:
        async with self._session() as session:
            return await self._engine.get_item_shared_with_user(
                session, item_type, item_source, user, owner, share_type
            )

    async def get_items_shared(
        self,
        item_type: str,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        async with self._session() as session:
            return await self._engine.get_items_shared(
                session, user_id, item_type, format, parameters, limit, include_collections
            )

    async def get_item_shared(
        self,
        item_type: str,
        item_source: str | int,
        *,
        user_id: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        async with self._session() as session:
            return await self._engine.get_item_shared(
                session, user_id, item_type, item_source, format, parameters, include_collections
            )

    async def get_shared_items_owners(
        self,
        user: str,
        item_type: str,
        include_collections: bool = False,
        include_owner: bool = False,
    ) -> list[str]:
        async with self._session() as session:
            return await self._engine.get_shared_items_owners(
                session, user, item_type, include_collections, include_owner
            )

    async def get_share_by_token(
        self,
        token: str,
        check_password_protection: bool = True,
        authenticated_share_id: int | str | None = None,
    ) -> ShareRecord | None:
        async with self._session() as session:
            return await self._engine.get_share_by_token(
                session, token, check_password_protection, authenticated_share_id
            )

    def check_password_protected_share(
        self,
        record: ShareRecord,
        authenticated_share_id: int | str | None = None,
    ) -> bool:
        return self._engine.check_password_protected_share(record, authenticated_share_id)

    def verify_link_password(self, record: ShareRecord, password: str) -> bool:
        return self._engine.verify_link_password(record, password)

    def is_sharing_disabled_for_user(self, user_id: str) -> bool:
        return self._engine.is_sharing_disabled_for_user(user_id)
