"""Shared fixtures for sharekit tests."""

from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from sharekit.backends.files import FileShareBackend, FolderShareBackend
from sharekit.backends.registry import BackendRegistry
from sharekit.config import SharingConfig
from sharekit.directory import InMemoryDirectory
from sharekit.engine import ShareEngine
from sharekit.events import ShareEventBus
from sharekit.models.shares import Share
from sharekit.store import ShareStore
from sharekit.types import FileMeta, MountInfo

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine


class FakeFilesystem:
    """In-memory file cache: one home storage per user, mounted at ``/<user>/``."""

    def __init__(self) -> None:
        self._files: dict[int, FileMeta] = {}
        self._owners: dict[int, str] = {}
        self._storages: dict[str, int] = {}
        self._mounts: list[MountInfo] = []
        self.unsharable: set[str] = set()

    def _storage(self, user_id: str) -> int:
        if user_id not in self._storages:
            self._storages[user_id] = len(self._storages) + 1
            self._mounts.append(MountInfo(mount_point=f"/{user_id}/", storage_id=f"home::{user_id}"))
        return self._storages[user_id]

    def add_file(self, owner: str, file_id: int, path: str, parent: int = 0) -> None:
        """Add *path* (relative to the owner's files root) as *file_id*."""
        self._files[file_id] = FileMeta(
            file_id=file_id,
            path="files" + path,
            storage=self._storage(owner),
            storage_id=f"home::{owner}",
            parent=parent,
        )
        self._owners[file_id] = owner

    def add_mount(self, mount: MountInfo) -> None:
        self._mounts.append(mount)

    def remove_file(self, file_id: int) -> None:
        self._files.pop(file_id, None)

    async def get_path(self, file_id: int, user_id: str) -> str | None:
        meta = self._files.get(file_id)
        if meta is None:
            return None
        return meta.path[len("files") :]

    async def get_file_id(self, path: str, user_id: str) -> int | None:
        wanted = "files" + "/" + path.lstrip("/")
        for file_id, meta in self._files.items():
            if meta.path == wanted:
                return file_id
        return None

    async def get_file_meta(self, file_id: int) -> FileMeta | None:
        return self._files.get(file_id)

    async def get_parent_id(self, file_id: int) -> int | None:
        meta = self._files.get(file_id)
        if meta is None or not meta.parent:
            return None
        return meta.parent

    async def get_children(self, file_id: int) -> list[FileMeta]:
        meta = self._files.get(file_id)
        if meta is None:
            return []
        prefix = meta.path + "/"
        return [m for m in self._files.values() if m.path.startswith(prefix)]

    async def is_sharable(self, path: str, user_id: str) -> bool:
        return path not in self.unsharable

    async def find_mounts_in(self, path: str) -> list[MountInfo]:
        return [m for m in self._mounts if m.mount_point.startswith(path) and m.mount_point != path]

    async def find_mounts_by_storage_id(self, storage_id: str) -> list[MountInfo]:
        return [m for m in self._mounts if m.storage_id == storage_id]

    async def get_mount_by_numeric_id(self, storage: int) -> MountInfo | None:
        for user_id, numeric in self._storages.items():
            if numeric == storage:
                return MountInfo(mount_point=f"/{user_id}/", storage_id=f"home::{user_id}")
        return None

    def get_root(self, user_id: str) -> str:
        return posixpath.join("/", user_id, "files")


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session, rolled back after each test."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def directory() -> InMemoryDirectory:
    """alice, bob and carol in ``staff``; dave on his own."""
    d = InMemoryDirectory()
    d.add_user("alice", display_name="Alice Adams")
    d.add_user("bob", display_name="Bob Brown")
    d.add_user("carol")
    d.add_user("dave")
    d.add_group("staff", ["alice", "bob", "carol"])
    return d


@pytest.fixture
def filesystem() -> FakeFilesystem:
    fs = FakeFilesystem()
    fs.add_file("alice", 10, "/docs")
    fs.add_file("alice", 11, "/docs/report.txt", parent=10)
    fs.add_file("alice", 42, "/notes.txt")
    fs.add_file("dave", 60, "/notes.txt")
    return fs


@pytest.fixture
def event_bus() -> ShareEventBus:
    return ShareEventBus()


@pytest.fixture
def store() -> ShareStore:
    return ShareStore(Share)


@pytest.fixture
def make_engine(
    directory: InMemoryDirectory,
    filesystem: FakeFilesystem,
    event_bus: ShareEventBus,
    store: ShareStore,
) -> Callable[..., ShareEngine]:
    """Factory for engines with ``file`` and ``folder`` backends and custom config."""

    def _make(notifier: Any = None, **config: Any) -> ShareEngine:
        config.setdefault("server_url", "https://cloud.example.com")
        cfg = SharingConfig(**config)
        registry = BackendRegistry(enabled=cfg.enabled)
        registry.register("file", FileShareBackend(filesystem))
        registry.register("folder", FolderShareBackend(filesystem), collection_of="file")
        return ShareEngine(
            cfg,
            registry,
            store,
            directory,
            filesystem,
            event_bus=event_bus,
            notifier=notifier,
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., ShareEngine]) -> ShareEngine:
    return make_engine()
