"""sharekit: item sharing with users, groups, public links and federated peers.

Share resolution, recipient-side target allocation and reshare policy
over an async SQLModel share table.
"""

__version__ = "0.1.0"

from sharekit._manager import ShareManager
from sharekit._manager_async import ShareManagerAsync
from sharekit.backends import (
    BackendRegistry,
    FileShareBackend,
    FolderShareBackend,
    ShareBackend,
    SupportsCollection,
    SupportsFileDependent,
    SupportsParents,
)
from sharekit.config import SharingConfig
from sharekit.directory import Directory, InMemoryDirectory
from sharekit.engine import ShareEngine
from sharekit.events import Allow, Deny, EventType, ShareEvent, ShareEventBus
from sharekit.exceptions import (
    ExpirationInvalidError,
    InvalidBackendError,
    PermissionExceededError,
    PolicyViolationError,
    RemoteUnreachableError,
    SharingError,
    SourceNotFoundError,
    StorageError,
    UnknownBackendError,
)
from sharekit.filesystem import FilesystemResolver
from sharekit.models import Share, ShareBase
from sharekit.permissions import Permission
from sharekit.remote import RemoteNotifier
from sharekit.store import ShareStore
from sharekit.types import (
    FORMAT_NONE,
    FORMAT_STATUSES,
    ChildItem,
    FileMeta,
    MountInfo,
    ShareQuery,
    ShareRecord,
    ShareScope,
    ShareType,
)

__all__ = [
    "FORMAT_NONE",
    "FORMAT_STATUSES",
    "Allow",
    "BackendRegistry",
    "ChildItem",
    "Deny",
    "Directory",
    "EventType",
    "ExpirationInvalidError",
    "FileMeta",
    "FileShareBackend",
    "FilesystemResolver",
    "FolderShareBackend",
    "InMemoryDirectory",
    "InvalidBackendError",
    "MountInfo",
    "Permission",
    "PermissionExceededError",
    "PolicyViolationError",
    "RemoteNotifier",
    "RemoteUnreachableError",
    "Share",
    "ShareBackend",
    "ShareBase",
    "ShareEngine",
    "ShareEvent",
    "ShareEventBus",
    "ShareManager",
    "ShareManagerAsync",
    "ShareQuery",
    "ShareRecord",
    "ShareScope",
    "ShareStore",
    "ShareType",
    "SharingConfig",
    "SharingError",
    "SourceNotFoundError",
    "StorageError",
    "SupportsCollection",
    "SupportsFileDependent",
    "SupportsParents",
    "UnknownBackendError",
    "__version__",
]
