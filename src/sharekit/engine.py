"""ShareEngine — share creation, reshare checks, unshare and share queries.

Every operation takes an ``AsyncSession`` and never commits; the caller
owns the transaction.  Validation always runs before the first write of
an operation.
"""

from __future__ import annotations

import logging
import posixpath
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from .backends.protocol import SupportsCollection, SupportsFileDependent, SupportsParents
from .events import Deny, EventType, ShareEvent, ShareEventBus
from .exceptions import (
    ExpirationInvalidError,
    PermissionExceededError,
    PolicyViolationError,
    SourceNotFoundError,
    StorageError,
)
from .expiration import ExpirationPolicy
from .permissions import Permission, exceeds, strip
from .results import ResultBuilder, group_items
from .security import verify_password
from .store import ShareFilter
from .strategies import (
    GroupShareStrategy,
    LinkShareStrategy,
    RemoteShareStrategy,
    ShareRequest,
    UserShareStrategy,
)
from .targets import TargetAllocator
from .types import (
    FILE_ITEM_TYPES,
    FORMAT_NONE,
    FORMAT_STATUSES,
    ReshareInfo,
    ShareQuery,
    ShareScope,
    ShareType,
    is_file_dependent,
)
from .utils import is_file_reachable, normalize_path, split_user_remote

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from .backends.protocol import ShareBackend
    from .backends.registry import BackendRegistry
    from .config import SharingConfig
    from .directory import Directory
    from .filesystem import FilesystemResolver
    from .remote import RemoteNotifier
    from .store import ShareStore
    from .strategies import ShareStrategy
    from .types import MountInfo, ShareRecord

logger = logging.getLogger(__name__)


def _file_id(value: str | int | None) -> int | None:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Re-raise store failures during *action* as :class:`StorageError`."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("%s failed", action, exc_info=True)
        raise StorageError(f"{action} failed: {exc.__class__.__name__}") from exc


class ShareEngine:
    """Sharing policy on top of a :class:`ShareStore`.

    Collaborators are injected: the backend registry, the user/group
    directory, the filesystem resolver, the event bus and, for federated
    shares, a :class:`RemoteNotifier`.
    """

    def __init__(
        self,
        config: SharingConfig,
        registry: BackendRegistry,
        store: ShareStore,
        directory: Directory,
        filesystem: FilesystemResolver,
        *,
        event_bus: ShareEventBus | None = None,
        notifier: RemoteNotifier | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._store = store
        self._directory = directory
        self._fs = filesystem
        self._event_bus = event_bus or ShareEventBus()
        self._notifier = notifier
        self._allocator = TargetAllocator(store, registry, directory)
        self._expiration = ExpirationPolicy(config)
        self._strategies: dict[ShareType, ShareStrategy] = {
            strategy.share_type: strategy
            for strategy in (
                UserShareStrategy(self),
                GroupShareStrategy(self),
                LinkShareStrategy(self),
                RemoteShareStrategy(self),
            )
        }

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def config(self) -> SharingConfig:
        return self._config

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    @property
    def store(self) -> ShareStore:
        return self._store

    @property
    def directory(self) -> Directory:
        return self._directory

    @property
    def event_bus(self) -> ShareEventBus:
        return self._event_bus

    @property
    def notifier(self) -> RemoteNotifier | None:
        return self._notifier

    @property
    def expiration(self) -> ExpirationPolicy:
        return self._expiration

    @property
    def allocator(self) -> TargetAllocator:
        return self._allocator

    def is_sharing_disabled_for_user(self, user_id: str | None) -> bool:
        """True when *user_id* belongs to one of the groups excluded from sharing."""
        if not user_id or not self._config.exclude_groups:
            return False
        return bool(self._config.exclude_groups & set(self._directory.get_user_group_ids(user_id)))

    # ------------------------------------------------------------------
    # Share creation
    # ------------------------------------------------------------------

    async def share_item(
        self,
        session: AsyncSession,
        user_id: str,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        share_with: str | None,
        permissions: int,
        item_source_name: str | None = None,
        expiration: date | datetime | None = None,
        password_changed: bool | None = None,
    ) -> bool | str:
        """Share an item as *user_id*.

        Returns True for user, group and remote shares and the token for
        link shares.  For link shares *share_with* is the plain password.

        Raises:
            UnknownBackendError: No backend for *item_type*.
            SourceNotFoundError: The item does not exist.
            PolicyViolationError: A sharing rule forbids the share.
            PermissionExceededError: A reshare asks for more than was granted.
            ExpirationInvalidError: *expiration* is in the past or too far out.
            RemoteUnreachableError: The federated peer did not accept the share.
            StorageError: The share store failed while writing.
        """
        item_source = str(item_source)
        backend = self._registry.resolve(item_type)
        name = item_source_name or item_source

        try:
            share_type = ShareType(share_type)
        except ValueError:
            share_type = None  # type: ignore[assignment]
        strategy = self._strategies.get(share_type) if share_type is not None else None
        if strategy is None:
            message = f"Share type {share_type} is not valid for {item_source}"
            logger.debug(message)
            raise PolicyViolationError(message)

        if not backend.is_share_type_allowed(share_type):
            message = f"Sharing {name} failed, because the backend does not allow shares from type {int(share_type)}"
            logger.debug(message)
            raise PolicyViolationError(message)

        if is_file_dependent(item_type):
            file_id = _file_id(item_source)
            path = await self._fs.get_path(file_id, user_id) if file_id is not None else None
            if not path:
                message = f"Sharing {name} failed, because the file does not exist"
                logger.debug(message)
                raise SourceNotFoundError(message)
            if not await self._fs.is_sharable(path, user_id) or self.is_sharing_disabled_for_user(user_id):
                message = f"You are not allowed to share {path}"
                logger.debug(message)
                raise PolicyViolationError(message)

            if item_type == "folder":
                mounts = await self._fs.find_mounts_in(f"/{user_id}/files{path.rstrip('/')}/")
                if any(mount.is_shared_storage for mount in mounts):
                    message = f'Sharing "{name}" failed, because it contains files shared with you!'
                    logger.debug(message)
                    raise PolicyViolationError(message)

        if item_type == "file":
            permissions = strip(permissions, Permission.DELETE)

        validated: datetime | None = None
        if expiration is not None:
            validated = self._expiration.validate_expire_date(expiration, datetime.now(UTC))

        request = ShareRequest(
            uid_owner=user_id,
            item_type=item_type,
            item_source=item_source,
            share_type=share_type,
            share_with=share_with,
            permissions=int(permissions),
            item_source_name=name,
            expiration=validated,
            password_changed=password_changed,
        )
        with _storage_errors(f"Sharing {name}"):
            return await strategy.share(session, request)

    async def check_reshare(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str,
        share_type: ShareType,
        share_with: str | None,
        uid_owner: str,
        permissions: int,
        item_source_name: str | None = None,
        expiration: datetime | None = None,
    ) -> ReshareInfo:
        """Decide whether sharing *item_source* as *uid_owner* is a reshare.

        A reshare hangs below the share that gave *uid_owner* access and
        may not exceed its permissions.  A root share must name a source
        the backend recognizes.
        """
        backend = self._registry.resolve(item_type)
        name = item_source_name or item_source
        file_dependent = is_file_dependent(item_type)
        column = "file_source" if file_dependent else "item_source"
        source_key: str | int | None = _file_id(item_source) if file_dependent else item_source

        upstream = await self.find_item(
            session,
            ShareQuery(
                item_type=item_type,
                item=item_source,
                share_type=ShareScope.USER_AND_GROUPS,
                share_with=uid_owner,
                limit=1,
                include_collections=True,
                by_source=True,
            ),
        )
        if upstream is not None and upstream.uid_owner == share_with and share_type == ShareType.USER:
            message = f"Sharing failed, because the user {share_with} is the original sharer"
            logger.debug(message)
            raise PolicyViolationError(message)

        if upstream is not None and upstream.uid_owner != uid_owner:
            if not (self._config.allow_resharing and upstream.permissions & Permission.SHARE):
                message = f"Sharing {name} failed, because resharing is not allowed"
                logger.debug(message)
                raise PolicyViolationError(message)
            if exceeds(permissions, upstream.permissions):
                message = f"Sharing {name} failed, because the permissions exceed permissions granted to {uid_owner}"
                logger.debug(message)
                raise PermissionExceededError(message)

            inherited = expiration
            if upstream.expiration is not None and (expiration is None or upstream.expiration < expiration):
                inherited = upstream.expiration

            # Only a reshare of the very same item reuses the upstream
            # names; a child of a shared folder gets names of its own.
            if upstream.column(column) == source_key:
                return ReshareInfo(
                    parent=upstream.id,
                    item_source=upstream.item_source,
                    file_source=upstream.file_source,
                    file_path=upstream.file_target,
                    suggested_item_target=upstream.item_target,
                    suggested_file_target=upstream.file_target,
                    expiration=inherited,
                )
            file_path, file_source = await self._file_identity(backend, item_type, item_source, uid_owner)
            return ReshareInfo(
                parent=upstream.id,
                item_source=item_source,
                file_source=file_source,
                file_path=file_path,
                expiration=inherited,
            )

        if not await backend.is_valid_source(item_source, uid_owner):
            message = f"Sharing {item_source} failed, because the sharing backend for {item_type} could not find its source"
            logger.debug(message)
            raise SourceNotFoundError(message)

        file_path = file_source = None
        if isinstance(backend, SupportsFileDependent):
            file_path, file_source = await self._file_identity(backend, item_type, item_source, uid_owner)
            if file_source is None:
                message = f"Sharing {item_source} failed, because the file could not be found in the file cache"
                logger.debug(message)
                raise SourceNotFoundError(message)
        return ReshareInfo(
            parent=None,
            item_source=item_source,
            file_source=file_source,
            file_path=file_path,
            expiration=expiration,
        )

    async def _file_identity(
        self,
        backend: ShareBackend,
        item_type: str,
        item_source: str,
        uid_owner: str,
    ) -> tuple[str | None, int | None]:
        """File path and file id behind *item_source*, for file-dependent backends."""
        if not isinstance(backend, SupportsFileDependent):
            return None, None
        file_path = await backend.get_file_path(item_source, uid_owner)
        if is_file_dependent(item_type):
            return file_path, _file_id(item_source)
        if file_path is None:
            return None, None
        return file_path, await self._fs.get_file_id(file_path, uid_owner)

    async def put(
        self,
        session: AsyncSession,
        request: ShareRequest,
        *,
        members: list[str] | None = None,
        token: str | None = None,
    ) -> int:
        """Materialize a share: the row itself plus per-member rows for groups.

        A group share writes its group row first; members whose target
        differs from the group target get a ``GROUP_USER_UNIQUE`` row
        below it.  Returns the id of the share row (the group row for
        group shares).
        """
        item_type, uid_owner, share_type = request.item_type, request.uid_owner, request.share_type
        reshare = await self.check_reshare(
            session,
            item_type,
            request.item_source,
            share_type,
            request.share_with,
            uid_owner,
            request.permissions,
            request.item_source_name,
            request.expiration,
        )
        item_source = reshare.item_source
        file_source = reshare.file_source
        file_path = reshare.file_path
        expiration = reshare.expiration if share_type == ShareType.LINK else None
        parent = reshare.parent

        is_group = share_type == ShareType.GROUP
        group_item_target: str | None = None
        group_file_target: str | None = None
        if is_group:
            users = list(members or [])
            group_item_target = await self._allocator.item_target(
                session, item_type, item_source, share_type, request.share_with, uid_owner,
                reshare.suggested_item_target,
            )
            if file_source is not None:
                group_file_target = await self._allocator.file_target(
                    session, file_source, file_path, share_type, request.share_with,
                    reshare.suggested_file_target,
                )
            item_target = group_item_target
            file_target = group_file_target
        else:
            users = [request.share_with]
            item_target = await self._allocator.item_target(
                session, item_type, item_source, share_type, request.share_with, uid_owner,
                reshare.suggested_item_target,
            )
            file_target = None

        decision = await self._event_bus.check(
            ShareEvent(
                event_type=EventType.PRE_SHARED,
                item_type=item_type,
                item_source=item_source,
                share_type=share_type,
                share_with=request.share_with,
                uid_owner=uid_owner,
                permissions=request.permissions,
                parent=parent,
                item_target=item_target,
                file_source=file_source,
                token=token,
                expiration=expiration,
            )
        )
        if isinstance(decision, Deny):
            logger.debug("Sharing %s vetoed: %s", request.item_source_name, decision.reason)
            raise PolicyViolationError(decision.reason)

        user_share_type = ShareType.GROUP_USER_UNIQUE if is_group else share_type
        source_key: str | int | None = file_source if is_file_dependent(item_type) else item_source
        rows: list[dict[str, Any]] = []
        for user in users:
            existing = await self.find_item(
                session,
                ShareQuery(
                    item_type=item_type,
                    item=source_key,
                    share_type=ShareScope.USER_AND_GROUPS,
                    share_with=user,
                    limit=1,
                    include_collections=True,
                    by_source=True,
                ),
            )
            if existing is not None and existing.item_source == item_source:
                # The recipient already has this item; keep the names it knows.
                item_target = existing.item_target
                file_target = existing.file_target
                if is_group and item_target == group_item_target:
                    continue
            elif existing is None and not is_group:
                item_target = await self._allocator.item_target(
                    session, item_type, item_source, user_share_type, user, uid_owner,
                    reshare.suggested_item_target,
                )
                file_target = None
                if file_source is not None:
                    file_target = await self._allocator.file_target(
                        session, file_source, file_path, user_share_type, user,
                        reshare.suggested_file_target,
                    )
            else:
                item_target = await self._allocator.item_target(
                    session, item_type, item_source, ShareType.USER, user, uid_owner,
                    reshare.suggested_item_target,
                )
                file_target = None
                if file_source is not None:
                    file_target = await self._allocator.file_target(
                        session, file_source, file_path, ShareType.USER, user,
                        reshare.suggested_file_target,
                    )
                if item_target == group_item_target and (file_source is None or file_target == group_file_target):
                    continue

            rows.append(
                {
                    "item_target": item_target,
                    "file_target": file_target,
                    "share_type": int(user_share_type),
                    "share_with": user,
                }
            )

        now = datetime.now(UTC)
        common = {
            "item_type": item_type,
            "item_source": item_source,
            "uid_owner": uid_owner,
            "uid_initiator": uid_owner,
            "permissions": request.permissions,
            "share_time": now,
            "file_source": file_source,
            "token": token,
            "expiration": expiration,
        }

        share_id: int | None = None
        if is_group:
            share_id = await self._store.insert(
                session,
                **common,
                item_target=group_item_target,
                file_target=group_file_target,
                share_type=int(ShareType.GROUP),
                share_with=request.share_with,
                parent=parent,
            )
            parent = share_id
        for row in rows:
            row_id = await self._store.insert(session, **common, **row, parent=parent)
            if share_id is None:
                share_id = row_id
        assert share_id is not None

        logger.debug(
            "Shared %s %s with %s (%s) as share %s",
            item_type,
            item_source,
            request.share_with,
            share_type.name,
            share_id,
        )
        await self._event_bus.emit(
            ShareEvent(
                event_type=EventType.POST_SHARED,
                item_type=item_type,
                item_source=item_source,
                share_type=share_type,
                share_with=request.share_with,
                uid_owner=uid_owner,
                permissions=request.permissions,
                share_id=share_id,
                parent=reshare.parent,
                item_target=group_item_target if is_group else item_target,
                file_source=file_source,
                file_target=group_file_target if is_group else file_target,
                token=token,
                expiration=expiration,
            )
        )
        return share_id

    # ------------------------------------------------------------------
    # Unshare and expiration
    # ------------------------------------------------------------------

    async def unshare(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        share_with: str | None,
        owner: str,
    ) -> bool:
        """Remove the share of *item_source* that *owner* gave *share_with*.

        Reshares below it move to a remaining sibling share when there is
        one, otherwise they are removed too.  Returns False when no such
        share exists and raises :class:`StorageError` when the store fails.
        """
        self._registry.resolve(item_type)
        share_type = ShareType(share_type)
        with _storage_errors(f"Unsharing {item_type} {item_source}"):
            items = await self._rows_shared_with_user(session, item_type, item_source, share_with, owner, share_type)

        to_delete: ShareRecord | None = None
        new_parent: int | None = None
        for item in items:
            if item.share_type == share_type and item.uid_owner == owner:
                to_delete = item
            elif item.share_type == ShareType.GROUP_USER_UNIQUE:
                # a per-member row never becomes a parent; its group row does
                new_parent = item.parent
            else:
                new_parent = item.id

        if to_delete is None:
            return False
        with _storage_errors(f"Unsharing {item_type} {item_source}"):
            await self.unshare_item(session, to_delete, new_parent)
        return True

    async def unshare_item(
        self,
        session: AsyncSession,
        record: ShareRecord,
        new_parent: int | None = None,
    ) -> list[ShareRecord]:
        """Delete *record* and its dependent shares.  Returns every removed row."""
        share_with = None if record.share_type == ShareType.LINK else record.share_with
        event = ShareEvent(
            event_type=EventType.PRE_UNSHARE,
            item_type=record.item_type,
            item_source=record.item_source,
            share_type=record.share_type,
            share_with=share_with,
            uid_owner=record.uid_owner,
            share_id=record.id,
            parent=record.parent,
            file_source=record.file_source if record.item_type in FILE_ITEM_TYPES else None,
            file_target=record.file_target if record.item_type in FILE_ITEM_TYPES else None,
            token=record.token,
        )
        await self._event_bus.emit(event)

        deleted = await self._store.delete_cascading(session, record.id, new_parent=new_parent)
        deleted.append(record)
        await self._event_bus.emit(
            replace(event, event_type=EventType.POST_UNSHARE, deleted_shares=tuple(deleted))
        )

        if record.share_type == ShareType.REMOTE and self._notifier is not None and record.share_with:
            _, remote = split_user_remote(record.share_with)
            if not await self._notifier.send_remote_unshare(remote, record.id, record.token):
                logger.warning("Could not notify %s about the removal of share %s", remote, record.id)
        return deleted

    async def expire_item(self, session: AsyncSession, record: ShareRecord) -> bool:
        """Unshare *record* if it has expired.  Returns True when it was removed."""
        if not self._expiration.is_expired(record):
            return False
        logger.info("Share %s expired, removing it", record.id)
        await self.unshare_item(session, record)
        return True

    # ------------------------------------------------------------------
    # In-place updates
    # ------------------------------------------------------------------

    async def set_send_mail_status(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str | int,
        share_type: ShareType | int,
        recipient: str,
        status: bool,
    ) -> None:
        with _storage_errors(f"Flagging mail for {item_type} {item_source}"):
            updated = await self._store.update_mail_send(
                session, item_type, str(item_source), ShareType(share_type), recipient, status
            )
        if not updated:
            logger.debug("No share of %s %s with %s to flag", item_type, item_source, recipient)

    async def set_expiration_date(
        self,
        session: AsyncSession,
        user_id: str,
        item_type: str,
        item_source: str | int,
        expire_date: date | datetime | None,
    ) -> bool:
        """Change the expiration of *user_id*'s link share of *item_source*.

        Returns False when there is no such link share.
        """
        link = await self.find_item(
            session,
            ShareQuery(
                item_type=item_type,
                item=item_source,
                share_type=ShareType.LINK,
                uid_owner=user_id,
                limit=1,
            ),
        )
        if link is None:
            return False
        expiration: datetime | None = None
        if expire_date is not None:
            expiration = self._expiration.validate_expire_date(expire_date, link.share_time)
        elif self._config.enforce_expire_date:
            message = "Cannot clear expiration date. Shares are required to have an expiration date."
            logger.warning(message)
            raise ExpirationInvalidError(message)
        with _storage_errors(f"Setting expiration of {item_type} {item_source}"):
            await self._store.update_expiration(session, link.id, expiration)
        return True

    # ------------------------------------------------------------------
    # Token and password checks
    # ------------------------------------------------------------------

    async def get_share_by_token(
        self,
        session: AsyncSession,
        token: str,
        check_password_protection: bool = True,
        authenticated_share_id: int | str | None = None,
    ) -> ShareRecord | None:
        """The share behind *token*, unless it expired or needs a password first."""
        try:
            record = await self._store.find_by_token(session, token)
        except SQLAlchemyError:
            logger.error("Looking up share token %s failed", token, exc_info=True)
            return None
        if record is None:
            return None
        if await self.expire_item(session, record):
            return None
        if check_password_protection and not self.check_password_protected_share(record, authenticated_share_id):
            return None
        return record

    @staticmethod
    def check_password_protected_share(
        record: ShareRecord,
        authenticated_share_id: int | str | None = None,
    ) -> bool:
        """False for a password-protected link the caller has not unlocked."""
        if record.share_type != ShareType.LINK or not record.share_with:
            return True
        return authenticated_share_id is not None and str(authenticated_share_id) == str(record.id)

    @staticmethod
    def verify_link_password(record: ShareRecord, password: str) -> bool:
        """Check *password* against a link share.  Links without a password always pass."""
        if record.share_type != ShareType.LINK or not record.share_with:
            return True
        return verify_password(record.share_with, password)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_items(
        self,
        session: AsyncSession,
        query: ShareQuery,
        format: int = FORMAT_NONE,
        parameters: Any = None,
    ) -> Any:
        """Run *query* and return its formatted result.

        With ``FORMAT_NONE`` the result is a list of records.  Store
        errors are logged and yield an empty result.
        """
        backend = self._registry.resolve(query.item_type)
        try:
            items, column = await self._collect(session, query)
        except SQLAlchemyError:
            logger.error("Share query for %s failed", query.item_type, exc_info=True)
            items, column = [], "item_target"
        return self._format(items, column, backend, format, parameters, query.viewer)

    async def find_item(self, session: AsyncSession, query: ShareQuery) -> ShareRecord | None:
        """Single-result lookup: the exact match if there is one, else the first hit."""
        if query.limit != 1:
            query = replace(query, limit=1)
        self._registry.resolve(query.item_type)
        try:
            items, _ = await self._collect(session, query)
        except SQLAlchemyError:
            logger.error("Share lookup for %s failed", query.item_type, exc_info=True)
            return None
        return items[0] if items else None

    async def get_items_shared_with_user(
        self,
        session: AsyncSession,
        item_type: str,
        user: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        """Everything shared with *user* directly or through their groups."""
        query = ShareQuery(
            item_type=item_type,
            share_type=ShareScope.USER_AND_GROUPS,
            share_with=user,
            limit=limit,
            include_collections=include_collections,
            viewer=user,
        )
        return await self.get_items(session, query, format, parameters)

    async def get_item_shared_with(
        self,
        session: AsyncSession,
        user: str,
        item_type: str,
        item_target: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        """The item *user* sees under *item_target*."""
        query = ShareQuery(
            item_type=item_type,
            item=item_target,
            share_type=ShareScope.USER_AND_GROUPS,
            share_with=user,
            limit=1,
            include_collections=include_collections,
            viewer=user,
        )
        if format == FORMAT_NONE:
            return await self.find_item(session, query)
        return await self.get_items(session, query, format, parameters)

    async def get_item_shared_with_by_source(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str | int,
        share_with: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        """How *item_source* reaches *share_with*, by source rather than target."""
        query = ShareQuery(
            item_type=item_type,
            item=item_source,
            share_type=ShareScope.USER_AND_GROUPS,
            share_with=share_with,
            limit=1,
            include_collections=include_collections,
            by_source=True,
            viewer=share_with,
        )
        if format == FORMAT_NONE:
            return await self.find_item(session, query)
        return await self.get_items(session, query, format, parameters)

    async def get_items_shared(
        self,
        session: AsyncSession,
        user_id: str,
        item_type: str,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        limit: int = -1,
        include_collections: bool = False,
    ) -> Any:
        """Shares *user_id* created for items of *item_type*."""
        query = ShareQuery(
            item_type=item_type,
            uid_owner=user_id,
            limit=limit,
            include_collections=include_collections,
            viewer=user_id,
        )
        return await self.get_items(session, query, format, parameters)

    async def get_item_shared(
        self,
        session: AsyncSession,
        user_id: str,
        item_type: str,
        item_source: str | int,
        format: int = FORMAT_NONE,
        parameters: Any = None,
        include_collections: bool = False,
    ) -> Any:
        """Shares *user_id* created for one item."""
        query = ShareQuery(
            item_type=item_type,
            item=item_source,
            uid_owner=user_id,
            include_collections=include_collections,
            viewer=user_id,
        )
        return await self.get_items(session, query, format, parameters)

    async def get_shared_items_owners(
        self,
        session: AsyncSession,
        user: str,
        item_type: str,
        include_collections: bool = False,
        include_owner: bool = False,
    ) -> list[str]:
        """Owners of the items of *item_type* shared with *user*, one entry per share."""
        types: list[str] | None = None
        if include_collections:
            types = self._registry.collection_item_types(item_type)
        if not types:
            types = [item_type]

        owners = [user] if include_owner else []
        for collection_type in types:
            if not self._registry.has_backend(collection_type):
                continue
            items = await self.get_items_shared_with_user(session, collection_type, user)
            owners.extend(item.uid_owner for item in items)
        return owners

    async def get_item_shared_with_user(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str | int,
        user: str | None,
        owner: str | None = None,
        share_type: ShareType | None = None,
    ) -> list[ShareRecord]:
        """Raw share rows of *item_source* addressed to *user*.

        Falls back to the shares of *user*'s groups when nothing is
        addressed to *user* directly.  Unlike :meth:`get_items` the rows
        are neither merged nor expired.  Store errors are logged and
        yield an empty list.
        """
        try:
            return await self._rows_shared_with_user(session, item_type, item_source, user, owner, share_type)
        except SQLAlchemyError:
            logger.error("Share lookup of %s %s for %s failed", item_type, item_source, user, exc_info=True)
            return []

    async def _rows_shared_with_user(
        self,
        session: AsyncSession,
        item_type: str,
        item_source: str | int,
        user: str | None,
        owner: str | None,
        share_type: ShareType | None,
    ) -> list[ShareRecord]:
        file_dependent = is_file_dependent(item_type)
        if file_dependent:
            source = _file_id(item_source)
            if source is None:
                return []
            match: dict[str, Any] = {"file_source": source, "item_type": item_type}
        else:
            match = {"item_source": str(item_source), "item_type": item_type}

        flt = ShareFilter(match=match, share_with=user, uid_owner=owner)
        if share_type is not None:
            flt.share_types = (int(share_type),)

        shares: list[ShareRecord] = []
        for row in await self._store.select(session, flt):
            if file_dependent:
                if not await self._attach_file_meta(row):
                    continue
                if not is_file_reachable(row.path, row.storage_id):
                    continue
                if row.file_parent == -1:
                    await self._fix_mount_point_path(row, owner)
            shares.append(row)

        if not shares and user is not None and self._directory.user_exists(user):
            groups = tuple(self._directory.get_user_group_ids(user))
            if groups:
                flt = ShareFilter(match=match, share_with_in=groups, uid_owner=owner)
                for row in await self._store.select(session, flt):
                    if file_dependent and not await self._attach_file_meta(row):
                        continue
                    shares.append(row)
        return shares

    async def _fix_mount_point_path(self, row: ShareRecord, owner: str | None) -> None:
        """Give a share of a mount root the path of its mount point."""
        mounts = await self._fs.find_mounts_by_storage_id(row.storage_id or "")
        if not mounts:
            logger.warning("Could not resolve mount point for %s", row.storage_id)
            return
        path = mounts[0].mount_point.strip("/")
        row.path = path[len(owner or "") + 1 :]

    async def _attach_file_meta(self, row: ShareRecord) -> bool:
        """Copy the file-cache columns onto *row*.  False when the file is gone."""
        if row.file_source is None:
            return False
        meta = await self._fs.get_file_meta(row.file_source)
        if meta is None:
            return False
        row.path = meta.path
        row.storage = meta.storage
        row.storage_id = meta.storage_id
        row.file_parent = meta.parent
        return True

    async def _shared_parents(
        self,
        session: AsyncSession,
        item_source: str | int,
        share_with: str | None,
        uid_owner: str | None,
    ) -> list[ShareRecord]:
        """Shares of the folders enclosing *item_source*, innermost first."""
        if not self._registry.has_backend("folder"):
            return []
        backend = self._registry.resolve("folder")
        if not isinstance(backend, SupportsParents):
            return []

        result: list[ShareRecord] = []
        for parent in await backend.get_parents(str(item_source)):
            shares = await self.get_item_shared_with_user(session, "folder", parent, share_with, uid_owner)
            for share in shares:
                name = posixpath.basename((share.path or "").rstrip("/"))
                share.collection = {"item_type": "folder", "path": name}
                share.file_path = name
                share.displayname_owner = self._directory.display_name(share.uid_owner) or share.uid_owner
                if share.share_with:
                    share.share_with_displayname = self._directory.display_name(share.share_with) or share.share_with
                result.append(share)
        return result

    async def _collect(self, session: AsyncSession, q: ShareQuery) -> tuple[list[ShareRecord], str]:
        """Select, merge, expire and expand the shares matching *q*.

        Returns the records and the column that identifies them in the
        formatted result.
        """
        if not self._config.enabled:
            return [], "item_target"

        backend = self._registry.resolve(q.item_type)
        file_dependent = is_file_dependent(q.item_type)
        root = ""
        if file_dependent and q.uid_owner is not None:
            root = self._fs.get_root(q.uid_owner)

        flt = ShareFilter()
        collection_types: list[str] | None = None
        if file_dependent:
            flt.item_types = FILE_ITEM_TYPES
            flt.require_file_target = q.item is None
        else:
            collection_types = self._registry.collection_item_types(q.item_type)
            if q.include_collections and q.item is None and collection_types:
                if q.item_type in collection_types:
                    flt.item_types = tuple(collection_types)
                else:
                    flt.item_types = (q.item_type, *collection_types)
            else:
                flt.item_types = (q.item_type,)

        if not self._config.allow_links:
            flt.exclude_share_types = (int(ShareType.LINK),)

        if q.share_type is ShareScope.USER_AND_GROUPS:
            if q.share_with is None:
                return [], "item_target"
            flt.recipient = q.share_with
            if self._directory.user_exists(q.share_with):
                flt.recipient_groups = tuple(self._directory.get_user_group_ids(q.share_with))
        elif q.share_type is not None:
            flt.share_types = (int(q.share_type),)
            flt.share_with = q.share_with

        if q.uid_owner is not None:
            flt.uid_owner = q.uid_owner
            if q.share_type is None:
                flt.exclude_share_types = (*flt.exclude_share_types, int(ShareType.GROUP_USER_UNIQUE))
            column = "file_source" if file_dependent else "item_source"
        else:
            column = "file_target" if file_dependent else "item_target"

        value: str | int | None = None
        if q.item is not None:
            collection_types = self._registry.collection_item_types(q.item_type)
            if q.uid_owner is not None or q.by_source:
                column = "file_source" if file_dependent else "item_source"
                value = _file_id(q.item) if file_dependent else str(q.item)
                if value is None:
                    return [], column
            else:
                column = "file_target" if file_dependent else "item_target"
                value = normalize_path(str(q.item)) if file_dependent else str(q.item)
            flt.match = {column: value}
            if q.include_collections and collection_types and "folder" not in collection_types:
                flt.match_or_item_types = tuple(collection_types)

        # A per-member row is inserted after its group row; newest first
        # lets it win a single-result lookup.
        descending = q.share_type is ShareScope.USER_AND_GROUPS and q.limit == 1
        query_limit = max(q.limit, 3) if q.limit != -1 and not q.include_collections else None
        rows = await self._store.select(session, flt, descending=descending, limit=query_limit)

        builder = ResultBuilder(owner_view=q.uid_owner is not None)
        mounts: dict[int, MountInfo | None] = {}
        strip_share = not self._config.allow_resharing or self.is_sharing_disabled_for_user(q.viewer)
        for row in rows:
            if file_dependent:
                if not await self._attach_file_meta(row):
                    continue
                if not is_file_reachable(row.path, row.storage_id):
                    continue
            # merges OR permissions together, so strip before absorbing
            if strip_share:
                row.permissions = strip(row.permissions, Permission.SHARE)
            absorbed = builder.absorb(row)
            if absorbed is None:
                continue
            row = absorbed
            if q.uid_owner is not None and row.path is not None:
                await self._owner_path(session, row, root, mounts)
            if q.check_expire_date and await self.expire_item(session, row):
                continue
            self._attach_display_names(row)
            builder.add(row)

        items = builder.items()
        if q.share_type is ShareScope.USER_AND_GROUPS:
            items = group_items(items, file_dependent)

        if not items:
            if q.include_collections and collection_types and "folder" in collection_types and q.item is not None:
                parents = await self._shared_parents(session, q.item, q.share_with, q.uid_owner)
                return (parents[:1] if q.limit == 1 else parents), column
            return [], column

        collection_items: list[ShareRecord] = []
        removed: list[ShareRecord] = []
        for row in items:
            if (
                q.limit == 1
                and value is not None
                and row.column(column) == value
                and (row.item_type == q.item_type or q.item_type == "file")
            ):
                return [row], column
            if not (q.include_collections and collection_types and row.item_type in collection_types):
                continue
            if row.item_type != "folder":
                exact = await self._expand_collection(row, q, backend, column, value, collection_items)
                if exact is not None:
                    return [exact], column
                removed.append(row)
            else:
                collection_items.extend(
                    await self._shared_parents(session, row.item_source, q.share_with, q.uid_owner)
                )

        unique: list[ShareRecord] = []
        for child in collection_items:
            if child not in unique:
                unique.append(child)
        items = [row for row in items if not any(row is gone for gone in removed)] + unique
        # Per-member rows left over belong to groups the viewer has left.
        items = [row for row in items if row.share_type != ShareType.GROUP_USER_UNIQUE]
        return items, column

    async def _expand_collection(
        self,
        row: ShareRecord,
        q: ShareQuery,
        backend: ShareBackend,
        column: str,
        value: str | int | None,
        collection_items: list[ShareRecord],
    ) -> ShareRecord | None:
        """Replace a shared collection by its children of the queried type.

        Returns the child when it is the single exact match asked for.
        """
        collection_backend = self._registry.resolve(row.item_type)
        if not isinstance(collection_backend, SupportsCollection):
            return None
        if value is not None and row.item_type == q.item_type and row.column(column) == value:
            collection_items.append(row)
            return None

        row.collection = {"item_type": row.item_type}
        for child in await collection_backend.get_children(row.item_source):
            child_item = replace(row, item_type=q.item_type, grouped=[])
            child_item.item_source = child.source
            child_item.item_target = child.target
            if isinstance(backend, SupportsFileDependent) and child.file_path:
                child_item.file_source = await self._fs.get_file_id(child.file_path, row.uid_owner)
                child_item.file_target = normalize_path(child.file_path)
            if value is None:
                collection_items.append(child_item)
            elif child_item.column(column) == value:
                if q.limit == 1:
                    return child_item
                collection_items.append(child_item)
        return None

    async def _owner_path(
        self,
        session: AsyncSession,
        row: ShareRecord,
        root: str,
        mounts: dict[int, MountInfo | None],
    ) -> None:
        """Rewrite *row.path* relative to the owner's files root."""
        assert row.path is not None
        if row.parent:
            parent = await self._store.get(session, row.parent)
            if parent is None or not parent.file_target:
                logger.error("Can't select parent %s of share %s", row.parent, row.id)
                return
            # continue from where the parent's target appears in the path
            pos = max(row.path.rfind(parent.file_target), 0)
            path = parent.file_target
            for part in row.path[pos:].split("/")[2:]:
                path = f"{path}/{part}"
            row.path = path
            return

        if row.storage is None:
            return
        if row.storage not in mounts:
            mounts[row.storage] = await self._fs.get_mount_by_numeric_id(row.storage)
        mount = mounts[row.storage]
        if mount is not None:
            path = mount.mount_point + row.path
            row.path = path[len(root) :].rstrip("/")

    def _attach_display_names(self, row: ShareRecord) -> None:
        row.share_with_displayname = row.share_with
        if row.share_with:
            if row.share_type == ShareType.USER:
                row.share_with_displayname = self._directory.display_name(row.share_with) or row.share_with
            elif row.share_type == ShareType.REMOTE:
                row.share_with_displayname = self._directory.cloud_display_name(row.share_with) or row.share_with
        if row.uid_owner:
            row.displayname_owner = self._directory.display_name(row.uid_owner) or row.uid_owner

    def _format(
        self,
        items: list[ShareRecord],
        column: str,
        backend: ShareBackend,
        format: int,
        parameters: Any,
        viewer: str | None,
    ) -> Any:
        if format == FORMAT_NONE:
            return items
        if format == FORMAT_STATUSES:
            statuses: dict[Any, dict[str, Any]] = {}
            for item in items:
                key = item.column(column)
                if item.share_type == ShareType.LINK:
                    # only links the viewer created themselves
                    if item.uid_initiator != viewer:
                        continue
                    statuses.setdefault(key, {})["link"] = True
                elif key not in statuses:
                    statuses[key] = {"link": False}
                if item.file_target:
                    statuses[key]["path"] = item.path
            return statuses
        return backend.format_items(items, format, parameters)
