"""Per-share-type validation and materialization for new shares.

Each strategy checks the rules of one recipient kind and hands the
share to :meth:`ShareEngine.put`.  The engine owns the shared pipeline
(backend checks, reshare check, target allocation); strategies only
hold what differs between user, group, link and remote shares.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from .events import Deny, EventType, ShareEvent
from .exceptions import PolicyViolationError, RemoteUnreachableError
from .security import CHAR_ALPHANUMERIC, generate_token, hash_password
from .types import ShareQuery, ShareScope, ShareType
from .utils import is_same_user_on_same_server, remove_protocol_from_url, split_user_remote

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from .engine import ShareEngine
    from .types import ShareRecord

logger = logging.getLogger(__name__)


@dataclass
class ShareRequest:
    """A validated request to create one share."""

    uid_owner: str
    item_type: str
    item_source: str
    share_type: ShareType
    share_with: str | None
    permissions: int
    item_source_name: str
    """Name used in messages and sent to federated peers."""
    expiration: datetime | None = None
    password_changed: bool | None = None


def _reject(message: str) -> PolicyViolationError:
    logger.debug(message)
    return PolicyViolationError(message)


class ShareStrategy:
    """Base class; one subclass per share type accepted by ``share_item``."""

    share_type: ShareType

    def __init__(self, engine: ShareEngine) -> None:
        self._engine = engine

    async def share(self, session: AsyncSession, request: ShareRequest) -> bool | str:
        raise NotImplementedError

    async def _existing_by_source(
        self,
        session: AsyncSession,
        request: ShareRequest,
        share_type: ShareType | ShareScope,
        *,
        uid_owner: str | None = None,
    ) -> ShareRecord | None:
        return await self._engine.find_item(
            session,
            ShareQuery(
                item_type=request.item_type,
                item=request.item_source,
                share_type=share_type,
                share_with=request.share_with,
                uid_owner=uid_owner,
                limit=1,
                include_collections=True,
                by_source=True,
            ),
        )


class UserShareStrategy(ShareStrategy):
    share_type = ShareType.USER

    async def share(self, session: AsyncSession, request: ShareRequest) -> bool:
        engine = self._engine
        directory = engine.directory
        owner, share_with, name = request.uid_owner, request.share_with, request.item_source_name

        if share_with == owner:
            raise _reject(f"Sharing {name} failed, because you can not share with yourself")
        if share_with is None or not directory.user_exists(share_with):
            raise _reject(f"Sharing {name} failed, because the user {share_with} does not exist")
        if engine.config.only_share_with_group_members:
            common = set(directory.get_user_group_ids(owner)) & set(directory.get_user_group_ids(share_with))
            if not common:
                raise _reject(
                    f"Sharing {name} failed, because the user {share_with} is not a member "
                    f"of any groups that {owner} is a member of"
                )

        # The same owner may add a user share on top of a group share to
        # raise the permissions of one member; anything else is a duplicate.
        existing = await self._existing_by_source(session, request, ShareScope.USER_AND_GROUPS)
        if existing is not None and (existing.uid_owner != owner or existing.share_type == ShareType.USER):
            raise _reject(f"Sharing {name} failed, because this item is already shared with {share_with}")
        existing = await self._existing_by_source(session, request, ShareType.USER)
        if existing is not None and (existing.uid_owner != owner or existing.share_type == ShareType.USER):
            raise _reject(f"Sharing {name} failed, because this item is already shared with user {share_with}")

        await engine.put(session, request)
        return True


class GroupShareStrategy(ShareStrategy):
    share_type = ShareType.GROUP

    async def share(self, session: AsyncSession, request: ShareRequest) -> bool:
        engine = self._engine
        directory = engine.directory
        owner, group, name = request.uid_owner, request.share_with, request.item_source_name

        if group is None or not directory.group_exists(group):
            raise _reject(f"Sharing {name} failed, because the group {group} does not exist")
        members = directory.group_members(group)
        if engine.config.only_share_with_group_members and owner not in members:
            raise _reject(f"Sharing {name} failed, because {owner} is not a member of the group {group}")

        # Members are checked one by one while the rows are materialized.
        existing = await self._existing_by_source(session, request, ShareType.GROUP)
        if existing is not None and existing.share_with == group and existing.share_type == ShareType.GROUP:
            raise _reject(f"Sharing {name} failed, because this item is already shared with {group}")

        await engine.put(session, request, members=[m for m in members if m != owner])
        return True


class LinkShareStrategy(ShareStrategy):
    """Public links.  ``share_with`` carries the plain password, if any.

    Re-sharing a link replaces the owner's existing link for the item but
    keeps its token, so published URLs stay valid.
    """

    share_type = ShareType.LINK

    async def share(self, session: AsyncSession, request: ShareRequest) -> str:
        engine = self._engine
        config = engine.config
        name = request.item_source_name
        if not config.allow_links:
            raise _reject(f"Sharing {name} failed, because sharing with links is not allowed")

        password = request.share_with or None
        password_changed = request.password_changed

        hashed: str | None = None
        if password and password_changed is not False:
            await self.verify_password(password)
            hashed = hash_password(password)

        # TODO: update the link row in place once nothing relies on the
        # delete-and-recreate behaviour of link updates.
        existing = await engine.find_item(
            session,
            ShareQuery(
                item_type=request.item_type,
                item=request.item_source,
                share_type=ShareType.LINK,
                uid_owner=request.uid_owner,
                limit=1,
            ),
        )
        if existing is not None:
            await engine.store.delete_cascading(session, existing.id)

        share_with: str | None
        if hashed is not None:
            share_with = hashed
        elif existing is None:
            share_with = None
        elif password_changed is None:
            # No password given: keep the old one only when the permissions
            # changed, otherwise the owner removed the protection.
            share_with = existing.share_with if request.permissions != existing.permissions else None
        elif password_changed is False:
            share_with = existing.share_with
        else:
            share_with = None

        if config.is_link_password_required and not share_with:
            raise _reject("You need to provide a password to create a public link, only protected links are allowed")

        expiration = request.expiration
        if existing is None and config.default_expire_date and expiration is None:
            expiration = engine.expiration.default_expire_date()

        token = existing.token if existing is not None and existing.token else generate_token(config.token_length)
        request.share_with = share_with
        request.expiration = expiration
        await engine.put(session, request, token=token)
        return token

    async def verify_password(self, password: str) -> None:
        """Ask ``VERIFY_PASSWORD`` listeners whether *password* is acceptable."""
        decision = await self._engine.event_bus.check(
            ShareEvent(event_type=EventType.VERIFY_PASSWORD, password=password)
        )
        if isinstance(decision, Deny):
            raise _reject(decision.reason or "The password was rejected")


class RemoteShareStrategy(ShareStrategy):
    """Federated shares with a user on another server.

    The row is written before the peer is asked; if the peer cannot be
    reached the row is unshared again and the share fails.
    """

    share_type = ShareType.REMOTE

    async def share(self, session: AsyncSession, request: ShareRequest) -> bool:
        engine = self._engine
        owner, name = request.uid_owner, request.item_source_name
        if not request.share_with:
            raise _reject("Invalid Federated Cloud ID")

        existing = await self._existing_by_source(session, request, ShareType.REMOTE, uid_owner=owner)
        if existing is not None:
            raise _reject(f"Sharing {name} failed, because this item is already shared with {request.share_with}")

        user, remote = split_user_remote(request.share_with)
        current_server = remove_protocol_from_url(engine.config.server_url)
        if is_same_user_on_same_server(user, remote, owner, current_server):
            raise _reject("Not allowed to create a federated share with the same user")

        token = generate_token(engine.config.token_length, CHAR_ALPHANUMERIC)
        request.share_with = f"{user}@{remote}"
        share_id = await engine.put(session, request, token=token)

        sent = False
        if engine.notifier is not None:
            sent = await engine.notifier.send_remote_share(token, request.share_with, name, share_id, owner)
        if not sent:
            await engine.unshare(
                session, request.item_type, request.item_source, ShareType.REMOTE, request.share_with, owner
            )
            raise RemoteUnreachableError(
                f"Sharing {name} failed, could not find {request.share_with}, "
                "maybe the server is currently unreachable."
            )
        return True
