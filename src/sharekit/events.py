"""ShareEventBus and event types for pre/post share hooks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sharekit.types import ShareRecord, ShareType

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Hook points around share mutations."""

    PRE_SHARED = "pre_shared"
    POST_SHARED = "post_shared"
    PRE_UNSHARE = "pre_unshare"
    POST_UNSHARE = "post_unshare"
    FEDERATED_SHARE_ADDED = "federated_share_added"
    VERIFY_PASSWORD = "verify_password"


VETOABLE = frozenset({EventType.PRE_SHARED, EventType.VERIFY_PASSWORD})


@dataclass(frozen=True, slots=True)
class ShareEvent:
    """Immutable record of a share mutation.

    Attributes:
        event_type: Which hook fired.
        item_type: Item type of the share.
        item_source: Owner-side source identifier.
        share_type: Recipient kind.
        share_with: Recipient id (group id for group shares, None for links).
        uid_owner: User who created the share row.
        permissions: Permission bitmask.
        share_id: Row id (group row id for group shares).
        parent: Upstream share id for reshares.
        item_target: Recipient-side target (group default for group shares).
        file_source: File id for file-dependent item types.
        file_target: File target for file-dependent item types.
        token: Link or federation token.
        expiration: Link expiration.
        deleted_shares: Rows removed by an unshare, including the share itself.
        server: Remote server (federated events only).
        password: Candidate link password (password verification only).
    """

    event_type: EventType
    item_type: str | None = None
    item_source: str | None = None
    share_type: ShareType | None = None
    share_with: str | None = None
    uid_owner: str | None = None
    permissions: int | None = None
    share_id: int | None = None
    parent: int | None = None
    item_target: str | None = None
    file_source: int | None = None
    file_target: str | None = None
    token: str | None = None
    expiration: datetime | None = None
    deleted_shares: tuple[ShareRecord, ...] = ()
    server: str | None = None
    password: str | None = None


@dataclass(frozen=True, slots=True)
class Allow:
    """A pre-hook lets the operation continue."""


@dataclass(frozen=True, slots=True)
class Deny:
    """A pre-hook vetoes the operation."""

    reason: str


Decision = Allow | Deny


class ShareEventBus:
    """Dispatches share events to registered handlers.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated: a failing audit or mail
    handler must not undo a share.  Handlers of vetoable events may return
    :class:`Deny`; returning anything else counts as :class:`Allow`.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: ShareEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in self._handlers[event.event_type]:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    event.item_source,
                    exc_info=True,
                )

    async def check(self, event: ShareEvent) -> Decision:
        """Ask the handlers of a vetoable *event*; the first :class:`Deny` wins."""
        if event.event_type not in VETOABLE:
            raise ValueError(f"{event.event_type.value} is not a vetoable event")
        for handler in self._handlers[event.event_type]:
            try:
                decision = await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    event.item_source,
                    exc_info=True,
                )
                continue
            if isinstance(decision, Deny):
                return decision
        return Allow()

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()
