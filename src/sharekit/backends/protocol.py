"""ShareBackend protocol — runtime-checkable item-type capabilities.

Split into a core protocol and opt-in capability protocols, so an app
sharing calendars does not have to pretend it knows about the file
cache, and only collection types enumerate children.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sharekit.types import ChildItem, ShareRecord, ShareType


@runtime_checkable
class ShareBackend(Protocol):
    """Core interface every item-type backend must implement."""

    async def is_valid_source(self, item_source: str, uid_owner: str) -> bool:
        """True if *item_source* exists and belongs to *uid_owner*."""
        ...

    async def display_name(self, item_source: str, uid_owner: str) -> str | None:
        """Name a recipient sees for *item_source* before de-duplication."""
        ...

    def is_share_type_allowed(self, share_type: ShareType) -> bool: ...

    def format_items(
        self,
        items: list[ShareRecord],
        format: int,
        parameters: Any = None,
    ) -> Any:
        """Convert query results into a backend-specific representation."""
        ...


@runtime_checkable
class SupportsFileDependent(Protocol):
    """Backends whose items live in the file cache."""

    async def get_file_path(self, item_source: str, uid_owner: str) -> str | None: ...


@runtime_checkable
class SupportsCollection(Protocol):
    """Backends whose items aggregate items of another type."""

    async def get_children(self, item_source: str) -> list[ChildItem]: ...


@runtime_checkable
class SupportsParents(Protocol):
    """Collections that can name the enclosing collections of an item."""

    async def get_parents(self, item_source: str) -> list[str]:
        """Sources of every enclosing collection, innermost first."""
        ...
