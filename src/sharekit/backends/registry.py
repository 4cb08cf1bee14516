"""BackendRegistry — item type to backend mapping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sharekit.exceptions import InvalidBackendError, UnknownBackendError

from .protocol import ShareBackend, SupportsCollection

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass
class BackendType:
    """Registration entry for one item type."""

    item_type: str
    factory: Callable[[], Any]
    """Backend class, or a closure returning a ready instance."""
    collection_of: str | None = None


class BackendRegistry:
    """Registry of sharing backends, one per item type.

    Created once per application and handed to the engine.  Backends are
    instantiated lazily on first :meth:`resolve` and validated against
    :class:`ShareBackend` at that point.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        on_first_register: Callable[[], None] | None = None,
    ) -> None:
        self._enabled = enabled
        self._on_first_register = on_first_register
        self._types: dict[str, BackendType] = {}
        self._backends: dict[str, Any] = {}

    def register(
        self,
        item_type: str,
        backend: type | Any,
        collection_of: str | None = None,
    ) -> bool:
        """Register *backend* for *item_type*.  Returns False if already taken.

        *backend* may be a class (instantiated lazily) or a ready instance.
        """
        if not self._enabled:
            return False
        if item_type in self._types:
            logger.warning(
                "Sharing backend %r not registered, %r is already registered for %s",
                backend,
                self._types[item_type].factory,
                item_type,
            )
            return False

        factory = backend if isinstance(backend, type) else (lambda: backend)
        self._types[item_type] = BackendType(
            item_type=item_type,
            factory=factory,
            collection_of=collection_of,
        )
        if len(self._types) == 1 and self._on_first_register is not None:
            self._on_first_register()
        return True

    def resolve(self, item_type: str) -> ShareBackend:
        """Return the backend for *item_type*, instantiating it on first use."""
        if item_type in self._backends:
            return self._backends[item_type]
        entry = self._types.get(item_type)
        if entry is None:
            logger.error("Sharing backend for %s not found", item_type)
            raise UnknownBackendError(f"Sharing backend for {item_type} not found")
        backend = entry.factory()
        if not isinstance(backend, ShareBackend):
            logger.error("Sharing backend %r must implement ShareBackend", backend)
            raise InvalidBackendError(
                f"Sharing backend {type(backend).__name__} must implement the ShareBackend protocol"
            )
        self._backends[item_type] = backend
        return backend

    def has_backend(self, item_type: str) -> bool:
        return item_type in self._types

    def collection_item_types(self, item_type: str) -> list[str] | None:
        """Item types that are collections of *item_type*, transitively.

        *item_type* itself is only part of the answer when it is the
        self-containing ``folder`` collection.  Returns None when empty.
        """
        types = [item_type]
        for name, entry in self._types.items():
            if entry.collection_of in types and name not in types:
                types.append(name)
        if item_type in self._types and (
            item_type != "folder" or not isinstance(self.resolve(item_type), SupportsCollection)
        ):
            types.remove(item_type)
        return types or None

    def item_types(self) -> list[str]:
        return list(self._types)

    def reset(self) -> None:
        """Forget every registration."""
        self._types.clear()
        self._backends.clear()
