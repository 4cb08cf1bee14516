"""Custom exception hierarchy for the sharing layer."""


class SharingError(Exception):
    """Base exception for all sharing errors."""


class UnknownBackendError(SharingError):
    """Raised when no backend is registered for an item type."""


class InvalidBackendError(SharingError):
    """Raised when a registered backend does not implement the backend protocol."""


class SourceNotFoundError(SharingError):
    """Raised when the backend cannot find the item being shared."""


class PermissionExceededError(SharingError):
    """Raised when a reshare asks for more than the upstream share grants."""


class PolicyViolationError(SharingError):
    """Raised when a share request breaks a sharing rule.

    Self-shares, duplicates, group-membership mismatches, disabled links,
    missing link passwords and federated shares to oneself all land here.
    """


class ExpirationInvalidError(SharingError):
    """Raised when an expiration date is in the past or beyond the enforced window."""


class RemoteUnreachableError(SharingError):
    """Raised when a federated peer did not acknowledge a new share."""


class StorageError(SharingError):
    """Raised on share-store failures during a mutation."""
