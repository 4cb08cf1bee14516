"""Item-type backends and their registry."""

from sharekit.backends.files import FileShareBackend, FolderShareBackend
from sharekit.backends.protocol import (
    ShareBackend,
    SupportsCollection,
    SupportsFileDependent,
    SupportsParents,
)
from sharekit.backends.registry import BackendRegistry

__all__ = [
    "BackendRegistry",
    "FileShareBackend",
    "FolderShareBackend",
    "ShareBackend",
    "SupportsCollection",
    "SupportsFileDependent",
    "SupportsParents",
]
