"""Path, naming and federated cloud id helpers."""

from __future__ import annotations

import posixpath

from .exceptions import PolicyViolationError


def normalize_path(path: str) -> str:
    """Normalize a recipient-side path.

    - Ensures leading /
    - Resolves .. and . references
    - Removes double slashes
    - Removes trailing slash (except for root)

    Examples:
        normalize_path("foo.txt") -> "/foo.txt"
        normalize_path("/foo//bar.txt") -> "/foo/bar.txt"
        normalize_path("/foo/") -> "/foo"
        normalize_path("") -> "/"
    """
    if not path:
        return "/"

    path = path.strip()

    if not path.startswith("/"):
        path = "/" + path

    path = posixpath.normpath(path)

    if path != "/" and path.endswith("/"):
        path = path[:-1]

    return path


def unique_name(name: str, taken: set[str]) -> str:
    """Return *name*, or the first ``"stem (n)ext"`` variant not in *taken*.

    Examples:
        unique_name("/doc.txt", set()) -> "/doc.txt"
        unique_name("/doc.txt", {"/doc.txt"}) -> "/doc (2).txt"
        unique_name("Album", {"Album", "Album (2)"}) -> "Album (3)"
    """
    if name not in taken:
        return name
    head, tail = posixpath.split(name)
    stem, ext = posixpath.splitext(tail)
    counter = 2
    while True:
        candidate = posixpath.join(head, f"{stem} ({counter}){ext}") if head else f"{stem} ({counter}){ext}"
        if candidate not in taken:
            return candidate
        counter += 1


def remove_protocol_from_url(url: str) -> str:
    """Strip a leading ``https://`` or ``http://``."""
    if url.startswith("https://"):
        return url[len("https://") :]
    if url.startswith("http://"):
        return url[len("http://") :]
    return url


def fix_remote_url(remote: str) -> str:
    """Drop ``/index.php`` and trailing slashes from a remote server URL."""
    remote = remote.replace("\\", "/")
    pos = remote.find("/index.php")
    if pos > 0:
        remote = remote[:pos]
    return remote.rstrip("/")


def split_user_remote(cloud_id: str) -> tuple[str, str]:
    """Split a federated cloud id ``user@host[/path]`` into ``(user, remote)``.

    The user part may itself contain ``@``; the split happens at the last
    ``@`` before the first ``/`` or ``:`` of the server part.

    Raises ``PolicyViolationError`` for malformed ids.
    """
    if "@" not in cloud_id:
        raise PolicyViolationError("Invalid Federated Cloud ID")
    cloud_id = cloud_id.replace("\\", "/")

    stops = [p for p in (cloud_id.find("/"), cloud_id.find(":")) if p != -1]
    invalid_pos = min(stops) if stops else len(cloud_id)

    pos = cloud_id.rfind("@", 0, invalid_pos)
    if pos == -1:
        pos = cloud_id.find("@")

    user = cloud_id[:pos]
    remote = fix_remote_url(cloud_id[pos + 1 :])
    if not user or not remote:
        raise PolicyViolationError("Invalid Federated Cloud ID")
    return user, remote


def is_same_user_on_same_server(user1: str, server1: str, user2: str, server2: str) -> bool:
    """True when both cloud ids name the same user on the same server."""
    normalized1 = remove_protocol_from_url(server1).lower().rstrip("/")
    normalized2 = remove_protocol_from_url(server2).lower().rstrip("/")
    return normalized1 == normalized2 and user1 == user2


def is_file_reachable(path: str | None, storage_id: str | None) -> bool:
    """True unless *path* sits outside ``files/`` of a user's home storage.

    Home storages (``home::`` and ``object::user:``) also hold trash,
    versions and caches; shares of those entries are never shown.
    Any other storage is always reachable.
    """
    if not storage_id or not storage_id.startswith(("home::", "object::user:")):
        return True
    return (path or "").lstrip("/").startswith("files/")
