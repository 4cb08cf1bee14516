"""Share tokens and link password hashing."""

from __future__ import annotations

import secrets
import string

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

CHAR_HUMAN_READABLE = "abcdefgijkmnopqrstwxyzABCDEFGHJKLMNPQRSTWXYZ23456789"
"""Alphabet without look-alike characters, used for link tokens."""

CHAR_ALPHANUMERIC = string.ascii_lowercase + string.ascii_uppercase + string.digits
"""Full alphanumeric alphabet, used for federated share tokens."""

_ph = PasswordHasher()


def generate_token(length: int, alphabet: str = CHAR_HUMAN_READABLE) -> str:
    """Return a cryptographically random string of *length* characters."""
    if length <= 0:
        raise ValueError(f"Token length must be positive, got {length}")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_password(password: str) -> str:
    """Hash a link password for storage in the share row."""
    return _ph.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Check *password* against a stored hash. Malformed hashes never verify."""
    try:
        return _ph.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError, VerificationError):
        return False
