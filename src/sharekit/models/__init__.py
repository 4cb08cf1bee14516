"""SQLModel database models for sharekit."""

from sharekit.models.shares import Share, ShareBase

__all__ = [
    "Share",
    "ShareBase",
]
