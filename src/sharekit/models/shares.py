"""Share model — one row per (item, recipient) grant.

Provides ``ShareBase`` (non-table) and ``Share`` (concrete table).
Subclass ``ShareBase`` with ``table=True`` and a custom ``__tablename__``
to use a prefixed table name per deployment.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class ShareBase(SQLModel):
    """Base fields for a share record. Subclass with ``table=True`` for a concrete table."""

    id: int | None = Field(default=None, primary_key=True)
    share_type: int = Field(index=True)
    share_with: str | None = Field(default=None, index=True)
    uid_owner: str = Field(index=True)
    uid_initiator: str | None = Field(default=None)
    parent: int | None = Field(default=None, index=True)
    item_type: str = Field(index=True)
    item_source: str = Field(index=True)
    item_target: str | None = Field(default=None)
    file_source: int | None = Field(default=None, index=True)
    file_target: str | None = Field(default=None)
    permissions: int = Field(default=0)
    share_time: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    token: str | None = Field(default=None, index=True)
    expiration: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    mail_send: bool = Field(default=False)


class Share(ShareBase, table=True):
    """Default share table — ``sharekit_share``."""

    __tablename__ = "sharekit_share"
