"""ExpirationPolicy — default and enforced expiration for link shares."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

from .exceptions import ExpirationInvalidError
from .types import ShareType

if TYPE_CHECKING:
    from .config import SharingConfig
    from .types import ShareRecord

logger = logging.getLogger(__name__)


def to_expiration(value: date | datetime) -> datetime:
    """Truncate *value* to midnight UTC; expirations are whole days."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        value = value.date()
    return datetime.combine(value, time.min, tzinfo=UTC)


class ExpirationPolicy:
    """Computes and checks link-share expiration against the global settings.

    Expiration is evaluated lazily by readers; nothing here deletes rows.
    """

    def __init__(self, config: SharingConfig) -> None:
        self._config = config

    @property
    def window(self) -> timedelta:
        return timedelta(days=self._config.expire_after_days)

    def default_expire_date(self, now: datetime | None = None) -> datetime:
        """Midnight today plus the configured number of days."""
        now = now or datetime.now(UTC)
        return to_expiration(now) + self.window

    def validate_expire_date(
        self,
        expire_date: date | datetime,
        share_time: datetime | None,
        *,
        now: datetime | None = None,
    ) -> datetime:
        """Return the normalized date or raise ``ExpirationInvalidError``.

        With enforcement on, the date may not lie more than the configured
        number of days after *share_time*.  Callers without a share time
        (a share not yet written) pass the current time.
        """
        now = now or datetime.now(UTC)
        expires = to_expiration(expire_date)

        if self._config.enforce_expire_date:
            max_date = (share_time or now) + self.window
            if expires > max_date:
                days = self._config.expire_after_days
                logger.warning(
                    "Cannot set expiration date. Shares cannot expire later than %s days after they have been shared",
                    days,
                )
                raise ExpirationInvalidError(
                    f"Cannot set expiration date. Shares cannot expire later than {days} days "
                    "after they have been shared"
                )

        if expires < now:
            logger.warning("Cannot set expiration date. Expiration date is in the past")
            raise ExpirationInvalidError("Cannot set expiration date. Expiration date is in the past")

        return expires

    def effective_expiration(self, record: ShareRecord) -> datetime | None:
        """When *record* stops being valid, or None if it never expires.

        A user-set date wins unless the default is enforced and earlier.
        Without a user-set date only an enforced default applies.
        """
        if record.share_type != ShareType.LINK:
            return None
        default: datetime | None = None
        if self._config.default_expire_date:
            default = record.share_time + self.window
        if record.expiration is not None:
            if default is not None and self._config.enforce_expire_date:
                return min(record.expiration, default)
            return record.expiration
        if default is not None and self._config.enforce_expire_date:
            return default
        return None

    def is_expired(self, record: ShareRecord, now: datetime | None = None) -> bool:
        expires = self.effective_expiration(record)
        if expires is None:
            return False
        return (now or datetime.now(UTC)) > expires
