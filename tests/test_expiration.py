"""Tests for ExpirationPolicy."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from sharekit.config import SharingConfig
from sharekit.exceptions import ExpirationInvalidError
from sharekit.expiration import ExpirationPolicy, to_expiration
from sharekit.types import ShareRecord, ShareType

NOW = datetime(2026, 3, 10, 15, 30, tzinfo=UTC)


def _link(share_time: datetime = NOW, expiration: datetime | None = None, **kwargs) -> ShareRecord:
    values = {
        "id": 1,
        "item_type": "file",
        "item_source": "42",
        "share_type": ShareType.LINK,
        "uid_owner": "alice",
        "permissions": 1,
        "share_time": share_time,
        "expiration": expiration,
    }
    values.update(kwargs)
    return ShareRecord(**values)


# =========================================================================
# to_expiration
# =========================================================================


class TestToExpiration:
    def test_date_becomes_midnight_utc(self) -> None:
        assert to_expiration(date(2026, 3, 12)) == datetime(2026, 3, 12, tzinfo=UTC)

    def test_datetime_truncated(self) -> None:
        assert to_expiration(datetime(2026, 3, 12, 18, 5, tzinfo=UTC)) == datetime(2026, 3, 12, tzinfo=UTC)

    def test_naive_datetime(self) -> None:
        assert to_expiration(datetime(2026, 3, 12, 18, 5)) == datetime(2026, 3, 12, tzinfo=UTC)


# =========================================================================
# validate_expire_date
# =========================================================================


class TestValidate:
    def test_future_date_accepted(self) -> None:
        policy = ExpirationPolicy(SharingConfig())
        result = policy.validate_expire_date(date(2026, 3, 20), NOW, now=NOW)
        assert result == datetime(2026, 3, 20, tzinfo=UTC)

    def test_past_date_rejected(self) -> None:
        policy = ExpirationPolicy(SharingConfig())
        with pytest.raises(ExpirationInvalidError, match="in the past"):
            policy.validate_expire_date(date(2026, 3, 1), NOW, now=NOW)

    def test_today_is_in_the_past(self) -> None:
        policy = ExpirationPolicy(SharingConfig())
        with pytest.raises(ExpirationInvalidError):
            policy.validate_expire_date(date(2026, 3, 10), NOW, now=NOW)

    def test_enforced_window(self) -> None:
        policy = ExpirationPolicy(SharingConfig(enforce_expire_date=True, expire_after_days=7))
        assert policy.validate_expire_date(date(2026, 3, 17), NOW, now=NOW)
        with pytest.raises(ExpirationInvalidError, match="7 days"):
            policy.validate_expire_date(date(2026, 3, 18), NOW, now=NOW)

    def test_window_counts_from_share_time(self) -> None:
        policy = ExpirationPolicy(SharingConfig(enforce_expire_date=True, expire_after_days=7))
        shared = NOW - timedelta(days=5)
        with pytest.raises(ExpirationInvalidError):
            policy.validate_expire_date(date(2026, 3, 16), shared, now=NOW)

    def test_unenforced_allows_far_dates(self) -> None:
        policy = ExpirationPolicy(SharingConfig(expire_after_days=7))
        assert policy.validate_expire_date(date(2027, 1, 1), NOW, now=NOW)


# =========================================================================
# effective_expiration / is_expired
# =========================================================================


class TestEffectiveExpiration:
    def test_non_link_never_expires(self) -> None:
        policy = ExpirationPolicy(SharingConfig(default_expire_date=True, enforce_expire_date=True))
        record = _link(share_type=ShareType.USER)
        assert policy.effective_expiration(record) is None

    def test_no_date_no_default(self) -> None:
        policy = ExpirationPolicy(SharingConfig())
        assert policy.effective_expiration(_link()) is None

    def test_user_date_wins_without_enforcement(self) -> None:
        policy = ExpirationPolicy(SharingConfig(default_expire_date=True, expire_after_days=3))
        expires = NOW + timedelta(days=30)
        assert policy.effective_expiration(_link(expiration=expires)) == expires

    def test_enforced_default_caps_user_date(self) -> None:
        policy = ExpirationPolicy(
            SharingConfig(default_expire_date=True, enforce_expire_date=True, expire_after_days=3)
        )
        expires = NOW + timedelta(days=30)
        assert policy.effective_expiration(_link(expiration=expires)) == NOW + timedelta(days=3)

    def test_enforced_default_without_user_date(self) -> None:
        policy = ExpirationPolicy(
            SharingConfig(default_expire_date=True, enforce_expire_date=True, expire_after_days=3)
        )
        assert policy.effective_expiration(_link()) == NOW + timedelta(days=3)

    def test_is_expired(self) -> None:
        policy = ExpirationPolicy(SharingConfig())
        record = _link(expiration=NOW + timedelta(days=1))
        assert not policy.is_expired(record, now=NOW)
        assert policy.is_expired(record, now=NOW + timedelta(days=2))

    def test_default_expire_date(self) -> None:
        policy = ExpirationPolicy(SharingConfig(expire_after_days=7))
        assert policy.default_expire_date(NOW) == datetime(2026, 3, 17, tzinfo=UTC)
