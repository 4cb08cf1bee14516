"""Tests for share types and ShareRecord conversion."""

from __future__ import annotations

from datetime import UTC, datetime

from sharekit.models.shares import Share
from sharekit.types import (
    FORMAT_NONE,
    FORMAT_STATUSES,
    ShareRecord,
    ShareScope,
    ShareType,
    is_file_dependent,
)


class TestShareType:
    def test_values(self) -> None:
        assert ShareType.USER == 0
        assert ShareType.GROUP == 1
        assert ShareType.GROUP_USER_UNIQUE == 2
        assert ShareType.LINK == 3
        assert ShareType.REMOTE == 6

    def test_scope_is_not_a_share_type(self) -> None:
        assert ShareScope.USER_AND_GROUPS not in list(ShareType)

    def test_format_constants(self) -> None:
        assert FORMAT_NONE == -1
        assert FORMAT_STATUSES == -2

    def test_file_dependent(self) -> None:
        assert is_file_dependent("file")
        assert is_file_dependent("folder")
        assert not is_file_dependent("calendar")


class TestShareRecordFromRow:
    def _row(self, **kwargs) -> Share:
        values = {
            "id": 7,
            "share_type": int(ShareType.USER),
            "share_with": "bob",
            "uid_owner": "alice",
            "item_type": "file",
            "item_source": "42",
            "item_target": "/notes.txt",
            "file_source": 42,
            "file_target": "/notes.txt",
            "permissions": 1,
            "share_time": datetime(2026, 3, 10, 12, 0),
        }
        values.update(kwargs)
        return Share(**values)

    def test_basic_conversion(self) -> None:
        record = ShareRecord.from_row(self._row())
        assert record.id == 7
        assert record.share_type is ShareType.USER
        assert record.share_with == "bob"
        assert record.file_source == 42
        assert record.mail_send is False

    def test_naive_share_time_is_utc(self) -> None:
        record = ShareRecord.from_row(self._row())
        assert record.share_time == datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

    def test_expiration_kept_for_links(self) -> None:
        expires = datetime(2026, 4, 1, tzinfo=UTC)
        record = ShareRecord.from_row(self._row(share_type=int(ShareType.LINK), expiration=expires))
        assert record.expiration == expires

    def test_expiration_discarded_for_other_types(self) -> None:
        expires = datetime(2026, 4, 1, tzinfo=UTC)
        record = ShareRecord.from_row(self._row(expiration=expires))
        assert record.expiration is None

    def test_column(self) -> None:
        record = ShareRecord.from_row(self._row())
        assert record.column("file_target") == "/notes.txt"
        assert record.column("item_source") == "42"
