"""Tests for SharingConfig."""

from __future__ import annotations

import pytest

from sharekit.config import DEFAULT_FEDERATION_ENDPOINT, SharingConfig


class TestDefaults:
    def test_defaults(self) -> None:
        config = SharingConfig()
        assert config.enabled is True
        assert config.allow_links is True
        assert config.allow_resharing is True
        assert config.only_share_with_group_members is False
        assert config.expire_after_days == 7
        assert config.exclude_groups == frozenset()
        assert config.federation_default_endpoint == DEFAULT_FEDERATION_ENDPOINT

    def test_negative_days_rejected(self) -> None:
        with pytest.raises(ValueError, match="expire_after_days"):
            SharingConfig(expire_after_days=-1)

    def test_zero_token_length_rejected(self) -> None:
        with pytest.raises(ValueError, match="token_length"):
            SharingConfig(token_length=0)

    def test_exclude_groups_frozen(self) -> None:
        config = SharingConfig(exclude_groups={"guests"})  # type: ignore[arg-type]
        assert config.exclude_groups == frozenset({"guests"})


class TestLinkPasswordRequired:
    def test_required_when_enforced(self) -> None:
        assert SharingConfig(enforce_links_password=True).is_link_password_required

    def test_not_required_when_links_disabled(self) -> None:
        assert not SharingConfig(allow_links=False, enforce_links_password=True).is_link_password_required


class TestFromAppValues:
    def test_yes_no_flags(self) -> None:
        config = SharingConfig.from_app_values(
            {
                "shareapi_allow_links": "no",
                "shareapi_allow_resharing": "yes",
                "shareapi_enforce_expire_date": "yes",
            }
        )
        assert config.allow_links is False
        assert config.allow_resharing is True
        assert config.enforce_expire_date is True

    def test_day_count(self) -> None:
        config = SharingConfig.from_app_values({"shareapi_expire_after_n_days": "14"})
        assert config.expire_after_days == 14

    def test_exclude_groups_only_when_enabled(self) -> None:
        values = {"shareapi_exclude_groups_list": '["guests","interns"]'}
        assert SharingConfig.from_app_values(values).exclude_groups == frozenset()

        values["shareapi_exclude_groups"] = "yes"
        assert SharingConfig.from_app_values(values).exclude_groups == frozenset({"guests", "interns"})

    def test_overrides_win(self) -> None:
        config = SharingConfig.from_app_values({"shareapi_allow_links": "no"}, allow_links=True)
        assert config.allow_links is True

    def test_unknown_keys_ignored(self) -> None:
        config = SharingConfig.from_app_values({"something_else": "yes"})
        assert config == SharingConfig()
