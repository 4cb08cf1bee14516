"""SharingConfig — global sharing policy flags."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_FEDERATION_ENDPOINT = "/ocs/v2.php/cloud/shares"

# Setting name in the app-value store -> SharingConfig attribute
_APP_VALUE_KEYS: dict[str, str] = {
    "shareapi_enabled": "enabled",
    "shareapi_allow_links": "allow_links",
    "shareapi_allow_resharing": "allow_resharing",
    "shareapi_only_share_with_group_members": "only_share_with_group_members",
    "shareapi_default_expire_date": "default_expire_date",
    "shareapi_enforce_expire_date": "enforce_expire_date",
    "shareapi_expire_after_n_days": "expire_after_days",
    "shareapi_enforce_links_password": "enforce_links_password",
    "shareapi_exclude_groups_list": "exclude_groups",
}


@dataclass
class SharingConfig:
    """Read-only policy consumed by the sharing engine."""

    enabled: bool = True
    """Master switch.  When off, queries return nothing and no backend registers."""

    allow_links: bool = True
    """Allow public link shares."""

    allow_resharing: bool = True
    """Allow recipients holding SHARE to share onwards."""

    only_share_with_group_members: bool = False
    """Restrict user and group shares to groups the owner belongs to."""

    default_expire_date: bool = False
    """Give new link shares a default expiration."""

    enforce_expire_date: bool = False
    """Reject link expirations later than ``expire_after_days`` after sharing."""

    expire_after_days: int = 7

    enforce_links_password: bool = False
    """Require a password on every link share."""

    exclude_groups: frozenset[str] = field(default_factory=frozenset)
    """Members of these groups may not share at all."""

    server_url: str = ""
    """Absolute URL of this instance, sent to federated peers."""

    token_length: int = 15

    federation_connect_timeout: float = 10.0

    federation_default_endpoint: str = DEFAULT_FEDERATION_ENDPOINT

    def __post_init__(self) -> None:
        if self.expire_after_days < 0:
            raise ValueError(f"expire_after_days must be >= 0, got {self.expire_after_days}")
        if self.token_length <= 0:
            raise ValueError(f"token_length must be positive, got {self.token_length}")
        self.exclude_groups = frozenset(self.exclude_groups)

    @property
    def is_link_password_required(self) -> bool:
        """True when links are allowed and must carry a password."""
        return self.allow_links and self.enforce_links_password

    @classmethod
    def from_app_values(cls, values: Mapping[str, Any], **overrides: Any) -> SharingConfig:
        """Build a config from ``shareapi_*`` app values.

        Boolean settings are stored as ``"yes"``/``"no"`` strings, the day
        count as a numeric string and the excluded groups as a JSON-ish
        comma separated list.  Unknown keys are ignored.
        """
        kwargs: dict[str, Any] = {}
        bool_names = {f.name for f in fields(cls) if f.type in ("bool", bool)}
        for key, attr in _APP_VALUE_KEYS.items():
            if key not in values:
                continue
            raw = values[key]
            if attr in bool_names:
                kwargs[attr] = str(raw).strip().lower() == "yes"
            elif attr == "expire_after_days":
                kwargs[attr] = int(raw)
            elif attr == "exclude_groups":
                kwargs[attr] = _parse_group_list(raw)
        if str(values.get("shareapi_exclude_groups", "no")).lower() != "yes":
            kwargs.pop("exclude_groups", None)
        kwargs.update(overrides)
        return cls(**kwargs)


def _parse_group_list(raw: Any) -> frozenset[str]:
    if isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset(str(g) for g in raw)
    text = str(raw).strip().strip("[]")
    return frozenset(part.strip().strip('"') for part in text.split(",") if part.strip())
