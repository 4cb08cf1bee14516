"""RemoteNotifier — tell a federated peer about new and removed shares."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from .events import EventType, ShareEvent
from .utils import remove_protocol_from_url, split_user_remote

if TYPE_CHECKING:
    from .config import SharingConfig
    from .events import ShareEventBus

logger = logging.getLogger(__name__)

_PROTOCOLS = ("https://", "http://")
_OK_STATUS = (100, 200)
_DISCOVERY_PATH = "/ocs-provider/"


@dataclass
class PostResult:
    """Outcome of one POST attempt chain."""

    success: bool
    body: str = ""


def is_ocs_success(body: str | bytes) -> bool:
    """True when *body* is an OCS JSON envelope with status 100 or 200."""
    try:
        status = json.loads(body)
        return status["ocs"]["meta"]["statuscode"] in _OK_STATUS
    except (ValueError, KeyError, TypeError):
        return False


class RemoteNotifier:
    """Federated share notifications over HTTP.

    Tries https first and falls back to http once.  The share endpoint is
    discovered from the peer's ``/ocs-provider/`` document, falling back
    to the configured default path.
    """

    def __init__(
        self,
        config: SharingConfig,
        event_bus: ShareEventBus | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._event_bus = event_bus
        self._transport = transport
        self._endpoints: dict[str, str] = {}

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(30.0, connect=self._config.federation_connect_timeout)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _discover(self, client: httpx.AsyncClient, base_url: str) -> str:
        """Share endpoint path advertised by the peer at *base_url*."""
        if base_url in self._endpoints:
            return self._endpoints[base_url]
        endpoint = self._config.federation_default_endpoint
        try:
            resp = await client.get(base_url + _DISCOVERY_PATH)
            resp.raise_for_status()
            doc = resp.json()
            endpoint = doc["services"]["FEDERATED_SHARING"]["endpoints"]["share"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError):
            logger.debug("No federation discovery at %s, using %s", base_url, endpoint)
        self._endpoints[base_url] = endpoint
        return endpoint

    async def _try_post(self, remote_domain: str, url_suffix: str, fields: dict[str, Any]) -> PostResult:
        result = PostResult(success=False)
        async with self._client() as client:
            for protocol in _PROTOCOLS:
                base_url = protocol + remote_domain
                endpoint = await self._discover(client, base_url)
                try:
                    resp = await client.post(
                        base_url + endpoint + url_suffix,
                        params={"format": "json"},
                        data={k: str(v) for k, v in fields.items()},
                    )
                    resp.raise_for_status()
                    return PostResult(success=True, body=resp.text)
                except httpx.HTTPError as exc:
                    logger.debug("POST to %s failed: %s", base_url, exc)
                    result = PostResult(success=False, body=str(exc))
        return result

    async def send_remote_share(
        self,
        token: str,
        share_with: str,
        name: str,
        remote_id: int,
        owner: str,
    ) -> bool:
        """Offer a new share to the peer.  True only if the peer acknowledged it."""
        user, remote = split_user_remote(share_with)
        fields = {
            "shareWith": user,
            "token": token,
            "name": name,
            "remoteId": remote_id,
            "owner": owner,
            "remote": self._config.server_url,
        }
        result = await self._try_post(remove_protocol_from_url(remote), "", fields)
        if result.success and is_ocs_success(result.body):
            if self._event_bus is not None:
                await self._event_bus.emit(
                    ShareEvent(event_type=EventType.FEDERATED_SHARE_ADDED, server=remote)
                )
            return True
        logger.info("Remote %s did not accept share %s", remote, remote_id)
        return False

    async def send_remote_unshare(self, remote: str, share_id: int, token: str | None) -> bool:
        """Tell the peer a share is gone.  True only if the peer acknowledged it."""
        url = remove_protocol_from_url(remote.rstrip("/"))
        fields = {"token": token or "", "format": "json"}
        result = await self._try_post(url, f"/{share_id}/unshare", fields)
        return result.success and is_ocs_success(result.body)
