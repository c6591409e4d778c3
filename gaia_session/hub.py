"""
Hub — connection to a Gaia hub and the URLs of its storage routes.

Connecting reads the hub's challenge from ``GET <hub>/hub_info`` and signs a
v1 auth token with the app private key. The resulting ``HubConfig`` carries
the bearer token, the bucket address (derived from the key) and the read
URL prefix; it is immutable and replaced wholesale on every connect.
"""
import os
import logging
from typing import Optional

import orjson

from .auth import encode_token
from .crypto.keys import PrivateKeyLike, address_from_private_key, public_key_hex
from .exceptions import HubConnectError
from .models import HubConfig
from .transport import Transport

logger = logging.getLogger("gaia.session.hub")


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def get_full_read_url(path: str, config: HubConfig) -> str:
    return f"{config.url_prefix}{config.address}/{path}"


def store_url(path: str, config: HubConfig) -> str:
    return f"{config.server}/store/{config.address}/{path}"


def delete_url(path: str, config: HubConfig) -> str:
    return f"{config.server}/delete/{config.address}/{path}"


def list_files_url(config: HubConfig) -> str:
    return f"{config.server}/list-files/{config.address}"


def auth_headers(config: HubConfig, content_type: Optional[str] = None) -> dict[str, str]:
    headers = {"Authorization": f"bearer {config.token}"}
    if content_type:
        headers["Content-Type"] = content_type
    return headers


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------

class HubConnector:
    """Negotiates ``HubConfig`` objects with a Gaia hub.

    Args:
        transport: Transport used for the ``hub_info`` request.
    """

    def __init__(self, transport: Transport):
        self._transport = transport

    async def hub_info(self, hub_url: str) -> dict:
        """Fetch ``<hub>/hub_info``.

        Raises:
            HubConnectError: On a non-2xx status or an unreadable body.
        """
        hub_url = hub_url.rstrip("/")
        response = await self._transport.execute("GET", f"{hub_url}/hub_info")
        if not response.ok:
            raise HubConnectError(
                f"Error reading hub info from {hub_url}, status: {response.status}",
                status=response.status,
            )
        try:
            info = response.json()
        except orjson.JSONDecodeError as err:
            raise HubConnectError(f"Invalid hub info from {hub_url}: {err}") from err
        if not isinstance(info, dict):
            raise HubConnectError(f"Invalid hub info from {hub_url}")
        return info

    async def connect(
        self,
        hub_url: str,
        app_private_key: PrivateKeyLike,
        association_token: Optional[str] = None,
    ) -> HubConfig:
        """Connect to a hub and return a fresh configuration.

        Args:
            hub_url: Root URL of the hub.
            app_private_key: Key that owns the bucket.
            association_token: Optional proof that the app may write to a
                bucket delegated by the user.

        Returns:
            New HubConfig.

        Raises:
            HubConnectError: If the hub refuses or returns an incomplete answer.
        """
        hub_url = hub_url.rstrip("/")
        logger.debug("Connecting to hub %s", hub_url)
        info = await self.hub_info(hub_url)
        challenge = info.get("challenge_text")
        read_url_prefix = info.get("read_url_prefix")
        if not challenge or not read_url_prefix:
            raise HubConnectError(
                f"Hub {hub_url} did not provide challenge_text and read_url_prefix"
            )
        token = self.make_auth_token(
            hub_url, challenge, app_private_key, association_token
        )
        config = HubConfig(
            url_prefix=read_url_prefix,
            address=address_from_private_key(app_private_key),
            token=token,
            server=hub_url,
        )
        logger.info("Connected to hub %s for bucket %s", hub_url, config.address)
        return config

    @staticmethod
    def make_auth_token(
        hub_url: str,
        challenge: str,
        app_private_key: PrivateKeyLike,
        association_token: Optional[str] = None,
    ) -> str:
        """Build the ``v1:`` bearer token answering a hub challenge."""
        payload = {
            "gaiaChallenge": challenge,
            "hubUrl": hub_url,
            "iss": public_key_hex(app_private_key),
            "salt": os.urandom(16).hex(),
        }
        if association_token:
            payload["associationToken"] = association_token
        return "v1:" + encode_token(payload, app_private_key)

    async def get_app_bucket_url(self, hub_url: str, app_private_key: PrivateKeyLike) -> str:
        """Public read URL of the bucket owned by ``app_private_key``."""
        info = await self.hub_info(hub_url)
        prefix = info.get("read_url_prefix")
        if not prefix:
            raise HubConnectError(f"Hub {hub_url} did not provide read_url_prefix")
        return f"{prefix}{address_from_private_key(app_private_key)}/"

