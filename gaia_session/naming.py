"""
Naming — resolution of another user's public app bucket.

Reading a file from another user follows the name to its profile:
    GET <core>/v1/names/<username>   -> {"zonefile": ..., "address": ...}
    zone file URI record             -> profile token file URL
    profile token file (JSON array)  -> signed profile claim
    profile.apps[<app domain>]       -> bucket URL of that user for this app

The profile token must be signed by a key whose address owns the name.
"""
import re
import logging
from typing import Any, Optional

import orjson

from .auth import decode_token
from .conf import DEFAULT_CORE_NODE
from .crypto.keys import address_from_public_key, verify_raw
from .exceptions import InvalidSignature, MalformedToken, UnknownError
from .transport import Transport

logger = logging.getLogger("gaia.session.naming")

_ZONE_FILE_URI = re.compile(r'URI\s+\d+\s+\d+\s+"(https?://[^"]+)"')
_GAIA_ADDRESS = re.compile(r"([13][a-km-zA-HJ-NP-Z1-9]{26,35})")


def get_token_file_url(zone_file: str) -> Optional[str]:
    """First URI record of a zone file, or None."""
    match = _ZONE_FILE_URI.search(zone_file)
    return match.group(1) if match else None


def get_gaia_address_from_url(url: str) -> Optional[str]:
    """Bucket address embedded in a Gaia read URL."""
    match = _GAIA_ADDRESS.search(url)
    return match.group(1) if match else None


def verify_profile_token(token: str, owner_address: Optional[str] = None) -> dict[str, Any]:
    """Verify a profile token and return its ``claim``.

    Raises:
        MalformedToken: If the token cannot be decoded.
        InvalidSignature: If the signature or signer do not match.
    """
    decoded = decode_token(token)
    issuer = decoded.payload.get("issuer") or {}
    public_key = issuer.get("publicKey") if isinstance(issuer, dict) else None
    if not public_key:
        raise MalformedToken("Profile token has no issuer public key")
    if not verify_raw(decoded.signing_input, decoded.signature, public_key):
        raise InvalidSignature("Profile token signature does not verify")
    if owner_address is not None:
        signer = address_from_public_key(public_key)
        if signer != owner_address:
            raise InvalidSignature(
                f"Profile token signer {signer} does not own the name ({owner_address})"
            )
    claim = decoded.payload.get("claim")
    return claim if isinstance(claim, dict) else {}


class NameResolver:
    """Looks up users' profiles through a naming node.

    Args:
        transport: Transport for naming and profile requests.
        core_node: Naming node base URL.
    """

    def __init__(self, transport: Transport, core_node: str = DEFAULT_CORE_NODE):
        self._transport = transport
        self._core_node = core_node.rstrip("/")

    async def _get_json(self, url: str) -> Any:
        response = await self._transport.execute("GET", url)
        if not response.ok:
            raise UnknownError(f"Error fetching {url}, status: {response.status}")
        try:
            return response.json()
        except orjson.JSONDecodeError as err:
            raise UnknownError(f"Invalid JSON from {url}: {err}") from err

    async def lookup_profile(
        self, username: str, zone_file_lookup_url: Optional[str] = None
    ) -> dict[str, Any]:
        """Return the verified profile of ``username``.

        Args:
            username: Registered name, e.g. ``alice.id``.
            zone_file_lookup_url: Naming node to use instead of the default.
        """
        base = (zone_file_lookup_url or self._core_node).rstrip("/")
        record = await self._get_json(f"{base}/v1/names/{username}")
        if not isinstance(record, dict):
            raise UnknownError(f"Invalid name record for {username}")
        zone_file = record.get("zonefile") or ""
        token_file_url = get_token_file_url(zone_file)
        if token_file_url is None:
            logger.warning("No profile URL in zone file of %s", username)
            return {}
        tokens = await self._get_json(token_file_url)
        if not isinstance(tokens, list) or not tokens:
            return {}
        first = tokens[0]
        token = first.get("token") if isinstance(first, dict) else None
        if not token:
            return {}
        return verify_profile_token(token, record.get("address"))

    async def get_user_app_file_url(
        self,
        path: str,
        username: str,
        app_domain: str,
        zone_file_lookup_url: Optional[str] = None,
    ) -> Optional[str]:
        """Public URL of ``path`` in the bucket ``username`` uses for ``app_domain``.

        Returns:
            The URL, or None if the user has no bucket for this app.
        """
        profile = await self.lookup_profile(username, zone_file_lookup_url)
        apps = profile.get("apps") or {}
        bucket_url = apps.get(app_domain.rstrip("/")) or apps.get(app_domain)
        if not bucket_url:
            return None
        if not bucket_url.endswith("/"):
            bucket_url += "/"
        return f"{bucket_url}{path}"

    async def get_gaia_address(
        self,
        app_domain: str,
        username: str,
        zone_file_lookup_url: Optional[str] = None,
    ) -> Optional[str]:
        url = await self.get_user_app_file_url(
            "", username, app_domain, zone_file_lookup_url
        )
        return get_gaia_address_from_url(url) if url else None
