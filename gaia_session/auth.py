"""
Auth — verification of the signed auth response that completes a sign-in.

The auth response is an ES256K JWT issued by the identity provider:
    base64url(header) "." base64url(payload) "." base64url(r || s)

The signing key is ``payload.public_keys[0]``; its address must match the
address of the issuer DID (``iss``). No claim is trusted before that check
passes. Secrets in the payload (``private_key``, ``core_token``) are
hex-encoded ECIES envelopes addressed to the app's transit key.

Security Note:
    Never log tokens, decrypted keys or session tokens.
"""
import base64
import binascii
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import orjson

from .conf import DEFAULT_HUB_URL
from .crypto.envelope import decrypt_ecies, parse_cipher_object
from .crypto.keys import (
    PrivateKeyLike,
    address_from_public_key,
    get_address_from_did,
    sign_raw,
    verify_raw,
)
from .exceptions import (
    CryptoError,
    DecryptionFailed,
    ExpiredToken,
    InvalidTokenSignature,
    MalformedToken,
)
from .models import Text, UserData
from .transport import Transport

logger = logging.getLogger("gaia.session.auth")

TOKEN_ALGORITHM = "ES256K"


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------

def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


@dataclass(frozen=True)
class DecodedToken:
    header: dict
    payload: dict
    signature: bytes
    signing_input: bytes


def encode_token(payload: dict, private_key: PrivateKeyLike) -> str:
    """Sign ``payload`` as an ES256K JWT.

    Args:
        payload: JSON-serializable claims.
        private_key: Signing key.

    Returns:
        The compact token string.
    """
    header = {"typ": "JWT", "alg": TOKEN_ALGORITHM}
    signing_input = (
        b64url_encode(orjson.dumps(header)) + "." + b64url_encode(orjson.dumps(payload))
    )
    signature = sign_raw(signing_input.encode("ascii"), private_key)
    return signing_input + "." + b64url_encode(signature)


def decode_token(token: str) -> DecodedToken:
    """Split and decode a token without verifying it.

    Raises:
        MalformedToken: If the token is not three decodable segments.
    """
    segments = token.split(".")
    if len(segments) != 3:
        raise MalformedToken(
            "The auth response is not a valid token: expected 3 segments, "
            f"got {len(segments)}"
        )
    header_b64, payload_b64, signature_b64 = segments
    try:
        header = orjson.loads(b64url_decode(header_b64))
        payload = orjson.loads(b64url_decode(payload_b64))
        signature = b64url_decode(signature_b64)
    except (binascii.Error, ValueError) as err:
        raise MalformedToken(f"The auth response could not be decoded: {err}") from err
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise MalformedToken("Token header and payload must be JSON objects")
    return DecodedToken(
        header=header,
        payload=payload,
        signature=signature,
        signing_input=f"{header_b64}.{payload_b64}".encode("ascii"),
    )


def verify_token(token: str) -> DecodedToken:
    """Decode a token and verify its signature against its issuer.

    Raises:
        MalformedToken: If the token cannot be decoded.
        InvalidTokenSignature: If the signature, key or issuer do not match.
    """
    decoded = decode_token(token)
    if decoded.header.get("alg") != TOKEN_ALGORITHM:
        raise InvalidTokenSignature(
            f"Unsupported token algorithm: {decoded.header.get('alg')!r}"
        )
    public_keys = decoded.payload.get("public_keys")
    if not isinstance(public_keys, list) or len(public_keys) != 1:
        raise InvalidTokenSignature("Token must carry exactly one public key")
    public_key = public_keys[0]
    if not isinstance(public_key, str):
        raise InvalidTokenSignature("Token public key must be a hex string")

    if not verify_raw(decoded.signing_input, decoded.signature, public_key):
        raise InvalidTokenSignature("invalid auth response: bad signature")

    issuer_address = get_address_from_did(decoded.payload.get("iss"))
    if issuer_address is None:
        raise InvalidTokenSignature("invalid auth response: issuer is not a DID")
    if address_from_public_key(public_key) != issuer_address:
        raise InvalidTokenSignature(
            "invalid auth response: public key does not match issuer"
        )
    return decoded


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------

def _optional_claim(payload: dict, name: str) -> Optional[str]:
    value = payload.get(name)
    if value is None or value == "" or value == "null":
        return None
    return str(value)


class AuthTokenVerifier:
    """Turns an auth response token into trusted ``UserData``.

    Args:
        transport: Used to fetch the profile when the token names a
            ``profile_url``.
        default_hub_url: Hub recorded when the token does not carry ``hubUrl``.
    """

    def __init__(self, transport: Transport, default_hub_url: str = DEFAULT_HUB_URL):
        self._transport = transport
        self._default_hub_url = default_hub_url

    async def verify_and_decode(
        self, token: str, transit_private_key: PrivateKeyLike
    ) -> UserData:
        """Verify an auth response and decrypt its embedded secrets.

        Args:
            token: The auth response token.
            transit_private_key: Key the app generated for this sign-in.

        Returns:
            UserData with the decrypted app private key.

        Raises:
            MalformedToken, InvalidTokenSignature, ExpiredToken, DecryptionFailed.
        """
        decoded = self._verified(token)
        payload = decoded.payload
        app_private_key = self._decrypt_claim(payload, "private_key", transit_private_key)
        core_token = self._decrypt_claim(payload, "core_token", transit_private_key)
        return await self._to_user_data(payload, token, app_private_key, core_token)

    async def verify_and_decode_unencrypted(self, token: str) -> UserData:
        """Verify an auth response whose secrets are carried in plaintext."""
        decoded = self._verified(token)
        payload = decoded.payload
        return await self._to_user_data(
            payload,
            token,
            _optional_claim(payload, "private_key"),
            _optional_claim(payload, "core_token"),
        )

    def _verified(self, token: str) -> DecodedToken:
        decoded = verify_token(token)
        exp = decoded.payload.get("exp")
        if exp is not None:
            try:
                expires_at = float(exp)
            except (TypeError, ValueError) as err:
                raise MalformedToken(f"Invalid exp claim: {exp!r}") from err
            if expires_at < time.time():
                raise ExpiredToken("The auth response has expired")
        return decoded

    def _decrypt_claim(
        self, payload: dict, name: str, transit_private_key: PrivateKeyLike
    ) -> Optional[str]:
        cipher_hex = _optional_claim(payload, name)
        if cipher_hex is None:
            return None
        try:
            cipher_json = bytes.fromhex(cipher_hex).decode("utf-8")
            content = decrypt_ecies(transit_private_key, parse_cipher_object(cipher_json))
        except (ValueError, CryptoError) as err:
            raise DecryptionFailed(f"Failed to decrypt {name}: {err}") from err
        if isinstance(content, Text):
            return content.value
        return content.value.decode("utf-8")

    async def _to_user_data(
        self,
        payload: dict,
        token: str,
        app_private_key: Optional[str],
        core_session_token: Optional[str],
    ) -> UserData:
        iss = payload.get("iss")
        identity_address = get_address_from_did(iss)
        if identity_address is None:
            raise MalformedToken("Missing or invalid iss claim")
        return UserData(
            username=_optional_claim(payload, "username"),
            profile=await self.resolve_profile(payload),
            email=_optional_claim(payload, "email"),
            decentralized_id=iss,
            identity_address=identity_address,
            app_private_key=app_private_key,
            core_session_token=core_session_token,
            auth_response_token=token,
            hub_url=_optional_claim(payload, "hubUrl") or self._default_hub_url,
            gaia_association_token=_optional_claim(payload, "associationToken"),
        )

    async def resolve_profile(self, payload: dict) -> dict[str, Any]:
        """Return the inline profile, or the first profile behind ``profile_url``.

        A profile URL that cannot be read yields an empty profile; sign-in
        does not fail because of it.
        """
        profile_url = _optional_claim(payload, "profile_url")
        if profile_url and profile_url.strip():
            response = await self._transport.execute("GET", profile_url)
            if not response.ok:
                logger.warning(
                    "invalid profile url %s: %s", profile_url, response.status
                )
                return {}
            try:
                profiles = response.json()
            except orjson.JSONDecodeError:
                logger.warning("profile url %s did not return JSON", profile_url)
                return {}
            if isinstance(profiles, list) and profiles and isinstance(profiles[0], dict):
                return profiles[0]
            return {}
        profile = payload.get("profile")
        return profile if isinstance(profile, dict) else {}
