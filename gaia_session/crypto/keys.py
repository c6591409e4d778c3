"""
Key math — secp256k1 primitives used by tokens and envelopes.

Keys travel as hex strings, the same way the identity provider and the hub
exchange them:
- private keys: 32 bytes (64 hex chars), optionally suffixed with ``01``
  to flag a compressed public key;
- public keys: SEC1 compressed points (66 hex chars).

Security Note:
    Never log private key material.
"""
import re
import hashlib
from typing import Optional, Union

import base58
from cryptography.exceptions import InvalidSignature as _BadSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

CURVE = ec.SECP256K1()
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
MAINNET_VERSION = 0x00

_DID_BTC_ADDR = re.compile(r"^did:btc-addr:([1-9A-HJ-NP-Za-km-z]+)$")

PrivateKeyLike = Union[str, ec.EllipticCurvePrivateKey]
PublicKeyLike = Union[str, ec.EllipticCurvePublicKey]


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160 of SHA-256, as used for bitcoin-style addresses."""
    return hashlib.new("ripemd160", sha256(data)).digest()


# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------

def load_private_key(private_key: PrivateKeyLike) -> ec.EllipticCurvePrivateKey:
    """Load a secp256k1 private key from hex.

    Args:
        private_key: 64 hex chars, or 66 with the trailing ``01`` compression flag.

    Raises:
        ValueError: If the value is not a valid secp256k1 scalar.
    """
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key
    key_hex = private_key.strip().lower()
    if len(key_hex) == 66 and key_hex.endswith("01"):
        key_hex = key_hex[:64]
    if len(key_hex) != 64:
        raise ValueError("Private key must be 32 bytes of hex")
    value = int(key_hex, 16)
    if not 0 < value < CURVE_ORDER:
        raise ValueError("Private key is out of range for secp256k1")
    return ec.derive_private_key(value, CURVE)


def load_public_key(public_key: PublicKeyLike) -> ec.EllipticCurvePublicKey:
    """Load a secp256k1 public key from compressed or uncompressed hex."""
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return public_key
    return ec.EllipticCurvePublicKey.from_encoded_point(
        CURVE, bytes.fromhex(public_key)
    )


def generate_private_key() -> str:
    """Generate a new random private key and return it as 64 hex chars."""
    key = ec.generate_private_key(CURVE)
    return private_key_hex(key)


def private_key_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()


def public_key_bytes(key: Union[PrivateKeyLike, PublicKeyLike]) -> bytes:
    """Compressed SEC1 encoding of the public key for ``key``."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        public = key.public_key()
    elif isinstance(key, ec.EllipticCurvePublicKey):
        public = key
    else:
        raise TypeError("Expected a key object; use public_key_hex() for hex input")
    return public.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )


def public_key_hex(private_key: PrivateKeyLike) -> str:
    """Compressed public key (hex) for a private key."""
    return public_key_bytes(load_private_key(private_key)).hex()


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

def address_from_public_key(
    public_key: PublicKeyLike, version: int = MAINNET_VERSION
) -> str:
    """Base58check address of the compressed public key."""
    payload = bytes([version]) + hash160(public_key_bytes(load_public_key(public_key)))
    return base58.b58encode_check(payload).decode("ascii")


def address_from_private_key(
    private_key: PrivateKeyLike, version: int = MAINNET_VERSION
) -> str:
    return address_from_public_key(load_private_key(private_key).public_key(), version)


def get_address_from_did(did: Optional[str]) -> Optional[str]:
    """Extract the address of a ``did:btc-addr:<address>`` identifier.

    Returns:
        The address, or None if ``did`` is not a btc-addr DID.
    """
    if not did:
        return None
    match = _DID_BTC_ADDR.match(did)
    return match.group(1) if match else None


def make_did_from_address(address: str) -> str:
    return f"did:btc-addr:{address}"


# ---------------------------------------------------------------------------
# ECDSA
# ---------------------------------------------------------------------------

def _low_s(r: int, s: int) -> tuple[int, int]:
    if s > CURVE_ORDER // 2:
        s = CURVE_ORDER - s
    return r, s


def sign_digest(digest: bytes, private_key: PrivateKeyLike) -> bytes:
    """Sign a SHA-256 digest; returns a low-S DER signature."""
    key = load_private_key(private_key)
    der = key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
    return encode_dss_signature(*_low_s(*decode_dss_signature(der)))


def verify_digest(digest: bytes, signature: bytes, public_key: PublicKeyLike) -> bool:
    """Check a DER signature over a SHA-256 digest.

    Returns False for any malformed input instead of raising.
    """
    try:
        key = load_public_key(public_key)
        key.verify(signature, digest, ec.ECDSA(Prehashed(hashes.SHA256())))
    except (_BadSignature, ValueError, TypeError):
        return False
    return True


def sign_raw(data: bytes, private_key: PrivateKeyLike) -> bytes:
    """Sign ``sha256(data)`` and return the 64-byte ``r || s`` form used by JWS."""
    der = sign_digest(sha256(data), private_key)
    r, s = decode_dss_signature(der)
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def verify_raw(data: bytes, signature: bytes, public_key: PublicKeyLike) -> bool:
    """Check a 64-byte ``r || s`` signature over ``sha256(data)``."""
    if len(signature) != 64:
        return False
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    return verify_digest(sha256(data), encode_dss_signature(r, s), public_key)


# ---------------------------------------------------------------------------
# Key agreement
# ---------------------------------------------------------------------------

def shared_secret(private_key: PrivateKeyLike, public_key: PublicKeyLike) -> bytes:
    """ECDH over secp256k1; returns the 32-byte x coordinate."""
    return load_private_key(private_key).exchange(ec.ECDH(), load_public_key(public_key))
