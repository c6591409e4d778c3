"""
Envelope codec — ECIES encryption and ECDSA signature envelopes.

Encryption (ECIES over secp256k1):
    shared = ECDH(ephemeral_sk, recipient_pk).x
    enc_key, mac_key = SHA512(shared)[:32], SHA512(shared)[32:]
    cipherText = AES-256-CBC(enc_key, iv, PKCS7(content))
    mac = HMAC-SHA256(mac_key, iv || ephemeralPK || cipherText)

Signatures:
    signature = DER(ECDSA(SHA256(payload)))  with the signer's compressed key
    embedded, so no out-of-band key distribution is needed.

Security Note:
    The MAC is always checked before decryption; corrupted or forged
    envelopes never yield plaintext.
"""
import os
import hashlib
from typing import Optional, Union

import orjson
from pydantic import ValidationError
from cryptography.exceptions import InvalidSignature as _BadSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..exceptions import (
    InvalidSignature,
    MacMismatch,
    MalformedEnvelope,
    UnexpectedSigner,
)
from ..models import (
    Binary,
    CipherObject,
    Content,
    SignatureObject,
    SignedCipherObject,
    Text,
)
from .keys import (
    PrivateKeyLike,
    PublicKeyLike,
    address_from_public_key,
    load_private_key,
    public_key_bytes,
    public_key_hex,
    sha256,
    shared_secret,
    sign_digest,
    verify_digest,
)

IV_SIZE = 16
KEY_LENGTH = 32


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def _shared_keys(secret: bytes) -> tuple[bytes, bytes]:
    digest = hashlib.sha512(secret).digest()
    return digest[:KEY_LENGTH], digest[KEY_LENGTH:]


def _mac(key: bytes, *parts: bytes) -> hmac.HMAC:
    h = hmac.HMAC(key, hashes.SHA256())
    for part in parts:
        h.update(part)
    return h


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def encrypt_ecies(public_key: PublicKeyLike, content: Content) -> CipherObject:
    """Encrypt content for the holder of ``public_key``.

    Args:
        public_key: Recipient public key (hex or key object).
        content: ``Text`` or ``Binary``; the tag is recorded as ``wasString``.

    Returns:
        CipherObject envelope.
    """
    ephemeral = ec.generate_private_key(ec.SECP256K1())
    enc_key, mac_key = _shared_keys(shared_secret(ephemeral, public_key))

    padder = padding.PKCS7(128).padder()
    padded = padder.update(content.to_bytes()) + padder.finalize()
    iv = os.urandom(IV_SIZE)
    encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
    cipher_text = encryptor.update(padded) + encryptor.finalize()

    ephemeral_pk = public_key_bytes(ephemeral)
    mac = _mac(mac_key, iv, ephemeral_pk, cipher_text).finalize()
    return CipherObject(
        iv=iv.hex(),
        ephemeral_pk=ephemeral_pk.hex(),
        cipher_text=cipher_text.hex(),
        mac=mac.hex(),
        was_string=isinstance(content, Text),
    )


def decrypt_ecies(private_key: PrivateKeyLike, cipher: CipherObject) -> Content:
    """Verify the MAC, then decrypt an envelope.

    Raises:
        MacMismatch: If the envelope was not produced for this key or was altered.
        MalformedEnvelope: If the key material in the envelope is unusable.
    """
    iv = bytes.fromhex(cipher.iv)
    ephemeral_pk = bytes.fromhex(cipher.ephemeral_pk)
    cipher_text = bytes.fromhex(cipher.cipher_text)
    key = load_private_key(private_key)
    try:
        secret = shared_secret(key, cipher.ephemeral_pk)
    except ValueError as err:
        raise MalformedEnvelope(f"Invalid ephemeral public key: {err}") from err
    enc_key, mac_key = _shared_keys(secret)

    try:
        _mac(mac_key, iv, ephemeral_pk, cipher_text).verify(bytes.fromhex(cipher.mac))
    except _BadSignature as err:
        raise MacMismatch("Failure in MAC check") from err

    try:
        decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(cipher_text) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as err:
        raise MalformedEnvelope(f"Invalid cipher text: {err}") from err

    if cipher.was_string:
        return Text(plaintext.decode("utf-8"))
    return Binary(plaintext)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

def sign_content(payload: bytes, private_key: PrivateKeyLike) -> SignatureObject:
    """Detached signature over ``sha256(payload)``."""
    signature = sign_digest(sha256(payload), private_key)
    return SignatureObject(
        signature=signature.hex(),
        public_key=public_key_hex(private_key),
    )


def sign_encrypted_content(
    cipher_json: str, private_key: PrivateKeyLike
) -> SignedCipherObject:
    """Sign the serialized envelope; the envelope travels inside the result."""
    signed = sign_content(cipher_json.encode("utf-8"), private_key)
    return SignedCipherObject(
        signature=signed.signature,
        public_key=signed.public_key,
        cipher_text=cipher_json,
    )


def _check_signer(public_key: str, expected_address: Optional[str]) -> None:
    if expected_address is None:
        return
    try:
        signer = address_from_public_key(public_key)
    except ValueError as err:
        raise InvalidSignature(f"Invalid signer public key: {err}") from err
    if signer != expected_address:
        raise UnexpectedSigner(signer, expected_address)


def _check_signature(signature_hex: str, payload: bytes, public_key: str) -> None:
    try:
        signature = bytes.fromhex(signature_hex)
    except ValueError as err:
        raise InvalidSignature("Signature is not valid hex") from err
    if not verify_digest(sha256(payload), signature, public_key):
        raise InvalidSignature("Invalid signature")


def verify_content(
    signature: SignatureObject,
    payload: bytes,
    expected_address: Optional[str] = None,
) -> bytes:
    """Verify a detached signature and return the payload.

    Args:
        signature: Parsed ``.sig`` companion.
        payload: Raw bytes the signature is claimed to cover.
        expected_address: When given, the embedded key must belong to it.

    Raises:
        UnexpectedSigner: If the key belongs to another address.
        InvalidSignature: If the signature does not verify.
    """
    _check_signer(signature.public_key, expected_address)
    _check_signature(signature.signature, payload, signature.public_key)
    return payload


def verify_signed_cipher(
    signed: SignedCipherObject, expected_address: Optional[str] = None
) -> CipherObject:
    """Verify a signed envelope and return the inner ``CipherObject``."""
    payload = signed.cipher_text.encode("utf-8")
    _check_signer(signed.public_key, expected_address)
    _check_signature(signed.signature, payload, signed.public_key)
    return parse_cipher_object(signed.cipher_text)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _parse(model: type, data: Union[str, bytes], name: str):
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise MalformedEnvelope(f"{name} is not valid JSON: {err}") from err
    if not isinstance(parsed, dict):
        raise MalformedEnvelope(f"{name} must be a JSON object")
    try:
        return model.model_validate(parsed)
    except ValidationError as err:
        fields = ", ".join(str(e["loc"][0]) for e in err.errors() if e["loc"])
        raise MalformedEnvelope(f"Malformed {name}: {fields}") from err


def parse_cipher_object(data: Union[str, bytes]) -> CipherObject:
    return _parse(CipherObject, data, "cipher object")


def parse_signature_object(data: Union[str, bytes]) -> SignatureObject:
    return _parse(SignatureObject, data, "signature object")


def parse_signed_cipher_object(data: Union[str, bytes]) -> SignedCipherObject:
    return _parse(SignedCipherObject, data, "signed cipher object")
