"""Gaia Session crypto — secp256k1 key math and file envelopes.

Security Note (Threat Model):
    The app private key lives in process memory for the lifetime of the
    session. Envelopes protect data at rest on the hub; they do not protect
    against a compromised client process.
"""

from .keys import (
    address_from_private_key,
    address_from_public_key,
    generate_private_key,
    get_address_from_did,
    public_key_hex,
)
from .envelope import (
    decrypt_ecies,
    encrypt_ecies,
    parse_cipher_object,
    parse_signature_object,
    parse_signed_cipher_object,
    sign_content,
    sign_encrypted_content,
    verify_content,
    verify_signed_cipher,
)

__all__ = [
    "address_from_private_key",
    "address_from_public_key",
    "generate_private_key",
    "get_address_from_did",
    "public_key_hex",
    "decrypt_ecies",
    "encrypt_ecies",
    "parse_cipher_object",
    "parse_signature_object",
    "parse_signed_cipher_object",
    "sign_content",
    "sign_encrypted_content",
    "verify_content",
    "verify_signed_cipher",
]
