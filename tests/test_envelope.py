"""
Tests for the envelope codec.

Tests cover:
- ECIES encryption of text and binary content
- MAC checks on altered envelopes
- Detached and embedded signatures, including signer binding
- Parsing of malformed envelopes
"""
import orjson
import pytest

from gaia_session.crypto.envelope import (
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
from gaia_session.crypto.keys import (
    address_from_private_key,
    generate_private_key,
    public_key_hex,
)
from gaia_session.exceptions import (
    CryptoError,
    InvalidSignature,
    MacMismatch,
    MalformedEnvelope,
    UnexpectedSigner,
)
from gaia_session.models import Binary, CipherObject, Text

from .conftest import BITCOIN_ADDRESS, PRIVATE_KEY


def flip_hex(value: str, index: int = 0) -> str:
    """Return ``value`` with one hex digit changed."""
    digit = "1" if value[index] != "1" else "2"
    return value[:index] + digit + value[index + 1:]


@pytest.fixture
def public_key():
    return public_key_hex(PRIVATE_KEY)


# --- Test Encryption ---

class TestEncryption:
    """Tests for encrypt_ecies / decrypt_ecies."""

    @pytest.mark.parametrize("content", [
        Text("hi"),
        Text(""),
        Text("ünïcödé ✓ " * 50),
        Binary(b"\x00\x01\x02\xff"),
        Binary(bytes(range(256)) * 4),
    ])
    def test_round_trip(self, public_key, content):
        """Test content decrypts to the same value and type."""
        cipher = encrypt_ecies(public_key, content)
        assert cipher.was_string is isinstance(content, Text)
        assert decrypt_ecies(PRIVATE_KEY, cipher) == content

    def test_envelope_wire_format(self, public_key):
        """Test envelope JSON uses the protocol field names."""
        data = orjson.loads(encrypt_ecies(public_key, Text("hi")).to_json())
        assert set(data) == {"iv", "ephemeralPK", "cipherText", "mac", "wasString"}
        assert len(bytes.fromhex(data["iv"])) == 16
        assert len(bytes.fromhex(data["ephemeralPK"])) == 33
        assert len(bytes.fromhex(data["mac"])) == 32
        assert data["wasString"] is True

    def test_fresh_envelope_per_call(self, public_key):
        """Test encrypting twice never reuses the IV or ephemeral key."""
        first = encrypt_ecies(public_key, Text("hi"))
        second = encrypt_ecies(public_key, Text("hi"))
        assert first.iv != second.iv
        assert first.ephemeral_pk != second.ephemeral_pk
        assert first.cipher_text != second.cipher_text

    def test_round_trip_through_json(self, public_key):
        """Test a serialized envelope still decrypts."""
        cipher = encrypt_ecies(public_key, Text("hello gaia"))
        parsed = parse_cipher_object(cipher.to_json())
        assert decrypt_ecies(PRIVATE_KEY, parsed) == Text("hello gaia")

    @pytest.mark.parametrize("field", ["cipher_text", "mac", "iv"])
    def test_altered_envelope_fails_mac(self, public_key, field):
        """Test any altered field is rejected before decryption."""
        cipher = encrypt_ecies(public_key, Text("hi"))
        tampered = cipher.model_copy(update={field: flip_hex(getattr(cipher, field))})
        with pytest.raises(MacMismatch):
            decrypt_ecies(PRIVATE_KEY, tampered)

    def test_wrong_key_fails_mac(self, public_key):
        """Test an envelope addressed to another key cannot be opened."""
        cipher = encrypt_ecies(public_key, Text("hi"))
        with pytest.raises(MacMismatch):
            decrypt_ecies(generate_private_key(), cipher)

    def test_invalid_ephemeral_key(self, public_key):
        """Test a point that is not on the curve is a malformed envelope."""
        cipher = encrypt_ecies(public_key, Text("hi"))
        broken = cipher.model_copy(update={"ephemeral_pk": "05" + "00" * 32})
        with pytest.raises(MalformedEnvelope):
            decrypt_ecies(PRIVATE_KEY, broken)

    def test_crypto_errors_share_a_base(self):
        assert issubclass(MacMismatch, CryptoError)
        assert issubclass(MalformedEnvelope, CryptoError)


# --- Test Parsing ---

class TestParsing:
    """Tests for envelope parsing."""

    def test_invalid_json(self):
        with pytest.raises(MalformedEnvelope):
            parse_cipher_object("hello, world")

    def test_not_an_object(self):
        with pytest.raises(MalformedEnvelope):
            parse_cipher_object("[1, 2, 3]")

    def test_missing_field(self, public_key):
        """Test a missing field is reported by name."""
        data = orjson.loads(encrypt_ecies(public_key, Text("hi")).to_json())
        del data["mac"]
        with pytest.raises(MalformedEnvelope, match="mac"):
            parse_cipher_object(orjson.dumps(data))

    def test_non_hex_field(self, public_key):
        data = orjson.loads(encrypt_ecies(public_key, Text("hi")).to_json())
        data["cipherText"] = "not hex"
        with pytest.raises(MalformedEnvelope):
            parse_cipher_object(orjson.dumps(data))

    def test_signature_object_requires_public_key(self):
        with pytest.raises(MalformedEnvelope):
            parse_signature_object('{"signature": "3045"}')

    def test_parse_accepts_bytes(self, public_key):
        cipher = encrypt_ecies(public_key, Binary(b"data"))
        assert parse_cipher_object(cipher.to_json_bytes()) == cipher
        assert isinstance(parse_cipher_object(cipher.to_json_bytes()), CipherObject)


# --- Test Signatures ---

class TestSignatures:
    """Tests for detached and embedded signatures."""

    def test_sign_and_verify(self):
        """Test a detached signature verifies and returns the payload."""
        signature = sign_content(b"hello", PRIVATE_KEY)
        assert signature.public_key == public_key_hex(PRIVATE_KEY)
        assert verify_content(signature, b"hello", BITCOIN_ADDRESS) == b"hello"

    def test_signature_wire_format(self):
        data = orjson.loads(sign_content(b"hello", PRIVATE_KEY).to_json())
        assert set(data) == {"signature", "publicKey"}

    def test_altered_payload(self):
        signature = sign_content(b"hello", PRIVATE_KEY)
        with pytest.raises(InvalidSignature):
            verify_content(signature, b"hullo", BITCOIN_ADDRESS)

    def test_invalid_signature_value(self):
        """Test a garbage signature is rejected, not raised as a crash."""
        signature = sign_content(b"hello", PRIVATE_KEY).model_copy(
            update={"signature": "INVALID_SIGNATURE"}
        )
        with pytest.raises(InvalidSignature):
            verify_content(signature, b"hello")

    def test_unexpected_signer(self):
        """Test a valid signature by another key is rejected when an owner is expected."""
        other = generate_private_key()
        signature = sign_content(b"hello", other)
        # without an expected owner the signature itself is fine
        assert verify_content(signature, b"hello") == b"hello"
        with pytest.raises(UnexpectedSigner) as exc_info:
            verify_content(signature, b"hello", BITCOIN_ADDRESS)
        assert exc_info.value.signer_address == address_from_private_key(other)
        assert exc_info.value.expected_address == BITCOIN_ADDRESS

    def test_signed_cipher_round_trip(self, public_key):
        """Test encrypt, then sign, then verify, then decrypt."""
        cipher_json = encrypt_ecies(public_key, Text("hi")).to_json()
        signed = sign_encrypted_content(cipher_json, PRIVATE_KEY)
        parsed = parse_signed_cipher_object(signed.to_json())
        cipher = verify_signed_cipher(parsed, BITCOIN_ADDRESS)
        assert decrypt_ecies(PRIVATE_KEY, cipher) == Text("hi")

    def test_signed_cipher_wire_format(self, public_key):
        cipher_json = encrypt_ecies(public_key, Text("hi")).to_json()
        data = orjson.loads(sign_encrypted_content(cipher_json, PRIVATE_KEY).to_json())
        assert set(data) == {"signature", "publicKey", "cipherText"}
        assert data["cipherText"] == cipher_json

    def test_signed_cipher_altered(self, public_key):
        """Test a signed envelope whose inner envelope changed is rejected."""
        cipher = encrypt_ecies(public_key, Text("hi"))
        signed = sign_encrypted_content(cipher.to_json(), PRIVATE_KEY)
        other = encrypt_ecies(public_key, Text("evil")).to_json()
        tampered = signed.model_copy(update={"cipher_text": other})
        with pytest.raises(InvalidSignature):
            verify_signed_cipher(tampered, BITCOIN_ADDRESS)

    def test_signed_cipher_unexpected_signer(self, public_key):
        cipher_json = encrypt_ecies(public_key, Text("hi")).to_json()
        signed = sign_encrypted_content(cipher_json, generate_private_key())
        with pytest.raises(UnexpectedSigner):
            verify_signed_cipher(signed, BITCOIN_ADDRESS)
