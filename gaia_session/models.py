"""
Gaia Session data models.

Wire-facing models use the JSON field names of the Gaia/blockstack protocol
as aliases, so ``model_dump(by_alias=True)`` produces exactly what the hub
and other SDKs read, while Python code uses snake_case attributes.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .conf import DEFAULT_HUB_URL


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Text:
    value: str

    def to_bytes(self) -> bytes:
        return self.value.encode("utf-8")


@dataclass(frozen=True)
class Binary:
    value: bytes

    def to_bytes(self) -> bytes:
        return self.value


Content = Union[Text, Binary]


def as_content(content: Union[str, bytes, bytearray, Text, Binary]) -> Content:
    """Tag raw ``str``/``bytes`` as ``Text``/``Binary``.

    Raises:
        TypeError: For any other type.
    """
    if isinstance(content, (Text, Binary)):
        return content
    if isinstance(content, str):
        return Text(content)
    if isinstance(content, (bytes, bytearray)):
        return Binary(bytes(content))
    raise TypeError("content only supports str or bytes")


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

def _hex(value: str) -> str:
    bytes.fromhex(value)
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return orjson.dumps(self.model_dump(by_alias=True)).decode("utf-8")

    def to_json_bytes(self) -> bytes:
        return orjson.dumps(self.model_dump(by_alias=True))


class CipherObject(_WireModel):
    """ECIES encryption envelope."""

    iv: str
    ephemeral_pk: str = Field(alias="ephemeralPK")
    cipher_text: str = Field(alias="cipherText")
    mac: str
    was_string: bool = Field(alias="wasString")

    @field_validator("iv", "ephemeral_pk", "cipher_text", "mac")
    @classmethod
    def validate_hex(cls, v: str) -> str:
        return _hex(v)


class SignatureObject(_WireModel):
    """Detached signature stored in a ``.sig`` companion file."""

    signature: str
    public_key: str = Field(alias="publicKey")


class SignedCipherObject(_WireModel):
    """Signature over a serialized ``CipherObject``, carried alongside it."""

    signature: str
    public_key: str = Field(alias="publicKey")
    cipher_text: str = Field(alias="cipherText")


# ---------------------------------------------------------------------------
# Hub and user
# ---------------------------------------------------------------------------

class HubConfig(BaseModel):
    """Working connection to a Gaia hub. Replaced wholesale, never patched."""

    model_config = ConfigDict(frozen=True)

    url_prefix: str
    address: str
    token: str
    server: str


class UserData(BaseModel):
    """Durable result of a sign-in."""

    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = None
    profile: dict[str, Any] = Field(default_factory=dict)
    email: Optional[str] = None
    decentralized_id: Optional[str] = Field(default=None, alias="decentralizedID")
    identity_address: Optional[str] = Field(default=None, alias="identityAddress")
    app_private_key: Optional[str] = Field(default=None, alias="appPrivateKey")
    core_session_token: Optional[str] = Field(default=None, alias="coreSessionToken")
    auth_response_token: Optional[str] = Field(default=None, alias="authResponseToken")
    hub_url: str = Field(default=DEFAULT_HUB_URL, alias="hubUrl")
    gaia_association_token: Optional[str] = Field(
        default=None, alias="gaiaAssociationToken"
    )
    gaia_hub_config: Optional[HubConfig] = Field(default=None, alias="gaiaHubConfig")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Operation options
# ---------------------------------------------------------------------------

class GetFileOptions(BaseModel):
    decrypt: bool = True
    verify: bool = False
    username: Optional[str] = None
    app: Optional[str] = None
    zone_file_lookup_url: Optional[str] = None


class PutFileOptions(BaseModel):
    encrypt: bool = True
    encryption_key: Optional[str] = None
    # True signs with the app private key; a hex string names another key.
    sign: Union[bool, str] = False
    content_type: Optional[str] = None

    @property
    def should_encrypt(self) -> bool:
        return self.encrypt or self.encryption_key is not None

    @property
    def should_sign(self) -> bool:
        return bool(self.sign)


class DeleteFileOptions(BaseModel):
    was_signed: bool = False
