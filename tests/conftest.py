"""
Shared fixtures: an in-memory Gaia hub, a scripted transport and keys.
"""
import time
from typing import Optional

import orjson
import pytest

from gaia_session.auth import encode_token
from gaia_session.crypto.envelope import encrypt_ecies
from gaia_session.crypto.keys import (
    address_from_private_key,
    generate_private_key,
    make_did_from_address,
    public_key_hex,
)
from gaia_session.models import HubConfig, Text, UserData
from gaia_session.store import MemorySessionStore
from gaia_session.transport import Response

# Key and address from the SDK integration tests
PRIVATE_KEY = "a5c61c6ca7b3e7e55edee68566aeab22e4da26baa285c7bd10e8d2218aa3b229"
BITCOIN_ADDRESS = "1NZNxhoxobqwsNvTb16pdeiqvFvce3Yg8U"
DECENTRALIZED_ID = "did:btc-addr:1NZNxhoxobqwsNvTb16pdeiqvFvce3Yg8U"

HUB_SERVER = "https://hub.example.com"
READ_PREFIX = "https://gaia.example.com/hub/"
CORE_NODE = "https://core.example.com"
APP_DOMAIN = "https://app.example.com"


def json_response(status: int, data) -> Response:
    return Response(
        status=status,
        headers={"Content-Type": "application/json"},
        body=orjson.dumps(data),
    )


class FakeHub:
    """In-memory Gaia hub implementing hub_info, store, read, delete and list-files."""

    def __init__(self, page_size: int = 2):
        self.files: dict[str, tuple[bytes, Optional[str]]] = {}
        self.requests: list[tuple[str, str]] = []
        self.page_size = page_size
        self.fail_store: set[str] = set()
        self.extra: dict[str, Response] = {}

    def count(self, method: str, url_part: str) -> int:
        return sum(1 for m, u in self.requests if m == method and url_part in u)

    async def execute(self, method, url, headers=None, body=None) -> Response:
        self.requests.append((method, url))
        headers = dict(headers or {})
        if url in self.extra:
            return self.extra[url]
        if method == "GET" and url == f"{HUB_SERVER}/hub_info":
            return json_response(200, {
                "challenge_text": '["gaiahub","0","hub.example.com","blockstack_storage_please_sign"]',
                "read_url_prefix": READ_PREFIX,
                "latest_auth_version": "v1",
            })
        if method == "POST" and url.startswith(f"{HUB_SERVER}/store/"):
            assert headers["Authorization"].startswith("bearer v1:")
            key = url[len(f"{HUB_SERVER}/store/"):]
            if key.split("/", 1)[1] in self.fail_store:
                return Response(status=500)
            self.files[key] = (body, headers.get("Content-Type"))
            return json_response(200, {"publicURL": READ_PREFIX + key})
        if method == "DELETE" and url.startswith(f"{HUB_SERVER}/delete/"):
            assert headers["Authorization"].startswith("bearer v1:")
            key = url[len(f"{HUB_SERVER}/delete/"):]
            if key not in self.files:
                return Response(status=404)
            del self.files[key]
            return Response(status=202)
        if method == "POST" and url.startswith(f"{HUB_SERVER}/list-files/"):
            address = url.rsplit("/", 1)[1]
            page = orjson.loads(body).get("page")
            names = sorted(
                key.split("/", 1)[1] for key in self.files
                if key.startswith(address + "/")
            )
            start = int(page or 0)
            end = start + self.page_size
            return json_response(200, {
                "entries": names[start:end],
                "page": str(end) if end < len(names) else None,
            })
        if method == "GET" and url.startswith(READ_PREFIX):
            key = url[len(READ_PREFIX):]
            if key in self.files:
                data, content_type = self.files[key]
                headers = {"Content-Type": content_type} if content_type else {}
                return Response(status=200, headers=headers, body=data)
            return Response(status=404)
        return Response(status=404)


class ScriptedTransport:
    """Returns queued responses in order and records every request.

    A queued exception is raised instead of returned.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: list[tuple[str, str, dict, Optional[bytes]]] = []

    async def execute(self, method, url, headers=None, body=None) -> Response:
        self.calls.append((method, url, dict(headers or {}), body))
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_auth_response(
    identity_key: str,
    app_private_key: str,
    transit_key: str,
    signing_key: Optional[str] = None,
    **overrides,
) -> str:
    """Build an auth response token as the identity provider would."""
    now = int(time.time())
    transit_public_key = public_key_hex(transit_key)
    payload = {
        "jti": "d2f2d5d8-0dd1-4c1b-9a8c-1b6d1f9c5a7e",
        "iat": now,
        "exp": now + 3600,
        "iss": make_did_from_address(address_from_private_key(identity_key)),
        "private_key": encrypt_ecies(
            transit_public_key, Text(app_private_key)
        ).to_json().encode("utf-8").hex(),
        "public_keys": [public_key_hex(identity_key)],
        "profile": {"@type": "Person", "name": "Alice"},
        "username": "alice.id",
        "core_token": None,
        "email": "alice@example.com",
        "profile_url": None,
        "hubUrl": HUB_SERVER,
        "associationToken": None,
        "version": "1.3.1",
    }
    payload.update(overrides)
    return encode_token(payload, signing_key or identity_key)


@pytest.fixture
def hub():
    return FakeHub()


@pytest.fixture
def identity_key():
    return generate_private_key()


@pytest.fixture
def app_key():
    return PRIVATE_KEY


@pytest.fixture
def hub_config():
    return HubConfig(
        url_prefix=READ_PREFIX,
        address=BITCOIN_ADDRESS,
        token="v1:token",
        server=HUB_SERVER,
    )


@pytest.fixture
def signed_in_store(app_key):
    """Store holding a signed-in user that has not connected to the hub yet."""
    user_data = UserData(
        username="alice.id",
        decentralized_id=DECENTRALIZED_ID,
        identity_address=BITCOIN_ADDRESS,
        app_private_key=app_key,
        hub_url=HUB_SERVER,
    )
    return MemorySessionStore(data={"userData": user_data.to_dict()})
