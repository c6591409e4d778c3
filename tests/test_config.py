"""
Tests for session configuration, results and the transport response.
"""
import asyncio
import socket

import aiohttp
import pytest
import pytest_asyncio
from pydantic import ValidationError

from gaia_session.config import SessionConfig
from gaia_session.exceptions import NotSignedIn, SignatureVerificationError, TransportError
from gaia_session.models import GetFileOptions
from gaia_session.result import ErrorCode, Result, ResultError
from gaia_session.session import GaiaSession
from gaia_session.transport import AiohttpTransport, Response

from .conftest import ScriptedTransport


# --- Test SessionConfig ---

class TestSessionConfig:
    """Tests for SessionConfig validation and environment loading."""

    def test_defaults(self):
        config = SessionConfig()
        assert config.app_domain is None
        assert config.hub_url.startswith("http")
        assert config.max_list_pages == 65536
        assert config.request_timeout == 30.0

    def test_trailing_slash_is_dropped(self):
        config = SessionConfig(
            hub_url="https://hub.example.com/",
            core_node="https://core.example.com/",
            app_domain="https://app.example.com/",
        )
        assert config.hub_url == "https://hub.example.com"
        assert config.core_node == "https://core.example.com"
        assert config.app_domain == "https://app.example.com"

    @pytest.mark.parametrize("field", ["hub_url", "core_node", "app_domain"])
    def test_rejects_non_http_urls(self, field):
        with pytest.raises(ValidationError):
            SessionConfig(**{field: "ftp://example.com"})

    @pytest.mark.parametrize("pages", [0, 65537])
    def test_max_list_pages_bounds(self, pages):
        with pytest.raises(ValidationError):
            SessionConfig(max_list_pages=pages)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            SessionConfig(request_timeout=0)

    def test_from_env(self, monkeypatch):
        """Test every setting can be overridden from the environment."""
        monkeypatch.setenv("GAIA_APP_DOMAIN", "https://app.example.com")
        monkeypatch.setenv("GAIA_HUB_URL", "https://hub.example.com/")
        monkeypatch.setenv("GAIA_CORE_NODE", "https://core.example.com")
        monkeypatch.setenv("GAIA_MAX_LIST_PAGES", "10")
        monkeypatch.setenv("GAIA_REQUEST_TIMEOUT", "2.5")
        config = SessionConfig.from_env()
        assert config.app_domain == "https://app.example.com"
        assert config.hub_url == "https://hub.example.com"
        assert config.core_node == "https://core.example.com"
        assert config.max_list_pages == 10
        assert config.request_timeout == 2.5

    def test_from_env_invalid(self, monkeypatch):
        monkeypatch.setenv("GAIA_HUB_URL", "hub.example.com")
        with pytest.raises(ValidationError):
            SessionConfig.from_env()


# --- Test Result ---

class TestResult:
    """Tests for Result and ResultError."""

    def test_value(self):
        result = Result(value="hi")
        assert result.has_value
        assert not result.has_errors
        assert result.unwrap() == "hi"

    def test_empty_success(self):
        """Test a success may carry no value."""
        result = Result()
        assert not result.has_value
        assert not result.has_errors
        assert result.unwrap() is None

    def test_error_str(self):
        error = SignatureVerificationError("try.txt", missing=True)
        result_error = ResultError(error.code, error.message, error)
        assert str(result_error) == (
            "SignatureVerificationError: Failed to verify signature: "
            "Failed to obtain signature for file: try.txt"
        )

    def test_unwrap_reraises(self):
        error = NotSignedIn("no user")
        result = Result(error=ResultError(ErrorCode.NOT_SIGNED_IN, "no user", error))
        assert result.has_errors
        with pytest.raises(NotSignedIn):
            result.unwrap()

    def test_unwrap_without_exception(self):
        result = Result(error=ResultError(ErrorCode.UNKNOWN_ERROR, "boom"))
        with pytest.raises(RuntimeError, match="UnknownError: boom"):
            result.unwrap()


# --- Test Transport ---

class TestResponse:
    """Tests for the transport Response."""

    def test_ok(self):
        assert Response(status=200).ok
        assert Response(status=204).ok
        assert not Response(status=404).ok
        assert not Response(status=500).ok

    def test_header_lookup_is_case_insensitive(self):
        response = Response(status=200, headers={"content-type": "text/plain"})
        assert response.header("Content-Type") == "text/plain"
        assert response.content_type == "text/plain"
        assert response.header("X-Missing") is None

    def test_body_decoding(self):
        response = Response(status=200, body=b'{"a": [1, 2]}')
        assert response.text() == '{"a": [1, 2]}'
        assert response.json() == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_close_without_requests(self):
        """Test closing a transport that never opened a connection."""
        async with AiohttpTransport(timeout=1.0) as transport:
            assert transport is not None


# --- Test AiohttpTransport against local sockets ---

@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest_asyncio.fixture
async def silent_server():
    """A local server that accepts connections and never answers."""
    writers = []

    async def handle(reader, writer):
        writers.append(writer)
        await reader.read()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield f"http://127.0.0.1:{port}/hub_info"
    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()


@pytest.mark.asyncio
class TestAiohttpTransport:
    """Tests for AiohttpTransport failure handling."""

    async def test_connection_refused(self, closed_port):
        async with AiohttpTransport(timeout=5.0) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.execute("GET", f"http://127.0.0.1:{closed_port}/hub_info")
        assert exc_info.value.retryable is True
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert isinstance(exc_info.value.__cause__, aiohttp.ClientError)

    async def test_timeout(self, silent_server):
        async with AiohttpTransport(timeout=0.2) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.execute("GET", silent_server)
        assert exc_info.value.retryable is True

    async def test_cancellation_propagates(self, silent_server):
        """Test a cancelled request raises CancelledError, not TransportError."""
        async with AiohttpTransport(timeout=30.0) as transport:
            task = asyncio.ensure_future(transport.execute("GET", silent_server))
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task


@pytest.mark.asyncio
class TestNetworkErrorResult:
    """Tests for transport failures at the session boundary."""

    async def test_hub_unreachable(self, signed_in_store):
        transport = ScriptedTransport([TransportError("connection reset")])
        session = GaiaSession(signed_in_store, transport=transport)
        result = await session.put_file("a.txt", "hi")
        assert result.error.code == ErrorCode.NETWORK_ERROR
        assert result.error.message == "connection reset"

    async def test_read_unreachable(self, signed_in_store, hub_config):
        """Test a read failing in transit is a network error, not a missing file."""
        user_data = signed_in_store.session_data.user_data
        signed_in_store.update_user_data(
            user_data.model_copy(update={"gaia_hub_config": hub_config})
        )
        transport = ScriptedTransport([TransportError("connection reset")])
        session = GaiaSession(signed_in_store, transport=transport)
        result = await session.get_file("a.txt", GetFileOptions(decrypt=False))
        assert result.error.code == ErrorCode.NETWORK_ERROR
