"""
Transport — the HTTP seam used by every network operation.

Anything with an ``execute(method, url, headers, body)`` coroutine returning
a ``Response`` can be plugged into a session; ``AiohttpTransport`` is the
default implementation. I/O failures surface as ``TransportError`` so they
are never confused with an error status reported by the hub, and
``asyncio.CancelledError`` propagates untouched.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

import aiohttp
import orjson

from .exceptions import TransportError

logger = logging.getLogger("gaia.session.transport")


@dataclass(frozen=True)
class Response:
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def content_type(self) -> Optional[str]:
        return self.header("Content-Type")

    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return orjson.loads(self.body)


class Transport(Protocol):
    async def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> Response:
        ...


class AiohttpTransport:
    """Transport backed by a lazily created ``aiohttp.ClientSession``.

    Args:
        timeout: Total timeout in seconds for a single request.
        session: Optional externally managed client session; it is not
            closed by ``close()``.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> Response:
        session = await self._get_session()
        logger.debug("%s %s", method, url)
        try:
            async with session.request(
                method, url, headers=dict(headers or {}), data=body
            ) as response:
                payload = await response.read()
                return Response(
                    status=response.status,
                    headers=dict(response.headers),
                    body=payload,
                )
        except asyncio.TimeoutError as err:
            raise TransportError(f"Timeout calling {method} {url}") from err
        except aiohttp.ClientError as err:
            raise TransportError(f"Error calling {method} {url}: {err}") from err

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "AiohttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
