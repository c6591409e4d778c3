"""
Listing — paginated enumeration of the files in the app's bucket.

Each page is requested with ``POST <server>/list-files/<address>`` and a body
``{"page": <token-or-null>}``; the hub answers ``{"entries": [...], "page":
<token-or-null>}``. Pages are fetched strictly in order because each token
depends on the previous page, and only when the consumer asks for more.

Listing stops when the hub returns no page token or an empty page. A page
without an ``entries`` field means a misbehaving hub or driver and is an
error, never an empty listing.
"""
import inspect
import logging
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

import orjson

from .conf import CONTENT_TYPE_JSON, MAX_LIST_PAGES
from .exceptions import ListError, MalformedHubResponse, TooManyPages, TransportError
from .hub import auth_headers, list_files_url
from .models import HubConfig
from .transport import Transport

logger = logging.getLogger("gaia.session.listing")

ListCallback = Callable[[str], Union[bool, Awaitable[bool]]]
HubConfigProvider = Callable[[], Awaitable[HubConfig]]


class FileLister:
    """Drives the list-files protocol against one hub bucket.

    Args:
        transport: Transport used for page requests.
        hub_config: Coroutine function returning the current ``HubConfig``;
            called once per listing so every page uses the same bucket.
        max_pages: Ceiling on page requests per listing.
    """

    def __init__(
        self,
        transport: Transport,
        hub_config: HubConfigProvider,
        max_pages: int = MAX_LIST_PAGES,
    ):
        self._transport = transport
        self._hub_config = hub_config
        self._max_pages = max_pages

    async def _fetch_page(
        self, config: HubConfig, page: Optional[str], page_index: int, dispatched: int
    ) -> tuple[list, Optional[str]]:
        body = orjson.dumps({"page": page})
        try:
            response = await self._transport.execute(
                "POST",
                list_files_url(config),
                headers=auth_headers(config, CONTENT_TYPE_JSON),
                body=body,
            )
        except TransportError as err:
            raise ListError(
                f"call to list-files failed on page {page_index} "
                f"after {dispatched} entries: {err}",
                entries_dispatched=dispatched,
                page_index=page_index,
                retryable=True,
            ) from err
        if not response.ok:
            raise ListError(
                f"call to list-files failed with status {response.status} "
                f"on page {page_index} after {dispatched} entries",
                entries_dispatched=dispatched,
                page_index=page_index,
                status=response.status,
            )
        progress = {"entries_dispatched": dispatched, "page_index": page_index}
        try:
            data = response.json()
        except orjson.JSONDecodeError as err:
            raise MalformedHubResponse(
                f"Bad listFiles response: invalid JSON: {err}", **progress
            ) from err
        if not isinstance(data, dict) or data.get("entries") is None:
            raise MalformedHubResponse("Bad listFiles response: no entries", **progress)
        entries = data["entries"]
        if not isinstance(entries, list):
            raise MalformedHubResponse(
                "Bad listFiles response: entries is not a list", **progress
            )
        next_page = data.get("page")
        return entries, (str(next_page) if next_page else None)

    async def iter_files(self) -> AsyncIterator[str]:
        """Yield file names, fetching pages only as they are consumed.

        Raises:
            ListError: A page request failed, on the hub or in transit.
            MalformedHubResponse: A page lacked ``entries``.
            TooManyPages: More than ``max_pages`` requests would be needed.
        """
        config = await self._hub_config()
        page: Optional[str] = None
        fetches = 0
        dispatched = 0
        while True:
            if fetches >= self._max_pages:
                raise TooManyPages(
                    f"Too many entries to list: exceeded {self._max_pages} pages",
                    entries_dispatched=dispatched,
                    page_index=fetches,
                )
            entries, page = await self._fetch_page(config, page, fetches, dispatched)
            fetches += 1
            logger.debug("list-files page %d: %d entries", fetches, len(entries))
            for entry in entries:
                dispatched += 1
                yield str(entry)
            if not page or not entries:
                return

    async def list_files(self, callback: ListCallback) -> int:
        """Invoke ``callback`` for each file name until it returns a falsy value.

        Args:
            callback: Sync or async callable; return True to continue.

        Returns:
            Number of entries passed to the callback, including the one that
            stopped the listing.
        """
        count = 0
        async with aclosing(self.iter_files()) as files:
            async for name in files:
                count += 1
                keep_going = callback(name)
                if inspect.isawaitable(keep_going):
                    keep_going = await keep_going
                if not keep_going:
                    break
        return count
