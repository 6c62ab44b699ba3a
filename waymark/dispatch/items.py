"""Item lookup against the feedback service's HTTP API.

The retry sweep needs the current state of each item it redelivers; items
themselves live in the feedback service, which exposes them at
``GET {base_url}/items/{item_id}``.
"""

from __future__ import annotations

import contextlib
import typing as typ
import urllib.parse

import httpx
import msgspec

from waymark.adapters.protocol import FeedbackItem
from waymark.dispatch.errors import ItemLookupError

DEFAULT_TIMEOUT_S = 5.0
_HTTP_NOT_FOUND = 404


class HttpItemLookup:
    """Fetch feedback items from the feedback service.

    A ``404`` means the item was deleted and yields ``None``; every other
    failure raises ``ItemLookupError``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        """Configure the lookup with the service base URL."""
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout_s = timeout_s

    def item_url(self, item_id: str) -> str:
        """Return the URL of one item."""
        return f"{self._base_url}/items/{urllib.parse.quote(item_id, safe='')}"

    @contextlib.asynccontextmanager
    async def _client(self) -> typ.AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            yield client

    async def get_item(self, item_id: str) -> FeedbackItem | None:
        """Return the item, or ``None`` when the service no longer has it."""
        async with self._client() as client:
            try:
                response = await client.get(
                    self.item_url(item_id), timeout=self._timeout_s
                )
            except httpx.HTTPError as exc:
                raise ItemLookupError.transport(item_id, str(exc)) from exc

        if response.status_code == _HTTP_NOT_FOUND:
            return None
        if not response.is_success:
            raise ItemLookupError.http_status(item_id, response.status_code)
        try:
            return msgspec.json.decode(response.content, type=FeedbackItem)
        except msgspec.DecodeError as exc:
            raise ItemLookupError.malformed(item_id, str(exc)) from exc
