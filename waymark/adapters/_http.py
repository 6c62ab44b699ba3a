"""HTTP plumbing shared by the adapters.

Every adapter request goes through ``request`` so timeouts, network
failures and non-2xx responses surface as ``AdapterDeliveryError`` with the
same wording regardless of vendor.
"""

from __future__ import annotations

import contextlib
import typing as typ

import httpx
import msgspec

from waymark.adapters.errors import AdapterDeliveryError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

USER_AGENT = "waymark/0.1"
DEFAULT_TIMEOUT_S = 10.0


def encode_json(payload: object) -> bytes:
    """Encode ``payload`` (dicts, lists, msgspec structs) as JSON bytes."""
    return msgspec.json.encode(payload)


@contextlib.asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None, timeout_s: float
) -> typ.AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout_s) as owned:
        yield owned


async def request(  # noqa: PLR0913
    client: httpx.AsyncClient | None,
    method: str,
    url: str,
    *,
    label: str,
    content: bytes | None = None,
    headers: cabc.Mapping[str, str] | None = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> httpx.Response:
    """Send one request and return the successful response.

    Raises
    ------
    AdapterDeliveryError
        On timeout, network failure, or any status outside 2xx.

    """
    request_headers = {"User-Agent": USER_AGENT}
    if content is not None:
        request_headers["Content-Type"] = "application/json"
    request_headers.update(headers or {})

    async with _client_scope(client, timeout_s) as http:
        try:
            response = await http.request(
                method,
                url,
                content=content,
                headers=request_headers,
                timeout=timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise AdapterDeliveryError.timeout(label) from exc
        except httpx.RequestError as exc:
            raise AdapterDeliveryError.network_error(label, str(exc)) from exc

    if not response.is_success:
        raise AdapterDeliveryError.http_error(
            label, response.status_code, response.text
        )
    return response


def decode_json(response: httpx.Response, *, label: str) -> dict[str, typ.Any]:
    """Decode a JSON object body.

    Raises
    ------
    AdapterDeliveryError
        If the body is not valid JSON or is not an object.

    """
    try:
        payload = msgspec.json.decode(response.content)
    except msgspec.DecodeError as exc:
        raise AdapterDeliveryError.malformed_response(label, response.text) from exc
    if not isinstance(payload, dict):
        raise AdapterDeliveryError.malformed_response(label, response.text)
    return typ.cast("dict[str, typ.Any]", payload)
