"""Discover targets declared by the sites being annotated.

Two declaration sources are consulted:

- GitHub repositories publish ``.waymark.yml`` at the repository root; it is
  read from ``raw.githubusercontent.com`` on ``main`` and then ``master``.
- Any other HTTPS site may publish ``/.well-known/waymark.json`` under its
  origin.

Fetches are HTTPS-only, refuse hosts that resolve to private or loopback
addresses, follow a bounded number of redirects, and cap the body size.
Every outcome is cached: valid declarations for five minutes, misses and
failures for two.

Usage
-----
>>> fetcher = TargetDeclarationFetcher()
>>> declaration = await fetcher.resolve("https://docs.example.com/page")

"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses as dc
import ipaddress
import socket
import typing as typ
import urllib.parse

import httpx
import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from waymark.declaration.cache import DeclarationCache
from waymark.declaration.config import DeclarationConfig
from waymark.declaration.errors import DeclarationFetchError
from waymark.declaration.validation import validate_declaration
from waymark.logging import get_logger, log_debug, log_warning
from waymark.routing.repository import extract_repository

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from waymark.routing.models import TargetDeclaration

logger = get_logger(__name__)

RAW_CONTENT_HOST = "raw.githubusercontent.com"
TRUSTED_HOSTS: frozenset[str] = frozenset({RAW_CONTENT_HOST})
REPOSITORY_BRANCHES: tuple[str, ...] = ("main", "master")
REPOSITORY_DECLARATION_FILE = ".waymark.yml"
WELL_KNOWN_PATH = "/.well-known/waymark.json"

_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
_HTTP_OK = 200

type HostResolver = typ.Callable[[str], cabc.Awaitable[list[str]]]


@dc.dataclass(frozen=True, slots=True)
class _Hop:
    """One request in a redirect chain: either a location or a body."""

    location: str | None = None
    body: str | None = None


async def resolve_host_addresses(host: str) -> list[str]:
    """Resolve ``host`` to its IP addresses using the event loop resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [str(info[4][0]) for info in infos]


def is_private_address(address: str) -> bool:
    """Return whether ``address`` is not routable on the public internet.

    Unparseable input counts as private.

    Examples
    --------
    >>> is_private_address("169.254.169.254")
    True
    >>> is_private_address("140.82.112.3")
    False

    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or ip.is_multicast
    )


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = (1, 2)
    yaml.allow_duplicate_keys = False
    return yaml


def parse_repository_declaration(body: str) -> TargetDeclaration | None:
    """Parse and validate a ``.waymark.yml`` document."""
    try:
        loaded = _yaml().load(body)
    except YAMLError:
        return None
    return validate_declaration(loaded)


def parse_well_known_declaration(body: str) -> TargetDeclaration | None:
    """Parse and validate a ``waymark.json`` document."""
    try:
        loaded = msgspec.json.decode(body)
    except msgspec.DecodeError:
        return None
    return validate_declaration(loaded)


class TargetDeclarationFetcher:
    """Fetch, validate, and cache site target declarations.

    Parameters
    ----------
    config
        Timeouts, size limits, and cache TTLs.
    cache
        Cache instance; a fresh one is created when omitted.
    http_client
        Optional shared client. When omitted, each lookup opens and closes
        its own client.
    resolve_host
        DNS resolver used for private-address checks; injectable for tests.

    """

    def __init__(
        self,
        config: DeclarationConfig | None = None,
        *,
        cache: DeclarationCache | None = None,
        http_client: httpx.AsyncClient | None = None,
        resolve_host: HostResolver = resolve_host_addresses,
    ) -> None:
        """Configure the fetcher."""
        self._config = config or DeclarationConfig()
        self._cache = cache or DeclarationCache(self._config)
        self._client = http_client
        self._resolve_host = resolve_host

    @property
    def cache(self) -> DeclarationCache:
        """Return the lookup cache."""
        return self._cache

    async def resolve(self, source_url: str | None) -> TargetDeclaration | None:
        """Return the declaration governing ``source_url``, if any.

        GitHub repository URLs consult ``.waymark.yml``; other HTTPS URLs
        consult ``/.well-known/waymark.json``. This method never raises.
        """
        if not source_url:
            return None
        try:
            ref = extract_repository(source_url)
            if ref is not None:
                return await self.fetch_repository_declaration(ref.owner, ref.repo)
            return await self.fetch_well_known(source_url)
        except Exception as exc:  # noqa: BLE001
            log_warning(
                logger,
                "declaration lookup for %s failed unexpectedly: %s",
                source_url,
                exc,
                exc_info=exc,
            )
            return None

    async def fetch_repository_declaration(
        self, owner: str, repo: str
    ) -> TargetDeclaration | None:
        """Look up ``.waymark.yml`` for a GitHub repository."""
        key = f"yml:{owner}/{repo}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached.value

        declaration = None
        for branch in REPOSITORY_BRANCHES:
            url = (
                f"https://{RAW_CONTENT_HOST}/{urllib.parse.quote(owner, safe='')}/"
                f"{urllib.parse.quote(repo, safe='')}/{branch}/"
                f"{REPOSITORY_DECLARATION_FILE}"
            )
            body = await self._fetch_or_none(url)
            if body is None:
                continue
            declaration = parse_repository_declaration(body)
            if declaration is not None:
                break

        self._cache.put(key, declaration)
        return declaration

    async def fetch_well_known(self, source_url: str) -> TargetDeclaration | None:
        """Look up ``/.well-known/waymark.json`` under the URL's origin."""
        try:
            parsed = urllib.parse.urlsplit(source_url)
            host = parsed.hostname
        except ValueError:
            return None
        if parsed.scheme != "https" or not host:
            return None
        if host == "github.com" or host.endswith(".github.com"):
            return None

        origin = f"https://{parsed.netloc.rpartition('@')[2].lower()}"
        key = f"wk:{origin}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached.value

        body = await self._fetch_or_none(f"{origin}{WELL_KNOWN_PATH}")
        declaration = None if body is None else parse_well_known_declaration(body)
        self._cache.put(key, declaration)
        return declaration

    async def _fetch_or_none(self, url: str) -> str | None:
        try:
            return await self.fetch_text(url)
        except DeclarationFetchError as exc:
            log_debug(logger, "no declaration at %s: %s", url, exc)
            return None

    async def is_safe_url(self, url: str) -> bool:
        """Return whether ``url`` is HTTPS and resolves only to public hosts."""
        try:
            parsed = urllib.parse.urlsplit(url)
            host = parsed.hostname
        except ValueError:
            return False
        if parsed.scheme != "https" or not host:
            return False
        if host in TRUSTED_HOSTS:
            return True
        try:
            addresses = await self._resolve_host(host)
        except OSError:
            return False
        return bool(addresses) and not any(
            is_private_address(address) for address in addresses
        )

    @contextlib.asynccontextmanager
    async def _client_scope(self) -> typ.AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._config.timeout_s) as client:
            yield client

    async def fetch_text(self, url: str) -> str:
        """Fetch ``url`` under the safety limits and return its body.

        Raises
        ------
        DeclarationFetchError
            On unsafe URLs, redirect loops, non-200 responses, oversized
            bodies, or transport failures.

        """
        async with self._client_scope() as client:
            current = url
            for _ in range(self._config.max_redirects + 1):
                if not await self.is_safe_url(current):
                    raise DeclarationFetchError.unsafe_url(current)
                hop = await self._get(client, current)
                if hop.body is not None:
                    return hop.body
                current = urllib.parse.urljoin(current, hop.location or "")
            raise DeclarationFetchError.too_many_redirects(url)

    async def _get(self, client: httpx.AsyncClient, url: str) -> _Hop:
        limit = self._config.max_body_bytes
        try:
            async with client.stream(
                "GET",
                url,
                follow_redirects=False,
                timeout=self._config.timeout_s,
            ) as response:
                status = response.status_code
                if status in _REDIRECT_STATUSES:
                    location = response.headers.get("location")
                    if not location:
                        raise DeclarationFetchError.http_status(url, status)
                    return _Hop(location=location)
                if status != _HTTP_OK:
                    raise DeclarationFetchError.http_status(url, status)
                chunks = bytearray()
                async for chunk in response.aiter_bytes():
                    chunks.extend(chunk)
                    if len(chunks) > limit:
                        raise DeclarationFetchError.too_large(url, limit)
        except httpx.HTTPError as exc:
            detail = str(exc) or type(exc).__name__
            raise DeclarationFetchError.transport(url, detail) from exc

        try:
            return _Hop(body=chunks.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise DeclarationFetchError.transport(url, "body is not UTF-8") from exc
