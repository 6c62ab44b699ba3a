"""Configuration for site target declaration lookups."""

from __future__ import annotations

import dataclasses as dc
import os

_DEFAULT_TTL_S = 5 * 60.0
_DEFAULT_NEGATIVE_TTL_S = 2 * 60.0
_DEFAULT_CACHE_SIZE = 1000
_DEFAULT_TIMEOUT_S = 5.0
_DEFAULT_MAX_REDIRECTS = 3
_DEFAULT_MAX_BODY_BYTES = 64 * 1024


@dc.dataclass(frozen=True, slots=True)
class DeclarationConfig:
    """Limits applied to declaration fetches and their cache.

    Attributes
    ----------
    ttl_s
        Lifetime of a cached valid declaration.
    negative_ttl_s
        Lifetime of a cached "no declaration" result. Shorter than
        ``ttl_s`` so newly published declarations are picked up quickly.
    cache_size
        Maximum number of cached lookups; the oldest entry is evicted first.
    timeout_s
        Per-request HTTP timeout.
    max_redirects
        Redirects followed before giving up.
    max_body_bytes
        Largest declaration document accepted.

    """

    ttl_s: float = _DEFAULT_TTL_S
    negative_ttl_s: float = _DEFAULT_NEGATIVE_TTL_S
    cache_size: int = _DEFAULT_CACHE_SIZE
    timeout_s: float = _DEFAULT_TIMEOUT_S
    max_redirects: int = _DEFAULT_MAX_REDIRECTS
    max_body_bytes: int = _DEFAULT_MAX_BODY_BYTES

    @classmethod
    def from_env(cls) -> DeclarationConfig:
        """Build configuration, honouring ``WAYMARK_DECLARATION_TIMEOUT_S``.

        Raises
        ------
        ValueError
            If the timeout is not a positive number.

        """
        raw = os.environ.get("WAYMARK_DECLARATION_TIMEOUT_S", "").strip()
        if not raw:
            return cls()
        try:
            timeout_s = float(raw)
        except ValueError as exc:
            msg = f"WAYMARK_DECLARATION_TIMEOUT_S must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if timeout_s <= 0:
            msg = f"WAYMARK_DECLARATION_TIMEOUT_S must be positive, got: {timeout_s}"
            raise ValueError(msg)
        return cls(timeout_s=timeout_s)
