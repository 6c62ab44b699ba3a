"""Bounded TTL cache for declaration lookups.

Valid declarations and "nothing declared" results are cached with
different lifetimes. Entries are immutable and replaced as whole records,
so a reader never observes a partially updated entry.
"""

from __future__ import annotations

import dataclasses as dc
import time
import typing as typ

from waymark.declaration.config import DeclarationConfig

if typ.TYPE_CHECKING:
    from waymark.routing.models import TargetDeclaration


@dc.dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached lookup result; ``value`` is ``None`` for negative entries."""

    value: TargetDeclaration | None
    stored_at: float

    @property
    def negative(self) -> bool:
        """Return whether this entry records an absent declaration."""
        return self.value is None


@dc.dataclass(frozen=True, slots=True)
class CacheStats:
    """Diagnostic counts for the declaration cache."""

    total: int
    valid: int
    expired: int


class DeclarationCache:
    """Cache declaration lookups with positive and negative TTLs.

    Parameters
    ----------
    config
        Supplies the TTLs and the maximum number of entries.
    clock
        Monotonic clock in seconds; injectable for tests.

    """

    def __init__(
        self,
        config: DeclarationConfig | None = None,
        *,
        clock: typ.Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an empty cache."""
        self._config = config or DeclarationConfig()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        """Return the number of stored entries, expired ones included."""
        return len(self._entries)

    def _ttl(self, entry: CacheEntry) -> float:
        return self._config.negative_ttl_s if entry.negative else self._config.ttl_s

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self._ttl(entry)

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``; expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry

    def put(self, key: str, value: TargetDeclaration | None) -> None:
        """Store ``value`` under ``key``, evicting the oldest entry if full."""
        self._entries.pop(key, None)
        if self._entries and len(self._entries) >= self._config.cache_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def stats(self) -> CacheStats:
        """Count live and expired entries without evicting anything."""
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if self._expired(entry, now))
        total = len(self._entries)
        return CacheStats(total=total, valid=total - expired, expired=expired)
