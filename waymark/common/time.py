"""Clock helpers shared by the dispatch and declaration layers."""

from __future__ import annotations

import datetime as dt
import typing as typ

type Clock = typ.Callable[[], dt.datetime]


def utcnow() -> dt.datetime:
    """Return the current time as an aware UTC datetime."""
    return dt.datetime.now(dt.UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    """Return ``value`` in UTC, treating naive datetimes as UTC.

    SQLite drops tzinfo on round-trips; stored naive values are always UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)
