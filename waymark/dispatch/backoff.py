"""Exponential backoff for the retry sweep.

An entry that has failed ``retries`` times waits ``2**retries * base_delay``
seconds after its last update before the next attempt.

>>> backoff_delay(2, 5.0)
datetime.timedelta(seconds=20)

"""

from __future__ import annotations

import datetime as dt

from waymark.common.time import ensure_utc


def backoff_delay(retries: int, base_delay_s: float) -> dt.timedelta:
    """Return the wait required after ``retries`` failed attempts."""
    return dt.timedelta(seconds=(2 ** max(retries, 0)) * base_delay_s)


def next_attempt_at(
    retries: int, last_update: dt.datetime, base_delay_s: float
) -> dt.datetime:
    """Return the earliest time the next attempt may run."""
    return ensure_utc(last_update) + backoff_delay(retries, base_delay_s)


def is_retry_due(
    retries: int,
    last_update: dt.datetime | None,
    now: dt.datetime,
    base_delay_s: float,
) -> bool:
    """Return whether an entry may be retried at ``now``.

    Entries without an update timestamp are always due.
    """
    if last_update is None:
        return True
    return ensure_utc(now) >= next_attempt_at(retries, last_update, base_delay_s)
