"""Records persisted by the dispatch subsystem."""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import enum
import typing as typ

import msgspec

DEFAULT_EVENT = "item.created"


class DispatchStatus(enum.StrEnum):
    """Lifecycle of one delivery to one target."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        """Return whether the sweep leaves entries in this status alone."""
        return self in _TERMINAL


_TERMINAL = frozenset({
    DispatchStatus.SENT,
    DispatchStatus.EXHAUSTED,
    DispatchStatus.CANCELLED,
})
RESETTABLE_STATUSES: frozenset[DispatchStatus] = frozenset({
    DispatchStatus.FAILED,
    DispatchStatus.EXHAUSTED,
})


class DispatchLogEntry(msgspec.Struct, kw_only=True):
    """One item's delivery to one resolved target.

    Attributes
    ----------
    id : int | None
        Store identifier; ``None`` until created.
    item_id : str
        Feedback item being delivered.
    target_type : str
        Adapter type of the target.
    target_config : dict[str, Any]
        Adapter configuration captured at dispatch time.
    method : str | None
        Routing method that selected the target.
    event : str
        Event delivered; the retry sweep redelivers the same event.
    status : DispatchStatus
        Current lifecycle state.
    retries : int
        Failed attempts so far.
    external_id, external_url : str | None
        Identifiers assigned by the external system on success.
    last_error : str | None
        Truncated message from the most recent failure.
    created_at, updated_at : datetime | None
        Store-managed timestamps; ``updated_at`` drives backoff.

    """

    item_id: str
    target_type: str
    target_config: dict[str, typ.Any] = msgspec.field(default_factory=dict)
    method: str | None = None
    event: str = DEFAULT_EVENT
    status: DispatchStatus = DispatchStatus.PENDING
    retries: int = 0
    external_id: str | None = None
    external_url: str | None = None
    last_error: str | None = None
    id: int | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class DispatchUpdate(msgspec.Struct, kw_only=True):
    """Fields changed by one dispatch attempt; ``None`` leaves a field as is."""

    status: DispatchStatus
    retries: int | None = None
    external_id: str | None = None
    external_url: str | None = None
    last_error: str | None = None
    clear_error: bool = False


class AdapterMapping(msgspec.Struct, kw_only=True):
    """Pointer from a feedback item to the external resource created for it.

    At most one mapping exists per ``(item_id, adapter_type, channel)``.
    """

    item_id: str
    adapter_type: str
    channel: str
    external_id: str
    external_url: str | None = None
    created_at: dt.datetime | None = None
