"""Adapter contract shared by every delivery channel.

An adapter wraps one external system (an issue tracker, a chat webhook, a
generic HTTP hook). The registry builds adapters from configuration through
an ``AdapterFactory``, validates them, and only then calls ``send``.

Example
-------
>>> class EchoAdapter:
...     adapter_type = "echo"
...
...     def __init__(self, settings: AdapterSettings) -> None:
...         self.channel = settings.channel
...
...     def validate(self) -> ValidationResult:
...         return ValidationResult.success()
...
...     async def send(self, event, item, context):
...         return SendResult(external_id=item.id)

"""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx

    from waymark.dispatch.ports import AdapterMappingStore


class FeedbackEvent(enum.StrEnum):
    """Lifecycle events raised for feedback items."""

    ITEM_CREATED = "item.created"
    ITEM_RESOLVED = "item.resolved"
    ITEM_CLOSED = "item.closed"
    ITEM_REOPENED = "item.reopened"
    ITEM_ASSIGNED = "item.assigned"
    DISCUSSION_CREATED = "discussion.created"
    DISCUSSION_MESSAGE = "discussion.message"


class FeedbackItem(msgspec.Struct, kw_only=True):
    """The feedback item an event refers to.

    Items are owned by the feedback service; this is the read-only view the
    adapters format into external messages.
    """

    id: str
    type: str | None = None
    priority: str | None = None
    status: str | None = None
    app_id: str | None = None
    title: str | None = None
    quote: str | None = None
    message: str | None = None
    tags: list[str] = msgspec.field(default_factory=list)
    created_by: str | None = None
    source_url: str | None = None
    source_title: str | None = None
    screenshots: list[str] = msgspec.field(default_factory=list)
    assignee: str | None = None

    @property
    def content(self) -> str:
        """Return the quoted text, falling back to the message body."""
        return self.quote or self.message or ""


class ValidationResult(msgspec.Struct, frozen=True):
    """Outcome of ``Adapter.validate``."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> ValidationResult:
        """Return a passing result."""
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> ValidationResult:
        """Return a failing result carrying ``error``."""
        return cls(ok=False, error=error)


class SendResult(msgspec.Struct, frozen=True, kw_only=True):
    """External identifiers assigned by a successful delivery."""

    external_id: str | None = None
    external_url: str | None = None


@dc.dataclass(frozen=True, slots=True)
class AdapterSettings:
    """Everything an adapter factory needs to build one adapter.

    Attributes
    ----------
    channel
        Channel name for static channels, or the stable dynamic key for
        targets resolved per item.
    config
        Adapter-specific configuration. Adapters must not mutate it.
    mappings
        Store of external identifiers already created for items.
    http_client
        Shared HTTP client; adapters open their own when ``None``.

    """

    channel: str
    config: cabc.Mapping[str, typ.Any]
    mappings: AdapterMappingStore | None = None
    http_client: httpx.AsyncClient | None = None


@typ.runtime_checkable
class Adapter(typ.Protocol):
    """A delivery channel for one external system."""

    adapter_type: str
    channel: str

    def validate(self) -> ValidationResult:
        """Check configuration without performing I/O."""
        ...

    async def send(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        """Deliver ``event`` for ``item``.

        Raises
        ------
        AdapterDeliveryError
            On timeouts, network failures, non-2xx or malformed responses.

        """
        ...


type AdapterFactory = typ.Callable[[AdapterSettings], Adapter]
