"""Entry point used by the feedback service when an item event occurs."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from waymark.adapters.protocol import FeedbackEvent
from waymark.logging import get_logger, log_exception, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from waymark.adapters.protocol import FeedbackItem
    from waymark.dispatch.engine import DispatchEngine
    from waymark.dispatch.models import DispatchLogEntry
    from waymark.dispatch.registry import AdapterRegistry, ChannelOutcome
    from waymark.routing.resolver import RoutingResolver

logger = get_logger(__name__)


@dc.dataclass(slots=True)
class PublishResult:
    """What one ``publish`` call did.

    ``entries`` holds dispatch log entries for routed events, ``channels``
    the static channel outcomes. ``error`` is set when publishing stopped
    early on an unexpected failure.
    """

    event: str
    methods: list[str] = dc.field(default_factory=list)
    entries: list[DispatchLogEntry] = dc.field(default_factory=list)
    channels: list[ChannelOutcome] = dc.field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return whether publishing ran to completion."""
        return self.error is None


class EventPublisher:
    """Route item events to their targets without failing the caller.

    ``item.created`` events are resolved through the routing chain and
    delivered to every resolved target with a durable dispatch log. Every
    other event goes to the statically configured channels.
    """

    def __init__(
        self,
        resolver: RoutingResolver,
        registry: AdapterRegistry,
        engine: DispatchEngine,
    ) -> None:
        """Store the collaborators."""
        self._resolver = resolver
        self._registry = registry
        self._engine = engine

    async def _publish_created(
        self,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
        result: PublishResult,
    ) -> None:
        decisions = await self._resolver.resolve_all(
            source_url=item.source_url,
            user_name=item.created_by,
            item_type=item.type,
            priority=item.priority,
            tags=item.tags,
        )
        result.methods = [decision.method.value for decision in decisions]
        result.entries = await self._engine.dispatch_to_targets(
            result.event, item, decisions, context
        )

    async def publish(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any] | None = None,
    ) -> PublishResult:
        """Publish ``event`` for ``item`` and report what happened.

        Never raises for ordinary failures; they are logged and reported via
        ``PublishResult.error``.
        """
        context = context or {}
        result = PublishResult(event=event)
        try:
            if event == FeedbackEvent.ITEM_CREATED:
                await self._publish_created(item, context, result)
            else:
                result.channels = await self._registry.dispatch(event, item, context)
        except Exception as exc:  # noqa: BLE001
            log_exception(logger, f"publishing {event} for item {item.id} failed", exc)
            result.error = str(exc)
            return result

        log_info(
            logger,
            "published %s for item %s: %d target(s), %d channel(s)",
            event,
            item.id,
            len(result.entries),
            len(result.channels),
        )
        return result
