"""Dispatch resources: channel status, event publishing and manual retry.

``GET /dispatch/channels`` returns the registry's channel snapshot and
``GET /adapters`` adds the registered adapter types and rule count.
``POST /dispatch/publish`` routes one item event to its targets.
``POST /dispatch/retry`` resets failed or exhausted dispatch log entries
to ``pending`` so the next sweep picks them up.

Usage
-----
Register the resources on the Falcon app::

    app.add_route("/dispatch/channels", ChannelsResource(registry))
    app.add_route("/dispatch/publish", PublishResource(publisher))
    app.add_route("/dispatch/retry", RetryResource(engine))

"""

from __future__ import annotations

import typing as typ

import falcon
import msgspec

from waymark.adapters.protocol import FeedbackEvent, FeedbackItem
from waymark.api.errors import InvalidInputError
from waymark.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from waymark.dispatch.engine import DispatchEngine
    from waymark.dispatch.ports import RuleStore
    from waymark.dispatch.publisher import EventPublisher, PublishResult
    from waymark.dispatch.registry import AdapterRegistry

__all__ = [
    "AdaptersResource",
    "ChannelsResource",
    "PublishRequest",
    "PublishResource",
    "RetryRequest",
    "RetryResource",
]

logger = get_logger(__name__)


class RetryRequest(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Body of ``POST /dispatch/retry``; one of the fields is required."""

    item_id: str | None = None
    entry_id: int | None = None


def parse_retry_request(media: object) -> RetryRequest:
    """Validate a decoded request body.

    Raises
    ------
    InvalidInputError
        If the body has the wrong shape or names neither an item nor an
        entry.

    """
    if not isinstance(media, dict):
        msg = "request body must be a JSON object"
        raise InvalidInputError(msg)
    if isinstance(media.get("entry_id"), bool):
        msg = "must be an integer"
        raise InvalidInputError(msg, field="entry_id")
    try:
        request = msgspec.convert(media, type=RetryRequest)
    except msgspec.ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc
    if not request.item_id and request.entry_id is None:
        msg = "item_id or entry_id is required"
        raise InvalidInputError(msg)
    return request


class PublishRequest(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Body of ``POST /dispatch/publish``."""

    event: FeedbackEvent
    item: FeedbackItem
    context: dict[str, typ.Any] = msgspec.field(default_factory=dict)


def parse_publish_request(media: object) -> PublishRequest:
    """Validate a decoded publish body.

    Raises
    ------
    InvalidInputError
        If the body is not an object, the event is unknown, or the item is
        malformed.

    """
    if not isinstance(media, dict):
        msg = "request body must be a JSON object"
        raise InvalidInputError(msg)
    try:
        request = msgspec.convert(media, type=PublishRequest)
    except msgspec.ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc
    if not request.item.id:
        msg = "must not be empty"
        raise InvalidInputError(msg, field="item.id")
    return request


def _publish_to_json(result: PublishResult) -> dict[str, typ.Any]:
    # target configs may carry credentials and are left out
    return {
        "event": result.event,
        "ok": result.ok,
        "error": result.error,
        "methods": result.methods,
        "entries": [
            {
                "id": entry.id,
                "target_type": entry.target_type,
                "method": entry.method,
                "status": entry.status.value,
                "external_id": entry.external_id,
                "external_url": entry.external_url,
                "last_error": entry.last_error,
            }
            for entry in result.entries
        ],
        "channels": [
            {
                "channel": outcome.channel,
                "ok": outcome.ok,
                "external_id": None
                if outcome.result is None
                else outcome.result.external_id,
                "error": None if outcome.error is None else str(outcome.error),
            }
            for outcome in result.channels
        ],
    }


def _channel_snapshot(registry: AdapterRegistry) -> dict[str, dict[str, typ.Any]]:
    return {
        name: {"type": status.type, "active": status.active}
        for name, status in registry.get_status().items()
    }


class ChannelsResource:
    """``GET /dispatch/channels``: status of every configured channel."""

    def __init__(self, registry: AdapterRegistry) -> None:
        """Configure the resource with the registry it reports on."""
        self._registry = registry

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Return ``{"channels": {name: {"type": ..., "active": ...}}}``."""
        resp.media = {"channels": _channel_snapshot(self._registry)}
        resp.status = falcon.HTTP_200


class AdaptersResource:
    """``GET /adapters``: channels, adapter types and the stored rule count."""

    def __init__(self, registry: AdapterRegistry, rules: RuleStore) -> None:
        """Configure the resource with the registry and the rule store."""
        self._registry = registry
        self._rules = rules

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Return ``{"channels": {...}, "types": [...], "rules": n}``."""
        resp.media = {
            "channels": _channel_snapshot(self._registry),
            "types": sorted(self._registry.adapter_types),
            "rules": await self._rules.count_user_rules(),
        }
        resp.status = falcon.HTTP_200


class PublishResource:
    """``POST /dispatch/publish``: deliver one item event.

    ``item.created`` fans out to every routed target; other events go to the
    statically configured channels. Delivery failures are recorded in the
    dispatch log and reported in the body. Only a publish that stopped early
    answers with HTTP 500.
    """

    def __init__(self, publisher: EventPublisher) -> None:
        """Configure the resource with the event publisher."""
        self._publisher = publisher

    async def on_post(self, req: Request, resp: Response) -> None:
        """Publish the event and return what was delivered."""
        media = await req.get_media(default_when_empty={})
        request = parse_publish_request(media)
        result = await self._publisher.publish(
            request.event.value, request.item, request.context
        )
        if not result.ok:
            log_warning(
                logger,
                "publish of %s for item %s stopped early: %s",
                request.event.value,
                request.item.id,
                result.error,
            )
        resp.media = _publish_to_json(result)
        resp.status = falcon.HTTP_200 if result.ok else falcon.HTTP_500


class RetryResource:
    """``POST /dispatch/retry``: reset failed deliveries for another attempt."""

    def __init__(self, engine: DispatchEngine) -> None:
        """Configure the resource with the engine owning the dispatch log."""
        self._engine = engine

    async def on_post(self, req: Request, resp: Response) -> None:
        """Reset matching entries and return ``{"reset": n}``."""
        media = await req.get_media(default_when_empty={})
        request = parse_retry_request(media)
        reset = await self._engine.retry(
            item_id=request.item_id or None, entry_id=request.entry_id
        )
        log_info(
            logger,
            "manual retry reset %d entr%s (item_id=%s, entry_id=%s)",
            reset,
            "y" if reset == 1 else "ies",
            request.item_id,
            request.entry_id,
        )
        resp.media = {"reset": reset}
        resp.status = falcon.HTTP_200
