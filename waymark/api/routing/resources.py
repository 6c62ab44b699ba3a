"""Routing resources: target resolution and per-user rule management.

``POST /routing/resolve`` runs the priority chain for an item description.
``GET``/``POST /routing/rules`` list and create rules, and
``PUT``/``DELETE /routing/rules/{rule_id}`` change or remove one.

Usage
-----
Register the resources on the Falcon app::

    app.add_route("/routing/resolve", ResolveResource(resolver))
    app.add_route("/routing/rules", RulesResource(store))
    app.add_route("/routing/rules/{rule_id:int}", RuleResource(store))

"""

from __future__ import annotations

import typing as typ

import falcon
import msgspec

from waymark.api.errors import InvalidInputError, RuleNotFoundError
from waymark.logging import get_logger, log_info
from waymark.routing.models import RuleType, RuleUpdate, UserRoutingRule

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from waymark.dispatch.ports import RuleStore
    from waymark.routing.models import RoutingDecision
    from waymark.routing.resolver import RoutingResolver

__all__ = [
    "ResolveRequest",
    "ResolveResource",
    "RuleRequest",
    "RuleResource",
    "RulesResource",
    "decision_to_json",
    "parse_resolve_request",
    "parse_rule_request",
    "parse_rule_update",
]

logger = get_logger(__name__)


class ResolveRequest(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Body of ``POST /routing/resolve``.

    ``all`` selects the fan-out variant returning every relevant target.
    """

    source_url: str | None = None
    user_name: str | None = None
    type: str | None = None
    priority: str | None = None
    tags: list[str] = msgspec.field(default_factory=list)
    all: bool = False


class RuleRequest(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Body of ``POST /routing/rules``."""

    user_name: str
    rule_type: RuleType
    target_type: str
    target_config: dict[str, typ.Any]
    pattern: str | None = None
    priority: int = 0
    enabled: bool = True


def _convert[T](media: object, kind: type[T]) -> T:
    if not isinstance(media, dict):
        msg = "request body must be a JSON object"
        raise InvalidInputError(msg)
    try:
        return msgspec.convert(media, type=kind)
    except msgspec.ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc


def _check_rule(rule: UserRoutingRule) -> UserRoutingRule:
    if not rule.user_name.strip():
        msg = "must not be empty"
        raise InvalidInputError(msg, field="user_name")
    if not rule.target_type.strip():
        msg = "must not be empty"
        raise InvalidInputError(msg, field="target_type")
    if rule.rule_type != RuleType.DEFAULT and not (rule.pattern or "").strip():
        msg = f"required for {rule.rule_type} rules"
        raise InvalidInputError(msg, field="pattern")
    return rule


def parse_resolve_request(media: object) -> ResolveRequest:
    """Validate a decoded resolve body.

    Raises
    ------
    InvalidInputError
        If the body is not an object or has fields of the wrong type.

    """
    return _convert(media, ResolveRequest)


def parse_rule_request(media: object) -> UserRoutingRule:
    """Validate a decoded rule body into an unsaved rule.

    Raises
    ------
    InvalidInputError
        If a field is missing or mistyped, or a non-default rule has no
        pattern.

    """
    request = _convert(media, RuleRequest)
    return _check_rule(
        UserRoutingRule(
            user_name=request.user_name,
            rule_type=request.rule_type,
            pattern=request.pattern,
            target_type=request.target_type,
            target_config=request.target_config,
            priority=request.priority,
            enabled=request.enabled,
        )
    )


def parse_rule_update(media: object) -> RuleUpdate:
    """Validate a decoded partial rule body."""
    return _convert(media, RuleUpdate)


def _rule_to_json(rule: UserRoutingRule) -> dict[str, typ.Any]:
    return msgspec.to_builtins(rule)


def decision_to_json(decision: RoutingDecision) -> dict[str, typ.Any]:
    """Render a decision, reducing the matched rule to its id and pattern."""
    rule = decision.matched_rule
    return {
        "target_type": decision.target_type,
        "target_config": decision.target_config,
        "method": decision.method.value,
        "matched_rule": None
        if rule is None
        else {"id": rule.id, "pattern": rule.pattern},
    }


class ResolveResource:
    """``POST /routing/resolve``: preview where an item would be delivered."""

    def __init__(self, resolver: RoutingResolver) -> None:
        """Configure the resource with the resolver it exposes."""
        self._resolver = resolver

    async def on_post(self, req: Request, resp: Response) -> None:
        """Return one decision, or ``{"targets": [...]}`` when ``all`` is set."""
        media = await req.get_media(default_when_empty={})
        request = parse_resolve_request(media)
        fields = {
            "source_url": request.source_url,
            "user_name": request.user_name,
            "item_type": request.type,
            "priority": request.priority,
            "tags": request.tags,
        }
        if request.all:
            decisions = await self._resolver.resolve_all(**fields)
            resp.media = {"targets": [decision_to_json(d) for d in decisions]}
        else:
            resp.media = decision_to_json(await self._resolver.resolve(**fields))
        resp.status = falcon.HTTP_200


class RulesResource:
    """``GET``/``POST /routing/rules``: list and create user rules."""

    def __init__(self, store: RuleStore) -> None:
        """Configure the resource with the rule store."""
        self._store = store

    async def on_get(self, req: Request, resp: Response) -> None:
        """Return ``{"rules": [...]}``, filtered by the ``user`` parameter."""
        user_name = req.get_param("user") or None
        rules = await self._store.list_user_rules(user_name)
        resp.media = {"rules": [_rule_to_json(rule) for rule in rules]}
        resp.status = falcon.HTTP_200

    async def on_post(self, req: Request, resp: Response) -> None:
        """Create a rule and return it with its id."""
        media = await req.get_media(default_when_empty={})
        rule = await self._store.add_user_rule(parse_rule_request(media))
        log_info(
            logger,
            "routing rule %s created for %s (%s -> %s)",
            rule.id,
            rule.user_name,
            rule.rule_type,
            rule.target_type,
        )
        resp.media = {"rule": _rule_to_json(rule)}
        resp.status = falcon.HTTP_201


class RuleResource:
    """``PUT``/``DELETE /routing/rules/{rule_id}``: change or remove a rule.

    ``PUT`` takes a partial body; sending only ``enabled`` toggles a rule.
    """

    def __init__(self, store: RuleStore) -> None:
        """Configure the resource with the rule store."""
        self._store = store

    async def on_put(self, req: Request, resp: Response, rule_id: int) -> None:
        """Apply a partial update and return the stored rule.

        Raises
        ------
        RuleNotFoundError
            If no rule has ``rule_id``.

        """
        media = await req.get_media(default_when_empty={})
        update = parse_rule_update(media)
        current = await self._store.get_user_rule(rule_id)
        if current is None:
            raise RuleNotFoundError(rule_id)
        _check_rule(update.apply(current))
        updated = await self._store.update_user_rule(rule_id, update)
        if updated is None:
            raise RuleNotFoundError(rule_id)
        log_info(logger, "routing rule %d updated", rule_id)
        resp.media = {"rule": _rule_to_json(updated)}
        resp.status = falcon.HTTP_200

    async def on_delete(self, _req: Request, resp: Response, rule_id: int) -> None:
        """Delete the rule and return ``{"deleted": rule_id}``.

        Raises
        ------
        RuleNotFoundError
            If no rule has ``rule_id``.

        """
        if not await self._store.delete_user_rule(rule_id):
            raise RuleNotFoundError(rule_id)
        log_info(logger, "routing rule %d deleted", rule_id)
        resp.media = {"deleted": rule_id}
        resp.status = falcon.HTTP_200
