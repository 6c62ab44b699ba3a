"""Application factory for the Waymark Falcon ASGI application.

Usage
-----
Create a health-only app::

    app = create_app()

Create an app with dispatch and routing endpoints::

    from waymark.api.app import AppDependencies, create_app

    app = create_app(
        AppDependencies(
            registry=registry,
            engine=engine,
            resolver=resolver,
            publisher=publisher,
            rules=store,
        )
    )

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from waymark.api.errors import (
    InvalidInputError,
    RuleNotFoundError,
    handle_invalid_input,
    handle_rule_not_found,
)
from waymark.api.health.resources import HealthResource, ReadyResource

if typ.TYPE_CHECKING:
    from waymark.dispatch.engine import DispatchEngine
    from waymark.dispatch.ports import RuleStore
    from waymark.dispatch.publisher import EventPublisher
    from waymark.dispatch.registry import AdapterRegistry
    from waymark.routing.resolver import RoutingResolver

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    registry
        Adapter registry reported by ``GET /dispatch/channels``.
    engine
        Dispatch engine used by ``POST /dispatch/retry``.
    resolver
        Routing resolver behind ``POST /routing/resolve``.
    publisher
        Event publisher behind ``POST /dispatch/publish``.
    rules
        Rule store behind ``/routing/rules`` and ``GET /adapters``.

    """

    registry: AdapterRegistry
    engine: DispatchEngine
    resolver: RoutingResolver | None = None
    publisher: EventPublisher | None = None
    rules: RuleStore | None = None


def _add_dispatch_routes(app: falcon.asgi.App, deps: AppDependencies) -> None:
    from waymark.api.dispatch.resources import (
        AdaptersResource,
        ChannelsResource,
        PublishResource,
        RetryResource,
    )

    registry = deps.registry
    app.add_route("/ready", ReadyResource(lambda: len(registry.get_status())))
    app.add_route("/dispatch/channels", ChannelsResource(registry))
    app.add_route("/dispatch/retry", RetryResource(deps.engine))
    if deps.publisher is not None:
        app.add_route("/dispatch/publish", PublishResource(deps.publisher))
    if deps.rules is not None:
        app.add_route("/adapters", AdaptersResource(registry, deps.rules))


def _add_routing_routes(app: falcon.asgi.App, deps: AppDependencies) -> None:
    from waymark.api.routing.resources import (
        ResolveResource,
        RuleResource,
        RulesResource,
    )

    if deps.resolver is not None:
        app.add_route("/routing/resolve", ResolveResource(deps.resolver))
    if deps.rules is not None:
        app.add_route("/routing/rules", RulesResource(deps.rules))
        app.add_route("/routing/rules/{rule_id:int}", RuleResource(deps.rules))


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    ``/health`` and ``/ready`` are always registered. With *dependencies*
    the app also serves the dispatch endpoints, and the routing endpoints
    whose collaborators are provided.
    """
    app = falcon.asgi.App()

    app.add_route("/health", HealthResource())

    if dependencies is None:
        app.add_route("/ready", ReadyResource())
    else:
        _add_dispatch_routes(app, dependencies)
        _add_routing_routes(app, dependencies)

    app.add_error_handler(RuleNotFoundError, handle_rule_not_found)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

    return app
