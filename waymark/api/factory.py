"""Build the API's dispatch and routing collaborators from the environment.

Usage
-----
>>> dependencies = build_app_dependencies(session_factory, items_url=url)
>>> app = create_app(dependencies)

"""

from __future__ import annotations

import typing as typ

from waymark.api.app import AppDependencies
from waymark.declaration.config import DeclarationConfig
from waymark.declaration.fetcher import TargetDeclarationFetcher
from waymark.dispatch.config import DispatchConfig, load_distribution_config
from waymark.dispatch.engine import DispatchEngine
from waymark.dispatch.items import HttpItemLookup
from waymark.dispatch.observability import DispatchEventLogger
from waymark.dispatch.publisher import EventPublisher
from waymark.dispatch.registry import default_registry
from waymark.dispatch.storage import SqlDispatchStore
from waymark.routing.config import RoutingConfig
from waymark.routing.resolver import RoutingResolver

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["build_app_dependencies"]


def build_app_dependencies(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    items_url: str,
    config: DispatchConfig | None = None,
    routing: RoutingConfig | None = None,
    declarations: DeclarationConfig | None = None,
) -> AppDependencies:
    """Build every collaborator the API serves, backed by the SQL store.

    The distribution document named by ``config.distribution_path`` is
    loaded into the registry when set. Configuration not passed in is read
    from the environment.

    Raises
    ------
    DistributionConfigError
        If the distribution document cannot be parsed.
    ValueError
        If an environment variable holds an unusable value.

    """
    config = config or DispatchConfig.from_env()
    routing = routing or RoutingConfig.from_env()
    declarations = declarations or DeclarationConfig.from_env()

    events = DispatchEventLogger()
    store = SqlDispatchStore(session_factory)
    registry = default_registry(mappings=store, event_logger=events)
    if config.distribution_path is not None:
        registry.load_config(load_distribution_config(config.distribution_path))
    engine = DispatchEngine(
        registry,
        store,
        HttpItemLookup(items_url),
        config,
        event_logger=events,
    )
    resolver = RoutingResolver(
        store,
        routing.default_target,
        declarations=TargetDeclarationFetcher(declarations),
    )
    return AppDependencies(
        registry=registry,
        engine=engine,
        resolver=resolver,
        publisher=EventPublisher(resolver, registry, engine),
        rules=store,
    )
