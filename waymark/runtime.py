"""Waymark runtime entrypoint.

``waymark.runtime:create_app`` is the Granian factory. When both
``WAYMARK_DATABASE_URL`` and ``WAYMARK_ITEMS_URL`` are set it wires the SQL
dispatch store, the adapter registry, the dispatch engine and the routing
resolver so the dispatch and routing endpoints are served; otherwise only
the health probes are.

Configuration is driven by environment variables:

- ``WAYMARK_HOST``: Bind address (default ``0.0.0.0``)
- ``WAYMARK_PORT``: Listen port (default ``8080``)
- ``WAYMARK_LOG_LEVEL``: Log level (default ``INFO``)
- ``WAYMARK_DATABASE_URL``: Dispatch database URL
- ``WAYMARK_ITEMS_URL``: Base URL of the feedback service item API
- ``WAYMARK_DISTRIBUTION_PATH``: Optional distribution YAML document
- ``WAYMARK_DEFAULT_REPO``: Repository receiving unrouted items
- ``WAYMARK_DEFAULT_LABELS``: Comma-separated labels for the default target
- ``WAYMARK_DEFAULT_ASSIGNEES``: Comma-separated assignees for the default target
- ``WAYMARK_DECLARATION_TIMEOUT_S``: Site declaration fetch timeout

Run the service directly with ``python -m waymark.runtime``.
"""

from __future__ import annotations

import asyncio
import os
import typing as typ

from waymark.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi
    from sqlalchemy.ext.asyncio import AsyncEngine

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

_MIN_PORT = 1
_MAX_PORT = 65535


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If port_str is not a valid integer in range 1-65535.

    """
    try:
        port = int(port_str)
        if not (_MIN_PORT <= port <= _MAX_PORT):
            msg = f"port {port} outside valid range {_MIN_PORT}-{_MAX_PORT}"
            raise ValueError(msg)  # noqa: TRY301 - unify conversion and range errors
    except ValueError as exc:
        log_error(
            logger,
            "Invalid WAYMARK_PORT value: %r (must be %d-%d): %s",
            port_str,
            _MIN_PORT,
            _MAX_PORT,
            exc,
        )
        raise SystemExit(1) from exc
    return port


async def _prepare_storage(engine: AsyncEngine) -> None:
    from waymark.dispatch.storage import init_dispatch_storage

    try:
        await init_dispatch_storage(engine)
    finally:
        # pooled connections must not outlive this loop
        await engine.dispose()


def create_app() -> falcon.asgi.App:
    """Create the Falcon ASGI application from the environment."""
    from waymark.api.app import create_app as _create_api_app

    database_url = os.environ.get("WAYMARK_DATABASE_URL")
    items_url = os.environ.get("WAYMARK_ITEMS_URL")

    if database_url is None:
        return _create_api_app()
    if items_url is None:
        log_warning(
            logger,
            "WAYMARK_DATABASE_URL is set without WAYMARK_ITEMS_URL; "
            "serving health endpoints only",
        )
        return _create_api_app()

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from waymark.api.factory import build_app_dependencies

    engine = create_async_engine(database_url)
    asyncio.run(_prepare_storage(engine))
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return _create_api_app(
        build_app_dependencies(session_factory, items_url=items_url)
    )


def main() -> None:
    """Start the Waymark runtime server using Granian."""
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("WAYMARK_HOST", "0.0.0.0")  # noqa: S104 - bind all interfaces for container
    port = _parse_port(os.environ.get("WAYMARK_PORT", "8080"))
    log_level_str = os.environ.get("WAYMARK_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid WAYMARK_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    log_info(
        logger,
        "Starting Waymark runtime on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "waymark.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
