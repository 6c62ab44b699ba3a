"""Dramatiq actor running the dispatch retry sweep.

An external scheduler enqueues the job every ``retry_interval_s`` seconds
(30 by default). Overlapping runs inside one worker process are no-ops
because the cached engine refuses to start a second concurrent sweep.

Usage
-----
>>> retry_failed_dispatches_job.send(
...     database_url="postgresql+asyncpg://...",
...     items_url="https://feedback.internal/api",
... )

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import threading

import dramatiq
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from waymark.dispatch._broker import ensure_broker_configured
from waymark.dispatch.config import DispatchConfig, load_distribution_config
from waymark.dispatch.engine import DispatchEngine, SweepResult
from waymark.dispatch.items import HttpItemLookup
from waymark.dispatch.registry import default_registry
from waymark.dispatch.storage import SqlDispatchStore, init_dispatch_storage
from waymark.logging import get_logger, log_info

type SessionFactory = async_sessionmaker[AsyncSession]

logger = get_logger(__name__)

_ENGINE_CACHE: dict[str, AsyncEngine] = {}
_SESSION_FACTORY_CACHE: dict[str, SessionFactory] = {}
_DISPATCH_ENGINE_CACHE: dict[tuple[str, str], DispatchEngine] = {}
_CACHE_LOCK = threading.Lock()


def _ensure_session_factory_locked(database_url: str) -> SessionFactory:
    """Return the cached session factory for *database_url*.

    Precondition: the caller **must** hold ``_CACHE_LOCK``.
    """
    if database_url not in _SESSION_FACTORY_CACHE:
        if database_url not in _ENGINE_CACHE:
            _ENGINE_CACHE[database_url] = create_async_engine(database_url)
        _SESSION_FACTORY_CACHE[database_url] = async_sessionmaker(
            _ENGINE_CACHE[database_url], expire_on_commit=False
        )
    return _SESSION_FACTORY_CACHE[database_url]


def _build_engine(
    session_factory: SessionFactory, items_url: str, config: DispatchConfig
) -> DispatchEngine:
    store = SqlDispatchStore(session_factory)
    registry = default_registry(mappings=store)
    if config.distribution_path is not None:
        registry.load_config(load_distribution_config(config.distribution_path))
    return DispatchEngine(registry, store, HttpItemLookup(items_url), config)


def _get_or_create_dispatch_engine(database_url: str, items_url: str) -> DispatchEngine:
    """Get or create the dispatch engine for a database and item service.

    Thread-safe: uses a lock to prevent race conditions in Dramatiq workers.
    """
    key = (database_url, items_url)
    with _CACHE_LOCK:
        if key not in _DISPATCH_ENGINE_CACHE:
            session_factory = _ensure_session_factory_locked(database_url)
            _DISPATCH_ENGINE_CACHE[key] = _build_engine(
                session_factory, items_url, DispatchConfig.from_env()
            )
        return _DISPATCH_ENGINE_CACHE[key]


def _get_engine(database_url: str) -> AsyncEngine:
    with _CACHE_LOCK:
        _ensure_session_factory_locked(database_url)
        return _ENGINE_CACHE[database_url]


async def run_retry_sweep(
    database_url: str, items_url: str, *, create_tables: bool = True
) -> SweepResult | None:
    """Run one retry sweep using the cached engine for ``database_url``."""
    if create_tables:
        await init_dispatch_storage(_get_engine(database_url))
    engine = _get_or_create_dispatch_engine(database_url, items_url)
    result = await engine.retry_failed()
    if result is not None:
        log_info(
            logger,
            "retry sweep finished: %d attempted, %d sent",
            result.attempted,
            result.sent,
        )
    return result


@dramatiq.actor
def retry_failed_dispatches_job(
    database_url: str, items_url: str
) -> dict[str, int] | None:
    """Dramatiq actor running one dispatch retry sweep.

    Parameters
    ----------
    database_url
        SQLAlchemy URL of the dispatch database.
    items_url
        Base URL of the feedback service item API.

    Returns
    -------
    dict[str, int] | None
        Sweep counts, or ``None`` when another sweep was already running.

    """
    ensure_broker_configured()
    result = asyncio.run(run_retry_sweep(database_url, items_url))
    if result is None:
        return None
    return dc.asdict(result)
