"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from waymark.dispatch.storage import init_dispatch_storage
from tests.helpers.fakes import InMemoryDispatchStore, InMemoryItems, ManualClock

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'waymark_test.db'}")
    try:
        await init_dispatch_storage(engine)
    except Exception:
        await engine.dispose()
        raise

    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def clock() -> ManualClock:
    """Return a controllable UTC clock."""
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> InMemoryDispatchStore:
    """Return an empty in-memory dispatch store sharing the test clock."""
    return InMemoryDispatchStore(clock=clock)


@pytest.fixture
def items() -> InMemoryItems:
    """Return an empty item lookup."""
    return InMemoryItems()
