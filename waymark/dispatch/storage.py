"""SQLAlchemy persistence for the dispatch log, adapter mappings, and user rules."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from waymark.common.time import utcnow
from waymark.dispatch.errors import (
    DispatchEntryNotFoundError,
    TimezoneAwareRequiredError,
)
from waymark.dispatch.models import (
    RESETTABLE_STATUSES,
    AdapterMapping,
    DispatchLogEntry,
    DispatchStatus,
)
from waymark.routing.models import RuleType, UserRoutingRule

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from waymark.common.time import Clock
    from waymark.dispatch.models import DispatchUpdate
    from waymark.routing.models import RuleUpdate

    type SessionFactory = async_sessionmaker[AsyncSession]

_NON_TERMINAL = (DispatchStatus.PENDING.value, DispatchStatus.FAILED.value)


class Base(DeclarativeBase):
    """Base declarative class for dispatch models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class DispatchLogRecord(Base):
    """One delivery of one item to one resolved target."""

    __tablename__ = "dispatch_log"
    __table_args__ = (
        Index("ix_dispatch_log_status_updated", "status", "updated_at"),
        Index("ix_dispatch_log_item", "item_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(String(255))
    target_type: Mapped[str] = mapped_column(String(64))
    target_config: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    method: Mapped[str | None] = mapped_column(String(32), default=None)
    event: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16))
    retries: Mapped[int] = mapped_column(Integer, default=0)
    external_id: Mapped[str | None] = mapped_column(String(255), default=None)
    external_url: Mapped[str | None] = mapped_column(Text(), default=None)
    last_error: Mapped[str | None] = mapped_column(Text(), default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class AdapterMappingRecord(Base):
    """External resource created for an item on one channel."""

    __tablename__ = "adapter_mappings"
    __table_args__ = (
        UniqueConstraint(
            "item_id", "adapter_type", "channel", name="uq_adapter_mapping_key"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(String(255))
    adapter_type: Mapped[str] = mapped_column(String(64))
    channel: Mapped[str] = mapped_column(String(512))
    external_id: Mapped[str] = mapped_column(String(255))
    external_url: Mapped[str | None] = mapped_column(Text(), default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class UserRoutingRuleRecord(Base):
    """Persisted per-user routing rule."""

    __tablename__ = "user_routing_rules"
    __table_args__ = (Index("ix_user_routing_rules_user", "user_name", "priority"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_name: Mapped[str] = mapped_column(String(255))
    rule_type: Mapped[str] = mapped_column(String(32))
    pattern: Mapped[str | None] = mapped_column(Text(), default=None)
    target_type: Mapped[str] = mapped_column(String(64))
    target_config: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


async def init_dispatch_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _to_entry(record: DispatchLogRecord) -> DispatchLogEntry:
    return DispatchLogEntry(
        id=record.id,
        item_id=record.item_id,
        target_type=record.target_type,
        target_config=dict(record.target_config or {}),
        method=record.method,
        event=record.event,
        status=DispatchStatus(record.status),
        retries=record.retries,
        external_id=record.external_id,
        external_url=record.external_url,
        last_error=record.last_error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_mapping(record: AdapterMappingRecord) -> AdapterMapping:
    return AdapterMapping(
        item_id=record.item_id,
        adapter_type=record.adapter_type,
        channel=record.channel,
        external_id=record.external_id,
        external_url=record.external_url,
        created_at=record.created_at,
    )


def _to_rule(record: UserRoutingRuleRecord) -> UserRoutingRule:
    return UserRoutingRule(
        id=record.id,
        user_name=record.user_name,
        rule_type=RuleType(record.rule_type),
        pattern=record.pattern,
        target_type=record.target_type,
        target_config=dict(record.target_config or {}),
        priority=record.priority,
        enabled=record.enabled,
    )


class SqlDispatchStore:
    """Dispatch log, adapter mapping, and user rule store on SQLAlchemy.

    Timestamps come from ``clock`` so tests can control backoff windows.
    """

    def __init__(self, session_factory: SessionFactory, *, clock: Clock = utcnow) -> None:
        """Configure the store with an async session factory."""
        self._session_factory = session_factory
        self._clock = clock

    async def create_dispatch_entry(self, entry: DispatchLogEntry) -> DispatchLogEntry:
        """Persist ``entry`` and return it with ``id`` and timestamps set."""
        now = self._clock()
        record = DispatchLogRecord(
            item_id=entry.item_id,
            target_type=entry.target_type,
            target_config=dict(entry.target_config),
            method=entry.method,
            event=entry.event,
            status=DispatchStatus(entry.status).value,
            retries=entry.retries,
            external_id=entry.external_id,
            external_url=entry.external_url,
            last_error=entry.last_error,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session, session.begin():
            session.add(record)
            await session.flush()
            return _to_entry(record)

    async def update_dispatch_entry(
        self, entry_id: int, update: DispatchUpdate
    ) -> DispatchLogEntry:
        """Apply ``update`` to one entry and refresh ``updated_at``."""
        async with self._session_factory() as session, session.begin():
            record = await session.get(DispatchLogRecord, entry_id)
            if record is None:
                raise DispatchEntryNotFoundError.for_id(entry_id)
            record.status = DispatchStatus(update.status).value
            if update.retries is not None:
                record.retries = update.retries
            if update.external_id is not None:
                record.external_id = update.external_id
            if update.external_url is not None:
                record.external_url = update.external_url
            if update.clear_error:
                record.last_error = None
            elif update.last_error is not None:
                record.last_error = update.last_error
            record.updated_at = self._clock()
            await session.flush()
            return _to_entry(record)

    async def get_dispatch_entry(self, entry_id: int) -> DispatchLogEntry | None:
        """Return one entry by identifier."""
        async with self._session_factory() as session:
            record = await session.get(DispatchLogRecord, entry_id)
            return None if record is None else _to_entry(record)

    async def get_dispatch_entries(self, item_id: str) -> list[DispatchLogEntry]:
        """Return every entry recorded for ``item_id``, oldest first."""
        async with self._session_factory() as session:
            records = await session.scalars(
                select(DispatchLogRecord)
                .where(DispatchLogRecord.item_id == item_id)
                .order_by(DispatchLogRecord.id)
            )
            return [_to_entry(record) for record in records]

    async def get_pending_dispatches(self) -> list[DispatchLogEntry]:
        """Return pending and failed entries, oldest update first."""
        async with self._session_factory() as session:
            records = await session.scalars(
                select(DispatchLogRecord)
                .where(DispatchLogRecord.status.in_(_NON_TERMINAL))
                .order_by(DispatchLogRecord.updated_at, DispatchLogRecord.id)
            )
            return [_to_entry(record) for record in records]

    async def reset_dispatches(
        self, *, item_id: str | None = None, entry_id: int | None = None
    ) -> int:
        """Reset matching failed or exhausted entries to ``pending``."""
        statement = select(DispatchLogRecord).where(
            DispatchLogRecord.status.in_([status.value for status in RESETTABLE_STATUSES])
        )
        if item_id is not None:
            statement = statement.where(DispatchLogRecord.item_id == item_id)
        if entry_id is not None:
            statement = statement.where(DispatchLogRecord.id == entry_id)

        async with self._session_factory() as session, session.begin():
            records = list(await session.scalars(statement))
            now = self._clock()
            for record in records:
                record.status = DispatchStatus.PENDING.value
                record.retries = 0
                record.updated_at = now
            return len(records)

    async def set_adapter_mapping(self, mapping: AdapterMapping) -> None:
        """Insert or overwrite the mapping for its key."""
        async with self._session_factory() as session, session.begin():
            record = await session.scalar(
                select(AdapterMappingRecord).where(
                    AdapterMappingRecord.item_id == mapping.item_id,
                    AdapterMappingRecord.adapter_type == mapping.adapter_type,
                    AdapterMappingRecord.channel == mapping.channel,
                )
            )
            if record is None:
                session.add(
                    AdapterMappingRecord(
                        item_id=mapping.item_id,
                        adapter_type=mapping.adapter_type,
                        channel=mapping.channel,
                        external_id=mapping.external_id,
                        external_url=mapping.external_url,
                        created_at=self._clock(),
                    )
                )
                return
            record.external_id = mapping.external_id
            record.external_url = mapping.external_url

    async def get_adapter_mapping(
        self, item_id: str, adapter_type: str, channel: str
    ) -> AdapterMapping | None:
        """Return the mapping for the key, if any."""
        async with self._session_factory() as session:
            record = await session.scalar(
                select(AdapterMappingRecord).where(
                    AdapterMappingRecord.item_id == item_id,
                    AdapterMappingRecord.adapter_type == adapter_type,
                    AdapterMappingRecord.channel == channel,
                )
            )
            return None if record is None else _to_mapping(record)

    async def add_user_rule(self, rule: UserRoutingRule) -> UserRoutingRule:
        """Persist a user routing rule and return it with ``id`` set."""
        record = UserRoutingRuleRecord(
            user_name=rule.user_name,
            rule_type=RuleType(rule.rule_type).value,
            pattern=rule.pattern,
            target_type=rule.target_type,
            target_config=dict(rule.target_config),
            priority=rule.priority,
            enabled=rule.enabled,
            created_at=self._clock(),
        )
        async with self._session_factory() as session, session.begin():
            session.add(record)
            await session.flush()
            return _to_rule(record)

    async def get_user_rules(self, user_name: str) -> list[UserRoutingRule]:
        """Return the user's rules, highest priority first."""
        async with self._session_factory() as session:
            records = await session.scalars(
                select(UserRoutingRuleRecord)
                .where(UserRoutingRuleRecord.user_name == user_name)
                .order_by(UserRoutingRuleRecord.priority.desc(), UserRoutingRuleRecord.id)
            )
            return [_to_rule(record) for record in records]

    async def list_user_rules(
        self, user_name: str | None = None
    ) -> list[UserRoutingRule]:
        """Return rules ordered by owner, then highest priority first."""
        statement = select(UserRoutingRuleRecord).order_by(
            UserRoutingRuleRecord.user_name,
            UserRoutingRuleRecord.priority.desc(),
            UserRoutingRuleRecord.id,
        )
        if user_name is not None:
            statement = statement.where(UserRoutingRuleRecord.user_name == user_name)
        async with self._session_factory() as session:
            records = await session.scalars(statement)
            return [_to_rule(record) for record in records]

    async def get_user_rule(self, rule_id: int) -> UserRoutingRule | None:
        """Return one rule by identifier."""
        async with self._session_factory() as session:
            record = await session.get(UserRoutingRuleRecord, rule_id)
            return None if record is None else _to_rule(record)

    async def update_user_rule(
        self, rule_id: int, update: RuleUpdate
    ) -> UserRoutingRule | None:
        """Apply the set fields of ``update``; ``None`` if the rule is missing."""
        async with self._session_factory() as session, session.begin():
            record = await session.get(UserRoutingRuleRecord, rule_id)
            if record is None:
                return None
            if update.rule_type is not None:
                record.rule_type = RuleType(update.rule_type).value
            if update.pattern is not None:
                record.pattern = update.pattern
            if update.target_type is not None:
                record.target_type = update.target_type
            if update.target_config is not None:
                record.target_config = dict(update.target_config)
            if update.priority is not None:
                record.priority = update.priority
            if update.enabled is not None:
                record.enabled = update.enabled
            await session.flush()
            return _to_rule(record)

    async def delete_user_rule(self, rule_id: int) -> bool:
        """Delete one rule and report whether it existed."""
        async with self._session_factory() as session, session.begin():
            record = await session.get(UserRoutingRuleRecord, rule_id)
            if record is None:
                return False
            await session.delete(record)
            return True

    async def count_user_rules(self) -> int:
        """Return the number of stored rules."""
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(UserRoutingRuleRecord)
            )
            return int(total or 0)
