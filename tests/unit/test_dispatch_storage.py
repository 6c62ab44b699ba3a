"""Unit tests for the SQLAlchemy dispatch store."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest
from sqlalchemy.exc import StatementError

from waymark.dispatch.errors import (
    DispatchEntryNotFoundError,
    TimezoneAwareRequiredError,
)
from waymark.dispatch.models import (
    AdapterMapping,
    DispatchLogEntry,
    DispatchStatus,
    DispatchUpdate,
)
from waymark.dispatch.storage import SqlDispatchStore
from waymark.routing.models import RuleType, RuleUpdate, UserRoutingRule

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tests.helpers.fakes import ManualClock


def _entry(item_id: str = "item-1", **fields: typ.Any) -> DispatchLogEntry:
    return DispatchLogEntry(
        item_id=item_id,
        target_type="github-issue",
        target_config={"repo": "coco-xyz/clawmark", "labels": ["waymark"]},
        method="github_auto",
        **fields,
    )


@pytest.fixture
def sql_store(
    session_factory: async_sessionmaker[AsyncSession], clock: ManualClock
) -> SqlDispatchStore:
    """Return a store on the test database sharing the manual clock."""
    return SqlDispatchStore(session_factory, clock=clock)


class TestDispatchLog:
    """Tests for dispatch log persistence."""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(
        self, sql_store: SqlDispatchStore, clock: ManualClock
    ) -> None:
        """Created entries get an id and UTC timestamps from the clock."""
        created = await sql_store.create_dispatch_entry(_entry())

        assert created.id is not None, "Id should be assigned"
        assert created.status == DispatchStatus.PENDING, "Entries start pending"
        assert created.created_at == clock.now, "created_at should use the clock"

        loaded = await sql_store.get_dispatch_entry(created.id)
        assert loaded is not None, "Entry should be readable"
        assert loaded.updated_at == clock.now, "Timestamps should round-trip"
        assert loaded.updated_at.tzinfo is not None, "Timestamps should be aware"
        assert loaded.target_config == {
            "repo": "coco-xyz/clawmark",
            "labels": ["waymark"],
        }, "Target config should round-trip"

    @pytest.mark.asyncio
    async def test_update_applies_fields(
        self, sql_store: SqlDispatchStore, clock: ManualClock
    ) -> None:
        """Updates change status, ids, and errors and refresh updated_at."""
        created = await sql_store.create_dispatch_entry(_entry())
        assert created.id is not None, "Id should be assigned"

        clock.advance(30)
        failed = await sql_store.update_dispatch_entry(
            created.id,
            DispatchUpdate(status=DispatchStatus.FAILED, retries=1, last_error="boom"),
        )
        assert failed.retries == 1, "Retries should be stored"
        assert failed.last_error == "boom", "Error should be stored"
        assert failed.updated_at == clock.now, "updated_at should advance"

        sent = await sql_store.update_dispatch_entry(
            created.id,
            DispatchUpdate(
                status=DispatchStatus.SENT, external_id="42", clear_error=True
            ),
        )
        assert sent.status == DispatchStatus.SENT, "Status should change"
        assert sent.retries == 1, "Unspecified retries should be kept"
        assert sent.external_id == "42", "External id should be stored"
        assert sent.last_error is None, "Error should be cleared"

    @pytest.mark.asyncio
    async def test_update_missing_entry(self, sql_store: SqlDispatchStore) -> None:
        """Updating an unknown entry raises DispatchEntryNotFoundError."""
        with pytest.raises(DispatchEntryNotFoundError, match="999"):
            await sql_store.update_dispatch_entry(
                999, DispatchUpdate(status=DispatchStatus.SENT)
            )

    @pytest.mark.asyncio
    async def test_pending_dispatches_are_non_terminal_oldest_first(
        self, sql_store: SqlDispatchStore, clock: ManualClock
    ) -> None:
        """Pending and failed entries are returned by update time."""
        first = await sql_store.create_dispatch_entry(_entry("a"))
        clock.advance(1)
        second = await sql_store.create_dispatch_entry(
            _entry("b", status=DispatchStatus.FAILED)
        )
        clock.advance(1)
        await sql_store.create_dispatch_entry(_entry("c", status=DispatchStatus.SENT))
        await sql_store.create_dispatch_entry(
            _entry("d", status=DispatchStatus.EXHAUSTED)
        )
        assert first.id is not None, "Id should be assigned"
        clock.advance(1)
        await sql_store.update_dispatch_entry(
            first.id, DispatchUpdate(status=DispatchStatus.FAILED, retries=1)
        )

        pending = await sql_store.get_pending_dispatches()

        assert [entry.item_id for entry in pending] == ["b", "a"], (
            "Only non-terminal entries, least recently updated first"
        )
        assert pending[0].id == second.id, "Failed entry should be first"

    @pytest.mark.asyncio
    async def test_reset_dispatches(self, sql_store: SqlDispatchStore) -> None:
        """Failed and exhausted entries reset to pending with zero retries."""
        failed = await sql_store.create_dispatch_entry(
            _entry(status=DispatchStatus.FAILED, retries=2)
        )
        exhausted = await sql_store.create_dispatch_entry(
            _entry(status=DispatchStatus.EXHAUSTED, retries=3)
        )
        sent = await sql_store.create_dispatch_entry(_entry(status=DispatchStatus.SENT))
        await sql_store.create_dispatch_entry(
            _entry("other", status=DispatchStatus.FAILED)
        )

        assert await sql_store.reset_dispatches(item_id="item-1") == 2, (
            "Two entries should reset"
        )
        stored = await sql_store.get_dispatch_entries("item-1")
        entries = {entry.id: entry for entry in stored}
        assert entries[failed.id].status == DispatchStatus.PENDING, "Failed reset"
        assert entries[exhausted.id].retries == 0, "Retries reset"
        assert entries[sent.id].status == DispatchStatus.SENT, "Sent untouched"

    @pytest.mark.asyncio
    async def test_reset_single_entry(self, sql_store: SqlDispatchStore) -> None:
        """An entry id limits the reset to that entry."""
        first = await sql_store.create_dispatch_entry(
            _entry(status=DispatchStatus.FAILED)
        )
        await sql_store.create_dispatch_entry(_entry(status=DispatchStatus.FAILED))

        assert await sql_store.reset_dispatches(entry_id=first.id) == 1, (
            "Only the named entry should reset"
        )

    @pytest.mark.asyncio
    async def test_naive_timestamps_are_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Naive datetimes cannot be written to UTC columns."""
        store = SqlDispatchStore(
            session_factory,
            clock=lambda: dt.datetime(2026, 3, 1, 12, 0),  # noqa: DTZ001
        )

        with pytest.raises(StatementError) as excinfo:
            await store.create_dispatch_entry(_entry())
        assert isinstance(excinfo.value.orig, TimezoneAwareRequiredError), (
            "Naive timestamp should be rejected by the column type"
        )


class TestAdapterMappings:
    """Tests for adapter mapping persistence."""

    @pytest.mark.asyncio
    async def test_upsert_and_lookup(self, sql_store: SqlDispatchStore) -> None:
        """Mappings are unique per key and overwritten on conflict."""
        key = ("item-1", "github-issue", "dynamic:github-issue:repo=a/b")
        await sql_store.set_adapter_mapping(
            AdapterMapping(
                item_id=key[0], adapter_type=key[1], channel=key[2], external_id="1"
            )
        )
        await sql_store.set_adapter_mapping(
            AdapterMapping(
                item_id=key[0],
                adapter_type=key[1],
                channel=key[2],
                external_id="2",
                external_url="https://github.com/a/b/issues/2",
            )
        )

        mapping = await sql_store.get_adapter_mapping(*key)

        assert mapping is not None, "Mapping should exist"
        assert mapping.external_id == "2", "Latest mapping should win"
        assert mapping.external_url == "https://github.com/a/b/issues/2", (
            "URL should be stored"
        )
        other = await sql_store.get_adapter_mapping("item-1", "github-issue", "gh")
        assert other is None, "Other channels have no mapping"


class TestUserRules:
    """Tests for user routing rule persistence."""

    @pytest.mark.asyncio
    async def test_rules_ordered_by_priority(self, sql_store: SqlDispatchStore) -> None:
        """Rules are returned for their owner, highest priority first."""
        for priority, pattern in ((1, "low"), (10, "high"), (5, "mid")):
            await sql_store.add_user_rule(
                UserRoutingRule(
                    user_name="alice",
                    rule_type=RuleType.TAG_MATCH,
                    pattern=pattern,
                    target_type="slack",
                    target_config={"webhook_url": "https://hooks.slack.com/x"},
                    priority=priority,
                )
            )
        await sql_store.add_user_rule(
            UserRoutingRule(
                user_name="bob", rule_type=RuleType.DEFAULT, target_type="slack"
            )
        )

        rules = await sql_store.get_user_rules("alice")

        assert [rule.pattern for rule in rules] == ["high", "mid", "low"], (
            "Rules should be sorted by descending priority"
        )
        assert all(rule.id is not None for rule in rules), "Ids should be assigned"
        assert rules[0].rule_type == RuleType.TAG_MATCH, "Rule type should round-trip"

    @pytest.mark.asyncio
    async def test_list_filters_by_owner(self, sql_store: SqlDispatchStore) -> None:
        """Listing without an owner returns every rule grouped by owner."""
        for user_name in ("bob", "alice"):
            await sql_store.add_user_rule(
                UserRoutingRule(
                    user_name=user_name, rule_type=RuleType.DEFAULT, target_type="slack"
                )
            )

        everyone = await sql_store.list_user_rules()
        alice = await sql_store.list_user_rules("alice")

        assert [rule.user_name for rule in everyone] == ["alice", "bob"], (
            "Rules should be ordered by owner"
        )
        assert [rule.user_name for rule in alice] == ["alice"], "Filter expected"
        assert await sql_store.count_user_rules() == 2, "Count expected"

    @pytest.mark.asyncio
    async def test_update_applies_set_fields(self, sql_store: SqlDispatchStore) -> None:
        """Only the fields set on the update change."""
        rule = await sql_store.add_user_rule(
            UserRoutingRule(
                user_name="alice",
                rule_type=RuleType.TAG_MATCH,
                pattern="ui",
                target_type="slack",
                target_config={"webhook_url": "https://hooks.slack.com/x"},
            )
        )
        assert rule.id is not None, "Id should be assigned"

        updated = await sql_store.update_user_rule(
            rule.id,
            RuleUpdate(enabled=False, target_config={"webhook_url": "https://y"}),
        )

        assert updated is not None, "Existing rule should update"
        assert updated.enabled is False, "Rule should be disabled"
        assert updated.target_config == {"webhook_url": "https://y"}, "Config changed"
        assert updated.pattern == "ui", "Pattern should be kept"
        stored = await sql_store.get_user_rule(rule.id)
        assert stored == updated, "Update should be persisted"

    @pytest.mark.asyncio
    async def test_update_and_delete_missing_rule(
        self, sql_store: SqlDispatchStore
    ) -> None:
        """Missing rules are reported rather than raised."""
        assert await sql_store.update_user_rule(404, RuleUpdate(priority=1)) is None, (
            "Missing rule should not update"
        )
        assert await sql_store.delete_user_rule(404) is False, "Nothing to delete"

    @pytest.mark.asyncio
    async def test_delete_removes_rule(self, sql_store: SqlDispatchStore) -> None:
        """Deleted rules disappear from lookups."""
        rule = await sql_store.add_user_rule(
            UserRoutingRule(
                user_name="alice", rule_type=RuleType.DEFAULT, target_type="slack"
            )
        )
        assert rule.id is not None, "Id should be assigned"

        assert await sql_store.delete_user_rule(rule.id) is True, "Rule existed"
        assert await sql_store.get_user_rule(rule.id) is None, "Rule should be gone"
        assert await sql_store.get_user_rules("alice") == [], "No rules remain"
