"""Storage ports consumed by routing and dispatch.

The feedback service owns the database; these protocols describe the small
set of operations the dispatch subsystem needs. ``SqlDispatchStore``
implements the dispatch log, mapping, and rule ports; item lookup stays
with the feedback service.
"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from waymark.adapters.protocol import FeedbackItem
    from waymark.dispatch.models import (
        AdapterMapping,
        DispatchLogEntry,
        DispatchUpdate,
    )
    from waymark.routing.models import RuleUpdate, UserRoutingRule


class DispatchLogStore(typ.Protocol):
    """Durable record of delivery attempts."""

    async def create_dispatch_entry(self, entry: DispatchLogEntry) -> DispatchLogEntry:
        """Persist ``entry`` and return it with ``id`` and timestamps set."""
        ...

    async def update_dispatch_entry(
        self, entry_id: int, update: DispatchUpdate
    ) -> DispatchLogEntry:
        """Apply ``update`` and refresh ``updated_at``.

        Raises
        ------
        DispatchEntryNotFoundError
            If no entry has ``entry_id``.

        """
        ...

    async def get_dispatch_entry(self, entry_id: int) -> DispatchLogEntry | None:
        """Return one entry by identifier."""
        ...

    async def get_pending_dispatches(self) -> list[DispatchLogEntry]:
        """Return non-terminal entries, oldest update first."""
        ...

    async def reset_dispatches(
        self, *, item_id: str | None = None, entry_id: int | None = None
    ) -> int:
        """Reset matching failed or exhausted entries to ``pending``.

        Returns the number of entries reset.
        """
        ...


class AdapterMappingStore(typ.Protocol):
    """External identifiers created for items, one per item and channel."""

    async def set_adapter_mapping(self, mapping: AdapterMapping) -> None:
        """Insert or overwrite the mapping for its key."""
        ...

    async def get_adapter_mapping(
        self, item_id: str, adapter_type: str, channel: str
    ) -> AdapterMapping | None:
        """Return the mapping for the key, if any."""
        ...


class ItemLookup(typ.Protocol):
    """Read access to feedback items."""

    async def get_item(self, item_id: str) -> FeedbackItem | None:
        """Return the item, or ``None`` when it no longer exists."""
        ...


class UserRuleStore(typ.Protocol):
    """Per-user routing rules."""

    async def get_user_rules(self, user_name: str) -> cabc.Sequence[UserRoutingRule]:
        """Return the user's rules, highest priority first."""
        ...


class RuleStore(UserRuleStore, typ.Protocol):
    """Rule management used by the routing rule endpoints."""

    async def add_user_rule(self, rule: UserRoutingRule) -> UserRoutingRule:
        """Persist ``rule`` and return it with ``id`` set."""
        ...

    async def list_user_rules(
        self, user_name: str | None = None
    ) -> cabc.Sequence[UserRoutingRule]:
        """Return rules, all users when ``user_name`` is ``None``."""
        ...

    async def get_user_rule(self, rule_id: int) -> UserRoutingRule | None:
        """Return one rule by identifier."""
        ...

    async def update_user_rule(
        self, rule_id: int, update: RuleUpdate
    ) -> UserRoutingRule | None:
        """Apply ``update``; return ``None`` when the rule does not exist."""
        ...

    async def delete_user_rule(self, rule_id: int) -> bool:
        """Delete one rule and report whether it existed."""
        ...

    async def count_user_rules(self) -> int:
        """Return the number of stored rules."""
        ...
