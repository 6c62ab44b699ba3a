"""Multi-target dispatch and the retry sweep.

``DispatchEngine`` records one dispatch log entry per resolved target before
any network call, delivers to all targets concurrently, and persists each
outcome. Failed entries are picked up later by ``retry_failed`` which
redelivers them with exponential backoff until they succeed, run out of
attempts, or their item disappears.

Usage
-----
>>> engine = DispatchEngine(registry, store, items)
>>> entries = await engine.dispatch_to_targets("item.created", item, decisions)
>>> result = await engine.retry_failed()

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ

from waymark.common.time import Clock, utcnow
from waymark.dispatch.backoff import is_retry_due
from waymark.dispatch.config import DispatchConfig
from waymark.dispatch.errors import UnsavedDispatchEntryError
from waymark.dispatch.models import DispatchLogEntry, DispatchStatus, DispatchUpdate
from waymark.dispatch.observability import DispatchEventLogger
from waymark.logging import get_logger, log_exception
from waymark.routing.models import target_identity

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from waymark.adapters.protocol import FeedbackItem, SendResult
    from waymark.dispatch.ports import DispatchLogStore, ItemLookup
    from waymark.dispatch.registry import AdapterRegistry
    from waymark.routing.models import RoutingDecision

logger = get_logger(__name__)

ITEM_NOT_FOUND = "item not found"


@dc.dataclass(slots=True)
class SweepResult:
    """Counts from one retry sweep."""

    attempted: int = 0
    sent: int = 0
    failed: int = 0
    exhausted: int = 0
    cancelled: int = 0
    skipped: int = 0
    errors: int = 0


def _entry_id(entry: DispatchLogEntry) -> int:
    if entry.id is None:
        raise UnsavedDispatchEntryError.for_item(entry.item_id, entry.target_type)
    return entry.id


class DispatchEngine:
    """Deliver items to resolved targets and retry failed deliveries.

    Parameters
    ----------
    registry
        Builds adapters and performs single-target delivery.
    store
        Durable dispatch log.
    items
        Item lookup used by the retry sweep.
    config
        Retry tuning; defaults to ``DispatchConfig()``.
    clock
        Source of the current time for backoff checks.
    event_logger
        Structured event sink.

    """

    def __init__(
        self,
        registry: AdapterRegistry,
        store: DispatchLogStore,
        items: ItemLookup,
        config: DispatchConfig | None = None,
        *,
        clock: Clock = utcnow,
        event_logger: DispatchEventLogger | None = None,
    ) -> None:
        """Store collaborators; no I/O happens until a dispatch call."""
        self._registry = registry
        self._store = store
        self._items = items
        self._config = config or DispatchConfig()
        self._clock = clock
        self._events = event_logger or DispatchEventLogger()
        self._sweeping = False

    @property
    def sweeping(self) -> bool:
        """Return whether a retry sweep is currently running."""
        return self._sweeping

    def _truncate(self, error: BaseException) -> str:
        return str(error)[: self._config.last_error_max_length]

    async def _deliver(
        self,
        entry: DispatchLogEntry,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        return await self._registry.deliver(
            entry.event, item, entry.target_type, entry.target_config, context
        )

    async def _mark_sent(
        self, entry: DispatchLogEntry, result: SendResult | None
    ) -> DispatchLogEntry:
        updated = await self._store.update_dispatch_entry(
            _entry_id(entry),
            DispatchUpdate(
                status=DispatchStatus.SENT,
                retries=0 if entry.status == DispatchStatus.PENDING else None,
                external_id=result.external_id if result else None,
                external_url=result.external_url if result else None,
                clear_error=True,
            ),
        )
        self._events.log_target_sent(
            target=target_identity(entry.target_type, entry.target_config),
            event=entry.event,
            item_id=entry.item_id,
            external_id=updated.external_id,
        )
        return updated

    async def _attempt(
        self,
        entry: DispatchLogEntry,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> DispatchLogEntry:
        try:
            result = await self._deliver(entry, item, context)
        except Exception as exc:  # noqa: BLE001
            # recorded on the entry; the sweep retries it
            self._events.log_target_failed(
                target=target_identity(entry.target_type, entry.target_config),
                event=entry.event,
                item_id=entry.item_id,
                error=exc,
                retries=1,
            )
            return await self._store.update_dispatch_entry(
                _entry_id(entry),
                DispatchUpdate(
                    status=DispatchStatus.FAILED,
                    retries=1,
                    last_error=self._truncate(exc),
                ),
            )
        return await self._mark_sent(entry, result)

    async def dispatch_to_targets(
        self,
        event: str,
        item: FeedbackItem,
        targets: cabc.Sequence[RoutingDecision],
        context: cabc.Mapping[str, typ.Any] | None = None,
    ) -> list[DispatchLogEntry]:
        """Deliver ``event`` to every target and record each outcome.

        All entries are created as ``pending`` before any delivery starts, so
        a crash mid-dispatch leaves retryable records. Deliveries then run
        concurrently and settle independently.

        Returns
        -------
        list[DispatchLogEntry]
            The final entries, in ``targets`` order. An entry whose outcome
            could not be persisted is returned as created.

        """
        if not targets:
            return []
        context = context or {}

        created: list[DispatchLogEntry] = []
        for decision in targets:
            created.append(
                await self._store.create_dispatch_entry(
                    DispatchLogEntry(
                        item_id=item.id,
                        target_type=decision.target_type,
                        target_config=dict(decision.target_config),
                        method=decision.method,
                        event=event,
                    )
                )
            )

        gathered = await asyncio.gather(
            *(self._attempt(entry, item, context) for entry in created),
            return_exceptions=True,
        )

        entries: list[DispatchLogEntry] = []
        for entry, outcome in zip(created, gathered, strict=True):
            if isinstance(outcome, Exception):
                log_exception(
                    logger,
                    f"failed to record dispatch outcome for entry {entry.id}",
                    outcome,
                )
                entries.append(entry)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                entries.append(outcome)
        return entries

    async def _cancel(self, entry: DispatchLogEntry, result: SweepResult) -> None:
        await self._store.update_dispatch_entry(
            _entry_id(entry),
            DispatchUpdate(status=DispatchStatus.CANCELLED, last_error=ITEM_NOT_FOUND),
        )
        self._events.log_retry_cancelled(entry_id=entry.id, item_id=entry.item_id)
        result.cancelled += 1

    async def _record_retry_failure(
        self, entry: DispatchLogEntry, error: Exception, result: SweepResult
    ) -> None:
        retries = entry.retries + 1
        exhausted = retries >= self._config.retry_max_attempts
        await self._store.update_dispatch_entry(
            _entry_id(entry),
            DispatchUpdate(
                status=DispatchStatus.EXHAUSTED if exhausted else DispatchStatus.FAILED,
                retries=retries,
                last_error=self._truncate(error),
            ),
        )
        self._events.log_target_failed(
            target=target_identity(entry.target_type, entry.target_config),
            event=entry.event,
            item_id=entry.item_id,
            error=error,
            retries=retries,
        )
        if exhausted:
            self._events.log_retry_exhausted(
                entry_id=entry.id, item_id=entry.item_id, retries=retries
            )
            result.exhausted += 1
        else:
            result.failed += 1

    async def _retry_entry(
        self, entry: DispatchLogEntry, now: dt.datetime, result: SweepResult
    ) -> None:
        if not is_retry_due(
            entry.retries, entry.updated_at, now, self._config.retry_base_delay_s
        ):
            result.skipped += 1
            return

        item = await self._items.get_item(entry.item_id)
        if item is None:
            await self._cancel(entry, result)
            return

        result.attempted += 1
        try:
            send_result = await self._deliver(entry, item, {})
        except Exception as exc:  # noqa: BLE001
            await self._record_retry_failure(entry, exc, result)
            return
        await self._mark_sent(entry, send_result)
        result.sent += 1

    async def retry_failed(self) -> SweepResult | None:
        """Run one retry sweep over non-terminal dispatch log entries.

        Only one sweep runs at a time per engine; a call made while another
        sweep is in progress returns ``None`` without touching the store.
        Entries are processed sequentially. An entry whose item lookup or
        store update raises is counted in ``errors`` and the sweep moves on.

        Returns
        -------
        SweepResult | None
            Counts for the sweep, or ``None`` when it was skipped.

        """
        if self._sweeping:
            self._events.log_sweep_skipped()
            return None
        self._sweeping = True
        try:
            result = SweepResult()
            now = self._clock()
            for entry in await self._store.get_pending_dispatches():
                try:
                    await self._retry_entry(entry, now, result)
                except Exception as exc:  # noqa: BLE001
                    # the entry stays as it was and is picked up next sweep
                    self._events.log_sweep_entry_error(
                        entry_id=entry.id, item_id=entry.item_id, error=exc
                    )
                    result.errors += 1
        finally:
            self._sweeping = False
        self._events.log_sweep_completed(result)
        return result

    async def retry(
        self, *, item_id: str | None = None, entry_id: int | None = None
    ) -> int:
        """Reset failed or exhausted entries to ``pending`` with zero retries.

        Raises
        ------
        ValueError
            If neither ``item_id`` nor ``entry_id`` is given.

        """
        if item_id is None and entry_id is None:
            msg = "item_id or entry_id is required"
            raise ValueError(msg)
        return await self._store.reset_dispatches(item_id=item_id, entry_id=entry_id)
