"""Behavioural coverage for dispatch logging, backoff and manual reset."""

from __future__ import annotations

import typing as typ

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from waymark.adapters.errors import AdapterDeliveryError
from waymark.dispatch.engine import DispatchEngine
from waymark.dispatch.models import DispatchStatus
from waymark.dispatch.registry import AdapterRegistry
from waymark.routing.models import RoutingDecision, RoutingMethod
from tests.helpers import run_async
from tests.helpers.fakes import (
    InMemoryDispatchStore,
    InMemoryItems,
    ManualClock,
    RecordingAdapterFactory,
    make_item,
)

if typ.TYPE_CHECKING:
    from waymark.adapters.protocol import FeedbackItem

scenarios("../dispatch_retry.feature")

SLACK_TARGET = RoutingDecision(
    target_type="slack",
    target_config={"webhook_url": "https://hooks.slack.com/services/T0/B0/X"},
    method=RoutingMethod.USER_RULE,
)


class RetryContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    item: FeedbackItem
    engine: DispatchEngine


@pytest.fixture
def retry_context() -> RetryContext:
    """Provide empty scenario state."""
    return {}


@given(parsers.parse('the item "{item_id}" exists'))
def given_item(retry_context: RetryContext, items: InMemoryItems, item_id: str) -> None:
    """Register the item with the item service."""
    retry_context["item"] = make_item(item_id)
    items.add(retry_context["item"])


@given(parsers.re(r"a slack target that fails (?P<count>\d+) times?"))
def given_failing_target(
    retry_context: RetryContext,
    store: InMemoryDispatchStore,
    items: InMemoryItems,
    clock: ManualClock,
    count: str,
) -> None:
    """Build an engine whose Slack adapter fails ``count`` times."""
    slack = RecordingAdapterFactory(
        "slack",
        outcomes=[
            AdapterDeliveryError.http_error("Slack webhook", 503)
            for _ in range(int(count))
        ],
    )
    registry = AdapterRegistry(mappings=store)
    registry.register_type("slack", slack)
    retry_context["engine"] = DispatchEngine(registry, store, items, clock=clock)


@when("the item is dispatched")
def when_dispatched(retry_context: RetryContext) -> None:
    """Deliver the item to the Slack target."""
    engine = retry_context["engine"]
    item = retry_context["item"]
    run_async(
        lambda: engine.dispatch_to_targets("item.created", item, [SLACK_TARGET])
    )


@when(parsers.parse("the retry sweep runs {seconds:d} seconds later"))
def when_sweep_runs(
    retry_context: RetryContext, clock: ManualClock, seconds: int
) -> None:
    """Advance the clock and run one sweep."""
    clock.advance(seconds)
    result = run_async(retry_context["engine"].retry_failed)
    assert result is not None, "sweep should not be skipped"


@when("the item is deleted")
def when_item_deleted(retry_context: RetryContext, items: InMemoryItems) -> None:
    """Remove the item from the item service."""
    items.remove(retry_context["item"].id)


@when("the item's deliveries are reset")
def when_reset(retry_context: RetryContext) -> None:
    """Reset failed and exhausted entries for the item."""
    engine = retry_context["engine"]
    item_id = retry_context["item"].id
    reset = run_async(lambda: engine.retry(item_id=item_id))
    assert reset == 1, f"expected one entry reset, got {reset}"


@then(
    parsers.re(
        r'the dispatch entry is "(?P<status>\w+)" with (?P<retries>\d+) retr(y|ies)'
    )
)
def then_entry_state(
    store: InMemoryDispatchStore, status: str, retries: str
) -> None:
    """Assert the single dispatch log entry's status and retry count."""
    (entry,) = store.entries.values()
    assert entry.status == DispatchStatus(status), (
        f"expected status {status}, got {entry.status}"
    )
    assert entry.retries == int(retries), (
        f"expected {retries} retries, got {entry.retries}"
    )
