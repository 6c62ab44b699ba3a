"""Delivery of feedback events to channels and resolved targets.

Public API
----------
AdapterRegistry
    Configured channels, static rules, and single-target delivery.
DispatchEngine
    Multi-target dispatch with a durable log and the retry sweep.
EventPublisher
    Upstream entry point combining routing and dispatch.
SqlDispatchStore
    SQLAlchemy implementation of the dispatch log, mapping, and rule ports.
DispatchConfig
    Retry tuning read from the environment.

The Dramatiq actor lives in ``waymark.dispatch.actor`` and is imported
explicitly by workers.

Example:
>>> registry = default_registry(mappings=store)
>>> engine = DispatchEngine(registry, store, items)
>>> publisher = EventPublisher(resolver, registry, engine)
>>> await publisher.publish("item.created", item)

"""

from waymark.dispatch.backoff import backoff_delay, is_retry_due, next_attempt_at
from waymark.dispatch.config import (
    DispatchConfig,
    DistributionConfig,
    RuleMatch,
    StaticRule,
    load_distribution_config,
    parse_distribution_config,
)
from waymark.dispatch.engine import DispatchEngine, SweepResult
from waymark.dispatch.errors import (
    DispatchEntryNotFoundError,
    DispatchError,
    DistributionConfigError,
    ItemLookupError,
)
from waymark.dispatch.items import HttpItemLookup
from waymark.dispatch.models import (
    DEFAULT_EVENT,
    AdapterMapping,
    DispatchLogEntry,
    DispatchStatus,
    DispatchUpdate,
)
from waymark.dispatch.observability import (
    DispatchEventLogger,
    DispatchEventType,
    ErrorCategory,
    categorize_error,
)
from waymark.dispatch.ports import (
    AdapterMappingStore,
    DispatchLogStore,
    ItemLookup,
    UserRuleStore,
)
from waymark.dispatch.publisher import EventPublisher, PublishResult
from waymark.dispatch.registry import (
    AdapterRegistry,
    ChannelOutcome,
    ChannelStatus,
    default_registry,
    dynamic_channel_key,
)
from waymark.dispatch.storage import SqlDispatchStore, init_dispatch_storage

__all__ = [
    "DEFAULT_EVENT",
    "AdapterMapping",
    "AdapterMappingStore",
    "AdapterRegistry",
    "ChannelOutcome",
    "ChannelStatus",
    "DispatchConfig",
    "DispatchEngine",
    "DispatchEntryNotFoundError",
    "DispatchError",
    "DispatchEventLogger",
    "DispatchEventType",
    "DispatchLogEntry",
    "DispatchLogStore",
    "DispatchStatus",
    "DispatchUpdate",
    "DistributionConfig",
    "DistributionConfigError",
    "ErrorCategory",
    "EventPublisher",
    "HttpItemLookup",
    "ItemLookup",
    "ItemLookupError",
    "PublishResult",
    "RuleMatch",
    "SqlDispatchStore",
    "StaticRule",
    "SweepResult",
    "UserRuleStore",
    "backoff_delay",
    "categorize_error",
    "default_registry",
    "dynamic_channel_key",
    "init_dispatch_storage",
    "is_retry_due",
    "load_distribution_config",
    "next_attempt_at",
    "parse_distribution_config",
]
