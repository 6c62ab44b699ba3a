"""Adapter registry: configured channels, static rules, and ad-hoc targets.

The registry owns two kinds of delivery:

- **Static dispatch** evaluates the distribution rules for an event and
  sends to every matching channel concurrently, logging failures without
  retrying them.
- **Target delivery** builds a transient adapter for a resolved
  ``(target_type, target_config)`` pair. Dynamic targets are keyed as
  ``dynamic:<target identity>`` so repeated deliveries for one item reuse a
  single adapter mapping.

Usage
-----
>>> registry = default_registry(mappings=store)
>>> registry.load_config(load_distribution_config("distribution.yml"))
>>> outcomes = await registry.dispatch("item.created", item)

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ

from waymark.adapters import BUILTIN_ADAPTERS
from waymark.adapters.errors import AdapterConfigError
from waymark.adapters.protocol import AdapterSettings, SendResult
from waymark.dispatch.models import AdapterMapping
from waymark.dispatch.observability import DispatchEventLogger
from waymark.logging import get_logger, log_debug, log_error, log_info, log_warning
from waymark.routing.models import GITHUB_ISSUE_TARGET, target_identity

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx

    from waymark.adapters.protocol import Adapter, AdapterFactory, FeedbackItem
    from waymark.dispatch.config import DistributionConfig, RuleMatch, StaticRule
    from waymark.dispatch.ports import AdapterMappingStore

logger = get_logger(__name__)

DYNAMIC_CHANNEL_PREFIX = "dynamic"
CREDENTIAL_FIELD = "token"
CREDENTIAL_INHERITING_TYPES: frozenset[str] = frozenset({GITHUB_ISSUE_TARGET})


@dc.dataclass(frozen=True, slots=True)
class ChannelStatus:
    """Health snapshot for one configured channel."""

    type: str
    active: bool = True


@dc.dataclass(frozen=True, slots=True)
class ChannelOutcome:
    """Result of sending one event to one static channel."""

    channel: str
    ok: bool
    result: SendResult | None = None
    error: Exception | None = None


@dc.dataclass(frozen=True, slots=True)
class _Channel:
    adapter: Adapter
    config: dict[str, typ.Any]


def dynamic_channel_key(
    target_type: str, target_config: cabc.Mapping[str, typ.Any]
) -> str:
    """Return the stable channel key for a dynamically resolved target.

    Examples
    --------
    >>> dynamic_channel_key("github-issue", {"repo": "a/b"})
    'dynamic:github-issue:repo=a/b'

    """
    return f"{DYNAMIC_CHANNEL_PREFIX}:{target_identity(target_type, target_config)}"


def _accepted(expected: str | list[str] | None, actual: str | None) -> bool:
    if expected is None:
        return True
    if isinstance(expected, list):
        return actual in expected
    return actual == expected


def rule_matches(match: RuleMatch, event: str, item: FeedbackItem) -> bool:
    """Return whether every present field of ``match`` holds.

    A match with no fields accepts every event.
    """
    return (
        _accepted(match.event, event)
        and _accepted(match.type, item.type)
        and _accepted(match.priority, item.priority)
        and _accepted(match.status, item.status)
        and _accepted(match.app_id, item.app_id)
    )


class AdapterRegistry:
    """Own configured channels and deliver events through adapters.

    Parameters
    ----------
    mappings
        Store for item to external-resource mappings. Without one, adapters
        cannot detect resources created by earlier processes.
    http_client
        Shared client handed to every adapter.
    event_logger
        Structured event sink; a default logger is created when omitted.

    """

    def __init__(
        self,
        *,
        mappings: AdapterMappingStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        event_logger: DispatchEventLogger | None = None,
    ) -> None:
        """Create an empty registry."""
        self._mappings = mappings
        self._http_client = http_client
        self._events = event_logger or DispatchEventLogger()
        self._factories: dict[str, AdapterFactory] = {}
        self._channels: dict[str, _Channel] = {}
        self._rules: list[StaticRule] = []

    @property
    def adapter_types(self) -> frozenset[str]:
        """Return the registered adapter type tags."""
        return frozenset(self._factories)

    @property
    def rules(self) -> tuple[StaticRule, ...]:
        """Return the accumulated static rules."""
        return tuple(self._rules)

    def register_type(self, adapter_type: str, factory: AdapterFactory) -> None:
        """Register ``factory`` for ``adapter_type``, replacing any previous one."""
        self._factories[adapter_type] = factory

    def _settings(
        self, channel: str, config: cabc.Mapping[str, typ.Any]
    ) -> AdapterSettings:
        return AdapterSettings(
            channel=channel,
            config=config,
            mappings=self._mappings,
            http_client=self._http_client,
        )

    def _construct(
        self,
        adapter_type: str,
        factory: AdapterFactory,
        settings: AdapterSettings,
    ) -> Adapter:
        """Build and validate an adapter, reporting any failure as a config error.

        Raises
        ------
        AdapterConfigError
            If the factory or ``validate()`` raises, or validation fails.

        """
        try:
            adapter = factory(settings)
            validation = adapter.validate()
        except Exception as exc:
            raise AdapterConfigError.invalid(adapter_type, str(exc)) from exc
        if not validation.ok:
            raise AdapterConfigError.invalid(adapter_type, validation.error)
        return adapter

    def load_config(self, config: DistributionConfig) -> list[str]:
        """Add the rules and channels of ``config``.

        Loading is additive: rules accumulate and channels are added by name.
        Channels that cannot be built or fail ``validate()`` are skipped
        with a warning.

        Returns
        -------
        list[str]
            Names of the channels loaded by this call.

        """
        self._rules.extend(config.rules)
        loaded: list[str] = []
        for name, channel_config in config.channels.items():
            adapter_type = channel_config.get("adapter")
            factory = (
                self._factories.get(adapter_type)
                if isinstance(adapter_type, str)
                else None
            )
            if factory is None:
                log_warning(
                    logger,
                    'Unknown adapter type "%s" for channel "%s", skipping',
                    adapter_type,
                    name,
                )
                continue
            try:
                adapter = self._construct(
                    adapter_type, factory, self._settings(name, channel_config)
                )
            except AdapterConfigError as exc:
                log_warning(logger, 'Channel "%s" skipped: %s', name, exc)
                continue
            self._channels[name] = _Channel(adapter=adapter, config=dict(channel_config))
            loaded.append(name)
            log_info(logger, 'Channel "%s" (%s) loaded', name, adapter_type)
        return loaded

    def match_channels(self, event: str, item: FeedbackItem) -> list[str]:
        """Return channel names whose rules match, de-duplicated in order."""
        names: dict[str, None] = {}
        for rule in self._rules:
            if not rule.channels or not rule_matches(rule.match, event, item):
                continue
            for name in rule.channels:
                names.setdefault(name, None)
        return list(names)

    async def _record_mapping(
        self, item: FeedbackItem, adapter: Adapter, result: SendResult | None
    ) -> None:
        if self._mappings is None or result is None or not result.external_id:
            return
        await self._mappings.set_adapter_mapping(
            AdapterMapping(
                item_id=item.id,
                adapter_type=adapter.adapter_type,
                channel=adapter.channel,
                external_id=result.external_id,
                external_url=result.external_url,
            )
        )

    async def _send(
        self,
        adapter: Adapter,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        result = await adapter.send(event, item, context)
        await self._record_mapping(item, adapter, result)
        return result

    async def dispatch(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any] | None = None,
    ) -> list[ChannelOutcome]:
        """Send ``event`` to every channel matched by the static rules.

        Sends run concurrently and settle independently; failures are
        logged and returned, never raised. Unknown channel names are skipped.
        """
        context = context or {}
        channels: list[tuple[str, _Channel]] = []
        for name in self.match_channels(event, item):
            channel = self._channels.get(name)
            if channel is None:
                log_warning(logger, 'Channel "%s" not found, skipping', name)
                continue
            channels.append((name, channel))
        if not channels:
            return []

        gathered = await asyncio.gather(
            *(
                self._send(channel.adapter, event, item, context)
                for _, channel in channels
            ),
            return_exceptions=True,
        )

        outcomes: list[ChannelOutcome] = []
        for (name, channel), result in zip(channels, gathered, strict=True):
            adapter_type = channel.adapter.adapter_type
            if isinstance(result, Exception):
                self._events.log_channel_failed(
                    channel=name,
                    adapter_type=adapter_type,
                    event=event,
                    item_id=item.id,
                    error=result,
                )
                outcomes.append(ChannelOutcome(channel=name, ok=False, error=result))
            elif isinstance(result, BaseException):
                raise result
            else:
                self._events.log_channel_sent(
                    channel=name, adapter_type=adapter_type, event=event, item_id=item.id
                )
                outcomes.append(ChannelOutcome(channel=name, ok=True, result=result))
        return outcomes

    def inherit_credentials(
        self, target_type: str, target_config: cabc.Mapping[str, typ.Any]
    ) -> dict[str, typ.Any]:
        """Return a copy of ``target_config`` with a borrowed credential.

        Issue-tracker targets without a ``token`` reuse the token of the first
        configured channel of the same type. The caller's mapping is never
        modified.
        """
        config = dict(target_config)
        if target_type not in CREDENTIAL_INHERITING_TYPES or config.get(CREDENTIAL_FIELD):
            return config
        for channel in self._channels.values():
            if channel.adapter.adapter_type != target_type:
                continue
            token = channel.config.get(CREDENTIAL_FIELD)
            if token:
                config[CREDENTIAL_FIELD] = token
                break
        return config

    def build_adapter(
        self, target_type: str, target_config: cabc.Mapping[str, typ.Any]
    ) -> Adapter:
        """Build and validate a transient adapter for a resolved target.

        Raises
        ------
        AdapterConfigError
            If ``target_type`` is unknown or no valid adapter can be built.

        """
        factory = self._factories.get(target_type)
        if factory is None:
            raise AdapterConfigError.unknown_type(target_type)
        config = self.inherit_credentials(target_type, target_config)
        return self._construct(
            target_type,
            factory,
            self._settings(dynamic_channel_key(target_type, target_config), config),
        )

    async def deliver(
        self,
        event: str,
        item: FeedbackItem,
        target_type: str,
        target_config: cabc.Mapping[str, typ.Any],
        context: cabc.Mapping[str, typ.Any] | None = None,
    ) -> SendResult | None:
        """Deliver ``event`` to one resolved target.

        Raises
        ------
        AdapterConfigError
            If no adapter can be built for the target.
        AdapterDeliveryError
            If the adapter fails to deliver.

        """
        adapter = self.build_adapter(target_type, target_config)
        return await self._send(adapter, event, item, context or {})

    async def dispatch_to_target(
        self,
        event: str,
        item: FeedbackItem,
        target_type: str,
        target_config: cabc.Mapping[str, typ.Any],
        context: cabc.Mapping[str, typ.Any] | None = None,
    ) -> SendResult | None:
        """Deliver to one resolved target, degrading on configuration errors.

        An unknown adapter type is logged and yields ``None``. A target that
        fails validation falls back to static ``dispatch()`` and yields
        ``None``. Delivery errors propagate to the caller.
        """
        if target_type not in self._factories:
            log_error(
                logger,
                'Unknown adapter type "%s" for dynamic dispatch',
                target_type,
            )
            return None
        try:
            result = await self.deliver(event, item, target_type, target_config, context)
        except AdapterConfigError as exc:
            log_warning(
                logger,
                "Dynamic target could not be built, falling back to static dispatch: %s",
                exc,
            )
            await self.dispatch(event, item, context)
            return None
        log_debug(
            logger,
            "%s delivered to dynamic %s",
            event,
            target_identity(target_type, target_config),
        )
        return result

    def get_status(self) -> dict[str, ChannelStatus]:
        """Return a health snapshot of every configured channel."""
        return {
            name: ChannelStatus(type=channel.adapter.adapter_type or "unknown")
            for name, channel in self._channels.items()
        }


def default_registry(
    *,
    mappings: AdapterMappingStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    event_logger: DispatchEventLogger | None = None,
) -> AdapterRegistry:
    """Return a registry with every built-in adapter type registered."""
    registry = AdapterRegistry(
        mappings=mappings, http_client=http_client, event_logger=event_logger
    )
    for adapter_type, factory in BUILTIN_ADAPTERS.items():
        registry.register_type(adapter_type, factory)
    return registry
