"""Unit tests for AdapterRegistry."""

from __future__ import annotations

import pytest

from waymark.adapters import GitHubIssueAdapter
from waymark.adapters.errors import AdapterConfigError, AdapterDeliveryError
from waymark.adapters.protocol import AdapterSettings, SendResult
from waymark.dispatch.config import DistributionConfig, RuleMatch, StaticRule
from waymark.dispatch.registry import (
    AdapterRegistry,
    ChannelStatus,
    default_registry,
    dynamic_channel_key,
    rule_matches,
)
from tests.helpers.fakes import (
    InMemoryDispatchStore,
    RecordingAdapter,
    RecordingAdapterFactory,
    make_item,
)


def _registry(
    *factories: RecordingAdapterFactory,
    mappings: InMemoryDispatchStore | None = None,
) -> AdapterRegistry:
    registry = AdapterRegistry(mappings=mappings)
    for factory in factories:
        registry.register_type(factory.adapter_type, factory)
    return registry


def _distribution(
    rules: list[StaticRule], **channels: dict[str, object]
) -> DistributionConfig:
    return DistributionConfig(rules=rules, channels=channels)


class TestRuleMatches:
    """Tests for static rule matching."""

    def test_empty_match_accepts_everything(self) -> None:
        """A rule without conditions matches every event."""
        assert rule_matches(RuleMatch(), "item.closed", make_item()), (
            "Empty match should accept"
        )

    def test_list_values_mean_any_of(self) -> None:
        """List conditions accept any listed value."""
        match = RuleMatch(event="item.created", type=["bug", "issue"])
        assert rule_matches(match, "item.created", make_item(type="issue")), (
            "Listed type should match"
        )
        assert not rule_matches(match, "item.created", make_item(type="comment")), (
            "Unlisted type should not match"
        )
        assert not rule_matches(match, "item.closed", make_item(type="issue")), (
            "Other events should not match"
        )

    def test_all_conditions_must_hold(self) -> None:
        """Priority, status, and app id are all checked."""
        match = RuleMatch(priority="critical", status="open", app_id="docs")
        item = make_item(priority="critical", status="open", app_id="docs")
        assert rule_matches(match, "item.created", item), "All conditions hold"
        item.app_id = "blog"
        assert not rule_matches(match, "item.created", item), (
            "Mismatched app id should fail"
        )


class TestLoadConfig:
    """Tests for loading channels and rules."""

    def test_loads_valid_channels(self) -> None:
        """Valid channels are registered and reported."""
        slack = RecordingAdapterFactory("slack")
        registry = _registry(slack)

        loaded = registry.load_config(
            _distribution([], ops={"adapter": "slack", "webhook_url": "x"})
        )

        assert loaded == ["ops"], "Channel should be loaded"
        assert registry.get_status() == {"ops": ChannelStatus(type="slack")}, (
            "Status should list the channel"
        )

    def test_skips_unknown_and_invalid_channels(self) -> None:
        """Unknown adapter types and failing validation are skipped."""
        slack = RecordingAdapterFactory("slack")
        registry = _registry(slack)

        loaded = registry.load_config(
            _distribution(
                [],
                jira={"adapter": "jira"},
                missing={"webhook_url": "x"},
                broken={"adapter": "slack", "invalid": "Missing webhook_url"},
                ok={"adapter": "slack"},
            )
        )

        assert loaded == ["ok"], "Only the valid channel should load"

    def test_skips_channels_whose_factory_raises(self) -> None:
        """A factory that raises drops its channel; the others still load."""

        def _broken(settings: AdapterSettings) -> RecordingAdapter:
            msg = f"cannot build {settings.channel}"
            raise TypeError(msg)

        registry = _registry(RecordingAdapterFactory("slack"))
        registry.register_type("lark", _broken)

        loaded = registry.load_config(
            _distribution([], bad={"adapter": "lark"}, ok={"adapter": "slack"})
        )

        assert loaded == ["ok"], "Channel with a raising factory should be skipped"

    def test_malformed_github_labels_skip_the_channel(self) -> None:
        """A built-in adapter with non-list labels fails validation at load."""
        registry = default_registry()

        loaded = registry.load_config(
            _distribution(
                [],
                gh={
                    "adapter": "github-issue",
                    "token": "ghp_x",
                    "repo": "a/b",
                    "labels": 5,
                },
            )
        )

        assert loaded == [], "Malformed channel should be skipped"

    def test_loading_is_additive(self) -> None:
        """Rules accumulate and channels merge across calls."""
        registry = _registry(RecordingAdapterFactory("slack"))
        rule = StaticRule(channels=["a"])

        registry.load_config(_distribution([rule], a={"adapter": "slack"}))
        registry.load_config(_distribution([rule], b={"adapter": "slack"}))

        assert len(registry.rules) == 2, "Rules should accumulate"
        assert set(registry.get_status()) == {"a", "b"}, "Channels should merge"

    def test_default_registry_has_builtin_types(self) -> None:
        """Every built-in adapter type is registered."""
        assert default_registry().adapter_types == frozenset({
            "github-issue",
            "webhook",
            "slack",
            "lark",
            "telegram",
        }), "Built-in adapter types expected"


class TestDispatch:
    """Tests for static rule dispatch."""

    @pytest.mark.asyncio
    async def test_sends_to_matched_channels_once(self) -> None:
        """Channels named by several rules receive the event once."""
        slack = RecordingAdapterFactory("slack")
        registry = _registry(slack)
        registry.load_config(
            _distribution(
                [
                    StaticRule(match=RuleMatch(event="item.created"), channels=["a", "b"]),
                    StaticRule(match=RuleMatch(priority="normal"), channels=["a"]),
                    StaticRule(match=RuleMatch(event="item.closed"), channels=["c"]),
                ],
                a={"adapter": "slack"},
                b={"adapter": "slack"},
                c={"adapter": "slack"},
            )
        )

        outcomes = await registry.dispatch("item.created", make_item())

        assert [outcome.channel for outcome in outcomes] == ["a", "b"], (
            "Matched channels should be dispatched in rule order"
        )
        assert all(outcome.ok for outcome in outcomes), "All sends should succeed"
        assert [call.channel for call in slack.calls] == ["a", "b"], (
            "Each channel should be sent once"
        )

    def test_match_channels_deduplicates(self) -> None:
        """Channel names are collected once, in first-seen order."""
        registry = _registry()
        registry.load_config(
            _distribution([
                StaticRule(channels=["b", "a"]),
                StaticRule(match=RuleMatch(event="item.closed"), channels=["c"]),
                StaticRule(channels=["a", "d"]),
            ])
        )

        assert registry.match_channels("item.created", make_item()) == [
            "b",
            "a",
            "d",
        ], "Matching rules should contribute unique names"

    @pytest.mark.asyncio
    async def test_rules_without_channels_are_ignored(self) -> None:
        """A matching rule naming no channels sends nothing."""
        slack = RecordingAdapterFactory("slack")
        registry = _registry(slack)
        registry.load_config(_distribution([StaticRule()], a={"adapter": "slack"}))

        assert await registry.dispatch("item.created", make_item()) == [], (
            "No outcomes expected"
        )

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self) -> None:
        """One failing channel does not affect the others."""
        slack = RecordingAdapterFactory("slack")
        lark = RecordingAdapterFactory(
            "lark", outcomes=[AdapterDeliveryError.http_error("Lark", 500)]
        )
        registry = _registry(slack, lark)
        registry.load_config(
            _distribution(
                [StaticRule(channels=["bad", "good", "ghost"])],
                bad={"adapter": "lark"},
                good={"adapter": "slack"},
            )
        )

        outcomes = await registry.dispatch("item.created", make_item())

        by_channel = {outcome.channel: outcome for outcome in outcomes}
        assert set(by_channel) == {"bad", "good"}, "Unknown channel should be skipped"
        assert not by_channel["bad"].ok, "Failing channel should be reported"
        assert isinstance(by_channel["bad"].error, AdapterDeliveryError), (
            "Error should be returned"
        )
        assert by_channel["good"].ok, "Healthy channel should succeed"

    @pytest.mark.asyncio
    async def test_external_ids_are_recorded(self, store: InMemoryDispatchStore) -> None:
        """Results with an external id are stored as adapter mappings."""
        github = RecordingAdapterFactory(
            "github-issue", result=SendResult(external_id="12", external_url="u")
        )
        registry = _registry(github, mappings=store)
        registry.load_config(
            _distribution([StaticRule(channels=["gh"])], gh={"adapter": "github-issue"})
        )

        await registry.dispatch("item.created", make_item())

        mapping = await store.get_adapter_mapping("item-1", "github-issue", "gh")
        assert mapping is not None, "Mapping should be stored"
        assert mapping.external_id == "12", "External id should be stored"


class TestTargetDelivery:
    """Tests for delivery to resolved targets."""

    def test_dynamic_channel_key_uses_identity(self) -> None:
        """Dynamic keys are built from the target identity."""
        assert (
            dynamic_channel_key("github-issue", {"repo": "a/b", "token": "t"})
            == "dynamic:github-issue:repo=a/b"
        ), "Dynamic key should ignore credentials"

    def test_inherits_token_from_configured_channel(self) -> None:
        """GitHub targets without a token borrow one from a channel."""
        github = RecordingAdapterFactory("github-issue")
        registry = _registry(github)
        registry.load_config(
            _distribution([], gh={"adapter": "github-issue", "token": "ghp_shared"})
        )
        target = {"repo": "a/b"}

        config = registry.inherit_credentials("github-issue", target)

        assert config["token"] == "ghp_shared", "Token should be inherited"
        assert "token" not in target, "Caller mapping must not be modified"

    def test_explicit_token_and_other_types_are_untouched(self) -> None:
        """Explicit tokens win and other adapter types never inherit."""
        registry = _registry(RecordingAdapterFactory("github-issue"))
        registry.load_config(
            _distribution([], gh={"adapter": "github-issue", "token": "shared"})
        )

        assert registry.inherit_credentials(
            "github-issue", {"repo": "a/b", "token": "own"}
        )["token"] == "own", "Explicit token should win"
        assert "token" not in registry.inherit_credentials("slack", {}), (
            "Slack targets should not inherit"
        )

    def test_build_adapter_errors(self) -> None:
        """Unknown types and invalid configs raise AdapterConfigError."""
        registry = _registry(RecordingAdapterFactory("slack"))
        with pytest.raises(AdapterConfigError, match="unknown adapter type"):
            registry.build_adapter("jira", {})
        with pytest.raises(AdapterConfigError, match="configuration invalid: nope"):
            registry.build_adapter("slack", {"invalid": "nope"})

    def test_build_adapter_wraps_factory_errors(self) -> None:
        """Exceptions from a factory surface as AdapterConfigError."""

        def _broken(settings: AdapterSettings) -> RecordingAdapter:
            raise TypeError(settings.channel)

        registry = _registry()
        registry.register_type("slack", _broken)

        with pytest.raises(AdapterConfigError, match="slack configuration invalid"):
            registry.build_adapter("slack", {"webhook_url": "x"})

    @pytest.mark.asyncio
    async def test_malformed_target_config_falls_back_to_static(self) -> None:
        """A user target whose adapter cannot be built uses static channels."""
        slack = RecordingAdapterFactory("slack")
        registry = _registry(slack)
        registry.register_type("github-issue", GitHubIssueAdapter)
        registry.load_config(
            _distribution([StaticRule(channels=["ops"])], ops={"adapter": "slack"})
        )

        result = await registry.dispatch_to_target(
            "item.created",
            make_item(),
            "github-issue",
            {"repo": "a/b", "token": "t", "assignees": "octocat"},
        )

        assert result is None, "Fallback yields None"
        assert [call.channel for call in slack.calls] == ["ops"], (
            "Static channel should receive the event"
        )

    @pytest.mark.asyncio
    async def test_deliver_uses_dynamic_channel(self) -> None:
        """Delivered targets are sent on their dynamic channel key."""
        github = RecordingAdapterFactory("github-issue")
        registry = _registry(github)

        await registry.deliver("item.created", make_item(), "github-issue", {"repo": "a/b"})

        assert github.calls[0].channel == "dynamic:github-issue:repo=a/b", (
            "Dynamic channel key expected"
        )

    @pytest.mark.asyncio
    async def test_dispatch_to_target_unknown_type(self) -> None:
        """Unknown target types yield None without raising."""
        registry = _registry()
        assert (
            await registry.dispatch_to_target("item.created", make_item(), "jira", {})
            is None
        ), "Unknown type should yield None"

    @pytest.mark.asyncio
    async def test_dispatch_to_target_falls_back_to_static(self) -> None:
        """An invalid target falls back to static rule dispatch."""
        slack = RecordingAdapterFactory("slack")
        registry = _registry(slack)
        registry.load_config(
            _distribution([StaticRule(channels=["ops"])], ops={"adapter": "slack"})
        )

        result = await registry.dispatch_to_target(
            "item.created", make_item(), "slack", {"invalid": "bad"}
        )

        assert result is None, "Fallback yields None"
        assert [call.channel for call in slack.calls] == ["ops"], (
            "Static channel should receive the event"
        )

    @pytest.mark.asyncio
    async def test_dispatch_to_target_propagates_delivery_errors(self) -> None:
        """Delivery failures are raised to the caller."""
        slack = RecordingAdapterFactory(
            "slack", outcomes=[AdapterDeliveryError.timeout("Slack")]
        )
        registry = _registry(slack)

        with pytest.raises(AdapterDeliveryError, match="timed out"):
            await registry.dispatch_to_target("item.created", make_item(), "slack", {})
