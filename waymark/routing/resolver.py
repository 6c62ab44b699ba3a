"""Routing resolver: choose delivery targets for a feedback item.

Resolution walks a fixed priority chain and stops at the first level that
produces a decision:

1. ``target_declaration``: the site declared its own target.
2. ``user_rule``: the highest-priority enabled user rule that matches.
3. ``github_auto``: the source URL points into a GitHub repository.
4. ``user_default``: the user's enabled ``default`` rule.
5. ``system_default``: the configured fallback target.

``resolve_targets`` is the fan-out variant: it collects every relevant
target from levels 1 to 3 and only falls back to a default when none
applied.

Usage
-----
>>> request = RoutingRequest(
...     source_url="https://github.com/coco-xyz/clawmark/issues/38",
...     default_target={"repo": "coco-xyz/clawmark"},
... )
>>> resolve_target(request).method
<RoutingMethod.GITHUB_AUTO: 'github_auto'>

"""

from __future__ import annotations

import typing as typ

from waymark.logging import get_logger, log_debug, log_warning
from waymark.routing.models import (
    DEFAULT_LABELS,
    GITHUB_ISSUE_TARGET,
    RoutingDecision,
    RoutingMethod,
    RoutingRequest,
    RuleType,
    TargetDeclaration,
    UserRoutingRule,
    target_identity,
)
from waymark.routing.patterns import match_url_pattern
from waymark.routing.repository import extract_repository

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from waymark.dispatch.ports import UserRuleStore

logger = get_logger(__name__)


class DeclarationSource(typ.Protocol):
    """Anything that can look up a site's declared target."""

    async def resolve(self, source_url: str | None) -> TargetDeclaration | None:
        """Return the declaration for ``source_url`` or ``None``."""
        ...


def sort_rules(rules: cabc.Iterable[UserRoutingRule]) -> list[UserRoutingRule]:
    """Order rules by descending priority, keeping store order for ties."""
    return sorted(rules, key=lambda rule: rule.priority, reverse=True)


def rule_matches(rule: UserRoutingRule, request: RoutingRequest) -> bool:
    """Return whether a non-default rule applies to ``request``.

    Disabled rules, ``default`` rules, and rules without a pattern never
    match here.
    """
    if not rule.enabled or rule.rule_type == RuleType.DEFAULT or not rule.pattern:
        return False
    if rule.rule_type == RuleType.URL_PATTERN:
        return match_url_pattern(request.source_url, rule.pattern)
    if rule.rule_type == RuleType.CONTENT_TYPE:
        return request.type is not None and rule.pattern == request.type
    if rule.rule_type == RuleType.TAG_MATCH:
        return rule.pattern in request.tags
    return False


def _declaration_decision(request: RoutingRequest) -> RoutingDecision | None:
    declaration = request.declaration
    if declaration is None or not declaration.target_type:
        return None
    if not declaration.target_config:
        return None
    return RoutingDecision(
        target_type=declaration.target_type,
        target_config=dict(declaration.target_config),
        method=RoutingMethod.TARGET_DECLARATION,
    )


def _rule_decision(rule: UserRoutingRule, method: RoutingMethod) -> RoutingDecision:
    return RoutingDecision(
        target_type=rule.target_type,
        target_config=dict(rule.target_config),
        method=method,
        matched_rule=rule,
    )


def _github_auto_decision(request: RoutingRequest) -> RoutingDecision | None:
    ref = extract_repository(request.source_url)
    if ref is None:
        return None
    defaults = request.default_target
    return RoutingDecision(
        target_type=GITHUB_ISSUE_TARGET,
        target_config={
            "repo": ref.slug,
            "labels": list(defaults.get("labels") or DEFAULT_LABELS),
            "assignees": list(defaults.get("assignees") or []),
        },
        method=RoutingMethod.GITHUB_AUTO,
    )


def _user_default_decision(
    rules: cabc.Iterable[UserRoutingRule],
) -> RoutingDecision | None:
    for rule in rules:
        if rule.enabled and rule.rule_type == RuleType.DEFAULT:
            return _rule_decision(rule, RoutingMethod.USER_DEFAULT)
    return None


def _system_default_decision(request: RoutingRequest) -> RoutingDecision:
    return RoutingDecision(
        target_type=GITHUB_ISSUE_TARGET,
        target_config=dict(request.default_target),
        method=RoutingMethod.SYSTEM_DEFAULT,
    )


def _fallback(request: RoutingRequest, rules: list[UserRoutingRule]) -> RoutingDecision:
    return _user_default_decision(rules) or _system_default_decision(request)


def resolve_target(request: RoutingRequest) -> RoutingDecision:
    """Resolve the single best target for ``request``.

    Parameters
    ----------
    request
        Item attributes, the user's rules, an optional declaration, and the
        system default target.

    Returns
    -------
    RoutingDecision
        The first decision produced by the priority chain. The chain always
        ends at ``system_default`` so a decision is always returned.

    """
    declared = _declaration_decision(request)
    if declared is not None:
        return declared

    rules = sort_rules(request.user_rules)
    for rule in rules:
        if rule_matches(rule, request):
            return _rule_decision(rule, RoutingMethod.USER_RULE)

    return _github_auto_decision(request) or _fallback(request, rules)


def resolve_targets(request: RoutingRequest) -> list[RoutingDecision]:
    """Resolve every relevant target for ``request``.

    The declaration, each matching user rule (in priority order), the GitHub
    heuristic, and the user's default rule are collected and de-duplicated
    by target identity, first occurrence winning. The system default is
    used only when none of them produced a target.

    Returns
    -------
    list[RoutingDecision]
        At least one decision; the declaration, when present, is first.

    """
    rules = sort_rules(request.user_rules)
    candidates: list[RoutingDecision | None] = [_declaration_decision(request)]
    candidates.extend(
        _rule_decision(rule, RoutingMethod.USER_RULE)
        for rule in rules
        if rule_matches(rule, request)
    )
    candidates.append(_github_auto_decision(request))
    candidates.append(_user_default_decision(rules))

    decisions: list[RoutingDecision] = []
    seen: set[str] = set()
    for decision in candidates:
        if decision is None:
            continue
        identity = target_identity(decision.target_type, decision.target_config)
        if identity in seen:
            continue
        seen.add(identity)
        decisions.append(decision)

    return decisions or [_system_default_decision(request)]


class RoutingResolver:
    """Resolve targets using stored user rules and site declarations.

    Parameters
    ----------
    rule_store
        Source of per-user routing rules.
    default_target
        System default ``github-issue`` configuration.
    declarations
        Optional declaration fetcher. Lookup failures degrade to "no
        declaration".

    """

    def __init__(
        self,
        rule_store: UserRuleStore,
        default_target: typ.Mapping[str, typ.Any],
        *,
        declarations: DeclarationSource | None = None,
    ) -> None:
        """Store collaborators for later resolution calls."""
        self._rules = rule_store
        self._default_target = dict(default_target)
        self._declarations = declarations

    @property
    def default_target(self) -> dict[str, typ.Any]:
        """Return a copy of the system default target configuration."""
        return dict(self._default_target)

    async def _lookup_declaration(
        self, source_url: str | None
    ) -> TargetDeclaration | None:
        if self._declarations is None or not source_url:
            return None
        try:
            return await self._declarations.resolve(source_url)
        except Exception as exc:  # noqa: BLE001
            # a broken declaration source must never block routing
            log_warning(
                logger,
                "declaration lookup failed for %s: %s",
                source_url,
                exc,
            )
            return None

    async def build_request(
        self,
        *,
        source_url: str | None,
        user_name: str | None,
        item_type: str | None = None,
        priority: str | None = None,
        tags: cabc.Sequence[str] = (),
    ) -> RoutingRequest:
        """Gather rules and the declaration into a ``RoutingRequest``."""
        rules = await self._rules.get_user_rules(user_name) if user_name else []
        declaration = await self._lookup_declaration(source_url)
        return RoutingRequest(
            source_url=source_url,
            user_name=user_name,
            type=item_type,
            priority=priority,
            tags=list(tags),
            declaration=declaration,
            user_rules=list(rules),
            default_target=self.default_target,
        )

    async def resolve(
        self,
        *,
        source_url: str | None,
        user_name: str | None,
        item_type: str | None = None,
        priority: str | None = None,
        tags: cabc.Sequence[str] = (),
    ) -> RoutingDecision:
        """Resolve the single best target for an item."""
        request = await self.build_request(
            source_url=source_url,
            user_name=user_name,
            item_type=item_type,
            priority=priority,
            tags=tags,
        )
        decision = resolve_target(request)
        log_debug(
            logger,
            "routing resolved method=%s target_type=%s",
            decision.method,
            decision.target_type,
        )
        return decision

    async def resolve_all(
        self,
        *,
        source_url: str | None,
        user_name: str | None,
        item_type: str | None = None,
        priority: str | None = None,
        tags: cabc.Sequence[str] = (),
    ) -> list[RoutingDecision]:
        """Resolve every relevant target for an item."""
        request = await self.build_request(
            source_url=source_url,
            user_name=user_name,
            item_type=item_type,
            priority=priority,
            tags=tags,
        )
        decisions = resolve_targets(request)
        log_debug(
            logger,
            "routing resolved %d target(s) methods=%s",
            len(decisions),
            ",".join(decision.method for decision in decisions),
        )
        return decisions
