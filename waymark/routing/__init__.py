"""Routing: decide which external targets receive a feedback item.

Usage
-----
Resolve with pre-fetched inputs::

    from waymark.routing import RoutingRequest, resolve_target

    decision = resolve_target(
        RoutingRequest(
            source_url="https://github.com/coco-xyz/clawmark/issues/38",
            default_target={"repo": "coco-xyz/clawmark"},
        )
    )

Resolve against stored rules and site declarations::

    config = RoutingConfig.from_env()
    resolver = RoutingResolver(
        store, config.default_target, declarations=fetcher
    )
    decisions = await resolver.resolve_all(source_url=url, user_name="alice")

"""

from waymark.routing.config import RoutingConfig
from waymark.routing.models import (
    GITHUB_ISSUE_TARGET,
    WEBHOOK_TARGET,
    RoutingDecision,
    RoutingMethod,
    RoutingRequest,
    RuleType,
    RuleUpdate,
    TargetDeclaration,
    UserRoutingRule,
    target_identity,
)
from waymark.routing.patterns import match_url_pattern
from waymark.routing.repository import RepositoryRef, extract_repository
from waymark.routing.resolver import (
    DeclarationSource,
    RoutingResolver,
    resolve_target,
    resolve_targets,
)

__all__ = [
    "GITHUB_ISSUE_TARGET",
    "WEBHOOK_TARGET",
    "DeclarationSource",
    "RepositoryRef",
    "RoutingDecision",
    "RoutingConfig",
    "RoutingMethod",
    "RoutingRequest",
    "RoutingResolver",
    "RuleType",
    "RuleUpdate",
    "TargetDeclaration",
    "UserRoutingRule",
    "extract_repository",
    "match_url_pattern",
    "resolve_target",
    "resolve_targets",
    "target_identity",
]
