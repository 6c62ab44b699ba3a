"""Typed structures for routing decisions.

A routing decision names an adapter type and an opaque adapter
configuration. The resolver never inspects ``target_config`` beyond the
identity fields used for de-duplication.
"""

from __future__ import annotations

import enum
import hashlib
import typing as typ

import msgspec

GITHUB_ISSUE_TARGET = "github-issue"
WEBHOOK_TARGET = "webhook"
DEFAULT_LABELS: tuple[str, ...] = ("waymark",)


class RuleType(enum.StrEnum):
    """How a user routing rule decides whether it applies."""

    URL_PATTERN = "url_pattern"
    CONTENT_TYPE = "content_type"
    TAG_MATCH = "tag_match"
    DEFAULT = "default"


class RoutingMethod(enum.StrEnum):
    """Which priority level produced a routing decision."""

    TARGET_DECLARATION = "target_declaration"
    USER_RULE = "user_rule"
    GITHUB_AUTO = "github_auto"
    USER_DEFAULT = "user_default"
    SYSTEM_DEFAULT = "system_default"


class UserRoutingRule(msgspec.Struct, kw_only=True):
    """A persisted routing rule owned by one user.

    Attributes
    ----------
    id : int | None
        Store identifier; ``None`` before persistence.
    user_name : str
        Owning user.
    rule_type : RuleType
        Matching strategy for ``pattern``.
    pattern : str | None
        URL glob, item type, or tag depending on ``rule_type``. Unused for
        ``default`` rules.
    target_type : str
        Adapter type that receives matching items.
    target_config : dict[str, Any]
        Adapter configuration, opaque to the resolver.
    priority : int
        Higher values are evaluated first.
    enabled : bool
        Disabled rules are retained but never participate in resolution.

    """

    user_name: str
    rule_type: RuleType
    target_type: str
    target_config: dict[str, typ.Any] = msgspec.field(default_factory=dict)
    pattern: str | None = None
    priority: int = 0
    enabled: bool = True
    id: int | None = None


class RuleUpdate(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Partial change to a stored rule; ``None`` fields are left as they are.

    ``user_name`` is not updatable; a rule never changes owner.
    """

    rule_type: RuleType | None = None
    pattern: str | None = None
    target_type: str | None = None
    target_config: dict[str, typ.Any] | None = None
    priority: int | None = None
    enabled: bool | None = None

    def apply(self, rule: UserRoutingRule) -> UserRoutingRule:
        """Return ``rule`` with the set fields replaced."""
        changes = {
            field: value
            for field in self.__struct_fields__
            if (value := getattr(self, field)) is not None
        }
        return msgspec.structs.replace(rule, **changes)


class TargetDeclaration(msgspec.Struct, frozen=True, kw_only=True):
    """A site's self-declared preferred delivery target."""

    target_type: str
    target_config: dict[str, typ.Any] = msgspec.field(default_factory=dict)


class RoutingDecision(msgspec.Struct, kw_only=True):
    """One resolved delivery target and how it was chosen."""

    target_type: str
    target_config: dict[str, typ.Any]
    method: RoutingMethod
    matched_rule: UserRoutingRule | None = None


class RoutingRequest(msgspec.Struct, kw_only=True):
    """Inputs to the routing priority chain.

    Attributes
    ----------
    source_url : str | None
        URL the feedback item was captured on.
    user_name : str | None
        Author of the item; selects the rule set.
    type : str | None
        Item type (``comment``, ``issue`` and so on).
    priority : str | None
        Item priority, carried for auditing.
    tags : list[str]
        Item tags used by ``tag_match`` rules.
    declaration : TargetDeclaration | None
        Site-declared target, if one was found.
    user_rules : list[UserRoutingRule]
        The user's rules; re-sorted by descending priority before use.
    default_target : dict[str, Any]
        System default ``github-issue`` configuration.

    """

    source_url: str | None = None
    user_name: str | None = None
    type: str | None = None
    priority: str | None = None
    tags: list[str] = msgspec.field(default_factory=list)
    declaration: TargetDeclaration | None = None
    user_rules: list[UserRoutingRule] = msgspec.field(default_factory=list)
    default_target: dict[str, typ.Any] = msgspec.field(default_factory=dict)


_IDENTITY_FIELDS: tuple[str, ...] = ("repo", "url", "webhook_url", "chat_id")


def target_identity(target_type: str, target_config: typ.Mapping[str, typ.Any]) -> str:
    """Return a stable identity string for a target.

    Targets sharing an adapter type and an identity field (repository,
    endpoint URL, webhook URL, or chat) are the same destination. Targets
    without any identity field fall back to a digest of their canonical
    config, so credentials never appear in the identity.

    Examples
    --------
    >>> target_identity("github-issue", {"repo": "a/b", "labels": ["x"]})
    'github-issue:repo=a/b'

    """
    for field in _IDENTITY_FIELDS:
        value = target_config.get(field)
        if value not in (None, ""):
            return f"{target_type}:{field}={value}"
    encoded = msgspec.json.encode(dict(target_config), order="sorted")
    return f"{target_type}:sha256={hashlib.sha256(encoded).hexdigest()[:16]}"
