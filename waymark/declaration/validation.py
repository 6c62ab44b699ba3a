"""Validate and normalise raw target declaration documents.

A declaration document is a mapping such as::

    adapter: github-issues
    target: coco-xyz/clawmark
    labels: [feedback, ui]

The adapter name is case-insensitive; ``github-issues`` is accepted as an
alias of ``github-issue``. Only fields known to be safe for each adapter are
copied into the resulting target configuration.
"""

from __future__ import annotations

import re
import typing as typ
import urllib.parse

from waymark.common.lists import string_list
from waymark.routing.models import (
    DEFAULT_LABELS,
    GITHUB_ISSUE_TARGET,
    WEBHOOK_TARGET,
    TargetDeclaration,
)

ALLOWED_ADAPTERS: frozenset[str] = frozenset({
    GITHUB_ISSUE_TARGET,
    WEBHOOK_TARGET,
    "slack",
    "lark",
    "telegram",
})

_ADAPTER_ALIASES: dict[str, str] = {"github-issues": GITHUB_ISSUE_TARGET}
_REPO_TARGET_RE = re.compile(r"^[A-Za-z0-9._-]+/[A-Za-z0-9._-]+$")
_BLOCKED_WEBHOOK_HOSTS: frozenset[str] = frozenset({
    "localhost",
    "127.0.0.1",
    "0.0.0.0",  # noqa: S104
    "::1",
})
_SAFE_CHAT_FIELDS: tuple[str, ...] = (
    "webhook_url",
    "chat_id",
    "channel",
    "token",
    "bot_token",
)

MAX_LABELS = 10
MAX_ASSIGNEES = 5
MAX_TYPES = 10


def normalise_adapter(value: object) -> str | None:
    """Return the canonical adapter name, or ``None`` if unsupported."""
    if not isinstance(value, str):
        return None
    name = value.strip().lower()
    name = _ADAPTER_ALIASES.get(name, name)
    return name if name in ALLOWED_ADAPTERS else None


def _github_config(raw: typ.Mapping[str, typ.Any]) -> dict[str, typ.Any] | None:
    target = raw.get("target")
    if not isinstance(target, str) or not _REPO_TARGET_RE.match(target):
        return None
    labels = string_list(raw.get("labels"), MAX_LABELS)
    assignees = string_list(raw.get("assignees"), MAX_ASSIGNEES)
    return {
        "repo": target,
        "labels": list(DEFAULT_LABELS) if labels is None else labels,
        "assignees": [] if assignees is None else assignees,
    }


def is_public_https_url(value: object) -> bool:
    """Return whether ``value`` is an HTTPS URL naming a non-loopback host."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = urllib.parse.urlsplit(value)
        host = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme != "https" or not host:
        return False
    return host.lower() not in _BLOCKED_WEBHOOK_HOSTS


def _webhook_config(raw: typ.Mapping[str, typ.Any]) -> dict[str, typ.Any] | None:
    endpoint = raw.get("endpoint")
    if not is_public_https_url(endpoint):
        return None
    return {"url": endpoint, "method": "POST"}


def _chat_config(raw: typ.Mapping[str, typ.Any]) -> dict[str, typ.Any]:
    return {
        field: raw[field]
        for field in _SAFE_CHAT_FIELDS
        if isinstance(raw.get(field), str | int | float)
        and not isinstance(raw.get(field), bool)
    }


def validate_declaration(raw: object) -> TargetDeclaration | None:
    """Validate a parsed declaration document.

    Parameters
    ----------
    raw
        Parsed JSON or YAML content.

    Returns
    -------
    TargetDeclaration | None
        The normalised declaration, or ``None`` when the document is not a
        mapping, names an unsupported adapter, or lacks required fields.

    """
    if not isinstance(raw, dict):
        return None
    document = typ.cast("dict[str, typ.Any]", raw)

    adapter = normalise_adapter(document.get("adapter"))
    if adapter is None:
        return None

    config: dict[str, typ.Any] | None
    if adapter == GITHUB_ISSUE_TARGET:
        config = _github_config(document)
    elif adapter == WEBHOOK_TARGET:
        config = _webhook_config(document)
    else:
        config = _chat_config(document)
    if config is None:
        return None

    types = string_list(document.get("types"), MAX_TYPES)
    if types is not None:
        config["types"] = types

    return TargetDeclaration(target_type=adapter, target_config=config)
