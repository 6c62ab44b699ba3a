"""GitHub Issues adapter.

Creates one issue per feedback item and keeps its state in step with the
item:

- ``item.created`` opens an issue, unless one is already mapped to the item.
- ``item.resolved`` and ``item.closed`` close the mapped issue.
- ``item.reopened`` reopens it.
- ``item.assigned`` adds the item's assignee.

Channel configuration::

    adapter: github-issue
    token: ghp_...
    repo: owner/name
    labels: [waymark, bug]
    assignees: [octocat]
"""

from __future__ import annotations

import re
import typing as typ

from waymark.adapters import _http
from waymark.adapters.errors import AdapterDeliveryError
from waymark.adapters.protocol import (
    AdapterSettings,
    FeedbackEvent,
    FeedbackItem,
    SendResult,
    ValidationResult,
)
from waymark.common.lists import non_list_fields, string_list
from waymark.logging import get_logger, log_debug
from waymark.routing.models import DEFAULT_LABELS, GITHUB_ISSUE_TARGET

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

API_BASE = "https://api.github.com"
TIMEOUT_S = 15.0
TITLE_PREFIX = "[Waymark]"

_LABEL = "GitHub API"
_REPO_RE = re.compile(r"^[^/\s]+/[^/\s]+$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f]")
_MAX_TAG_LABEL_LENGTH = 50
_MAX_TITLE_SUMMARY = 80
_DEFAULT_PRIORITY = "normal"


def _tag_labels(tags: cabc.Iterable[str]) -> list[str]:
    labels = []
    for tag in tags:
        cleaned = _CONTROL_CHARS_RE.sub("", str(tag)).strip()[:_MAX_TAG_LABEL_LENGTH]
        if cleaned:
            labels.append(cleaned)
    return labels


def build_title(item: FeedbackItem) -> str:
    """Return the issue title for ``item``."""
    if item.title:
        return f"{TITLE_PREFIX} {item.title}"
    summary = item.content[:_MAX_TITLE_SUMMARY]
    return f"{TITLE_PREFIX} {summary or 'New item'}"


def build_body(item: FeedbackItem) -> str:
    """Render ``item`` as the Markdown body of a new issue."""
    lines = ["## Waymark Item", ""]
    if item.title:
        lines.append(f"**Title:** {item.title}")
    if item.type:
        lines.append(f"**Type:** {item.type}")
    lines.append(f"**Priority:** {item.priority or _DEFAULT_PRIORITY}")
    if item.created_by:
        lines.append(f"**Reported by:** {item.created_by}")
    if item.source_url:
        lines.append(f"**Source:** {item.source_url}")
    if item.source_title:
        lines.append(f"**Page:** {item.source_title}")
    lines.append("")

    if item.quote:
        lines.extend(["### Selected Text", f"> {item.quote}", ""])
    if item.message:
        lines.extend(["### Description", item.message, ""])
    if item.tags:
        lines.extend([f"**Tags:** {', '.join(item.tags)}", ""])
    if item.screenshots:
        lines.append("### Screenshots")
        lines.extend(f"![screenshot]({url})" for url in item.screenshots)
        lines.append("")

    lines.extend(["---", "*Created by Waymark*"])
    return "\n".join(lines)


class GitHubIssueAdapter:
    """Deliver feedback items as GitHub issues."""

    adapter_type = GITHUB_ISSUE_TARGET

    def __init__(self, settings: AdapterSettings) -> None:
        """Read the channel configuration."""
        config = settings.config
        self.channel = settings.channel
        self.repo = str(config.get("repo") or "")
        self._token = str(config.get("token") or "")
        self._labels = string_list(config.get("labels")) or list(DEFAULT_LABELS)
        self._assignees = string_list(config.get("assignees")) or []
        self._malformed = non_list_fields(config, "labels", "assignees")
        self._mappings = settings.mappings
        self._client = settings.http_client
        self._issues: dict[str, SendResult] = {}

    def validate(self) -> ValidationResult:
        """Require a token and an ``owner/name`` repository."""
        if self._malformed:
            return ValidationResult.failure(f"{self._malformed[0]} must be a list")
        if not self._token:
            return ValidationResult.failure("Missing token")
        if not self.repo:
            return ValidationResult.failure("Missing repo")
        if not _REPO_RE.match(self.repo):
            return ValidationResult.failure('repo must be in "owner/repo" format')
        return ValidationResult.success()

    async def send(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        """Apply ``event`` to the item's issue."""
        match event:
            case FeedbackEvent.ITEM_CREATED:
                return await self._create_issue(item)
            case FeedbackEvent.ITEM_RESOLVED | FeedbackEvent.ITEM_CLOSED:
                return await self._set_state(item, "closed")
            case FeedbackEvent.ITEM_REOPENED:
                return await self._set_state(item, "open")
            case FeedbackEvent.ITEM_ASSIGNED:
                return await self._add_assignee(item)
            case _:
                return None

    def labels_for(self, item: FeedbackItem) -> list[str]:
        """Return configured labels plus priority, type, and tag labels."""
        labels = list(self._labels)
        if item.priority and item.priority != _DEFAULT_PRIORITY:
            labels.append(f"priority:{item.priority}")
        if item.type:
            labels.append(f"type:{item.type}")
        labels.extend(_tag_labels(item.tags))
        return labels

    async def _existing_issue(self, item: FeedbackItem) -> SendResult | None:
        if item.id in self._issues:
            return self._issues[item.id]
        if self._mappings is None:
            return None
        mapping = await self._mappings.get_adapter_mapping(
            item.id, self.adapter_type, self.channel
        )
        if mapping is None:
            return None
        return SendResult(
            external_id=mapping.external_id, external_url=mapping.external_url
        )

    async def _api(
        self, method: str, path: str, payload: object
    ) -> dict[str, typ.Any]:
        response = await _http.request(
            self._client,
            method,
            f"{API_BASE}{path}",
            label=_LABEL,
            content=_http.encode_json(payload),
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout_s=TIMEOUT_S,
        )
        return _http.decode_json(response, label=_LABEL)

    async def _create_issue(self, item: FeedbackItem) -> SendResult:
        existing = await self._existing_issue(item)
        if existing is not None:
            log_debug(
                logger,
                "item %s already has issue #%s in %s",
                item.id,
                existing.external_id,
                self.repo,
            )
            return existing

        created = await self._api(
            "POST",
            f"/repos/{self.repo}/issues",
            {
                "title": build_title(item),
                "body": build_body(item),
                "labels": self.labels_for(item),
                "assignees": self._assignees,
            },
        )
        number = created.get("number")
        if number is None:
            raise AdapterDeliveryError.malformed_response(_LABEL, str(created))
        result = SendResult(
            external_id=str(number), external_url=created.get("html_url")
        )
        self._issues[item.id] = result
        return result

    async def _set_state(self, item: FeedbackItem, state: str) -> SendResult | None:
        existing = await self._existing_issue(item)
        if existing is None:
            log_debug(
                logger, "no tracked issue for item %s, skipping %s", item.id, state
            )
            return None
        payload: dict[str, str] = {"state": state}
        if state == "closed":
            payload["state_reason"] = "completed"
        await self._api(
            "PATCH", f"/repos/{self.repo}/issues/{existing.external_id}", payload
        )
        return existing

    async def _add_assignee(self, item: FeedbackItem) -> SendResult | None:
        existing = await self._existing_issue(item)
        if existing is None or not item.assignee:
            return None
        await self._api(
            "POST",
            f"/repos/{self.repo}/issues/{existing.external_id}/assignees",
            {"assignees": [item.assignee]},
        )
        return existing
