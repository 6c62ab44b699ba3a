"""Slack incoming-webhook adapter using Block Kit messages."""

from __future__ import annotations

import typing as typ
import urllib.parse

from waymark.adapters import _http
from waymark.adapters.protocol import (
    AdapterSettings,
    FeedbackEvent,
    FeedbackItem,
    SendResult,
    ValidationResult,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

TIMEOUT_S = 10.0

_LABEL = "Slack webhook"
_MAX_CONTENT = 500

EVENT_LABELS: dict[str, str] = {
    FeedbackEvent.ITEM_CREATED: "New Item",
    FeedbackEvent.ITEM_RESOLVED: "Resolved",
    FeedbackEvent.ITEM_ASSIGNED: "Assigned",
    FeedbackEvent.ITEM_CLOSED: "Closed",
    FeedbackEvent.ITEM_REOPENED: "Reopened",
    FeedbackEvent.DISCUSSION_CREATED: "New Discussion",
    FeedbackEvent.DISCUSSION_MESSAGE: "New Message",
}
_PRIORITY_EMOJI: dict[str, str] = {
    "critical": ":red_circle:",
    "high": ":large_orange_circle:",
    "normal": ":large_blue_circle:",
    "low": ":white_circle:",
}


def escape_mrkdwn(value: str | None) -> str:
    """Escape the characters Slack treats as control sequences."""
    if not value:
        return ""
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _safe_link(url: str | None) -> str:
    if not url:
        return ""
    try:
        scheme = urllib.parse.urlsplit(url).scheme
    except ValueError:
        return ""
    return url if scheme in {"http", "https"} else ""


def _context_block(text: str) -> dict[str, typ.Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def _full_blocks(event: str, item: FeedbackItem) -> list[dict[str, typ.Any]]:
    label = EVENT_LABELS.get(event, event)
    emoji = _PRIORITY_EMOJI.get(item.priority or "", ":large_blue_circle:")
    blocks: list[dict[str, typ.Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"[Waymark] {label}", "emoji": True},
        }
    ]

    fields = []
    if item.title:
        title = escape_mrkdwn(item.title)
        fields.append({"type": "mrkdwn", "text": f"*Title:*\n{title}"})
    if item.type:
        fields.append({"type": "mrkdwn", "text": f"*Type:*\n{escape_mrkdwn(item.type)}"})
    priority = escape_mrkdwn(item.priority or "normal")
    fields.append({"type": "mrkdwn", "text": f"*Priority:*\n{emoji} {priority}"})
    if item.created_by:
        reporter = escape_mrkdwn(item.created_by)
        fields.append({"type": "mrkdwn", "text": f"*Reporter:*\n{reporter}"})
    blocks.append({"type": "section", "fields": fields})

    content = item.content
    if content:
        if len(content) > _MAX_CONTENT:
            content = content[:_MAX_CONTENT] + "..."
        quoted = escape_mrkdwn(content).replace("\n", "\n> ")
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"> {quoted}"},
        })

    if item.tags:
        tags = " ".join(
            "`" + escape_mrkdwn(tag).replace("`", "'") + "`" for tag in item.tags
        )
        blocks.append(_context_block(f":label: {tags}"))

    link = _safe_link(item.source_url)
    if link:
        title = escape_mrkdwn(item.source_title or "Source")
        blocks.append(_context_block(f":link: <{escape_mrkdwn(link)}|{title}>"))

    if item.assignee and event == FeedbackEvent.ITEM_ASSIGNED:
        assignee = escape_mrkdwn(item.assignee)
        blocks.append(_context_block(f":bust_in_silhouette: Assigned to *{assignee}*"))
    return blocks


def _compact_blocks(event: str, item: FeedbackItem) -> list[dict[str, typ.Any]]:
    label = EVENT_LABELS.get(event, event)
    emoji = _PRIORITY_EMOJI.get(item.priority or "", ":large_blue_circle:")
    title = item.title or (item.quote or "")[:80] or "New item"
    blocks: list[dict[str, typ.Any]] = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*[Waymark] {label}*  {emoji}\n{escape_mrkdwn(title)}",
            },
        }
    ]
    link = _safe_link(item.source_url)
    if link:
        blocks.append(_context_block(f"<{escape_mrkdwn(link)}|View source>"))
    return blocks


class SlackAdapter:
    """Post event notifications to a Slack incoming webhook."""

    adapter_type = "slack"

    def __init__(self, settings: AdapterSettings) -> None:
        """Read the channel configuration."""
        config = settings.config
        self.channel = settings.channel
        self.webhook_url = str(config.get("webhook_url") or "")
        self._template = str(config.get("template") or "full")
        self._overrides = {
            key: config[key]
            for key in ("channel", "username", "icon_emoji", "thread_ts")
            if config.get(key)
        }
        self._overrides.setdefault("username", "Waymark")
        self._overrides.setdefault("icon_emoji", ":bookmark:")
        self._client = settings.http_client

    def validate(self) -> ValidationResult:
        """Require an HTTPS webhook URL on a ``slack.com`` host."""
        if not self.webhook_url:
            return ValidationResult.failure("Missing webhook_url")
        try:
            parsed = urllib.parse.urlsplit(self.webhook_url)
            host = (parsed.hostname or "").lower()
        except ValueError:
            return ValidationResult.failure(f"Invalid webhook_url: {self.webhook_url}")
        if parsed.scheme != "https" or not (
            host == "slack.com" or host.endswith(".slack.com")
        ):
            return ValidationResult.failure(
                "webhook_url must be a Slack URL (*.slack.com)"
            )
        return ValidationResult.success()

    def build_payload(self, event: str, item: FeedbackItem) -> dict[str, typ.Any]:
        """Return the webhook body for ``event``."""
        if self._template == "compact":
            blocks = _compact_blocks(event, item)
        else:
            blocks = _full_blocks(event, item)
        label = EVENT_LABELS.get(event, event)
        return {
            "blocks": blocks,
            "text": f"[Waymark] {label}: {item.title or item.quote or 'New item'}",
            **self._overrides,
        }

    async def send(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        """Post the message; Slack assigns no identifiers."""
        await _http.request(
            self._client,
            "POST",
            self.webhook_url,
            label=_LABEL,
            content=_http.encode_json(self.build_payload(event, item)),
            timeout_s=TIMEOUT_S,
        )
        return SendResult()
