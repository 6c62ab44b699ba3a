"""Telegram Bot API adapter."""

from __future__ import annotations

import html
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

if typ.TYPE_CHECKING:
    import collections.abc as cabc

API_BASE = "https://api.telegram.org"
TIMEOUT_S = 10.0

_LABEL = "Telegram"
_TOKEN_RE = re.compile(r"^\d+:[A-Za-z0-9_-]+$")
_MARKDOWN_SPECIAL_RE = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")
_MAX_CONTENT = 300
_PARSE_MODES = frozenset({"MarkdownV2", "HTML"})

_EVENT_LABELS: dict[str, str] = {
    FeedbackEvent.ITEM_CREATED: "New Item",
    FeedbackEvent.ITEM_RESOLVED: "Resolved",
    FeedbackEvent.ITEM_ASSIGNED: "Assigned",
    FeedbackEvent.ITEM_CLOSED: "Closed",
    FeedbackEvent.DISCUSSION_CREATED: "New Discussion",
    FeedbackEvent.DISCUSSION_MESSAGE: "New Message",
}
_PRIORITY_ICONS: dict[str, str] = {
    "critical": "\N{LARGE RED CIRCLE}",
    "high": "\N{LARGE ORANGE CIRCLE}",
    "normal": "\N{LARGE BLUE CIRCLE}",
    "low": "\N{MEDIUM WHITE CIRCLE}",
}


def escape_markdown_v2(value: str | None) -> str:
    r"""Escape every MarkdownV2 special character with a backslash.

    Examples
    --------
    >>> escape_markdown_v2("v1.2 (beta)")
    'v1\\.2 \\(beta\\)'

    """
    if not value:
        return ""
    return _MARKDOWN_SPECIAL_RE.sub(r"\\\1", value)


def _type_label(item: FeedbackItem) -> str:
    if item.type == "issue":
        return "Issue"
    if item.type == "comment":
        return "Comment"
    return "Discussion"


def _truncated(content: str) -> str:
    if len(content) > _MAX_CONTENT:
        return content[:_MAX_CONTENT] + "..."
    return content


def format_markdown(event: str, item: FeedbackItem) -> str:
    """Render ``event`` as a MarkdownV2 message."""
    esc = escape_markdown_v2
    lines = [f"*\\[Waymark\\] {esc(_EVENT_LABELS.get(event, event))}*", ""]
    if item.title:
        lines.append(f"*{esc(_type_label(item))}*: {esc(item.title)}")
    if item.content:
        lines.append(f">{esc(_truncated(item.content))}")
    lines.append("")
    icon = _PRIORITY_ICONS.get(item.priority or "", _PRIORITY_ICONS["normal"])
    lines.append(f"{icon} {esc(item.priority or 'normal')}")
    if item.created_by:
        lines.append(f"By: {esc(item.created_by)}")
    if item.source_url:
        lines.append(f"[Source]({esc(item.source_url)})")
    if item.tags:
        lines.append(f"Tags: {', '.join(esc(tag) for tag in item.tags)}")
    if item.assignee and event == FeedbackEvent.ITEM_ASSIGNED:
        lines.append(f"Assigned to: {esc(item.assignee)}")
    return "\n".join(lines)


def format_html(event: str, item: FeedbackItem) -> str:
    """Render ``event`` as a Telegram HTML message."""
    esc = html.escape
    lines = [f"<b>[Waymark] {esc(_EVENT_LABELS.get(event, event))}</b>", ""]
    if item.title:
        lines.append(f"<b>{esc(_type_label(item))}</b>: {esc(item.title)}")
    if item.content:
        lines.append(f"<blockquote>{esc(_truncated(item.content))}</blockquote>")
    icon = _PRIORITY_ICONS.get(item.priority or "", _PRIORITY_ICONS["normal"])
    lines.append(f"{icon} {esc(item.priority or 'normal')}")
    if item.created_by:
        lines.append(f"By: {esc(item.created_by)}")
    if item.source_url:
        lines.append(f'<a href="{esc(item.source_url)}">Source</a>')
    return "\n".join(lines)


class TelegramAdapter:
    """Send event notifications to a Telegram chat through a bot."""

    adapter_type = "telegram"

    def __init__(self, settings: AdapterSettings) -> None:
        """Read the channel configuration."""
        config = settings.config
        self.channel = settings.channel
        self.chat_id = str(config.get("chat_id") or "")
        self._bot_token = str(config.get("bot_token") or "")
        self._parse_mode = str(config.get("parse_mode") or "MarkdownV2")
        self._client = settings.http_client

    def validate(self) -> ValidationResult:
        """Require a well-formed bot token and a chat id."""
        if not self._bot_token:
            return ValidationResult.failure("Missing bot_token")
        if not self.chat_id:
            return ValidationResult.failure("Missing chat_id")
        if not _TOKEN_RE.match(self._bot_token):
            return ValidationResult.failure("Invalid bot_token format")
        if self._parse_mode not in _PARSE_MODES:
            return ValidationResult.failure(f"Unsupported parse_mode: {self._parse_mode}")
        return ValidationResult.success()

    def format_message(self, event: str, item: FeedbackItem) -> str:
        """Render ``event`` in the configured parse mode."""
        if self._parse_mode == "HTML":
            return format_html(event, item)
        return format_markdown(event, item)

    async def send(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        """Call ``sendMessage`` and return the Telegram message id."""
        response = await _http.request(
            self._client,
            "POST",
            f"{API_BASE}/bot{self._bot_token}/sendMessage",
            label=_LABEL,
            content=_http.encode_json({
                "chat_id": self.chat_id,
                "text": self.format_message(event, item),
                "parse_mode": self._parse_mode,
                "disable_web_page_preview": True,
            }),
            timeout_s=TIMEOUT_S,
        )
        payload = _http.decode_json(response, label=_LABEL)
        if not payload.get("ok"):
            detail = str(payload.get("description") or response.text)
            raise AdapterDeliveryError.rejected(_LABEL, detail)
        result = payload.get("result")
        message_id = result.get("message_id") if isinstance(result, dict) else None
        return SendResult(external_id=None if message_id is None else str(message_id))
