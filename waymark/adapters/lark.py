"""Lark (Feishu) bot webhook adapter sending interactive cards."""

from __future__ import annotations

import typing as typ
import urllib.parse

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

TIMEOUT_S = 10.0
LARK_DOMAINS: tuple[str, ...] = ("larksuite.com", "feishu.cn")

_LABEL = "Lark"
_MAX_CONTENT = 500

_EVENT_LABELS: dict[str, str] = {
    FeedbackEvent.ITEM_CREATED: "New item",
    FeedbackEvent.ITEM_RESOLVED: "Resolved",
    FeedbackEvent.ITEM_ASSIGNED: "Assigned",
    FeedbackEvent.ITEM_CLOSED: "Closed",
}
_PRIORITY_ICONS: dict[str, str] = {
    "critical": "\N{LARGE RED CIRCLE}",
    "high": "\N{LARGE ORANGE CIRCLE}",
    "normal": "\N{LARGE BLUE CIRCLE}",
    "low": "\N{MEDIUM WHITE CIRCLE}",
}
_HEADER_COLOURS: dict[str, str] = {"critical": "red", "high": "orange"}


def _is_lark_host(host: str) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in LARK_DOMAINS)


def _markdown(content: str) -> dict[str, typ.Any]:
    return {"tag": "div", "text": {"tag": "lark_md", "content": content}}


def build_card(event: str, item: FeedbackItem) -> dict[str, typ.Any]:
    """Return the interactive card message for ``event``."""
    event_label = _EVENT_LABELS.get(event, event)
    type_label = "Issue" if item.type == "issue" else "Comment"
    priority = item.priority or "normal"
    icon = _PRIORITY_ICONS.get(priority, _PRIORITY_ICONS["normal"])

    elements = []
    if item.title:
        elements.append(_markdown(f"**{type_label}**: {item.title}"))
    if item.content:
        elements.append(_markdown(item.content[:_MAX_CONTENT]))
    meta = [f"{icon} {priority}"]
    if item.created_by:
        meta.append(f"By: {item.created_by}")
    if item.source_url:
        meta.append(f"Source: {item.source_url}")
    elements.append(_markdown(" | ".join(meta)))
    if item.tags:
        elements.append(_markdown(f"Tags: {', '.join(item.tags)}"))

    return {
        "msg_type": "interactive",
        "card": {
            "header": {
                "title": {
                    "tag": "plain_text",
                    "content": f"[Waymark] {event_label}: {type_label}",
                },
                "template": _HEADER_COLOURS.get(priority, "blue"),
            },
            "elements": elements,
        },
    }


class LarkAdapter:
    """Send cards to a Lark or Feishu group bot."""

    adapter_type = "lark"

    def __init__(self, settings: AdapterSettings) -> None:
        """Read the channel configuration."""
        self.channel = settings.channel
        self.webhook_url = str(settings.config.get("webhook_url") or "")
        self._client = settings.http_client

    def validate(self) -> ValidationResult:
        """Require an HTTPS Lark or Feishu webhook URL."""
        if not self.webhook_url:
            return ValidationResult.failure("Missing webhook_url")
        try:
            parsed = urllib.parse.urlsplit(self.webhook_url)
            host = (parsed.hostname or "").lower()
        except ValueError:
            return ValidationResult.failure(f"Invalid webhook_url: {self.webhook_url}")
        if parsed.scheme != "https" or not _is_lark_host(host):
            return ValidationResult.failure("webhook_url must be a Lark/Feishu URL")
        return ValidationResult.success()

    async def send(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        """Post the card and check the bot's result code."""
        response = await _http.request(
            self._client,
            "POST",
            self.webhook_url,
            label=_LABEL,
            content=_http.encode_json(build_card(event, item)),
            timeout_s=TIMEOUT_S,
        )
        result = _http.decode_json(response, label=_LABEL)
        if result.get("code") != 0 and result.get("StatusCode") != 0:
            raise AdapterDeliveryError.rejected(_LABEL, response.text)
        return SendResult()
