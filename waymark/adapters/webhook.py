"""Generic JSON webhook adapter.

Each event is POSTed as ``{event, payload, context, timestamp}``. When a
``secret`` is configured the body is signed with HMAC-SHA256 and the digest
sent as ``X-Waymark-Signature: sha256=<hex>``. ``events`` restricts which
events are delivered; an empty or missing list delivers all of them.
"""

from __future__ import annotations

import hashlib
import hmac
import typing as typ
import urllib.parse

from waymark.adapters import _http
from waymark.adapters.protocol import (
    AdapterSettings,
    FeedbackItem,
    SendResult,
    ValidationResult,
)
from waymark.common.lists import non_list_fields, string_list
from waymark.common.time import utcnow
from waymark.routing.models import WEBHOOK_TARGET

if typ.TYPE_CHECKING:
    import collections.abc as cabc

SIGNATURE_HEADER = "X-Waymark-Signature"
TIMEOUT_S = 10.0

_LABEL = "Webhook"


def sign_body(secret: str, body: bytes) -> str:
    """Return the signature header value for ``body``.

    Examples
    --------
    >>> sign_body("s3cret", b"{}")[:7]
    'sha256='

    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookAdapter:
    """POST events to an arbitrary HTTP endpoint."""

    adapter_type = WEBHOOK_TARGET

    def __init__(self, settings: AdapterSettings) -> None:
        """Read the channel configuration."""
        config = settings.config
        self.channel = settings.channel
        self.url = str(config.get("url") or "")
        self._secret = str(config.get("secret") or "")
        self._events = string_list(config.get("events")) or []
        self._malformed = non_list_fields(config, "events")
        self._client = settings.http_client

    def validate(self) -> ValidationResult:
        """Require an absolute http(s) URL."""
        if self._malformed:
            return ValidationResult.failure("events must be a list")
        if not self.url:
            return ValidationResult.failure("Missing url")
        try:
            parsed = urllib.parse.urlsplit(self.url)
        except ValueError:
            return ValidationResult.failure(f"Invalid url: {self.url}")
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            return ValidationResult.failure(f"Invalid url: {self.url}")
        return ValidationResult.success()

    def accepts(self, event: str) -> bool:
        """Return whether the event filter lets ``event`` through."""
        return not self._events or event in self._events

    async def send(
        self,
        event: str,
        item: FeedbackItem,
        context: cabc.Mapping[str, typ.Any],
    ) -> SendResult | None:
        """POST the event envelope; filtered events are skipped."""
        if not self.accepts(event):
            return None
        body = _http.encode_json({
            "event": event,
            "payload": item,
            "context": dict(context),
            "timestamp": utcnow().isoformat(),
        })
        headers: dict[str, str] = {}
        if self._secret:
            headers[SIGNATURE_HEADER] = sign_body(self._secret, body)
        await _http.request(
            self._client,
            "POST",
            self.url,
            label=_LABEL,
            content=body,
            headers=headers,
            timeout_s=TIMEOUT_S,
        )
        return SendResult()
