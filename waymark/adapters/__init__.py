"""Delivery adapters and the contract they share."""

from waymark.adapters.errors import (
    AdapterConfigError,
    AdapterDeliveryError,
    AdapterError,
    DeliveryFailure,
)
from waymark.adapters.github_issue import GitHubIssueAdapter
from waymark.adapters.lark import LarkAdapter
from waymark.adapters.protocol import (
    Adapter,
    AdapterFactory,
    AdapterSettings,
    FeedbackEvent,
    FeedbackItem,
    SendResult,
    ValidationResult,
)
from waymark.adapters.slack import SlackAdapter
from waymark.adapters.telegram import TelegramAdapter
from waymark.adapters.webhook import WebhookAdapter

BUILTIN_ADAPTERS: dict[str, AdapterFactory] = {
    GitHubIssueAdapter.adapter_type: GitHubIssueAdapter,
    WebhookAdapter.adapter_type: WebhookAdapter,
    SlackAdapter.adapter_type: SlackAdapter,
    LarkAdapter.adapter_type: LarkAdapter,
    TelegramAdapter.adapter_type: TelegramAdapter,
}

__all__ = [
    "BUILTIN_ADAPTERS",
    "Adapter",
    "AdapterConfigError",
    "AdapterDeliveryError",
    "AdapterError",
    "AdapterFactory",
    "AdapterSettings",
    "DeliveryFailure",
    "FeedbackEvent",
    "FeedbackItem",
    "GitHubIssueAdapter",
    "LarkAdapter",
    "SendResult",
    "SlackAdapter",
    "TelegramAdapter",
    "ValidationResult",
    "WebhookAdapter",
]
