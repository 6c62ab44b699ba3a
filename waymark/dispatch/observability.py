"""Structured dispatch events and failure classification.

Every delivery outcome is logged as ``[<event>] key=value ...`` so log
aggregators can alert on failure categories without parsing free text.

Usage
-----
>>> events = DispatchEventLogger()
>>> events.log_channel_sent(channel="ops-slack", adapter_type="slack",
...                         event="item.created", item_id="42")

"""

from __future__ import annotations

import enum
import typing as typ

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from waymark.adapters.errors import (
    AdapterConfigError,
    AdapterDeliveryError,
    DeliveryFailure,
)
from waymark.dispatch.errors import DistributionConfigError
from waymark.logging import format_fields, get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from waymark.dispatch.engine import SweepResult

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500
_HTTP_RATE_LIMITED = 429


class DispatchEventType(enum.StrEnum):
    """Structured log event types for delivery observability."""

    CHANNEL_SENT = "dispatch.channel.sent"
    CHANNEL_FAILED = "dispatch.channel.failed"
    TARGET_SENT = "dispatch.target.sent"
    TARGET_FAILED = "dispatch.target.failed"
    RETRY_EXHAUSTED = "dispatch.retry.exhausted"
    RETRY_CANCELLED = "dispatch.retry.cancelled"
    SWEEP_COMPLETED = "dispatch.sweep.completed"
    SWEEP_SKIPPED = "dispatch.sweep.skipped"
    SWEEP_ENTRY_ERROR = "dispatch.sweep.entry_error"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


def _delivery_category(exc: AdapterDeliveryError) -> ErrorCategory:
    match exc.failure:
        case DeliveryFailure.TIMEOUT:
            return ErrorCategory.TIMEOUT
        case DeliveryFailure.MALFORMED_RESPONSE:
            return ErrorCategory.MALFORMED_RESPONSE
        case DeliveryFailure.NETWORK:
            return ErrorCategory.TRANSIENT
        case DeliveryFailure.REJECTED:
            return ErrorCategory.CLIENT_ERROR
    status = exc.status_code
    if status is None:
        return ErrorCategory.UNKNOWN
    if status >= _HTTP_SERVER_ERROR_THRESHOLD or status == _HTTP_RATE_LIMITED:
        return ErrorCategory.TRANSIENT
    return ErrorCategory.CLIENT_ERROR


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize a delivery failure for alerting.

    Examples
    --------
    >>> categorize_error(AdapterDeliveryError.http_error("Slack", 503))
    <ErrorCategory.TRANSIENT: 'transient'>

    """
    if isinstance(exc, AdapterDeliveryError):
        return _delivery_category(exc)
    if isinstance(exc, AdapterConfigError | DistributionConfigError):
        return ErrorCategory.CONFIGURATION
    if isinstance(exc, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, OperationalError):
        return ErrorCategory.TRANSIENT
    if isinstance(exc, SQLAlchemyError):
        return ErrorCategory.DATABASE_ERROR
    return ErrorCategory.UNKNOWN


class DispatchEventLogger:
    """Emit structured dispatch events via femtologging."""

    def log_channel_sent(
        self, *, channel: str, adapter_type: str, event: str, item_id: str
    ) -> None:
        """Log a successful static channel delivery."""
        log_info(
            logger,
            "[%s] %s",
            DispatchEventType.CHANNEL_SENT,
            format_fields(
                channel=channel, adapter_type=adapter_type, event=event, item_id=item_id
            ),
        )

    def log_channel_failed(
        self,
        *,
        channel: str,
        adapter_type: str,
        event: str,
        item_id: str,
        error: BaseException,
    ) -> None:
        """Log a failed static channel delivery with its category."""
        log_error(
            logger,
            "[%s] %s",
            DispatchEventType.CHANNEL_FAILED,
            format_fields(
                channel=channel,
                adapter_type=adapter_type,
                event=event,
                item_id=item_id,
                error_type=type(error).__name__,
                error_category=categorize_error(error),
                error_message=str(error),
            ),
        )

    def log_target_sent(
        self,
        *,
        target: str,
        event: str,
        item_id: str,
        external_id: str | None,
    ) -> None:
        """Log a successful delivery to a resolved target."""
        log_info(
            logger,
            "[%s] %s",
            DispatchEventType.TARGET_SENT,
            format_fields(
                target=target, event=event, item_id=item_id, external_id=external_id
            ),
        )

    def log_target_failed(
        self,
        *,
        target: str,
        event: str,
        item_id: str,
        error: BaseException,
        retries: int,
    ) -> None:
        """Log a failed delivery to a resolved target."""
        log_warning(
            logger,
            "[%s] %s",
            DispatchEventType.TARGET_FAILED,
            format_fields(
                target=target,
                event=event,
                item_id=item_id,
                retries=retries,
                error_type=type(error).__name__,
                error_category=categorize_error(error),
                error_message=str(error),
            ),
        )

    def log_retry_exhausted(
        self, *, entry_id: int | None, item_id: str, retries: int
    ) -> None:
        """Log an entry that reached the retry limit."""
        log_error(
            logger,
            "[%s] %s",
            DispatchEventType.RETRY_EXHAUSTED,
            format_fields(entry_id=entry_id, item_id=item_id, retries=retries),
        )

    def log_retry_cancelled(self, *, entry_id: int | None, item_id: str) -> None:
        """Log an entry cancelled because its item no longer exists."""
        log_warning(
            logger,
            "[%s] %s",
            DispatchEventType.RETRY_CANCELLED,
            format_fields(entry_id=entry_id, item_id=item_id, reason="item_not_found"),
        )

    def log_sweep_completed(self, result: SweepResult) -> None:
        """Log the counts of one retry sweep."""
        log_info(
            logger,
            "[%s] %s",
            DispatchEventType.SWEEP_COMPLETED,
            format_fields(
                attempted=result.attempted,
                sent=result.sent,
                failed=result.failed,
                exhausted=result.exhausted,
                cancelled=result.cancelled,
                skipped=result.skipped,
                errors=result.errors,
            ),
        )

    def log_sweep_skipped(self) -> None:
        """Log a sweep request ignored because another sweep is running."""
        log_info(
            logger,
            "[%s] %s",
            DispatchEventType.SWEEP_SKIPPED,
            format_fields(reason="sweep_in_progress"),
        )

    def log_sweep_entry_error(
        self, *, entry_id: int | None, item_id: str, error: BaseException
    ) -> None:
        """Log an entry the sweep could not process, with its category."""
        log_error(
            logger,
            "[%s] %s",
            DispatchEventType.SWEEP_ENTRY_ERROR,
            format_fields(
                entry_id=entry_id,
                item_id=item_id,
                error_type=type(error).__name__,
                error_category=categorize_error(error),
                error_message=str(error),
            ),
        )
