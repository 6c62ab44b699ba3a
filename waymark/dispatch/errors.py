"""Errors raised by the dispatch subsystem."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for dispatch errors."""


class DistributionConfigError(DispatchError, ValueError):
    """Raised when a distribution configuration document is invalid."""

    def __init__(self, issues: list[str]) -> None:
        """Capture validation issues whilst preserving the aggregated message."""
        message = "\n".join(issues)
        super().__init__(message)
        self.issues = issues


class DispatchEntryNotFoundError(DispatchError, LookupError):
    """Raised when a dispatch log entry does not exist."""

    @classmethod
    def for_id(cls, entry_id: int) -> DispatchEntryNotFoundError:
        """Return an error naming the missing entry."""
        return cls(f"dispatch log entry {entry_id} not found")


class UnsavedDispatchEntryError(DispatchError):
    """Raised when a dispatch log entry has no store identifier."""

    @classmethod
    def for_item(cls, item_id: str, target_type: str) -> UnsavedDispatchEntryError:
        """Return an error naming the entry's item and target type."""
        return cls(
            f"dispatch log entry for item {item_id!r} ({target_type}) has no id"
        )


class TimezoneAwareRequiredError(DispatchError, ValueError):
    """Raised when a naive datetime is bound to a UTC column."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(f"{context} must be timezone aware")

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating a stored timestamp was naive."""
        return cls("dispatch timestamps")


class ItemLookupError(DispatchError):
    """Raised when the feedback service cannot answer an item lookup."""

    @classmethod
    def http_status(cls, item_id: str, status_code: int) -> ItemLookupError:
        """Return an error for an unexpected lookup response status."""
        return cls(f"item {item_id!r} lookup returned HTTP {status_code}")

    @classmethod
    def transport(cls, item_id: str, detail: str) -> ItemLookupError:
        """Return an error for a lookup that never got a response."""
        return cls(f"item {item_id!r} lookup failed: {detail}")

    @classmethod
    def malformed(cls, item_id: str, detail: str) -> ItemLookupError:
        """Return an error for a response body that is not an item."""
        return cls(f"item {item_id!r} lookup returned an invalid item: {detail}")
