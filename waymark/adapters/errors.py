"""Errors raised by delivery adapters."""

from __future__ import annotations

import enum

_BODY_PREVIEW_LIMIT = 200


def _preview(body: str) -> str:
    if len(body) > _BODY_PREVIEW_LIMIT:
        return body[:_BODY_PREVIEW_LIMIT] + "..."
    return body


class DeliveryFailure(enum.StrEnum):
    """How a delivery attempt failed."""

    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    REJECTED = "rejected"


class AdapterError(Exception):
    """Base class for adapter errors."""


class AdapterConfigError(AdapterError):
    """Raised when an adapter cannot be built for a target."""

    @classmethod
    def unknown_type(cls, adapter_type: str) -> AdapterConfigError:
        """Return an error for an adapter type with no registered factory."""
        return cls(f"unknown adapter type: {adapter_type!r}")

    @classmethod
    def invalid(cls, adapter_type: str, detail: str | None) -> AdapterConfigError:
        """Return an error for a configuration that failed validation."""
        return cls(f"{adapter_type} configuration invalid: {detail or 'unknown error'}")


class AdapterDeliveryError(AdapterError):
    """Raised when an adapter fails to deliver an event.

    Attributes
    ----------
    failure
        How the attempt failed.
    status_code
        HTTP status returned by the external service, when one was received.

    """

    def __init__(
        self,
        message: str,
        *,
        failure: DeliveryFailure,
        status_code: int | None = None,
    ) -> None:
        """Initialise with a message, failure kind, and optional status code."""
        self.failure = failure
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(
        cls, label: str, status_code: int, body: str = ""
    ) -> AdapterDeliveryError:
        """Return an error for a non-2xx response."""
        message = f"{label} returned HTTP {status_code}"
        if body:
            message = f"{message}: {_preview(body)}"
        return cls(message, failure=DeliveryFailure.HTTP_STATUS, status_code=status_code)

    @classmethod
    def timeout(cls, label: str) -> AdapterDeliveryError:
        """Return an error for a request that exceeded its timeout."""
        return cls(f"{label} request timed out", failure=DeliveryFailure.TIMEOUT)

    @classmethod
    def network_error(cls, label: str, detail: str) -> AdapterDeliveryError:
        """Return an error for DNS, connection, or TLS failures."""
        return cls(f"{label} network error: {detail}", failure=DeliveryFailure.NETWORK)

    @classmethod
    def malformed_response(cls, label: str, body: str) -> AdapterDeliveryError:
        """Return an error for a response body that could not be decoded."""
        return cls(
            f"{label} response parse error: {_preview(body)}",
            failure=DeliveryFailure.MALFORMED_RESPONSE,
        )

    @classmethod
    def rejected(cls, label: str, detail: str) -> AdapterDeliveryError:
        """Return an error for a 2xx response that reports failure in its body."""
        return cls(
            f"{label} API error: {_preview(detail)}", failure=DeliveryFailure.REJECTED
        )
