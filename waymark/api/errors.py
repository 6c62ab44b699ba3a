"""API exceptions and the Falcon error handlers that render them.

Usage
-----
Register error handlers on the Falcon app::

    app.add_error_handler(RuleNotFoundError, handle_rule_not_found)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

"""

from __future__ import annotations

import typing as typ

import falcon

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = [
    "InvalidInputError",
    "RuleNotFoundError",
    "handle_invalid_input",
    "handle_rule_not_found",
]


class RuleNotFoundError(Exception):
    """Raised when a routing rule id names no stored rule.

    Attributes
    ----------
    rule_id
        The identifier that was looked up.

    """

    def __init__(self, rule_id: int) -> None:
        """Initialize with the missing rule identifier."""
        self.rule_id = rule_id
        super().__init__(f"No routing rule with id {rule_id} exists.")


class InvalidInputError(Exception):
    """Raised for client validation errors that should map to HTTP 400.

    Attributes
    ----------
    reason
        Human-readable description of the validation failure.
    field
        Optional name of the input field that failed validation.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialize with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        message = f"{field}: {reason}" if field is not None else reason
        super().__init__(message)


async def handle_rule_not_found(
    _req: Request,
    resp: Response,
    ex: RuleNotFoundError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``RuleNotFoundError`` to an HTTP 404 JSON response."""
    resp.status = falcon.HTTP_404
    resp.media = {
        "title": "Rule not found",
        "description": str(ex),
    }


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidInputError`` to an HTTP 400 JSON response."""
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {
        "title": "Invalid input",
        "description": ex.reason,
    }
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media
