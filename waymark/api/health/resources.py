"""Health probe resources for liveness and readiness checks.

Both resources are stateless and always registered, with or without
dispatch dependencies.
"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = ["HealthResource", "ReadyResource"]


class HealthResource:
    """Liveness probe returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe returning ``{"status": "ready"}``.

    Reports how many channels are loaded when a channel count source is
    supplied.
    """

    def __init__(self, channel_count: typ.Callable[[], int] | None = None) -> None:
        """Optionally accept a callable reporting the loaded channel count."""
        self._channel_count = channel_count

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests."""
        media: dict[str, typ.Any] = {"status": "ready"}
        if self._channel_count is not None:
            media["channels"] = self._channel_count()
        resp.media = media
        resp.status = HTTPStatus.OK
