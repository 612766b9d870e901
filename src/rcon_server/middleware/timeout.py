"""Per-request timeout for the ASGI app."""

from __future__ import annotations

import asyncio
import json

import structlog
from litestar.types import ASGIApp, Message, Receive, Scope, Send

logger = structlog.get_logger(__name__)

_TIMEOUT_BODY = json.dumps({"error": "Request timeout"}).encode()


class TimeoutMiddleware:
    """Answer 408 when a handler runs longer than ``timeout`` seconds.

    Cancelling the handler cancels any awaited store call with it. If the
    response has already started, the connection is simply cut.
    """

    def __init__(self, app: ASGIApp, timeout: float) -> None:
        self._app = app
        self._timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._timeout <= 0:
            await self._app(scope, receive, send)
            return

        started = False

        async def _send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await asyncio.wait_for(self._app(scope, receive, _send), self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                path=scope.get("path"),
                timeout_seconds=self._timeout,
            )
            if started:
                return
            await send({
                "type": "http.response.start",
                "status": 408,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(_TIMEOUT_BODY)).encode()),
                ],
            })
            await send({"type": "http.response.body", "body": _TIMEOUT_BODY})
