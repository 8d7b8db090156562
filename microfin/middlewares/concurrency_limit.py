from __future__ import annotations

import asyncio
import json

from starlette.types import ASGIApp, Receive, Scope, Send

_BUSY_BODY = json.dumps(
    {
        "code": "server_busy",
        "message": "Server is handling too many requests",
        "data": None,
        "details": {},
    }
).encode()


class ConcurrencyLimitMiddleware:
    """Cap in-flight requests so the database pool is not oversubscribed."""

    def __init__(self, app: ASGIApp, limit: int, timeout_seconds: float | None = None) -> None:
        self.app = app
        self._timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self._semaphore = asyncio.Semaphore(limit) if limit > 0 else None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._semaphore is None:
            await self.app(scope, receive, send)
            return

        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await send(
                {
                    "type": "http.response.start",
                    "status": 503,
                    "headers": [
                        (b"content-type", b"application/json"),
                        (b"retry-after", str(int(self._timeout or 1)).encode()),
                    ],
                }
            )
            await send({"type": "http.response.body", "body": _BUSY_BODY})
            return

        try:
            await self.app(scope, receive, send)
        finally:
            self._semaphore.release()
