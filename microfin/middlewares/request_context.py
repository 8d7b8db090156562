import re
from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from microfin.core import context

# ids supplied by gateways are echoed into logs and audit rows, keep them tame
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def _inbound_request_id(scope: Scope) -> str | None:
    headers = dict(scope.get("headers", []))
    for name in (b"x-request-id", b"x-correlation-id"):
        value = headers.get(name, b"").decode("latin-1").strip()
        if value and _SAFE_REQUEST_ID.match(value):
            return value
    return None


class RequestContextMiddleware:
    """Bind a request id to the logging context and echo it on the response."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _inbound_request_id(scope) or uuid4().hex
        context.bind_request(request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-id", request_id.encode("latin-1")),
                ]
            await send(message)

        await self.app(scope, receive, send_with_request_id)
