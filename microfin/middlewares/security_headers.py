from starlette.types import ASGIApp, Message, Receive, Scope, Send

from microfin.core.settings import settings

_BASE_HEADERS: list[tuple[bytes, bytes]] = [
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"cross-origin-resource-policy", b"same-origin"),
    # customer and loan payloads must never sit in shared caches
    (b"cache-control", b"no-store"),
]


class SecurityHeadersMiddleware:
    """Apply default security headers to every HTTP response."""

    def __init__(self, app: ASGIApp, enable_hsts: bool = True) -> None:
        self.app = app
        self.enable_hsts = enable_hsts

    def _defaults(self) -> list[tuple[bytes, bytes]]:
        defaults = list(_BASE_HEADERS)
        if self.enable_hsts:
            defaults.append((b"strict-transport-security", b"max-age=63072000; includeSubDomains"))
        if settings.content_security_policy:
            header_name = (
                b"content-security-policy-report-only"
                if settings.content_security_policy_report_only
                else b"content-security-policy"
            )
            defaults.append((header_name, settings.content_security_policy.encode()))
        return defaults

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                current = list(message.get("headers", []))
                present = {key.lower() for key, _ in current}
                current.extend(item for item in self._defaults() if item[0] not in present)
                message["headers"] = current
            await send(message)

        await self.app(scope, receive, send_with_headers)
