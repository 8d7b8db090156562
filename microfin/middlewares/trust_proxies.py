from starlette.types import ASGIApp, Receive, Scope, Send


class TrustedProxiesMiddleware:
    """Resolve the client address from X-Forwarded-For behind a fixed number of proxies.

    Branch terminals reach the API through the load balancer, so the rate
    limiter keys on the forwarded client rather than the proxy address.
    """

    def __init__(self, app: ASGIApp, proxies_count: int = 1) -> None:
        self.app = app
        self.proxies_count = proxies_count

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.proxies_count > 0:
            headers = dict(scope.get("headers", []))
            forwarded = headers.get(b"x-forwarded-for", b"").decode()
            hops = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
            # "client, proxy1, proxy2": with N trusted proxies the client is at -(N+1)
            if len(hops) > self.proxies_count:
                port = scope["client"][1] if scope.get("client") else 0
                scope["client"] = (hops[-(self.proxies_count + 1)], port)

        await self.app(scope, receive, send)
