from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from microfin import __version__
from microfin.api.v1 import api_router
from microfin.core.errors import register_exception_handlers
from microfin.core.limiter import limiter
from microfin.core.logging import configure_logging
from microfin.core.response_envelope import register_response_envelope
from microfin.core.settings import settings
from microfin.events import register_event_handlers
from microfin.middlewares.concurrency_limit import ConcurrencyLimitMiddleware
from microfin.middlewares.request_context import RequestContextMiddleware
from microfin.middlewares.security_headers import SecurityHeadersMiddleware
from microfin.middlewares.trust_proxies import TrustedProxiesMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Microfin Core Banking", version=__version__)
    register_exception_handlers(app)
    register_response_envelope(app)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        ConcurrencyLimitMiddleware,
        limit=settings.max_concurrent_requests,
        timeout_seconds=settings.concurrency_timeout_seconds,
    )
    app.add_middleware(TrustedProxiesMiddleware, proxies_count=settings.proxies_count)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix="/api/v1")
    register_event_handlers(app)
    return app


app = create_app()
