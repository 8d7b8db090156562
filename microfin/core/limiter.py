import hashlib

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from microfin.core.settings import settings


def client_key(request: Request) -> str:
    """Rate-limit per bearer token, falling back to the client address."""
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return "token:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
)

__all__ = ["client_key", "limiter"]
