from __future__ import annotations

from functools import lru_cache
from typing import Any

from jose import JWTError, jwt

from microfin.core.settings import settings


class JWTKeyError(RuntimeError):
    pass


class InvalidTokenError(ValueError):
    pass


@lru_cache(maxsize=1)
def _load_public_key() -> str:
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_public_key_path:
        with open(settings.jwt_public_key_path, "r", encoding="utf-8") as key_file:
            return key_file.read()
    raise JWTKeyError("JWT public key not configured")


def decode_token(token: str) -> dict[str, Any]:
    """Verify an access token issued by the identity service and return its claims."""
    public_key = _load_public_key()
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as exc:
        raise InvalidTokenError("Invalid token") from exc
    if payload.get("type", "access") != "access":
        raise InvalidTokenError(f"Unexpected token type: {payload.get('type')}")
    if not payload.get("sub"):
        raise InvalidTokenError("Token has no subject")
    return payload
