from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from microfin.core import context
from microfin.core.security import JWTKeyError, decode_token
from microfin.core.settings import settings


class Role(str, Enum):
    ADMIN = "ADMIN"
    CEO = "CEO"
    BRANCH_MANAGER = "BRANCH_MANAGER"
    LOAN_OFFICER = "LOAN_OFFICER"
    COMPLIANCE = "COMPLIANCE"


@dataclass(slots=True)
class Actor:
    id: str
    role: str
    branch_id: str | None = None


@dataclass(slots=True)
class Page:
    offset: int
    limit: int


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_token(credentials.credentials)
    except JWTKeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Token verification is not configured",
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    actor = Actor(
        id=str(payload["sub"]),
        role=str(payload.get("role") or "").upper(),
        branch_id=payload.get("branch_id"),
    )
    context.bind_actor(actor.id, actor.role, actor.branch_id)
    return actor


def require_role(*roles: Role | str):
    """Dependency factory that admits only actors holding one of ``roles``. ADMIN always passes."""
    allowed = {Role(role).value for role in roles} | {Role.ADMIN.value}

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "insufficient_role",
                    "message": "Your role does not permit this action",
                    "details": {"role": actor.role, "allowed": sorted(allowed)},
                },
            )
        return actor

    return dependency


def get_page(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
) -> Page:
    return Page(offset=offset, limit=limit)
