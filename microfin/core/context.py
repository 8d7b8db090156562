"""Per-request logging context shared by middlewares, dependencies and services."""

import contextvars
from dataclasses import dataclass

_UNSET = "-"

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default=_UNSET)
_actor_id: contextvars.ContextVar[str] = contextvars.ContextVar("actor_id", default=_UNSET)
_actor_role: contextvars.ContextVar[str] = contextvars.ContextVar("actor_role", default=_UNSET)
_branch_id: contextvars.ContextVar[str] = contextvars.ContextVar("branch_id", default=_UNSET)


@dataclass(frozen=True, slots=True)
class RequestContext:
    request_id: str
    actor_id: str
    actor_role: str
    branch_id: str


def bind_request(request_id: str) -> None:
    """Start a fresh context for a new request."""
    _request_id.set(request_id)
    _actor_id.set(_UNSET)
    _actor_role.set(_UNSET)
    _branch_id.set(_UNSET)


def bind_actor(actor_id: str, role: str | None = None, branch_id: str | None = None) -> None:
    _actor_id.set(actor_id or _UNSET)
    _actor_role.set(role or _UNSET)
    _branch_id.set(str(branch_id) if branch_id else _UNSET)


def current() -> RequestContext:
    return RequestContext(
        request_id=_request_id.get(),
        actor_id=_actor_id.get(),
        actor_role=_actor_role.get(),
        branch_id=_branch_id.get(),
    )


def get_request_id() -> str | None:
    value = _request_id.get()
    return None if value == _UNSET else value


def get_branch_id() -> str | None:
    value = _branch_id.get()
    return None if value == _UNSET else value
