from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy import text

from microfin import __version__
from microfin.core.settings import settings
from microfin.db.session import engine
from microfin.utils.redis_client import get_redis_client

# latest migration the running code expects to find applied
SCHEMA_REVISION = "20261019_core_banking"


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            revision = (await conn.execute(text("SELECT version_num FROM alembic_version"))).scalar()
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    if revision != SCHEMA_REVISION:
        return {
            "status": "error",
            "error": "schema revision mismatch",
            "revision": str(revision),
            "expected": SCHEMA_REVISION,
        }
    return {"status": "ok", "revision": revision}


async def _check_redis() -> dict[str, str]:
    try:
        await get_redis_client().ping()
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


async def _bounded(check: Callable[[], Awaitable[dict[str, str]]]) -> dict[str, str]:
    try:
        return await asyncio.wait_for(check(), timeout=settings.health_check_timeout_seconds)
    except asyncio.TimeoutError:
        return {"status": "error", "error": "timed out"}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _timestamp()}


async def ready_payload() -> dict[str, Any]:
    database, redis = await asyncio.gather(_bounded(_check_db), _bounded(_check_redis))
    checks = {"database": database, "redis": redis}
    ready = all(check.get("status") == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "version": __version__,
        "timestamp": _timestamp(),
        "checks": checks,
    }
