from fastapi import APIRouter

from microfin.core import health
from microfin.core.limiter import limiter

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="Liveness check")
@limiter.exempt
async def live() -> dict:
    return await health.live_payload()


@router.get("/ready", summary="Readiness check covering the database and Redis")
@limiter.exempt
async def ready() -> dict:
    return await health.ready_payload()


@router.get("", summary="Service health summary")
@limiter.exempt
async def summary() -> dict:
    return await health.ready_payload()
