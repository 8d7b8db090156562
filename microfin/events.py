import logging

from fastapi import FastAPI

from microfin import __version__
from microfin.core.settings import settings
from microfin.db.session import engine
from microfin.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Loan service startup version=%s environment=%s", __version__, settings.environment)
        if not (settings.jwt_public_key or settings.jwt_public_key_path):
            logger.warning("No JWT public key configured; authenticated endpoints will answer 503")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Loan service shutdown")
        await close_redis_client()
        await engine.dispose()
