from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from microfin.core.settings import settings

engine = create_async_engine(
    settings.database_url,
    future=True,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    pool_timeout=settings.db_pool_timeout_seconds,
    pool_pre_ping=True,
    connect_args={
        "server_settings": {"statement_timeout": str(settings.db_statement_timeout_ms)},
    },
)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
