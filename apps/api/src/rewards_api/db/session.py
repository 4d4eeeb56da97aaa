"""Async engine and session factory."""

from __future__ import annotations

from typing import AsyncIterator

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rewards_api.core.settings import settings


def _engine_options(database_url: str) -> dict[str, object]:
    options: dict[str, object] = {"future": True, "echo": settings.database_echo}
    if not database_url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_recycle=300)
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            logger.debug("Rolled back request session after error")
            raise


async def dispose_engine() -> None:
    await engine.dispose()
    logger.info("Disposed database engine")
