"""Async engine and session factories.

Services expect sessions built by ``create_session_factory``: the factory
disables ``expire_on_commit`` so users and their trade lists stay loaded
after each commit, which async sessions cannot lazy-load.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from bookswap.core.config import settings
from bookswap.models import Base


def create_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine, defaulting to ``settings.DATABASE_URL``."""
    return create_async_engine(
        url or settings.DATABASE_URL,
        echo=settings.DEBUG if echo is None else echo,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create every BookSwap table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session, rolling back if the block raises.

    Example:
        async with session_scope(factory) as session:
            user = await UserService(session).authenticate("alice", "Abc123!@")
    """
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


__all__ = [
    "create_all",
    "create_engine",
    "create_session_factory",
    "session_scope",
]
