"""Database engine and session setup for the SQL store backend"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def create_engine(url: str) -> AsyncEngine:
    """Create an async engine for the configured database URL"""
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,  # Reconnect transparently after dropped connections
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine):
    """Create all tables"""
    # Import models so they register with Base.metadata
    from smart_product import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine):
    """Dispose of pooled connections"""
    await engine.dispose()
