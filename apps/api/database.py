"""
Async SQLAlchemy engine, session factory and schema bootstrap.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings


def _async_database_url(url: str) -> str:
    """Map plain driver URLs onto their async drivers."""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite:///" + url[len("sqlite:///"):]
    return url


def _engine_options(url: str) -> dict:
    # SQLite uses a static pool; sizing only applies to server databases.
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": max(int(settings.DB_POOL_SIZE), 1),
        "max_overflow": max(int(settings.DB_MAX_OVERFLOW), 0),
        "pool_timeout": max(int(settings.DB_POOL_TIMEOUT_SECONDS), 1),
        "pool_pre_ping": True,
    }


DATABASE_URL = _async_database_url(settings.DATABASE_URL)

engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with async_session_maker() as session:
        yield session


async def init_schema() -> None:
    """Create missing tables once at startup."""
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
