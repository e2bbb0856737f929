"""Async SQLAlchemy engine, session factory and schema bootstrap.

PostgreSQL (asyncpg) is the deployed backend; SQLite (aiosqlite) serves
local runs and tests. Pool sizing only applies to server databases.
"""

from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leave_engine.config import settings


def _engine_options(database_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {
        "echo": settings.ENVIRONMENT == "development",
        "pool_pre_ping": True,
    }
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_size=10, max_overflow=20)
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Shared by request handlers and the lifecycle's own transactions
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the leave and directory tables."""


async def create_tables() -> None:
    """Create every registered table that does not exist yet."""
    # Register all models on Base.metadata
    import leave_engine.common.audit  # noqa: F401
    import leave_engine.directory.models  # noqa: F401
    import leave_engine.leave.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed on success."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
