"""Async engine and session factory of the API process.

The worker builds its own engine per task (see ``db.worker_session``);
everything else shares ``engine`` and ``AsyncSessionLocal``.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()


def engine_options(database_url: str) -> dict[str, Any]:
    """Engine keyword arguments for a database URL.

    SQLite (tests, local runs) gets no pool sizing; PostgreSQL via asyncpg
    gets a pre-pinged pool sized from settings.
    """
    options: dict[str, Any] = {"echo": settings.SQLALCHEMY_ECHO}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return options


def create_db_engine(database_url: str = settings.DATABASE_URL) -> AsyncEngine:
    return create_async_engine(database_url, **engine_options(database_url))


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit and never autoflush."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db() -> None:
    """Create missing tables. Called once from the app lifespan."""
    from db.base import Base
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
