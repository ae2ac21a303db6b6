"""Worker-safe database sessions for Celery tasks.

Creates a fresh async engine per task invocation to avoid the 'Future
attached to a different loop' error when asyncpg connections are shared
across event loops in forked Celery workers.
"""

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import get_settings


@asynccontextmanager
async def worker_session_factory():
    """Provide a session factory bound to a task-local engine.

    Usage:
        async with worker_session_factory() as session_factory:
            store = SqlWorkflowStore(session_factory)
            ...
    """
    settings = get_settings()
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
    )
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )
    try:
        yield session_factory
    finally:
        await engine.dispose()
