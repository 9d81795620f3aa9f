"""Database configuration and session management."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from app.core.config import settings


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def build_engine(url: str, *, null_pool: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    options: dict[str, Any] = {"echo": False}
    if null_pool or url.startswith("sqlite"):
        # Connections must not outlive the event loop that opened them.
        options["poolclass"] = NullPool
    else:
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# Create async engine
engine = build_engine(str(settings.DATABASE_URL))

# Create session factory
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def task_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory for a single Celery task run.

    Each task run drives its own event loop, so it gets a dedicated engine
    without pooling that is disposed when the run ends.
    """
    task_engine = build_engine(str(settings.DATABASE_URL), null_pool=True)
    try:
        yield build_session_factory(task_engine)
    finally:
        await task_engine.dispose()


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a stored datetime to an aware UTC value."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
