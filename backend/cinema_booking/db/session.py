"""
Async engine and per-request session.

One session per request, committed once after the handler returns and
rolled back on any exception, so a lifecycle transition is never half-applied.
Side effects that other clients can observe are queued with after_commit and
only run once the commit has succeeded.
"""

from typing import AsyncGenerator, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cinema_booking.core.config import get_settings
from cinema_booking.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

_AFTER_COMMIT = "after_commit"


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """Queue a side effect (cache invalidation, broadcast) until the transaction is durable."""
    session.info.setdefault(_AFTER_COMMIT, []).append(callback)


async def commit_session(session: AsyncSession) -> None:
    """Commit, then run the queued side effects. A failing side effect is logged, not raised."""
    await session.commit()
    for callback in session.info.pop(_AFTER_COMMIT, []):
        try:
            await callback()
        except Exception as e:
            logger.error("after_commit_failed", callback=getattr(callback, "__name__", repr(callback)), error=str(e))


async def rollback_session(session: AsyncSession) -> None:
    session.info.pop(_AFTER_COMMIT, None)
    await session.rollback()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await commit_session(session)
        except Exception:
            await rollback_session(session)
            raise
