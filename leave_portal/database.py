"""Async SQLAlchemy engine and session management."""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leave_portal.config import settings

# Async engine for FastAPI
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def utcnow() -> datetime:
    """Client-side timestamp default shared by every model."""
    return datetime.now(timezone.utc)


# ── After-commit hooks ──────────────────────────────────────────────

_AFTER_COMMIT_KEY = "after_commit_callbacks"


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[Any]]) -> None:
    """Queue *callback* to run after *session* commits."""
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


def pending_after_commit(session: AsyncSession) -> int:
    return len(session.info.get(_AFTER_COMMIT_KEY, ()))


def discard_after_commit(session: AsyncSession, since: int = 0) -> None:
    """Drop queued callbacks from position *since* on (all of them by default)."""
    del session.info.get(_AFTER_COMMIT_KEY, [])[since:]


async def run_after_commit(session: AsyncSession) -> None:
    for callback in session.info.pop(_AFTER_COMMIT_KEY, []):
        await callback()


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield an async database session.

    The whole request is one unit of work: committed on success, rolled
    back if anything raised. Callbacks queued with ``after_commit`` run only
    once the commit has succeeded.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
            await run_after_commit(session)
        except Exception:
            await session.rollback()
            discard_after_commit(session)
            raise
        finally:
            await session.close()
