"""Async SQLAlchemy engine and session management."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_AFTER_COMMIT = "after_commit"


class LedgerSession(AsyncSession):
    """Session that runs queued side effects once its transaction commits.

    Cache invalidation and pub/sub pushes describe committed state, so they
    are queued with :func:`after_commit` and only fire after ``commit()``
    returns. A rollback drops the queue.
    """

    async def commit(self) -> None:
        await super().commit()
        callbacks = self.info.pop(_AFTER_COMMIT, [])
        for callback in callbacks:
            await callback()

    async def rollback(self) -> None:
        self.info.pop(_AFTER_COMMIT, None)
        await super().rollback()


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[Any]]) -> None:
    """Queue ``callback`` to run after the session's next successful commit."""
    session.info.setdefault(_AFTER_COMMIT, []).append(callback)


def pending_after_commit(session: AsyncSession) -> int:
    """Number of callbacks waiting for the next commit."""
    return len(session.info.get(_AFTER_COMMIT, []))


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options for the server driver; SQLite gets the defaults."""
    if url.startswith("postgresql"):
        return {
            "pool_size": 20,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "connect_args": {"statement_cache_size": 0},
        }
    return {}


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(url, echo=False, **_engine_options(url))
    _session_factory = async_sessionmaker(
        _engine,
        class_=LedgerSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory for code that runs outside a request."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with get_session_factory()() as session:
        yield session
