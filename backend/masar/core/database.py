"""Async database engine and session management.

The engine and its connection pool belong to a ``Database`` object that the
application lifespan constructs and disposes (see ``masar.main``). Nothing in
this module opens a connection at import time; request handlers reach the
pool through ``request.app.state.database``.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


class Database:
    """Owns one SQLAlchemy async engine and its session factory.

    Args:
        url: Async database URL (``postgresql+asyncpg://...``).
        echo: Log emitted SQL (development only).
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.engine: AsyncEngine = create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            # Bound values (OTP codes, token hashes, emails) stay out of
            # error messages and SQL echo
            hide_parameters=True,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def dispose(self) -> None:
        """Close every pooled connection."""
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session.

    Handlers commit explicitly at the points where state must be durable;
    anything left uncommitted when an exception escapes is rolled back.
    """
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
