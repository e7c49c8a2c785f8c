"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.

SQLAlchemy's own pooling is disabled (NullPool); connections are held in
a ConnectionPool so that handle reuse, limits and exhaustion behaviour
are under the application's control.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from chat_relay.config import Settings
from chat_relay.core.connection_pool import ConnectionPool
from chat_relay.models.base import Base

logger = logging.getLogger(__name__)


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """Configure SQLite for concurrent readers (WAL) on every new connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA temp_store=MEMORY")
    cursor.close()


class Database:
    """
    Engine, connection pool and session factory for one database.

    Args:
        settings: Application settings
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            poolclass=NullPool,
        )

        if settings.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _set_sqlite_pragmas)

        self.pool: ConnectionPool[AsyncConnection] = ConnectionPool(
            factory=self._open_connection,
            closer=self._close_connection,
            max_size=settings.pool_default_size,
            min_idle=settings.pool_min_idle,
            hard_max=settings.pool_max_size,
            acquire_timeout=settings.pool_acquire_timeout,
            name="database",
        )

    async def _open_connection(self) -> AsyncConnection:
        return await self.engine.connect()

    @staticmethod
    async def _close_connection(conn: AsyncConnection) -> None:
        await conn.close()

    async def connect(self, create_tables: bool = True) -> None:
        """Open the pool and create missing tables."""
        if create_tables:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        await self.pool.start()

    async def dispose(self) -> None:
        """Close pooled connections and the engine."""
        await self.pool.close_all()
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session bound to a pooled connection.

        Commits on success, rolls back on error, and always hands the
        connection back to the pool without an open transaction.
        """
        async with self.pool.connection() as conn:
            try:
                async with AsyncSession(bind=conn, expire_on_commit=False, autoflush=False) as session:
                    try:
                        yield session
                        await session.commit()
                    except Exception:
                        await session.rollback()
                        raise
            finally:
                if conn.in_transaction():
                    await conn.rollback()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Yields:
        AsyncSession: Database session

    Example:
        ```python
        @router.get("/messages")
        async def list_messages(db: AsyncSession = Depends(get_db)):
            ...
        ```
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
