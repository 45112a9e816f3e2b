"""Engine ownership for the SQL session store.

A :class:`Database` owns one async engine and the session factory bound to
it.  The server builds one per application and disposes it on shutdown;
``heysme-cleanup`` builds a short-lived one per run.  There is no
process-wide engine, so tests and tools never share a pool by accident.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from heysme_db.config import DatabaseSettings, load_database_settings

logger = logging.getLogger(__name__)


class Database:
    """Lazily connected engine plus session factory.

    Args:
        settings: connection settings; read from the environment when omitted.
    """

    def __init__(self, settings: DatabaseSettings | None = None) -> None:
        self.settings = settings or load_database_settings()
        self._engine: AsyncEngine | None = None
        self._factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            s = self.settings
            self._engine = create_async_engine(
                s.async_url,
                echo=s.echo,
                pool_size=s.pool_size,
                max_overflow=s.max_overflow,
                pool_pre_ping=True,
            )
            logger.info(
                "Database engine created for %s (pool %d+%d)",
                s.async_url.render_as_string(hide_password=True),
                s.pool_size, s.max_overflow,
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Factory for ``SqlSessionStore``; sessions keep attributes after commit."""
        if self._factory is None:
            self._factory = async_sessionmaker(
                bind=self.engine, class_=AsyncSession, expire_on_commit=False,
            )
        return self._factory

    async def ping(self) -> None:
        """Round-trip ``SELECT 1``; raises if the database is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Close pooled connections.  The next use reconnects."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._factory = None
            logger.info("Database engine disposed")
