"""Database connection and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (  # type: ignore[attr-defined]  # SQLAlchemy 2.0 features
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_config


class DatabaseManager:
    """Manages database connections and sessions."""

    def __init__(self, url: str | None = None) -> None:
        """Initialize the database manager.

        Args:
            url: Optional database URL; defaults to the configured one
        """
        self.engine = create_async_engine(
            url or get_config().database.url,
            echo=False,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
        )
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession]:
        """Get a database session that commits on success and rolls back on error."""
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self) -> None:
        """Close the database engine."""
        await self.engine.dispose()


_db_manager: DatabaseManager | None = None


def get_db_manager() -> DatabaseManager:
    """Get the process-wide database manager, creating it on first use."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def close_db_manager() -> None:
    """Dispose of the process-wide database manager if it was created."""
    global _db_manager
    if _db_manager is not None:
        await _db_manager.close()
        _db_manager = None
