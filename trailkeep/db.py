"""Database management - engine, session factory, initialization."""

import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trailkeep.serializers.json_serializer import dumps

logger = logging.getLogger(__name__)


class Database:
    """Async database manager with connection pooling."""

    def __init__(self, url: str, pool_size: int = 10, echo: bool = False):
        # json/jsonb binds go through the same encoder as the JSON serializer
        self.engine = create_async_engine(
            url, pool_size=pool_size, echo=echo, json_serializer=dumps
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self):
        """Context manager that yields a session with auto-commit/rollback."""
        async with self.session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    async def init(self) -> None:
        """Create history tables registered on the declarative base."""
        from trailkeep.models.base import Base
        import trailkeep.models.history  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("History tables created")

    async def close(self) -> None:
        """Dispose engine and release all connections."""
        await self.engine.dispose()
