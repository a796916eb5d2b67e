"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session factory owned by a ``Database``
object that callers create and pass around explicitly.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from finance_insights.config import DatabaseSettings

from .models import Base

logger = structlog.get_logger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


class Database:
    """
    Async database handle.

    Example:
        db = Database("sqlite+aiosqlite:///./finance.db")
        async with db.session() as session:
            result = await session.execute(query)
        await db.close()
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = DatabaseSettings()
        self.url = url or settings.url
        self.echo = settings.echo if echo is None else echo

        engine_config: Dict[str, Any] = {"echo": self.echo, "pool_pre_ping": True}

        # In-memory sqlite must share one connection or every session sees an empty db
        if _is_memory_sqlite(self.url):
            engine_config.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            })

        self._engine: Optional[AsyncEngine] = create_async_engine(self.url, **engine_config)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "Database":
        return cls(url=settings.url, echo=settings.echo)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is closed")
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session scope: commit on success, roll back on error.

        Yields:
            AsyncSession: Database session
        """
        if self._engine is None:
            raise RuntimeError("Database is closed")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_schema(self) -> None:
        """Create all tables that do not exist yet"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured", tables=sorted(Base.metadata.tables))

    async def check_health(self) -> Dict[str, Any]:
        """
        Check database health status.

        Returns:
            dict: Health status with latency information
        """
        try:
            start = time.perf_counter()
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency_ms = (time.perf_counter() - start) * 1000
            return {"status": "healthy", "latency_ms": round(latency_ms, 2)}
        except Exception as e:
            logger.warning("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        """Dispose of the engine and its connections"""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("Database connection pool closed")

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
