"""Database singleton: async PostgreSQL pool via SQLAlchemy, plus schema bootstrap."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine

from naprhythm.db.schema import SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the engine for the process lifetime; connect() once from the app lifespan."""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not connected")
        return self._engine

    # Used by: main.py lifespan (startup)
    async def connect(self, database_url: str) -> None:
        if self._engine is not None:
            logger.warning("Database already connected, ignoring second connect()")
            return

        # Log the target without credentials
        logger.info(f"Connecting to database at {database_url.rsplit('@', 1)[-1]}")

        # pre-ping: the app sits idle overnight between logged sessions
        self._engine = create_async_engine(database_url, echo=False, pool_pre_ping=True)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # Used by: main.py lifespan (startup, when AUTO_CREATE_SCHEMA is set)
    async def ensure_schema(self) -> None:
        async with self._require_engine().begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))

        logger.info(f"Schema ensured ({len(SCHEMA_STATEMENTS)} statements)")

    # Used by: main.py lifespan (shutdown)
    async def disconnect(self) -> None:
        if self._engine is None:
            return

        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database pool disposed")

    # Used by: SleepDataManager reads and single-statement writes
    def session(self) -> AsyncSession:
        """Use as: async with db.session() as session: ..."""
        self._require_engine()
        return self._session_factory()

    # Used by: SleepDataManager.save_notification_log (all rows or none)
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session() as session:
            async with session.begin():
                yield session


_db: Optional[DatabaseManager] = None


def get_database() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager()
    return _db
