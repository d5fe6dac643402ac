"""Engine and transactional session scope for job and playlist storage."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from playbridge.config import DatabaseSettings, Settings

logger = logging.getLogger(__name__)

# Hey future me - import matching, download sync and finalize all write job
# rows at the same time. WAL lets readers (status polls) run while one of
# them writes, busy_timeout makes the writers queue up instead of failing
# with "database is locked".
SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def _engine_kwargs(config: DatabaseSettings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": config.echo, "pool_pre_ping": config.pool_pre_ping}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        kwargs.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
        )
    return kwargs


class Database:
    """Owns the async engine; hands out one session per unit of work."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._engine = create_async_engine(
            settings.database.url, **_engine_kwargs(settings.database)
        )
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", self._apply_sqlite_pragmas)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.settings.database.url.startswith("sqlite")

    @staticmethod
    def _apply_sqlite_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
        cursor = dbapi_conn.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    # Hey future me - this is THE transaction boundary. Repositories never
    # commit; services wrap a unit of work in one session_scope() and either
    # everything lands or nothing does.
    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on clean exit and rolls back on any error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create playlist and job tables that don't exist yet."""
        from playbridge.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Schema ready on %s", self._engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        await self._engine.dispose()
