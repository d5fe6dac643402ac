"""Transaction helper shared by the job controllers."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from playbridge.domain.exceptions import PersistenceError
from playbridge.infrastructure.persistence.repositories import (
    DownloadJobRepository,
    ExportJobRepository,
    ImportJobRepository,
    PlaylistRepository,
)

logger = logging.getLogger(__name__)

# db.session_scope, or anything shaped like it (tests pass their own)
SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class Repositories:
    """Every repository bound to one session."""

    session: AsyncSession
    playlists: PlaylistRepository
    import_jobs: ImportJobRepository
    export_jobs: ExportJobRepository
    download_jobs: DownloadJobRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "Repositories":
        return cls(
            session=session,
            playlists=PlaylistRepository(session),
            import_jobs=ImportJobRepository(session),
            export_jobs=ExportJobRepository(session),
            download_jobs=DownloadJobRepository(session),
        )


# Hey future me - SQLAlchemy errors never leave the application layer raw.
# session_scope already rolled back by the time we translate, so the job is
# still in its last committed state and a retry can pick up from there.
@asynccontextmanager
async def transaction(session_scope: SessionScope) -> AsyncIterator[Repositories]:
    """One committed unit of work; DB failures surface as PersistenceError."""
    try:
        async with session_scope() as session:
            yield Repositories.for_session(session)
    except SQLAlchemyError as e:
        logger.error("Database operation failed: %s", e)
        raise PersistenceError(f"Database operation failed: {type(e).__name__}") from e
