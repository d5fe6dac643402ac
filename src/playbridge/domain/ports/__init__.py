"""Domain ports (interfaces) for the playlist interchange pipeline.

Adapters in the infrastructure layer implement these; application services
depend only on the interfaces.
"""

from abc import ABC, abstractmethod

from playbridge.domain.entities import (
    ExportJob,
    ImportJob,
    JobStatus,
    PlaylistEntry,
    PlaylistPlatform,
    Song,
    StoredPlaylist,
)
from playbridge.domain.entities.download_queue import DownloadJob


# Hey future me, this is the ONLY thing the matcher knows about catalogs.
# Implementations must translate their own transport errors into
# ExternalServiceError / AuthenticationError - never let httpx errors out.
# Adapters are shared across concurrent matches, so no per-call state!
class ICatalogAdapter(ABC):
    """Searchable song catalog (local media server or streaming platform)."""

    @property
    @abstractmethod
    def platform(self) -> PlaylistPlatform:
        """Platform whose ids this adapter returns."""
        pass

    @abstractmethod
    async def search(self, query: str, start: int = 0, limit: int = 10) -> list[Song]:
        """Free-text search, returns resolved songs."""
        pass

    @abstractmethod
    async def search_by_isrc(self, isrc: str) -> list[Song]:
        """Exact-identifier search."""
        pass

    @abstractmethod
    async def get_by_ids(self, ids: list[str]) -> list[Song]:
        """Fetch songs by platform id. Unknown ids are silently omitted."""
        pass


class IPlaylistRepository(ABC):
    """Playlist storage with position-ordered membership."""

    @abstractmethod
    async def add(self, playlist: StoredPlaylist) -> None:
        """Create a playlist."""
        pass

    @abstractmethod
    async def get_by_id(self, playlist_id: str) -> StoredPlaylist | None:
        """Get a playlist by id."""
        pass

    @abstractmethod
    async def get_by_name(self, owner_id: str, name: str) -> StoredPlaylist | None:
        """Get an owner's playlist by exact name."""
        pass

    @abstractmethod
    async def list_playlists(self, owner_id: str) -> list[StoredPlaylist]:
        """List an owner's playlists."""
        pass

    @abstractmethod
    async def list_songs(self, playlist_id: str) -> list[PlaylistEntry]:
        """List entries ordered by position."""
        pass

    @abstractmethod
    async def append_songs(
        self, playlist_id: str, songs: list[Song]
    ) -> tuple[int, int]:
        """Append resolved songs after existing entries.

        Returns:
            (added, skipped_duplicates)
        """
        pass


class IImportJobRepository(ABC):
    """Import job persistence."""

    @abstractmethod
    async def add(self, job: ImportJob) -> None:
        """Persist a new job."""
        pass

    @abstractmethod
    async def get_by_id(self, job_id: str) -> ImportJob | None:
        """Get a job by id."""
        pass

    @abstractmethod
    async def update(
        self, job: ImportJob, expected_status: JobStatus | None = None
    ) -> bool:
        """Persist the full job state.

        With ``expected_status`` the write only happens while the stored row
        is still in that status. Returns False when the guard did not match.
        """
        pass

    @abstractmethod
    async def transition_status(
        self, job_id: str, expected: JobStatus, new: JobStatus
    ) -> bool:
        """Compare-and-set the status column only."""
        pass

    @abstractmethod
    async def list_by_owner(self, owner_id: str, limit: int = 50) -> list[ImportJob]:
        """Most recent jobs first."""
        pass


class IExportJobRepository(ABC):
    """Export job persistence."""

    @abstractmethod
    async def add(self, job: ExportJob) -> None:
        """Persist a new job."""
        pass

    @abstractmethod
    async def get_by_id(self, job_id: str) -> ExportJob | None:
        """Get a job by id."""
        pass

    @abstractmethod
    async def update(
        self, job: ExportJob, expected_status: JobStatus | None = None
    ) -> bool:
        """Persist the full job state.

        With ``expected_status`` the write only happens while the stored row
        is still in that status. Returns False when the guard did not match.
        """
        pass

    @abstractmethod
    async def transition_status(
        self, job_id: str, expected: JobStatus, new: JobStatus
    ) -> bool:
        """Compare-and-set the status column only."""
        pass


class IDownloadJobRepository(ABC):
    """Download job persistence."""

    @abstractmethod
    async def add(self, job: DownloadJob) -> None:
        """Persist a new job."""
        pass

    @abstractmethod
    async def get_by_id(self, job_id: str) -> DownloadJob | None:
        """Get a job by id."""
        pass

    @abstractmethod
    async def update(
        self, job: DownloadJob, expected_status: JobStatus | None = None
    ) -> bool:
        """Persist the full job state.

        With ``expected_status`` the write only happens while the stored row
        is still in that status. Returns False when the guard did not match.
        """
        pass

    @abstractmethod
    async def transition_status(
        self, job_id: str, expected: JobStatus, new: JobStatus
    ) -> bool:
        """Compare-and-set the status column only."""
        pass

    @abstractmethod
    async def list_active(self, owner_id: str | None = None) -> list[DownloadJob]:
        """Jobs still in PENDING or PROCESSING."""
        pass


__all__ = [
    "ICatalogAdapter",
    "IDownloadJobRepository",
    "IExportJobRepository",
    "IImportJobRepository",
    "IPlaylistRepository",
]
