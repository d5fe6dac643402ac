"""Acquisition back-end ports.

Two back-ends with very different capabilities:

- Catalog manager (Lidarr): thinks in artists and albums. You ask it to
  monitor an artist/album and it downloads into the managed library.
- Single-track fetcher (MeTube): takes one URL or search term and drops a
  file into its own download folder.

The orchestrator routes per item between them, so both expose the same
queue/history view (BackendQueueEntry) even though their requests differ.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from playbridge.domain.entities.download_queue import DownloadService, QueueItemStatus


@dataclass
class BackendQueueEntry:
    """One entry of a back-end's live queue or history."""

    service: DownloadService
    service_job_id: str
    title: str
    status: QueueItemStatus
    progress: float | None = None
    path: str | None = None
    error: str | None = None
    # other ids this entry answers to, e.g. "artist:12" for an album download
    related_job_ids: list[str] = field(default_factory=list)
    raw_data: dict[str, Any] | None = None


@dataclass
class CatalogArtist:
    """Artist candidate from the catalog manager's own search."""

    foreign_artist_id: str
    name: str
    artist_id: int | None = None  # set when already in the catalog manager


@dataclass
class CatalogDownloadRequest:
    """Monitored-download request for the catalog manager."""

    artist: CatalogArtist
    album_title: str | None = None
    search_now: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


class ICatalogManagerBackend(ABC):
    """Catalog-manager back-end contract."""

    service = DownloadService.CATALOG_MANAGER
    batch_size: int = 10

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the back-end can be used at all."""
        pass

    @abstractmethod
    async def search_artist(self, term: str) -> list[CatalogArtist]:
        """Resolve an artist identity via the back-end's own search."""
        pass

    @abstractmethod
    async def enqueue_download(self, request: CatalogDownloadRequest) -> str:
        """Start a monitored download, returns the back-end job id."""
        pass

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Best-effort cancel. False when the job is unknown or already done."""
        pass

    @abstractmethod
    async def get_queue(self) -> list[BackendQueueEntry]:
        """Live queue."""
        pass

    @abstractmethod
    async def get_history(self) -> list[BackendQueueEntry]:
        """Recently finished entries."""
        pass


class ISingleTrackFetcherBackend(ABC):
    """Single-track fetcher back-end contract."""

    service = DownloadService.SINGLE_TRACK_FETCHER
    batch_size: int = 5

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the back-end can be used at all."""
        pass

    @abstractmethod
    async def enqueue(
        self,
        url_or_term: str,
        media_format: str,
        quality: str,
        name_prefix: str | None = None,
    ) -> str:
        """Submit a direct fetch, returns the back-end job id."""
        pass

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Best-effort cancel. False when the job is unknown or already done."""
        pass

    @abstractmethod
    async def get_queue(self) -> list[BackendQueueEntry]:
        """Queued and in-progress fetches."""
        pass

    @abstractmethod
    async def get_done(self) -> list[BackendQueueEntry]:
        """Finished fetches (completed or errored)."""
        pass


__all__ = [
    "BackendQueueEntry",
    "CatalogArtist",
    "CatalogDownloadRequest",
    "ICatalogManagerBackend",
    "ISingleTrackFetcherBackend",
]
