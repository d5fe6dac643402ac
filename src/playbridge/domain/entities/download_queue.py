"""Download queue entities.

Hey future me - a DownloadJob batches acquisition requests for songs that no
catalog could resolve. Each DownloadQueueItem carries its OWN service because
routing is per item: one batch can send album tracks to the catalog manager
and loose singles to the single-track fetcher.

Item flow: QUEUED → DOWNLOADING → COMPLETED | FAILED
Job flow:  PENDING → PROCESSING → COMPLETED | FAILED | CANCELLED
A job only ends up FAILED when every single item failed.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from playbridge.domain.entities import JobStatus, PlaylistPlatform, Song
from playbridge.domain.exceptions import InvalidStateException, ValidationException


class DownloadService(str, Enum):
    """Acquisition back-ends."""

    CATALOG_MANAGER = "catalog_manager"  # Lidarr: artist/album monitored downloads
    SINGLE_TRACK_FETCHER = "single_track_fetcher"  # MeTube: one URL, one file


class QueueItemStatus(str, Enum):
    """Status of one queued download."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


class DownloadScope(str, Enum):
    """What the request is about, drives back-end routing."""

    TRACK = "track"
    ALBUM = "album"
    ARTIST = "artist"


@dataclass
class DownloadPreferences:
    """Routing preferences for queue_batch / queue_single."""

    default_service: DownloadService = DownloadService.SINGLE_TRACK_FETCHER
    prefer_catalog_for_albums: bool = True
    prefer_fetcher_for_singles: bool = True
    fetcher_format: str = "mp3"
    fetcher_quality: str = "best"

    def __post_init__(self) -> None:
        if self.fetcher_format not in ("mp3", "mp4"):
            raise ValidationException(
                f"Unsupported fetcher format: {self.fetcher_format}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        data = asdict(self)
        data["default_service"] = self.default_service.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DownloadPreferences":
        """Deserialize from JSON storage, defaults for missing keys."""
        if not data:
            return cls()
        values = dict(data)
        if "default_service" in values:
            values["default_service"] = DownloadService(values["default_service"])
        return cls(**values)


@dataclass
class DownloadQueueItem:
    """One song queued on an acquisition back-end."""

    title: str
    artist: str
    service: DownloadService
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    album: str | None = None
    song_id: str | None = None
    platform: PlaylistPlatform | None = None
    platform_id: str | None = None
    url: str | None = None
    video_id: str | None = None
    status: QueueItemStatus = QueueItemStatus.QUEUED
    service_job_id: str | None = None
    progress: float | None = None
    error: str | None = None
    downloaded_path: str | None = None
    needs_manual_organization: bool = False
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_song(
        cls,
        song: Song,
        service: DownloadService,
        video_id: str | None = None,
    ) -> "DownloadQueueItem":
        """Build a queue item for a canonical song."""
        return cls(
            title=song.title,
            artist=song.artist,
            album=song.album,
            service=service,
            song_id=song.platform_id,
            platform=song.platform,
            platform_id=song.platform_id,
            url=song.url,
            video_id=video_id,
        )

    @property
    def display_name(self) -> str:
        """'Artist - Title' label."""
        return f"{self.artist} - {self.title}"

    @property
    def is_finished(self) -> bool:
        """COMPLETED and FAILED are terminal."""
        return self.status in (QueueItemStatus.COMPLETED, QueueItemStatus.FAILED)

    def mark_submitted(self, service_job_id: str | None) -> None:
        """Back-end accepted the request."""
        if self.status != QueueItemStatus.QUEUED:
            raise InvalidStateException(
                f"Cannot submit queue item in status {self.status.value}"
            )
        self.status = QueueItemStatus.DOWNLOADING
        self.service_job_id = service_job_id
        # Fetcher output lands outside the managed library layout.
        if self.service == DownloadService.SINGLE_TRACK_FETCHER:
            self.needs_manual_organization = True
        self.updated_at = datetime.now(UTC)

    def update_progress(self, percent: float) -> None:
        """Update download progress (0-100)."""
        if percent < 0.0 or percent > 100.0:
            raise ValidationException("Progress must be between 0 and 100")
        self.progress = percent
        self.updated_at = datetime.now(UTC)

    def complete(self, downloaded_path: str | None = None) -> None:
        """Mark item as completed."""
        if self.is_finished:
            raise InvalidStateException(
                f"Cannot complete queue item in status {self.status.value}"
            )
        self.status = QueueItemStatus.COMPLETED
        self.progress = 100.0
        if downloaded_path:
            self.downloaded_path = downloaded_path
        self.updated_at = datetime.now(UTC)

    def fail(self, error: str) -> None:
        """Mark item as failed. Not retried automatically."""
        if self.status == QueueItemStatus.COMPLETED:
            raise InvalidStateException("Cannot fail a completed queue item")
        self.status = QueueItemStatus.FAILED
        self.error = error
        self.updated_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        data = asdict(self)
        data["service"] = self.service.value
        data["status"] = self.status.value
        data["platform"] = self.platform.value if self.platform else None
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DownloadQueueItem":
        """Deserialize from JSON storage."""
        platform = data.get("platform")
        updated_at = data.get("updated_at")
        return cls(
            id=data["id"],
            title=data["title"],
            artist=data["artist"],
            album=data.get("album"),
            service=DownloadService(data["service"]),
            song_id=data.get("song_id"),
            platform=PlaylistPlatform(platform) if platform else None,
            platform_id=data.get("platform_id"),
            url=data.get("url"),
            video_id=data.get("video_id"),
            status=QueueItemStatus(data.get("status", QueueItemStatus.QUEUED.value)),
            service_job_id=data.get("service_job_id"),
            progress=data.get("progress"),
            error=data.get("error"),
            downloaded_path=data.get("downloaded_path"),
            needs_manual_organization=bool(data.get("needs_manual_organization")),
            updated_at=(
                datetime.fromisoformat(updated_at) if updated_at else datetime.now(UTC)
            ),
        )


@dataclass
class OrganizationFile:
    """A downloaded file and where it should end up in the library."""

    path: str
    suggested_path: str
    title: str
    artist: str


@dataclass
class PendingOrganization:
    """Files whose final library placement was not automatic."""

    files: list[OrganizationFile] = field(default_factory=list)
    organized: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        return {"files": [asdict(f) for f in self.files], "organized": self.organized}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingOrganization":
        """Deserialize from JSON storage."""
        return cls(
            files=[OrganizationFile(**f) for f in data.get("files", [])],
            organized=bool(data.get("organized")),
        )


@dataclass
class DownloadJob:
    """Batch of acquisition requests.

    ``service`` is the batch's default back-end; items may be routed to the
    other one and record their own service.
    """

    id: str
    owner_id: str
    service: DownloadService
    status: JobStatus = JobStatus.PENDING
    download_queue: list[DownloadQueueItem] = field(default_factory=list)
    total_items: int = 0
    completed_items: int = 0
    failed_items: int = 0
    pending_organization: PendingOrganization | None = None
    import_job_id: str | None = None
    playlist_id: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        self.refresh_counters()

    @property
    def is_finished(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status.is_terminal

    def find_item(self, item_id: str) -> DownloadQueueItem | None:
        """Look up a queue item by id."""
        for item in self.download_queue:
            if item.id == item_id:
                return item
        return None

    def start(self) -> None:
        """Mark job as processing."""
        if self.status != JobStatus.PENDING:
            raise InvalidStateException(
                f"Cannot start download job in status {self.status.value}"
            )
        self.status = JobStatus.PROCESSING
        self.started_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def refresh_counters(self) -> None:
        """Recompute aggregate counters from the queue."""
        self.total_items = len(self.download_queue)
        self.completed_items = sum(
            1 for i in self.download_queue if i.status == QueueItemStatus.COMPLETED
        )
        self.failed_items = sum(
            1 for i in self.download_queue if i.status == QueueItemStatus.FAILED
        )
        self.updated_at = datetime.now(UTC)

    def settle(self) -> None:
        """Advance job status once every item is terminal.

        All items failed → FAILED with an aggregate summary, otherwise
        COMPLETED. No-op while items are still in flight.
        """
        self.refresh_counters()
        if self.status != JobStatus.PROCESSING:
            return
        if not all(item.is_finished for item in self.download_queue):
            return
        if self.total_items and self.failed_items == self.total_items:
            errors = sorted({item.error or "unknown error" for item in self.download_queue})
            self.status = JobStatus.FAILED
            self.error_message = (
                f"All {self.total_items} downloads failed: " + "; ".join(errors[:5])
            )
        else:
            self.status = JobStatus.COMPLETED
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def cancel(self) -> None:
        """Cancel the job."""
        if self.status.is_terminal:
            raise InvalidStateException(
                f"Cannot cancel download job in status {self.status.value}"
            )
        self.status = JobStatus.CANCELLED
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def mark_organized(self) -> None:
        """Flag the pending organization record as handled."""
        if self.pending_organization is None:
            raise InvalidStateException(
                f"Download job {self.id} has no files awaiting organization"
            )
        self.pending_organization.organized = True
        self.updated_at = datetime.now(UTC)


__all__ = [
    "DownloadJob",
    "DownloadPreferences",
    "DownloadQueueItem",
    "DownloadScope",
    "DownloadService",
    "OrganizationFile",
    "PendingOrganization",
    "QueueItemStatus",
]
