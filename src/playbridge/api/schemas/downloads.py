"""API schemas for download orchestration."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from playbridge.api.schemas.common import SongSchema
from playbridge.application.services import DownloadReport, QueueStatus
from playbridge.domain.entities import JobStatus
from playbridge.domain.entities.download_queue import (
    DownloadJob,
    DownloadPreferences,
    DownloadQueueItem,
    DownloadScope,
    DownloadService,
    QueueItemStatus,
)


class DownloadPreferencesSchema(BaseModel):
    """Routing preferences; server defaults apply when omitted."""

    default_service: DownloadService = DownloadService.SINGLE_TRACK_FETCHER
    prefer_catalog_for_albums: bool = True
    prefer_fetcher_for_singles: bool = True
    fetcher_format: Literal["mp3", "mp4"] = "mp3"
    fetcher_quality: str = "best"

    def to_entity(self) -> DownloadPreferences:
        return DownloadPreferences(
            default_service=self.default_service,
            prefer_catalog_for_albums=self.prefer_catalog_for_albums,
            prefer_fetcher_for_singles=self.prefer_fetcher_for_singles,
            fetcher_format=self.fetcher_format,
            fetcher_quality=self.fetcher_quality,
        )


class QueueBatchRequest(BaseModel):
    songs: list[SongSchema] = Field(..., min_length=1)
    scope: DownloadScope | None = None
    preferences: DownloadPreferencesSchema | None = None
    playlist_id: str | None = None


class QueueSingleRequest(BaseModel):
    song: SongSchema
    service: DownloadService | None = None
    scope: DownloadScope | None = None
    video_id: str | None = None
    preferences: DownloadPreferencesSchema | None = None


class QueueItemResponse(BaseModel):
    id: str
    title: str
    artist: str
    album: str | None
    service: DownloadService
    status: QueueItemStatus
    service_job_id: str | None
    progress: float | None
    error: str | None
    downloaded_path: str | None
    needs_manual_organization: bool

    @classmethod
    def from_entity(cls, item: DownloadQueueItem) -> "QueueItemResponse":
        return cls(
            id=item.id,
            title=item.title,
            artist=item.artist,
            album=item.album,
            service=item.service,
            status=item.status,
            service_job_id=item.service_job_id,
            progress=item.progress,
            error=item.error,
            downloaded_path=item.downloaded_path,
            needs_manual_organization=item.needs_manual_organization,
        )


class OrganizationFileSchema(BaseModel):
    path: str
    suggested_path: str
    title: str
    artist: str


class PendingOrganizationSchema(BaseModel):
    files: list[OrganizationFileSchema]
    organized: bool


class DownloadJobResponse(BaseModel):
    id: str
    status: JobStatus
    service: DownloadService
    total_items: int
    completed_items: int
    failed_items: int
    download_queue: list[QueueItemResponse]
    pending_organization: PendingOrganizationSchema | None
    import_job_id: str | None
    playlist_id: str | None
    error_message: str | None
    created_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_entity(cls, job: DownloadJob) -> "DownloadJobResponse":
        pending = job.pending_organization
        return cls(
            id=job.id,
            status=job.status,
            service=job.service,
            total_items=job.total_items,
            completed_items=job.completed_items,
            failed_items=job.failed_items,
            download_queue=[QueueItemResponse.from_entity(i) for i in job.download_queue],
            pending_organization=(
                PendingOrganizationSchema(
                    files=[
                        OrganizationFileSchema(
                            path=f.path,
                            suggested_path=f.suggested_path,
                            title=f.title,
                            artist=f.artist,
                        )
                        for f in pending.files
                    ],
                    organized=pending.organized,
                )
                if pending
                else None
            ),
            import_job_id=job.import_job_id,
            playlist_id=job.playlist_id,
            error_message=job.error_message,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )


class BackendEntrySchema(BaseModel):
    service: DownloadService
    service_job_id: str
    title: str
    status: QueueItemStatus
    progress: float | None
    path: str | None
    error: str | None


class QueueStatusResponse(BaseModel):
    entries: list[BackendEntrySchema]
    errors: dict[str, str]

    @classmethod
    def from_status(cls, status: QueueStatus) -> "QueueStatusResponse":
        return cls(
            entries=[
                BackendEntrySchema(
                    service=e.service,
                    service_job_id=e.service_job_id,
                    title=e.title,
                    status=e.status,
                    progress=e.progress,
                    path=e.path,
                    error=e.error,
                )
                for e in status.entries
            ],
            errors=status.errors,
        )


class DownloadReportResponse(BaseModel):
    total: int
    by_service: dict[str, dict[str, int]]
    needs_manual_organization: list[str]
    failed: list[str]

    @classmethod
    def from_report(cls, report: DownloadReport) -> "DownloadReportResponse":
        return cls(
            total=report.total,
            by_service=report.by_service,
            needs_manual_organization=report.needs_manual_organization,
            failed=report.failed,
        )


class CancelResponse(BaseModel):
    cancelled: bool
