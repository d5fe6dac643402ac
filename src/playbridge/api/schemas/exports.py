"""API schemas for playlist export."""

from datetime import datetime

from pydantic import BaseModel

from playbridge.application.services import ExportOptions
from playbridge.domain.entities import ExportJob, JobStatus, PlaylistFormat


class ExportRequest(BaseModel):
    playlist_id: str
    format: PlaylistFormat
    include_metadata: bool = True
    include_platform_ids: bool = False
    base_path: str | None = None
    enrich: bool = True

    def to_options(self) -> ExportOptions:
        return ExportOptions(
            include_metadata=self.include_metadata,
            include_platform_ids=self.include_platform_ids,
            base_path=self.base_path,
            enrich=self.enrich,
        )


class ExportJobResponse(BaseModel):
    """Export job state; the rendered text is served by the download endpoint."""

    id: str
    playlist_id: str
    format: PlaylistFormat
    status: JobStatus
    filename: str | None
    song_count: int
    enriched_songs: int
    error_message: str | None
    created_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_entity(cls, job: ExportJob) -> "ExportJobResponse":
        return cls(
            id=job.id,
            playlist_id=job.playlist_id,
            format=job.format,
            status=job.status,
            filename=job.filename,
            song_count=job.song_count,
            enriched_songs=job.enriched_songs,
            error_message=job.error_message,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )
