"""API schemas for playlist import."""

from datetime import datetime

from pydantic import BaseModel, Field

from playbridge.api.schemas.common import SongSchema
from playbridge.api.schemas.downloads import DownloadPreferencesSchema
from playbridge.application.codecs import ValidationReport
from playbridge.application.services import (
    FinalizeReviewResult,
    ImportOptions,
    MatchReport,
    ReviewDecision,
)
from playbridge.domain.entities import (
    ImportJob,
    JobStatus,
    MatchCandidate,
    MatchConfidence,
    MatchStatus,
    PlaylistFormat,
    PlaylistPlatform,
    SongMatchResult,
)


class ValidateImportRequest(BaseModel):
    """Dry-run parse request."""

    content: str
    format: PlaylistFormat | None = None
    filename: str | None = None


class ValidateImportResponse(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]
    song_count: int
    format: PlaylistFormat | None
    playlist_name: str | None

    @classmethod
    def from_report(cls, report: ValidationReport) -> "ValidateImportResponse":
        return cls(
            valid=report.valid,
            errors=report.errors,
            warnings=report.warnings,
            song_count=report.song_count,
            format=report.format,
            playlist_name=report.playlist_name,
        )


class StartImportRequest(BaseModel):
    """Request body for starting an import."""

    content: str = Field(..., description="Raw playlist text")
    format: PlaylistFormat | None = Field(
        default=None, description="Explicit format, detected when omitted"
    )
    filename: str | None = Field(default=None, description="Original filename, used as format hint")
    target_platform: PlaylistPlatform = PlaylistPlatform.NAVIDROME
    search_platforms: list[PlaylistPlatform] | None = None
    playlist_name: str | None = None
    playlist_id: str | None = Field(default=None, description="Append to an existing playlist")
    playlist_description: str | None = None
    auto_match: bool = True
    queue_downloads: bool = False
    download_preferences: DownloadPreferencesSchema | None = None

    def to_options(self, credential: str | None) -> ImportOptions:
        return ImportOptions(
            playlist_format=self.format,
            filename=self.filename,
            target_platform=self.target_platform,
            search_platforms=self.search_platforms,
            playlist_name=self.playlist_name,
            playlist_id=self.playlist_id,
            playlist_description=self.playlist_description,
            auto_match=self.auto_match,
            credential=credential,
            queue_downloads=self.queue_downloads,
            download_preferences=(
                self.download_preferences.to_entity() if self.download_preferences else None
            ),
        )


class MatchCandidateSchema(BaseModel):
    platform: PlaylistPlatform
    platform_id: str
    title: str
    artist: str
    album: str | None
    duration: int | None
    url: str | None
    confidence: MatchConfidence
    match_score: float
    match_reason: str

    @classmethod
    def from_entity(cls, candidate: MatchCandidate) -> "MatchCandidateSchema":
        return cls(
            platform=candidate.platform,
            platform_id=candidate.platform_id,
            title=candidate.title,
            artist=candidate.artist,
            album=candidate.album,
            duration=candidate.duration,
            url=candidate.url,
            confidence=candidate.confidence,
            match_score=candidate.match_score,
            match_reason=candidate.match_reason,
        )


class SelectedMatchSchema(BaseModel):
    platform: PlaylistPlatform
    platform_id: str


class SongMatchResultSchema(BaseModel):
    original_song: SongSchema
    matches: list[MatchCandidateSchema]
    status: MatchStatus
    selected_match: SelectedMatchSchema | None
    warnings: list[str]

    @classmethod
    def from_entity(cls, result: SongMatchResult) -> "SongMatchResultSchema":
        selected = result.selected_match
        return cls(
            original_song=SongSchema.from_entity(result.original_song),
            matches=[MatchCandidateSchema.from_entity(c) for c in result.matches],
            status=result.status,
            selected_match=(
                SelectedMatchSchema(platform=selected.platform, platform_id=selected.platform_id)
                if selected
                else None
            ),
            warnings=result.warnings,
        )


class ImportJobResponse(BaseModel):
    """Import job state; ``match_results`` slots stay null until matched."""

    id: str
    status: JobStatus
    format: PlaylistFormat
    target_platform: PlaylistPlatform
    playlist_name: str
    playlist_id: str | None
    total_songs: int
    processed_songs: int
    matched_songs: int
    unmatched_songs: int
    pending_review_songs: int
    added_songs: int
    duplicate_songs: int
    awaiting_review: bool
    match_results: list[SongMatchResultSchema | None] | None = None
    warnings: list[str]
    download_job_id: str | None
    error_message: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    @classmethod
    def from_entity(cls, job: ImportJob, include_results: bool = True) -> "ImportJobResponse":
        return cls(
            id=job.id,
            status=job.status,
            format=job.format,
            target_platform=job.target_platform,
            playlist_name=job.playlist_name,
            playlist_id=job.playlist_id,
            total_songs=job.total_songs,
            processed_songs=job.processed_songs,
            matched_songs=job.matched_songs,
            unmatched_songs=job.unmatched_songs,
            pending_review_songs=job.pending_review_songs,
            added_songs=job.added_songs,
            duplicate_songs=job.duplicate_songs,
            awaiting_review=job.awaiting_review,
            match_results=(
                [SongMatchResultSchema.from_entity(r) if r else None for r in job.match_results]
                if include_results
                else None
            ),
            warnings=job.warnings,
            download_job_id=job.download_job_id,
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class ReviewDecisionSchema(BaseModel):
    """One review decision; omit ``platform_id`` to skip the song."""

    index: int = Field(..., ge=0)
    platform_id: str | None = None
    platform: PlaylistPlatform | None = None

    def to_entity(self) -> ReviewDecision:
        return ReviewDecision(index=self.index, platform_id=self.platform_id, platform=self.platform)


class FinalizeReviewRequest(BaseModel):
    decisions: list[ReviewDecisionSchema] = Field(default_factory=list)


class FinalizeReviewResponse(BaseModel):
    job: ImportJobResponse
    playlist_id: str | None
    added_songs: int
    duplicate_songs: int
    download_job_id: str | None

    @classmethod
    def from_result(cls, result: FinalizeReviewResult) -> "FinalizeReviewResponse":
        return cls(
            job=ImportJobResponse.from_entity(result.job),
            playlist_id=result.playlist_id,
            added_songs=result.added_songs,
            duplicate_songs=result.duplicate_songs,
            download_job_id=result.download_job_id,
        )


class MatchReportResponse(BaseModel):
    total: int
    matched: int
    pending_review: int
    no_match: int
    skipped: int
    by_confidence: dict[str, int]
    unmatched_songs: list[str]
    pending_songs: list[str]

    @classmethod
    def from_report(cls, report: MatchReport) -> "MatchReportResponse":
        return cls(
            total=report.total,
            matched=report.matched,
            pending_review=report.pending_review,
            no_match=report.no_match,
            skipped=report.skipped,
            by_confidence=report.by_confidence,
            unmatched_songs=report.unmatched_songs,
            pending_songs=report.pending_songs,
        )
