"""SQLAlchemy repository implementations.

Repositories take an injected AsyncSession and never commit. Job updates go
through UPDATE statements so a status guard can turn them into a
compare-and-set: the write only lands while the stored row is still in the
expected status.
"""

import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from playbridge.domain.entities import (
    ExportJob,
    ImportJob,
    JobStatus,
    PlaylistEntry,
    PlaylistFormat,
    PlaylistPlatform,
    Song,
    SongMatchResult,
    StoredPlaylist,
)
from playbridge.domain.entities.download_queue import (
    DownloadJob,
    DownloadQueueItem,
    DownloadService,
    PendingOrganization,
)
from playbridge.domain.exceptions import DuplicateEntityException, ValidationException
from playbridge.domain.ports import (
    IDownloadJobRepository,
    IExportJobRepository,
    IImportJobRepository,
    IPlaylistRepository,
)
from playbridge.infrastructure.persistence.models import (
    PlaylistDownloadJobModel,
    PlaylistExportJobModel,
    PlaylistImportJobModel,
    PlaylistSongModel,
    UserPlaylistModel,
    ensure_utc_aware,
    utc_now,
)


class PlaylistRepository(IPlaylistRepository):
    """SQLAlchemy implementation of the playlist repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, playlist: StoredPlaylist) -> None:
        """Add a new playlist. Name must be unique per owner."""
        self.session.add(
            UserPlaylistModel(
                id=playlist.id,
                owner_id=playlist.owner_id,
                name=playlist.name,
                description=playlist.description,
                song_count=playlist.song_count,
                created_at=playlist.created_at,
                updated_at=playlist.updated_at,
            )
        )
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityException("Playlist", playlist.name) from e

    async def get_by_id(self, playlist_id: str) -> StoredPlaylist | None:
        """Get a playlist by ID."""
        model = await self.session.get(UserPlaylistModel, playlist_id, populate_existing=True)
        return self._model_to_entity(model) if model else None

    async def get_by_name(self, owner_id: str, name: str) -> StoredPlaylist | None:
        """Get an owner's playlist by exact name."""
        stmt = select(UserPlaylistModel).where(
            UserPlaylistModel.owner_id == owner_id, UserPlaylistModel.name == name
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def list_playlists(self, owner_id: str) -> list[StoredPlaylist]:
        """List an owner's playlists, newest first."""
        stmt = (
            select(UserPlaylistModel)
            .where(UserPlaylistModel.owner_id == owner_id)
            .order_by(UserPlaylistModel.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def list_songs(self, playlist_id: str) -> list[PlaylistEntry]:
        """List entries ordered by position."""
        stmt = (
            select(PlaylistSongModel)
            .where(PlaylistSongModel.playlist_id == playlist_id)
            .order_by(PlaylistSongModel.position)
        )
        result = await self.session.execute(stmt)
        return [
            PlaylistEntry(
                id=m.id,
                playlist_id=m.playlist_id,
                song_id=m.song_id,
                platform=PlaylistPlatform(m.platform),
                song_artist_title=m.song_artist_title,
                position=m.position,
                added_at=ensure_utc_aware(m.added_at),
            )
            for m in result.scalars().all()
        ]

    # Hey future me - this is where "finalize twice adds nothing twice" is
    # enforced. Membership is (platform, song_id); anything already in the
    # playlist, or repeated inside the batch, counts as a duplicate.
    async def append_songs(self, playlist_id: str, songs: list[Song]) -> tuple[int, int]:
        """Append resolved songs after existing entries."""
        playlist = await self.session.get(UserPlaylistModel, playlist_id)
        if playlist is None:
            raise ValidationException(f"Playlist {playlist_id} does not exist")

        existing = await self.session.execute(
            select(PlaylistSongModel.platform, PlaylistSongModel.song_id).where(
                PlaylistSongModel.playlist_id == playlist_id
            )
        )
        members = {(platform, song_id) for platform, song_id in existing.all()}
        max_position = await self.session.scalar(
            select(func.max(PlaylistSongModel.position)).where(
                PlaylistSongModel.playlist_id == playlist_id
            )
        )
        position = -1 if max_position is None else max_position

        added = skipped = 0
        for song in songs:
            if not song.is_resolved:
                raise ValidationException(
                    f"Cannot add unresolved song '{song.display_name}' to a playlist"
                )
            key = (song.platform.value, song.platform_id)  # type: ignore[union-attr]
            if key in members:
                skipped += 1
                continue
            members.add(key)
            position += 1
            added += 1
            self.session.add(
                PlaylistSongModel(
                    id=str(uuid.uuid4()),
                    playlist_id=playlist_id,
                    song_id=song.platform_id,
                    platform=song.platform.value,  # type: ignore[union-attr]
                    song_artist_title=song.display_name,
                    position=position,
                )
            )

        if added:
            playlist.song_count = len(members)
            playlist.updated_at = utc_now()
        await self.session.flush()
        return added, skipped

    def _model_to_entity(self, model: UserPlaylistModel) -> StoredPlaylist:
        return StoredPlaylist(
            id=model.id,
            owner_id=model.owner_id,
            name=model.name,
            description=model.description,
            song_count=model.song_count,
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )


class _JobRepositoryMixin:
    """Shared compare-and-set helpers for the three job tables."""

    session: AsyncSession
    model: Any

    async def _guarded_update(
        self, job_id: str, values: dict[str, Any], expected_status: JobStatus | None
    ) -> bool:
        stmt = update(self.model).where(self.model.id == job_id)
        if expected_status is not None:
            stmt = stmt.where(self.model.status == expected_status.value)
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def transition_status(
        self, job_id: str, expected: JobStatus, new: JobStatus
    ) -> bool:
        """Compare-and-set the status column only."""
        now = utc_now()
        values: dict[str, Any] = {"status": new.value, "updated_at": now}
        if new.is_terminal:
            values["completed_at"] = now
        return await self._guarded_update(job_id, values, expected)

    async def _get_model(self, job_id: str) -> Any:
        return await self.session.get(self.model, job_id, populate_existing=True)


class ImportJobRepository(_JobRepositoryMixin, IImportJobRepository):
    """SQLAlchemy implementation of the import job repository."""

    model = PlaylistImportJobModel

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, job: ImportJob) -> None:
        """Persist a new job."""
        self.session.add(PlaylistImportJobModel(id=job.id, **self._values(job)))
        await self.session.flush()

    async def get_by_id(self, job_id: str) -> ImportJob | None:
        """Get a job by id."""
        model = await self._get_model(job_id)
        return self._model_to_entity(model) if model else None

    async def update(self, job: ImportJob, expected_status: JobStatus | None = None) -> bool:
        """Persist the full job state, optionally guarded by status."""
        return await self._guarded_update(job.id, self._values(job), expected_status)

    async def list_by_owner(self, owner_id: str, limit: int = 50) -> list[ImportJob]:
        """Most recent jobs first."""
        stmt = (
            select(PlaylistImportJobModel)
            .where(PlaylistImportJobModel.owner_id == owner_id)
            .order_by(PlaylistImportJobModel.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    @staticmethod
    def _values(job: ImportJob) -> dict[str, Any]:
        return {
            "owner_id": job.owner_id,
            "format": job.format.value,
            "target_platform": job.target_platform.value,
            "playlist_id": job.playlist_id,
            "playlist_name": job.playlist_name,
            "playlist_description": job.playlist_description,
            "original_filename": job.original_filename,
            "status": job.status.value,
            "total_songs": job.total_songs,
            "processed_songs": job.processed_songs,
            "matched_songs": job.matched_songs,
            "unmatched_songs": job.unmatched_songs,
            "pending_review_songs": job.pending_review_songs,
            "added_songs": job.added_songs,
            "duplicate_songs": job.duplicate_songs,
            "match_results": [r.to_dict() if r else None for r in job.match_results],
            "warnings": list(job.warnings),
            "options": dict(job.options),
            "download_job_id": job.download_job_id,
            "error_message": job.error_message,
            "error_details": job.error_details,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }

    @staticmethod
    def _model_to_entity(model: PlaylistImportJobModel) -> ImportJob:
        results = [SongMatchResult.from_dict(r) if r else None for r in model.match_results]
        job = ImportJob(
            id=model.id,
            owner_id=model.owner_id,
            format=PlaylistFormat(model.format),
            target_platform=PlaylistPlatform(model.target_platform),
            playlist_name=model.playlist_name,
            status=JobStatus(model.status),
            playlist_id=model.playlist_id,
            playlist_description=model.playlist_description,
            original_filename=model.original_filename,
            total_songs=model.total_songs,
            added_songs=model.added_songs,
            duplicate_songs=model.duplicate_songs,
            match_results=results,
            warnings=list(model.warnings or []),
            options=dict(model.options or {}),
            download_job_id=model.download_job_id,
            error_message=model.error_message,
            error_details=model.error_details,
            started_at=ensure_utc_aware(model.started_at),
            completed_at=ensure_utc_aware(model.completed_at),
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )
        # counters are derived from the stored results, never trusted as-is
        job.refresh_counters()
        job.updated_at = ensure_utc_aware(model.updated_at)
        return job


class ExportJobRepository(_JobRepositoryMixin, IExportJobRepository):
    """SQLAlchemy implementation of the export job repository."""

    model = PlaylistExportJobModel

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, job: ExportJob) -> None:
        """Persist a new job."""
        self.session.add(PlaylistExportJobModel(id=job.id, **self._values(job)))
        await self.session.flush()

    async def get_by_id(self, job_id: str) -> ExportJob | None:
        """Get a job by id."""
        model = await self._get_model(job_id)
        if model is None:
            return None
        return ExportJob(
            id=model.id,
            owner_id=model.owner_id,
            playlist_id=model.playlist_id,
            format=PlaylistFormat(model.format),
            status=JobStatus(model.status),
            options=dict(model.options or {}),
            exported_data=model.exported_data,
            filename=model.filename,
            song_count=model.song_count,
            enriched_songs=model.enriched_songs,
            error_message=model.error_message,
            started_at=ensure_utc_aware(model.started_at),
            completed_at=ensure_utc_aware(model.completed_at),
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )

    async def update(self, job: ExportJob, expected_status: JobStatus | None = None) -> bool:
        """Persist the full job state, optionally guarded by status."""
        return await self._guarded_update(job.id, self._values(job), expected_status)

    @staticmethod
    def _values(job: ExportJob) -> dict[str, Any]:
        return {
            "owner_id": job.owner_id,
            "playlist_id": job.playlist_id,
            "format": job.format.value,
            "status": job.status.value,
            "options": dict(job.options),
            "exported_data": job.exported_data,
            "filename": job.filename,
            "song_count": job.song_count,
            "enriched_songs": job.enriched_songs,
            "error_message": job.error_message,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }


class DownloadJobRepository(_JobRepositoryMixin, IDownloadJobRepository):
    """SQLAlchemy implementation of the download job repository."""

    model = PlaylistDownloadJobModel

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, job: DownloadJob) -> None:
        """Persist a new job."""
        self.session.add(PlaylistDownloadJobModel(id=job.id, **self._values(job)))
        await self.session.flush()

    async def get_by_id(self, job_id: str) -> DownloadJob | None:
        """Get a job by id."""
        model = await self._get_model(job_id)
        return self._model_to_entity(model) if model else None

    async def update(self, job: DownloadJob, expected_status: JobStatus | None = None) -> bool:
        """Persist the full job state, optionally guarded by status."""
        return await self._guarded_update(job.id, self._values(job), expected_status)

    async def list_active(self, owner_id: str | None = None) -> list[DownloadJob]:
        """Jobs still in PENDING or PROCESSING, oldest first."""
        stmt = select(PlaylistDownloadJobModel).where(
            PlaylistDownloadJobModel.status.in_(
                [JobStatus.PENDING.value, JobStatus.PROCESSING.value]
            )
        )
        if owner_id is not None:
            stmt = stmt.where(PlaylistDownloadJobModel.owner_id == owner_id)
        result = await self.session.execute(stmt.order_by(PlaylistDownloadJobModel.created_at))
        return [self._model_to_entity(m) for m in result.scalars().all()]

    @staticmethod
    def _values(job: DownloadJob) -> dict[str, Any]:
        return {
            "owner_id": job.owner_id,
            "service": job.service.value,
            "status": job.status.value,
            "download_queue": [item.to_dict() for item in job.download_queue],
            "total_items": job.total_items,
            "completed_items": job.completed_items,
            "failed_items": job.failed_items,
            "pending_organization": (
                job.pending_organization.to_dict() if job.pending_organization else None
            ),
            "import_job_id": job.import_job_id,
            "playlist_id": job.playlist_id,
            "error_message": job.error_message,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }

    @staticmethod
    def _model_to_entity(model: PlaylistDownloadJobModel) -> DownloadJob:
        job = DownloadJob(
            id=model.id,
            owner_id=model.owner_id,
            service=DownloadService(model.service),
            status=JobStatus(model.status),
            download_queue=[DownloadQueueItem.from_dict(i) for i in model.download_queue],
            pending_organization=(
                PendingOrganization.from_dict(model.pending_organization)
                if model.pending_organization
                else None
            ),
            import_job_id=model.import_job_id,
            playlist_id=model.playlist_id,
            error_message=model.error_message,
            started_at=ensure_utc_aware(model.started_at),
            completed_at=ensure_utc_aware(model.completed_at),
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )
        job.updated_at = ensure_utc_aware(model.updated_at)
        return job
