"""Export job controller - stored playlist to rendered text.

Export never fails because the catalog is down. Live metadata from the local
catalog is a bonus; the denormalized "Artist - Title" string on each playlist
entry is always enough to render something.
"""

import logging
import uuid
from dataclasses import asdict, dataclass

from playbridge.application.codecs import (
    RenderOptions,
    generate_export_filename,
    get_mime_type,
    render_playlist,
)
from playbridge.application.codecs.base import UNKNOWN_ARTIST, split_artist_title
from playbridge.application.services.unit_of_work import (
    Repositories,
    SessionScope,
    transaction,
)
from playbridge.domain.entities import (
    ExportJob,
    JobStatus,
    Playlist,
    PlaylistEntry,
    PlaylistFormat,
    PlaylistPlatform,
    Song,
)
from playbridge.domain.exceptions import (
    DomainException,
    EntityNotFoundException,
    InvalidStateException,
)
from playbridge.infrastructure.observability import job_context
from playbridge.infrastructure.observability.log_messages import LogMessages
from playbridge.infrastructure.providers.registry import CatalogAdapterRegistry

logger = logging.getLogger(__name__)


@dataclass
class ExportOptions:
    """Caller options for export_playlist."""

    include_metadata: bool = True
    include_platform_ids: bool = False
    base_path: str | None = None
    enrich: bool = True


@dataclass(frozen=True)
class ExportDownload:
    """Previously rendered export, ready to serve."""

    data: str
    filename: str
    mime_type: str


def song_from_entry(entry: PlaylistEntry) -> Song:
    """Rebuild a song from the denormalized playlist entry alone."""
    parts = split_artist_title(entry.song_artist_title)
    artist, title = parts if parts else (UNKNOWN_ARTIST, entry.song_artist_title)
    return Song(
        title=title,
        artist=artist,
        platform=entry.platform,
        platform_id=entry.song_id,
    )


class ExportService:
    """Renders stored playlists and keeps the output on an ExportJob."""

    def __init__(
        self, session_scope: SessionScope, adapter_registry: CatalogAdapterRegistry
    ) -> None:
        self._session_scope = session_scope
        self._registry = adapter_registry

    async def export_playlist(
        self,
        owner_id: str,
        playlist_id: str,
        playlist_format: PlaylistFormat | str,
        options: ExportOptions | None = None,
    ) -> ExportJob:
        """Render a stored playlist and persist the output on a new job."""
        options = options or ExportOptions()
        playlist_format = PlaylistFormat(playlist_format)

        async with transaction(self._session_scope) as repos:
            stored = await repos.playlists.get_by_id(playlist_id)
            if stored is None or stored.owner_id != owner_id:
                raise EntityNotFoundException("Playlist", playlist_id)
            entries = await repos.playlists.list_songs(playlist_id)

            job = ExportJob(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                playlist_id=playlist_id,
                format=playlist_format,
                options=asdict(options),
            )
            job.start()
            await repos.export_jobs.add(job)

        with job_context(job.id):
            songs, enriched = await self._resolve_songs(entries, options.enrich)
            playlist = Playlist(
                name=stored.name,
                description=stored.description,
                creator=owner_id,
                songs=songs,
            )
            render_options = RenderOptions(
                include_metadata=options.include_metadata,
                include_platform_ids=options.include_platform_ids,
                base_path=options.base_path,
            )
            try:
                data = render_playlist(playlist, playlist_format, render_options)
            except DomainException as e:
                logger.error(LogMessages.job_failed("export", job.id, e.message))
                job.fail(e.message)
                async with transaction(self._session_scope) as repos:
                    await repos.export_jobs.update(job, expected_status=JobStatus.PROCESSING)
                raise

            job.enriched_songs = enriched
            job.complete(data, generate_export_filename(stored.name, playlist_format), len(songs))
            async with transaction(self._session_scope) as repos:
                await repos.export_jobs.update(job, expected_status=JobStatus.PROCESSING)

            logger.info(
                LogMessages.job_transition(
                    "export", job.id, JobStatus.PROCESSING.value, job.status.value
                )
            )
        return job

    async def _resolve_songs(
        self, entries: list[PlaylistEntry], enrich: bool
    ) -> tuple[list[Song], int]:
        """Songs in playlist order, live metadata where the catalog has it."""
        live: dict[str, Song] = {}
        adapter = self._registry.local_adapter() if enrich else None
        local_ids = [e.song_id for e in entries if e.platform == PlaylistPlatform.NAVIDROME]
        if adapter is not None and local_ids:
            try:
                live = {
                    song.platform_id: song
                    for song in await adapter.get_by_ids(local_ids)
                    if song.platform_id
                }
            except DomainException as e:
                logger.warning(
                    LogMessages.adapter_failed(
                        adapter.platform.value,
                        "export enrichment",
                        e.message,
                        hint="Exporting the stored song names instead",
                    )
                )

        songs: list[Song] = []
        enriched = 0
        for entry in entries:
            song = live.get(entry.song_id) if entry.platform == PlaylistPlatform.NAVIDROME else None
            if song is not None:
                enriched += 1
                songs.append(song)
            else:
                songs.append(song_from_entry(entry))
        return songs, enriched

    async def get_export_job(self, owner_id: str, export_id: str) -> ExportJob:
        async with transaction(self._session_scope) as repos:
            return await self._get_owned_job(repos, owner_id, export_id)

    async def download_export(self, owner_id: str, export_id: str) -> ExportDownload:
        """Stored output of a completed export, never re-rendered."""
        job = await self.get_export_job(owner_id, export_id)
        if job.status != JobStatus.COMPLETED or job.exported_data is None:
            raise InvalidStateException(
                f"Export {export_id} is not ready (status {job.status.value})"
            )
        return ExportDownload(
            data=job.exported_data,
            filename=job.filename or generate_export_filename("playlist", job.format),
            mime_type=get_mime_type(job.format),
        )

    @staticmethod
    async def _get_owned_job(repos: Repositories, owner_id: str, export_id: str) -> ExportJob:
        job = await repos.export_jobs.get_by_id(export_id)
        if job is None or job.owner_id != owner_id:
            raise EntityNotFoundException("ExportJob", export_id)
        return job
