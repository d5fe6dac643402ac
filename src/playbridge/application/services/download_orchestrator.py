"""Download orchestrator - routes unresolved songs to acquisition back-ends.

Hey future me - routing is PER ITEM. A batch coming out of an import can send
album tracks to the catalog manager (Lidarr) and loose singles to the
single-track fetcher (MeTube) at the same time. Each item records where it
went, the job only carries the batch's default service.

Back-end failures never escape a batch: _submit() catches them and fails
that one item, siblings in the same chunk carry on. The job itself only ends
FAILED when every item failed (DownloadJob.settle()).
"""

import asyncio
import logging
import posixpath
import uuid
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from rapidfuzz import fuzz

from playbridge.application.services.job_locks import JobLockRegistry
from playbridge.application.services.unit_of_work import (
    Repositories,
    SessionScope,
    transaction,
)
from playbridge.domain.entities import (
    JobStatus,
    MatchStatus,
    PlaylistPlatform,
    Song,
    SongMatchResult,
)
from playbridge.domain.entities.download_queue import (
    DownloadJob,
    DownloadPreferences,
    DownloadQueueItem,
    DownloadScope,
    DownloadService,
    OrganizationFile,
    PendingOrganization,
    QueueItemStatus,
)
from playbridge.domain.exceptions import (
    ConfigurationError,
    DomainException,
    EntityNotFoundException,
    InvalidStateException,
)
from playbridge.domain.ports import ICatalogAdapter
from playbridge.domain.ports.download_backend import (
    BackendQueueEntry,
    CatalogArtist,
    CatalogDownloadRequest,
    ICatalogManagerBackend,
    ISingleTrackFetcherBackend,
)
from playbridge.domain.value_objects import Result
from playbridge.domain.value_objects.text_normalization import (
    normalize_artist,
    normalize_string,
    normalize_title,
    sanitize_filename,
)
from playbridge.infrastructure.observability import job_context
from playbridge.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

ARTIST_MATCH_THRESHOLD = 85.0
TITLE_MATCH_THRESHOLD = 85.0
SINGLES_FOLDER = "Singles"
DEFAULT_EXTENSION = ".mp3"

_YOUTUBE_HOSTS = ("youtube.com/", "youtu.be/")


@dataclass
class QueueStatus:
    """Merged live view of both back-ends."""

    entries: list[BackendQueueEntry] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class DownloadReport:
    """Aggregate counts by back-end plus the items needing a human."""

    total: int = 0
    by_service: dict[str, dict[str, int]] = field(default_factory=dict)
    needs_manual_organization: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def youtube_watch_url(video_id: str, music: bool = False) -> str:
    """Watch URL for a YouTube (Music) video id."""
    host = "music.youtube.com" if music else "www.youtube.com"
    return f"https://{host}/watch?v={video_id}"


def generate_report(items: Sequence[DownloadQueueItem]) -> DownloadReport:
    """Counts by back-end and status, manual-organization and failure lists."""
    report = DownloadReport(total=len(items))
    for item in items:
        counts = report.by_service.setdefault(
            item.service.value, {status.value: 0 for status in QueueItemStatus}
        )
        counts[item.status.value] += 1
        if item.needs_manual_organization and item.status == QueueItemStatus.COMPLETED:
            report.needs_manual_organization.append(item.display_name)
        if item.status == QueueItemStatus.FAILED:
            report.failed.append(f"{item.display_name}: {item.error or 'unknown error'}")
    return report


def build_organization_plan(
    items: Sequence[DownloadQueueItem], base_path: str
) -> list[OrganizationFile]:
    """Where each manually-organized download should go.

    ``{base}/{artist}/{album or Singles}/{artist} - {title}{ext}``, keeping the
    downloaded file's extension (mp3 when it has none).
    """
    files: list[OrganizationFile] = []
    for item in items:
        if not (
            item.needs_manual_organization
            and item.status == QueueItemStatus.COMPLETED
            and item.downloaded_path
        ):
            continue
        extension = posixpath.splitext(item.downloaded_path)[1] or DEFAULT_EXTENSION
        artist = sanitize_filename(item.artist)
        folder = sanitize_filename(item.album) if item.album else SINGLES_FOLDER
        name = sanitize_filename(f"{item.artist} - {item.title}")
        files.append(
            OrganizationFile(
                path=item.downloaded_path,
                suggested_path=posixpath.join(base_path, artist, folder, name + extension),
                title=item.title,
                artist=item.artist,
            )
        )
    return files


class DownloadOrchestrator:
    """Queues, tracks and cancels downloads across both back-ends."""

    def __init__(
        self,
        session_scope: SessionScope,
        catalog_backend: ICatalogManagerBackend | None,
        fetcher_backend: ISingleTrackFetcherBackend | None,
        locks: JobLockRegistry,
        preferences: DownloadPreferences | None = None,
        local_catalog: ICatalogAdapter | None = None,
        organize_base_path: str = "/music",
    ) -> None:
        self._session_scope = session_scope
        self._catalog = catalog_backend
        self._fetcher = fetcher_backend
        self._locks = locks
        self._preferences = preferences or DownloadPreferences()
        self._local_catalog = local_catalog
        self._organize_base_path = organize_base_path

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _backend_for(
        self, service: DownloadService
    ) -> ICatalogManagerBackend | ISingleTrackFetcherBackend | None:
        return self._catalog if service == DownloadService.CATALOG_MANAGER else self._fetcher

    def _is_available(self, service: DownloadService) -> bool:
        backend = self._backend_for(service)
        return backend is not None and backend.is_configured()

    def choose_service(
        self,
        song: Song,
        preferences: DownloadPreferences | None = None,
        scope: DownloadScope | None = None,
    ) -> DownloadService:
        """Pick the back-end for one song.

        Raises:
            ConfigurationError: neither back-end is configured
        """
        prefs = preferences or self._preferences
        scope = scope or (DownloadScope.ALBUM if song.album else DownloadScope.TRACK)

        if prefs.prefer_catalog_for_albums and scope in (DownloadScope.ALBUM, DownloadScope.ARTIST):
            wanted = DownloadService.CATALOG_MANAGER
        elif prefs.prefer_fetcher_for_singles and scope == DownloadScope.TRACK:
            wanted = DownloadService.SINGLE_TRACK_FETCHER
        else:
            wanted = prefs.default_service

        if self._is_available(wanted):
            return wanted
        fallback = (
            DownloadService.SINGLE_TRACK_FETCHER
            if wanted == DownloadService.CATALOG_MANAGER
            else DownloadService.CATALOG_MANAGER
        )
        if self._is_available(fallback):
            logger.debug("%s not configured, routing to %s", wanted.value, fallback.value)
            return fallback
        raise ConfigurationError("No download back-end is configured")

    def _build_item(
        self,
        song: Song,
        prefs: DownloadPreferences,
        scope: DownloadScope | None,
        video_id: str | None,
        service: DownloadService | None = None,
    ) -> DownloadQueueItem:
        try:
            chosen = service or self.choose_service(song, prefs, scope)
        except ConfigurationError as e:
            item = DownloadQueueItem.from_song(song, prefs.default_service, video_id=video_id)
            item.fail(e.message)
            return item
        return DownloadQueueItem.from_song(song, chosen, video_id=video_id)

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    async def queue_single(
        self,
        song: Song,
        service: DownloadService | None = None,
        preferences: DownloadPreferences | None = None,
        scope: DownloadScope | None = None,
        video_id: str | None = None,
    ) -> DownloadQueueItem:
        """Submit one song right away, no job is persisted.

        The returned item is DOWNLOADING when the back-end accepted it and
        FAILED (with ``error``) when it did not.
        """
        prefs = preferences or self._preferences
        item = self._build_item(song, prefs, scope, video_id, service)
        if item.status == QueueItemStatus.QUEUED:
            await self._submit(item, prefs, scope)
        return item

    async def queue_batch(
        self,
        owner_id: str,
        songs: Sequence[Song],
        match_results: Sequence[SongMatchResult | None] | None = None,
        preferences: DownloadPreferences | None = None,
        scope: DownloadScope | None = None,
        import_job_id: str | None = None,
        playlist_id: str | None = None,
    ) -> DownloadJob:
        """Create a DownloadJob for ``songs`` and submit every item.

        ``match_results`` (same order as ``songs``) lends a YouTube Music
        video id to the fetcher when one of the candidates has it.
        """
        prefs = preferences or self._preferences
        items = [
            self._build_item(song, prefs, scope, self._video_id_for(song, index, match_results))
            for index, song in enumerate(songs)
        ]
        job = DownloadJob(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            service=prefs.default_service,
            download_queue=items,
            import_job_id=import_job_id,
            playlist_id=playlist_id,
        )
        job.start()
        async with transaction(self._session_scope) as repos:
            await repos.download_jobs.add(job)

        async with self._locks.lock(job.id):
            with job_context(job.id):
                await self._submit_all(job.download_queue, prefs, scope)
                job.settle()
                async with transaction(self._session_scope) as repos:
                    await repos.download_jobs.update(job, expected_status=JobStatus.PROCESSING)

                by_service = Counter(
                    item.service.value
                    for item in job.download_queue
                    if item.status != QueueItemStatus.FAILED
                )
                logger.info(LogMessages.batch_queued(job.id, dict(by_service), job.failed_items))
                if job.status != JobStatus.PROCESSING:
                    logger.info(
                        LogMessages.job_transition(
                            "download", job.id, JobStatus.PROCESSING.value, job.status.value
                        )
                    )
        return job

    @staticmethod
    def _video_id_for(
        song: Song, index: int, match_results: Sequence[SongMatchResult | None] | None
    ) -> str | None:
        if song.platform == PlaylistPlatform.YOUTUBE_MUSIC and song.platform_id:
            return song.platform_id
        if not match_results or index >= len(match_results):
            return None
        result = match_results[index]
        if result is None:
            return None
        for candidate in result.matches:
            if candidate.platform == PlaylistPlatform.YOUTUBE_MUSIC:
                return candidate.platform_id
        return None

    async def _submit_all(
        self,
        items: Sequence[DownloadQueueItem],
        prefs: DownloadPreferences,
        scope: DownloadScope | None,
    ) -> None:
        """Submit queued items in back-end sized chunks."""
        for service in DownloadService:
            backend = self._backend_for(service)
            pending = [
                item
                for item in items
                if item.service == service and item.status == QueueItemStatus.QUEUED
            ]
            if not pending:
                continue
            size = backend.batch_size if backend is not None else len(pending)
            for start in range(0, len(pending), size):
                chunk = pending[start : start + size]
                await asyncio.gather(*(self._submit(item, prefs, scope) for item in chunk))

    async def _submit(
        self,
        item: DownloadQueueItem,
        prefs: DownloadPreferences,
        scope: DownloadScope | None,
    ) -> None:
        """Submit one item; any failure lands on the item, never on siblings."""
        try:
            if item.service == DownloadService.CATALOG_MANAGER:
                job_id = await self._submit_to_catalog(item, scope)
            else:
                job_id = await self._submit_to_fetcher(item, prefs)
        except DomainException as e:
            logger.warning(LogMessages.backend_failed(item.service.value, item.display_name, e.message))
            item.fail(e.message)
            return
        except Exception as e:
            logger.exception("Unexpected error submitting %s", item.display_name)
            item.fail(f"Unexpected error: {e}")
            return

        if job_id is not None:
            item.mark_submitted(job_id)

    def _require_catalog(self) -> ICatalogManagerBackend:
        if self._catalog is None or not self._catalog.is_configured():
            raise ConfigurationError(
                f"{DownloadService.CATALOG_MANAGER.value} back-end is not configured"
            )
        return self._catalog

    def _require_fetcher(self) -> ISingleTrackFetcherBackend:
        if self._fetcher is None or not self._fetcher.is_configured():
            raise ConfigurationError(
                f"{DownloadService.SINGLE_TRACK_FETCHER.value} back-end is not configured"
            )
        return self._fetcher

    def _require(self, service: DownloadService) -> ICatalogManagerBackend | ISingleTrackFetcherBackend:
        if service == DownloadService.CATALOG_MANAGER:
            return self._require_catalog()
        return self._require_fetcher()

    async def _submit_to_catalog(
        self, item: DownloadQueueItem, scope: DownloadScope | None
    ) -> str | None:
        backend = self._require_catalog()

        artist = self._best_artist(item.artist, await backend.search_artist(item.artist))
        if artist is None:
            # terminal, the catalog manager has no identity to monitor
            item.fail(f"Artist not found: {item.artist}")
            return None

        request = CatalogDownloadRequest(
            artist=artist,
            album_title=None if scope == DownloadScope.ARTIST else item.album,
        )
        return await backend.enqueue_download(request)

    @staticmethod
    def _best_artist(name: str, candidates: list[CatalogArtist]) -> CatalogArtist | None:
        wanted = normalize_artist(name)
        best: CatalogArtist | None = None
        best_score = 0.0
        for candidate in candidates:
            score = fuzz.ratio(wanted, normalize_artist(candidate.name))
            if score > best_score:
                best, best_score = candidate, score
        return best if best_score >= ARTIST_MATCH_THRESHOLD else None

    async def _submit_to_fetcher(
        self, item: DownloadQueueItem, prefs: DownloadPreferences
    ) -> str:
        backend = self._require_fetcher()
        return await backend.enqueue(
            self._fetch_source(item), prefs.fetcher_format, prefs.fetcher_quality
        )

    @staticmethod
    def _fetch_source(item: DownloadQueueItem) -> str:
        """Most specific thing the fetcher can work with."""
        if item.video_id:
            return youtube_watch_url(item.video_id)
        if item.platform == PlaylistPlatform.YOUTUBE_MUSIC and item.platform_id:
            return youtube_watch_url(item.platform_id, music=True)
        if item.url and any(host in item.url for host in _YOUTUBE_HOSTS):
            return item.url
        return item.display_name

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_download_job(self, owner_id: str, job_id: str) -> DownloadJob:
        """Load an owner's download job."""
        async with transaction(self._session_scope) as repos:
            return await self._get_owned_job(repos, owner_id, job_id)

    async def list_active_jobs(self, owner_id: str) -> list[DownloadJob]:
        """Download jobs still in flight."""
        async with transaction(self._session_scope) as repos:
            return await repos.download_jobs.list_active(owner_id)

    async def get_queue_status(self) -> QueueStatus:
        """Live queue and history of both back-ends in one view.

        A back-end that errors is reported in ``errors`` and the other one is
        still returned.
        """
        status = QueueStatus()
        for service in DownloadService:
            if not self._is_available(service):
                continue
            try:
                status.entries.extend(await self._backend_entries(service))
            except DomainException as e:
                logger.warning(LogMessages.backend_failed(service.value, "queue status", e.message))
                status.errors[service.value] = e.message
        return status

    async def _backend_entries(self, service: DownloadService) -> list[BackendQueueEntry]:
        """Finished entries first, then the live queue."""
        if service == DownloadService.CATALOG_MANAGER:
            catalog = self._require_catalog()
            return await catalog.get_history() + await catalog.get_queue()
        fetcher = self._require_fetcher()
        return await fetcher.get_done() + await fetcher.get_queue()

    async def sync_job(self, owner_id: str, job_id: str) -> DownloadJob:
        """Pull back-end state into a job's items and settle the job."""
        async with self._locks.lock(job_id):
            with job_context(job_id):
                async with transaction(self._session_scope) as repos:
                    job = await self._get_owned_job(repos, owner_id, job_id)
                if job.is_finished:
                    return job

                entries: dict[DownloadService, list[BackendQueueEntry]] = {}
                for service in DownloadService:
                    if not self._is_available(service):
                        continue
                    try:
                        entries[service] = await self._backend_entries(service)
                    except DomainException as e:
                        logger.warning(LogMessages.backend_failed(service.value, "sync", e.message))

                claimed: set[int] = set()
                for item in job.download_queue:
                    if item.is_finished or item.service not in entries:
                        continue
                    entry = self._find_entry(item, entries[item.service], claimed)
                    if entry is not None:
                        await self._apply_entry(item, entry)

                plan = build_organization_plan(job.download_queue, self._organize_base_path)
                if plan:
                    organized = job.pending_organization.organized if job.pending_organization else False
                    job.pending_organization = PendingOrganization(files=plan, organized=organized)

                job.settle()
                async with transaction(self._session_scope) as repos:
                    saved = await repos.download_jobs.update(job, expected_status=JobStatus.PROCESSING)
                    if not saved:
                        return await self._get_owned_job(repos, owner_id, job_id)
                if job.is_finished:
                    logger.info(
                        LogMessages.job_transition(
                            "download", job.id, JobStatus.PROCESSING.value, job.status.value
                        )
                    )
                return job

    @staticmethod
    def _find_entry(
        item: DownloadQueueItem, entries: list[BackendQueueEntry], claimed: set[int]
    ) -> BackendQueueEntry | None:
        for position, entry in enumerate(entries):
            if item.service_job_id and (
                entry.service_job_id == item.service_job_id
                or item.service_job_id in entry.related_job_ids
            ):
                claimed.add(position)
                return entry

        # The fetcher resolves ytsearch terms to a video URL, so the id we
        # got back on submit may never show up again. Fall back to the title.
        if item.service != DownloadService.SINGLE_TRACK_FETCHER:
            return None
        wanted = normalize_string(item.display_name)
        for position, entry in enumerate(entries):
            if position in claimed:
                continue
            score = fuzz.token_set_ratio(wanted, normalize_string(entry.title))
            if score >= TITLE_MATCH_THRESHOLD:
                claimed.add(position)
                return entry
        return None

    async def _apply_entry(self, item: DownloadQueueItem, entry: BackendQueueEntry) -> None:
        if entry.status == QueueItemStatus.COMPLETED:
            if item.service == DownloadService.CATALOG_MANAGER and not await self._in_library(item):
                return
            item.complete(entry.path)
        elif entry.status == QueueItemStatus.FAILED:
            item.fail(entry.error or "Download failed")
        elif entry.progress is not None:
            item.update_progress(min(max(entry.progress, 0.0), 100.0))

    async def _in_library(self, item: DownloadQueueItem) -> bool:
        """Catalog-manager imports count once the media server can see them."""
        if self._local_catalog is None:
            logger.debug("No local catalog wired, accepting %s unverified", item.display_name)
            return True
        try:
            hits = await self._local_catalog.search(f"{item.artist} {item.title}", 0, 5)
        except DomainException as e:
            logger.warning(
                LogMessages.backend_failed("local catalog", item.display_name, e.message)
            )
            return False
        wanted = normalize_title(item.title)
        return any(fuzz.ratio(wanted, normalize_title(hit.title)) >= TITLE_MATCH_THRESHOLD for hit in hits)

    # ------------------------------------------------------------------
    # Organization and cancellation
    # ------------------------------------------------------------------

    async def mark_organized(self, owner_id: str, job_id: str) -> Result[DownloadJob]:
        """Flag a job's manually-organized files as handled."""
        async with self._locks.lock(job_id):
            try:
                async with transaction(self._session_scope) as repos:
                    job = await self._get_owned_job(repos, owner_id, job_id)
                    job.mark_organized()
                    await repos.download_jobs.update(job)
            except (EntityNotFoundException, InvalidStateException) as e:
                return Result.from_exception(e)
        return Result.success(job)

    async def cancel(self, service: DownloadService, service_job_id: str) -> Result[bool]:
        """Best-effort cancel on the owning back-end.

        ``False`` means there was nothing left to cancel, which is fine.
        """
        try:
            backend = self._require(service)
            return Result.success(await backend.cancel(service_job_id))
        except DomainException as e:
            logger.warning(LogMessages.backend_failed(service.value, service_job_id, e.message))
            return Result.from_exception(e)

    async def cancel_item(self, owner_id: str, job_id: str, item_id: str) -> Result[bool]:
        """Cancel one queue item of a job."""
        async with self._locks.lock(job_id):
            try:
                async with transaction(self._session_scope) as repos:
                    job = await self._get_owned_job(repos, owner_id, job_id)
            except EntityNotFoundException as e:
                return Result.from_exception(e)

            item = job.find_item(item_id)
            if item is None:
                return Result.from_exception(EntityNotFoundException("DownloadQueueItem", item_id))
            if item.is_finished or not item.service_job_id:
                return Result.success(False)

            result = await self.cancel(item.service, item.service_job_id)
            if not result.ok or not result.value:
                return result

            item.fail("Cancelled by user")
            job.settle()
            async with transaction(self._session_scope) as repos:
                await repos.download_jobs.update(job, expected_status=JobStatus.PROCESSING)
            return result

    async def cancel_job(self, owner_id: str, job_id: str) -> DownloadJob:
        """Cancel a whole batch, best-effort on every in-flight item."""
        async with self._locks.lock(job_id):
            async with transaction(self._session_scope) as repos:
                job = await self._get_owned_job(repos, owner_id, job_id)
            if job.status == JobStatus.CANCELLED:
                return job
            if job.is_finished:
                raise InvalidStateException(
                    f"Cannot cancel download job in status {job.status.value}"
                )

            for item in job.download_queue:
                if not item.is_finished and item.service_job_id:
                    await self.cancel(item.service, item.service_job_id)

            previous = job.status
            job.cancel()
            async with transaction(self._session_scope) as repos:
                if not await repos.download_jobs.update(job, expected_status=previous):
                    raise InvalidStateException(f"Download job {job_id} changed state concurrently")
            logger.info(
                LogMessages.job_transition("download", job.id, previous.value, job.status.value)
            )
            return job

    @staticmethod
    async def _get_owned_job(repos: Repositories, owner_id: str, job_id: str) -> DownloadJob:
        job = await repos.download_jobs.get_by_id(job_id)
        if job is None or job.owner_id != owner_id:
            raise EntityNotFoundException("DownloadJob", job_id)
        return job


def unresolved_songs(results: Sequence[SongMatchResult | None]) -> list[tuple[Song, SongMatchResult]]:
    """Songs an import could not resolve (no match or skipped), in order."""
    return [
        (result.original_song, result)
        for result in results
        if result is not None and result.status in (MatchStatus.NO_MATCH, MatchStatus.SKIPPED)
    ]
