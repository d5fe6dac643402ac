"""Import job controller - parse, match, review, commit.

State machine (ImportJob):

    PENDING ──start──> PROCESSING ──┬──> COMPLETED   (nothing pending, or finalize_review)
                                    ├──> FAILED      (unrecoverable error, results kept)
                                    └──> CANCELLED   (cancel_import, results kept)

Hey future me - the match pass persists after EVERY song, not at the end.
Clients poll get_import_job while a 500 song playlist is being matched, and a
crash mid-pass must leave everything collected so far on disk. Every write is
a status-guarded UPDATE (expected PROCESSING), so a cancel that landed in the
meantime wins and the pass stops instead of resurrecting the job.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from playbridge.application.codecs import (
    ValidationReport,
    parse_playlist,
    validate_playlist_content,
)
from playbridge.application.services.download_orchestrator import (
    DownloadOrchestrator,
    unresolved_songs,
)
from playbridge.application.services.job_locks import JobLockRegistry
from playbridge.application.services.song_matcher import (
    MatchReport,
    SongMatcher,
    export_match_results_csv,
    generate_match_report,
)
from playbridge.application.services.unit_of_work import (
    Repositories,
    SessionScope,
    transaction,
)
from playbridge.domain.entities import (
    ImportJob,
    JobStatus,
    MatchCandidate,
    MatchStatus,
    PlaylistFormat,
    PlaylistPlatform,
    Song,
    SongMatchResult,
    StoredPlaylist,
)
from playbridge.domain.entities.download_queue import DownloadPreferences
from playbridge.domain.exceptions import (
    DomainException,
    DuplicateEntityException,
    EntityNotFoundException,
    InvalidStateException,
    PersistenceError,
    ValidationException,
)
from playbridge.domain.ports import ICatalogAdapter
from playbridge.infrastructure.observability import job_context
from playbridge.infrastructure.observability.log_messages import LogMessages
from playbridge.infrastructure.providers.registry import CatalogAdapterRegistry

logger = logging.getLogger(__name__)

AUTO_MATCH_DISABLED = "Automatic matching disabled"


class JobRunner(Protocol):
    """Anything that can run a job coroutine in the background."""

    def submit(self, job_id: str, factory: Callable[[], Awaitable[object]]) -> None: ...


@dataclass
class ImportOptions:
    """Caller options for start_import."""

    playlist_format: PlaylistFormat | str | None = None
    filename: str | None = None
    target_platform: PlaylistPlatform = PlaylistPlatform.NAVIDROME
    # platforms searched by the matcher, defaults to [target_platform]
    search_platforms: list[PlaylistPlatform] | None = None
    playlist_name: str | None = None
    playlist_id: str | None = None  # append to an existing playlist
    playlist_description: str | None = None
    auto_match: bool = True
    credential: str | None = field(default=None, repr=False)
    queue_downloads: bool = False
    download_preferences: DownloadPreferences | None = None

    @property
    def platforms(self) -> list[PlaylistPlatform]:
        return list(self.search_platforms or [self.target_platform])


@dataclass(frozen=True)
class ReviewDecision:
    """One song's review outcome. No platform_id means skip."""

    index: int
    platform_id: str | None = None
    platform: PlaylistPlatform | None = None


@dataclass
class FinalizeReviewResult:
    """What a (possibly repeated) finalize_review did."""

    job: ImportJob
    playlist_id: str | None
    added_songs: int
    duplicate_songs: int
    download_job_id: str | None = None


class ImportService:
    """Owns ImportJob from parse to playlist commit."""

    def __init__(
        self,
        session_scope: SessionScope,
        adapter_registry: CatalogAdapterRegistry,
        matcher: SongMatcher,
        locks: JobLockRegistry,
        download_orchestrator: DownloadOrchestrator | None = None,
        runner: JobRunner | None = None,
    ) -> None:
        self._session_scope = session_scope
        self._registry = adapter_registry
        self._matcher = matcher
        self._locks = locks
        self._downloads = download_orchestrator
        self._runner = runner

    def validate_import(
        self,
        content: str,
        playlist_format: PlaylistFormat | str | None = None,
        filename: str | None = None,
    ) -> ValidationReport:
        """Dry-run parse, never raises."""
        return validate_playlist_content(content, playlist_format, filename)

    async def start_import(
        self, owner_id: str, content: str, options: ImportOptions | None = None
    ) -> ImportJob:
        """Parse ``content``, create the job and run (or schedule) the match pass.

        Input problems raise before any job exists: unparseable text,
        unknown formats, a playlist name collision, an unknown target
        playlist, no usable catalog adapter.

        With a runner the job is returned right after creation (PROCESSING)
        and callers poll; without one the full pass runs inline.
        """
        options = options or ImportOptions()
        parsed = parse_playlist(content, options.playlist_format, options.filename)
        playlist = parsed.playlist
        name = (options.playlist_name or playlist.name).strip()
        if not name:
            raise ValidationException("Playlist name cannot be empty")

        adapters: list[ICatalogAdapter] = []
        if options.auto_match:
            adapters = self._registry.get_adapters(options.platforms, options.credential)

        async with transaction(self._session_scope) as repos:
            if options.playlist_id:
                target = await repos.playlists.get_by_id(options.playlist_id)
                if target is None or target.owner_id != owner_id:
                    raise EntityNotFoundException("Playlist", options.playlist_id)
                name = target.name
            elif await repos.playlists.get_by_name(owner_id, name) is not None:
                raise DuplicateEntityException("Playlist", name)

            job = ImportJob(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                format=parsed.format,
                target_platform=options.target_platform,
                playlist_name=name,
                playlist_id=options.playlist_id,
                playlist_description=options.playlist_description or playlist.description,
                original_filename=options.filename,
                total_songs=len(playlist.songs),
                warnings=list(parsed.warnings),
                options={
                    "queue_downloads": options.queue_downloads,
                    "auto_match": options.auto_match,
                    "search_platforms": [p.value for p in options.platforms],
                    "download_preferences": (
                        options.download_preferences.to_dict()
                        if options.download_preferences
                        else None
                    ),
                },
            )
            job.start()
            await repos.import_jobs.add(job)

        logger.info(
            LogMessages.job_transition(
                "import", job.id, JobStatus.PENDING.value, JobStatus.PROCESSING.value
            )
        )

        songs = list(playlist.songs)
        if self._runner is not None:
            self._runner.submit(job.id, lambda: self._run_match_pass(job, songs, adapters))
            return job
        return await self._run_match_pass(job, songs, adapters)

    async def _run_match_pass(
        self, job: ImportJob, songs: Sequence[Song], adapters: Sequence[ICatalogAdapter]
    ) -> ImportJob:
        async with self._locks.lock(job.id):
            with job_context(job.id):
                job = await self._match_songs(job, songs, adapters)
        if job.is_finished:
            self._locks.clear(job.id)
        return job

    async def _match_songs(
        self, job: ImportJob, songs: Sequence[Song], adapters: Sequence[ICatalogAdapter]
    ) -> ImportJob:
        write_lock = asyncio.Lock()

        def is_cancelled() -> bool:
            return self._locks.is_cancel_requested(job.id)

        async def record(index: int, result: SongMatchResult, song_warnings: bool) -> None:
            async with write_lock:
                if is_cancelled():
                    return
                job.record_result(index, result)
                if song_warnings:
                    job.add_song_warnings(index, result.warnings)
                async with transaction(self._session_scope) as repos:
                    saved = await repos.import_jobs.update(job, expected_status=JobStatus.PROCESSING)
                if not saved:
                    # moved under our feet (cancelled elsewhere), stop issuing calls
                    self._locks.request_cancel(job.id)

        async def on_result(index: int, result: SongMatchResult) -> None:
            await record(index, result, song_warnings=True)

        try:
            if adapters:
                await self._matcher.match_many(songs, adapters, on_result, is_cancelled)
            else:
                for index, song in enumerate(songs):
                    if is_cancelled():
                        break
                    await record(
                        index,
                        SongMatchResult(
                            original_song=song,
                            status=MatchStatus.NO_MATCH,
                            warnings=[AUTO_MATCH_DISABLED],
                        ),
                        song_warnings=False,
                    )
        except PersistenceError:
            raise
        except DomainException as e:
            return await self._fail_job(job, e.message, type(e).__name__)

        if is_cancelled():
            return await self._reload(job)

        # every song errored on every catalog, not a single answer came back
        failure = job.lookup_failure_summary()
        if failure is not None:
            return await self._fail_job(job, failure, "ExternalServiceError")

        logger.info(
            LogMessages.import_summary(
                job.id,
                job.total_songs,
                job.matched_songs,
                job.unmatched_songs,
                job.pending_review_songs,
            )
        )
        if job.pending_review_songs:
            logger.info(
                "Import job %s awaiting review of %d songs", job.id, job.pending_review_songs
            )
            return job

        if not await self._complete(job):
            return await self._reload(job)
        return job

    async def _fail_job(self, job: ImportJob, message: str, error_type: str) -> ImportJob:
        logger.error(LogMessages.job_failed("import", job.id, message))
        async with transaction(self._session_scope) as repos:
            current = await repos.import_jobs.get_by_id(job.id)
            if current is None or current.is_finished:
                return current or job
            current.fail(message, {"error_type": error_type})
            await repos.import_jobs.update(current, expected_status=JobStatus.PROCESSING)
        logger.info(
            LogMessages.job_transition(
                "import", job.id, JobStatus.PROCESSING.value, JobStatus.FAILED.value
            )
        )
        return current

    async def _reload(self, job: ImportJob) -> ImportJob:
        async with transaction(self._session_scope) as repos:
            stored = await repos.import_jobs.get_by_id(job.id)
        return stored or job

    # Listen up, the status flip and the playlist writes share ONE transaction.
    # If append_songs blows up the status update rolls back with it, the job
    # stays PROCESSING with every decision recorded and finalize_review can
    # simply be called again.
    async def _complete(self, job: ImportJob) -> bool:
        """Commit matched songs and mark the job COMPLETED.

        Returns False when the job was no longer PROCESSING in the database.
        """
        async with transaction(self._session_scope) as repos:
            job.complete()
            if not await repos.import_jobs.update(job, expected_status=JobStatus.PROCESSING):
                return False
            await self._commit_matched(repos, job)
            await repos.import_jobs.update(job)

        logger.info(
            LogMessages.job_transition(
                "import", job.id, JobStatus.PROCESSING.value, JobStatus.COMPLETED.value
            )
        )
        logger.info(
            "Import job %s committed %d songs to playlist %s (%d duplicates)",
            job.id,
            job.added_songs,
            job.playlist_id,
            job.duplicate_songs,
        )
        await self._queue_downloads(job)
        return True

    @staticmethod
    async def _commit_matched(repos: Repositories, job: ImportJob) -> None:
        songs = [
            song
            for result in job.completed_results()
            if (song := result.resolved_song()) is not None
        ]
        if job.playlist_id is None:
            if not songs:
                return
            playlist = StoredPlaylist(
                id=str(uuid.uuid4()),
                owner_id=job.owner_id,
                name=job.playlist_name,
                description=job.playlist_description,
            )
            await repos.playlists.add(playlist)
            job.playlist_id = playlist.id

        if songs:
            job.added_songs, job.duplicate_songs = await repos.playlists.append_songs(
                job.playlist_id, songs
            )

    async def _queue_downloads(self, job: ImportJob) -> None:
        if not job.options.get("queue_downloads"):
            return
        unresolved = unresolved_songs(job.match_results)
        if not unresolved:
            return

        if self._downloads is None:
            job.warnings.append("Download queueing is not configured")
        else:
            try:
                download_job = await self._downloads.queue_batch(
                    job.owner_id,
                    [song for song, _ in unresolved],
                    [result for _, result in unresolved],
                    DownloadPreferences.from_dict(job.options.get("download_preferences")),
                    import_job_id=job.id,
                    playlist_id=job.playlist_id,
                )
            except DomainException as e:
                logger.warning(LogMessages.backend_failed("downloads", job.id, e.message))
                job.warnings.append(f"Download queueing failed: {e.message}")
            else:
                job.download_job_id = download_job.id

        async with transaction(self._session_scope) as repos:
            await repos.import_jobs.update(job, expected_status=JobStatus.COMPLETED)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def finalize_review(
        self, owner_id: str, job_id: str, decisions: Sequence[ReviewDecision] = ()
    ) -> FinalizeReviewResult:
        """Apply review decisions, skip whatever is still pending, commit.

        Calling it again on a finished job returns the stored outcome and
        writes nothing.
        """
        async with self._locks.lock(job_id):
            with job_context(job_id):
                async with transaction(self._session_scope) as repos:
                    job = await self._get_owned_job(repos, owner_id, job_id)
                if job.is_finished:
                    return self._finalize_result(job)
                if job.status != JobStatus.PROCESSING or job.processed_songs < job.total_songs:
                    raise InvalidStateException(
                        f"Import job {job_id} is still matching "
                        f"({job.processed_songs}/{job.total_songs} songs)"
                    )

                self._apply_decisions(job, decisions)
                for result in job.completed_results():
                    if result.status == MatchStatus.PENDING_REVIEW:
                        result.skip()
                job.refresh_counters()

                if not await self._complete(job):
                    raise InvalidStateException(
                        f"Import job {job_id} changed state during finalize"
                    )
        self._locks.clear(job_id)
        return self._finalize_result(job)

    @staticmethod
    def _finalize_result(job: ImportJob) -> FinalizeReviewResult:
        return FinalizeReviewResult(
            job=job,
            playlist_id=job.playlist_id,
            added_songs=job.added_songs,
            duplicate_songs=job.duplicate_songs,
            download_job_id=job.download_job_id,
        )

    @staticmethod
    def _apply_decisions(job: ImportJob, decisions: Sequence[ReviewDecision]) -> None:
        seen: set[int] = set()
        for decision in decisions:
            index = decision.index
            if index in seen:
                raise ValidationException(f"Duplicate decision for song {index}")
            seen.add(index)
            if not 0 <= index < job.total_songs:
                raise ValidationException(f"Song index {index} out of range")
            result = job.match_results[index]
            if result is None:
                raise ValidationException(f"Song {index} has not been matched yet")

            if decision.platform_id is None:
                if result.status == MatchStatus.PENDING_REVIEW:
                    result.skip()
                elif result.status == MatchStatus.MATCHED:
                    raise InvalidStateException(f"Song {index} is already matched")
                continue

            candidate = _find_decision_candidate(result, decision)
            if candidate is None:
                raise ValidationException(
                    f"{decision.platform_id} is not a candidate for song {index}"
                )
            if result.status == MatchStatus.PENDING_REVIEW:
                result.select(candidate)
            elif result.selected_candidate != candidate:
                raise InvalidStateException(
                    f"Song {index} is already {result.status.value}"
                )

    # ------------------------------------------------------------------
    # Cancellation and queries
    # ------------------------------------------------------------------

    async def cancel_import(self, owner_id: str, job_id: str) -> ImportJob:
        """Stop the match pass; collected results stay on the job."""
        async with transaction(self._session_scope) as repos:
            job = await self._get_owned_job(repos, owner_id, job_id)
        if job.status == JobStatus.CANCELLED:
            return job
        if job.is_finished:
            raise InvalidStateException(f"Cannot cancel import job in status {job.status.value}")

        self._locks.request_cancel(job_id)
        async with transaction(self._session_scope) as repos:
            moved = await repos.import_jobs.transition_status(
                job_id, JobStatus.PROCESSING, JobStatus.CANCELLED
            ) or await repos.import_jobs.transition_status(
                job_id, JobStatus.PENDING, JobStatus.CANCELLED
            )
            job = await self._get_owned_job(repos, owner_id, job_id)

        if not moved and job.status != JobStatus.CANCELLED:
            raise InvalidStateException(f"Cannot cancel import job in status {job.status.value}")
        if moved:
            logger.info(
                LogMessages.job_transition(
                    "import", job_id, JobStatus.PROCESSING.value, JobStatus.CANCELLED.value
                )
            )
        # a running pass clears the flag itself once it notices
        if not self._locks.lock(job_id).locked():
            self._locks.clear(job_id)
        return job

    async def get_import_job(self, owner_id: str, job_id: str) -> ImportJob:
        """Current job state, including partial results while matching."""
        async with transaction(self._session_scope) as repos:
            return await self._get_owned_job(repos, owner_id, job_id)

    async def list_import_jobs(self, owner_id: str, limit: int = 50) -> list[ImportJob]:
        """Most recent jobs first."""
        async with transaction(self._session_scope) as repos:
            return await repos.import_jobs.list_by_owner(owner_id, limit)

    async def get_match_report(self, owner_id: str, job_id: str) -> MatchReport:
        job = await self.get_import_job(owner_id, job_id)
        return generate_match_report(job.match_results)

    async def export_match_results(self, owner_id: str, job_id: str) -> str:
        """Match results as CSV, one row per song."""
        job = await self.get_import_job(owner_id, job_id)
        return export_match_results_csv(job.match_results)

    @staticmethod
    async def _get_owned_job(repos: Repositories, owner_id: str, job_id: str) -> ImportJob:
        job = await repos.import_jobs.get_by_id(job_id)
        if job is None or job.owner_id != owner_id:
            raise EntityNotFoundException("ImportJob", job_id)
        return job


def _find_decision_candidate(
    result: SongMatchResult, decision: ReviewDecision
) -> MatchCandidate | None:
    for candidate in result.matches:
        if candidate.platform_id != decision.platform_id:
            continue
        if decision.platform is None or candidate.platform == decision.platform:
            return candidate
    return None
