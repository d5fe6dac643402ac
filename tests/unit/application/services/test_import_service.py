"""Unit tests for ImportService against a real SQLite database.

Hey future me - these run the whole parse -> match -> review -> commit loop
with an in-memory catalog. Only the scorer is pinned where a test needs an
exact score (ambiguity cases), everything else is the production code.
"""

import pytest

from playbridge.application.services import (
    ImportOptions,
    ImportService,
    ReviewDecision,
    SongMatcher,
    transaction,
)
from playbridge.application.services.import_service import AUTO_MATCH_DISABLED
from playbridge.application.workers import BackgroundJobRunner
from playbridge.domain.entities import ImportJob, JobStatus, MatchStatus, PlaylistFormat, PlaylistPlatform, Song
from playbridge.domain.exceptions import (
    ConfigurationError,
    DuplicateEntityException,
    EmptyPlaylistError,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidStateException,
    ValidationException,
)
from playbridge.infrastructure.providers import CatalogAdapterRegistry

OWNER = "user-1"
CONTENT = "#EXTISRC:USAAA0000001\nArtist A - Song One\nArtist B - Song Two"
SCORES = {"nd-2a": 72.0, "nd-2b": 68.0}


def _pinned_scorer(song: Song, hit: Song) -> tuple[float, str]:
    return SCORES[hit.platform_id or ""], "pinned"


@pytest.fixture
def adapter(fake_adapter_cls, make_catalog_song):
    return fake_adapter_cls(
        catalog=[make_catalog_song("nd-1", "Song One", "Artist A", isrc="USAAA0000001")],
        search_results={
            "song two": [
                make_catalog_song("nd-2a", "Song Two", "Artist B"),
                make_catalog_song("nd-2b", "Song Two (Live)", "Artist B"),
            ]
        },
    )


@pytest.fixture
def service(db, locks, adapter) -> ImportService:
    return ImportService(
        db.session_scope,
        CatalogAdapterRegistry(navidrome_adapter=adapter),
        SongMatcher(scorer=_pinned_scorer),
        locks,
    )


def _options(**overrides) -> ImportOptions:
    values = {"playlist_format": PlaylistFormat.M3U, "playlist_name": "Mix"}
    values.update(overrides)
    return ImportOptions(**values)


async def _playlist_ids(db, playlist_id: str) -> list[str]:
    async with transaction(db.session_scope) as repos:
        return [entry.song_id for entry in await repos.playlists.list_songs(playlist_id)]


class TestStartImport:
    """Tests for ImportService.start_import()."""

    async def test_ambiguous_song_waits_for_review(self, service: ImportService) -> None:
        """Test ISRC song is matched, the close call is left for a human."""
        job = await service.start_import(OWNER, CONTENT, _options())

        assert job.status == JobStatus.PROCESSING
        assert job.awaiting_review is True
        assert (job.total_songs, job.processed_songs, job.matched_songs, job.pending_review_songs) == (2, 2, 1, 1)
        first, second = job.match_results
        assert first is not None and first.status == MatchStatus.MATCHED
        assert first.selected_match is not None and first.selected_match.platform_id == "nd-1"
        assert second is not None and second.status == MatchStatus.PENDING_REVIEW
        assert [c.platform_id for c in second.matches] == ["nd-2a", "nd-2b"]
        assert job.playlist_id is None

    async def test_progress_is_persisted(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        stored = await service.get_import_job(OWNER, job.id)

        assert stored.processed_songs == 2
        assert stored.match_results == job.match_results

    async def test_nothing_found_completes_without_playlist(self, db, locks, adapter) -> None:
        """Test nothing pending completes at once; no matches means no playlist."""
        service = ImportService(
            db.session_scope, CatalogAdapterRegistry(navidrome_adapter=adapter), SongMatcher(), locks
        )

        job = await service.start_import(OWNER, "Artist A - Song One", _options())

        assert job.status == JobStatus.COMPLETED
        assert (job.matched_songs, job.unmatched_songs) == (0, 1)
        assert job.playlist_id is None

    async def test_text_match_is_committed(self, db, locks, fake_adapter_cls, make_catalog_song) -> None:
        adapter = fake_adapter_cls(search_results={"song two": [make_catalog_song("nd-2a", "Song Two", "Artist B")]})
        service = ImportService(
            db.session_scope, CatalogAdapterRegistry(navidrome_adapter=adapter), SongMatcher(), locks
        )

        job = await service.start_import(OWNER, "Artist B - Song Two", _options())

        assert job.status == JobStatus.COMPLETED
        assert job.added_songs == 1
        assert job.playlist_id is not None
        assert await _playlist_ids(db, job.playlist_id) == ["nd-2a"]

    async def test_duplicate_playlist_name_creates_no_job(self, service: ImportService, db) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        await service.finalize_review(OWNER, job.id)

        with pytest.raises(DuplicateEntityException):
            await service.start_import(OWNER, CONTENT, _options())
        assert len(await service.list_import_jobs(OWNER)) == 1

    async def test_unparseable_input_creates_no_job(self, service: ImportService) -> None:
        with pytest.raises(EmptyPlaylistError):
            await service.start_import(OWNER, "#EXTM3U\nnothing useful", _options())
        assert await service.list_import_jobs(OWNER) == []

    async def test_no_catalog_is_a_configuration_error(self, db, locks) -> None:
        service = ImportService(db.session_scope, CatalogAdapterRegistry(), SongMatcher(), locks)
        with pytest.raises(ConfigurationError):
            await service.start_import(OWNER, CONTENT, _options())
        assert await service.list_import_jobs(OWNER) == []

    async def test_unknown_target_playlist(self, service: ImportService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.start_import(OWNER, CONTENT, _options(playlist_id="missing"))

    async def test_auto_match_disabled(self, db, locks) -> None:
        """Test every song is NO_MATCH and no catalog is touched."""
        service = ImportService(db.session_scope, CatalogAdapterRegistry(), SongMatcher(), locks)

        job = await service.start_import(OWNER, CONTENT, _options(auto_match=False))

        assert job.status == JobStatus.COMPLETED
        assert job.unmatched_songs == 2
        assert all(r is not None and r.warnings == [AUTO_MATCH_DISABLED] for r in job.match_results)
        assert job.playlist_id is None

    async def test_catalog_outage_fails_the_job(self, db, locks, fake_adapter_cls) -> None:
        """Test every lookup erroring fails the job but keeps every result."""
        adapter = fake_adapter_cls(error=ExternalServiceError("navidrome", "down"))
        service = ImportService(
            db.session_scope, CatalogAdapterRegistry(navidrome_adapter=adapter), SongMatcher(), locks
        )

        job = await service.start_import(OWNER, "Artist A - Song One\nArtist B - Song Two", _options())

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Catalog lookup failed for all 2 songs: navidrome search failed: navidrome: down"
        assert job.error_details == {"error_type": "ExternalServiceError"}
        assert sorted(job.warnings) == [
            "Song 1: navidrome search failed: navidrome: down",
            "Song 2: navidrome search failed: navidrome: down",
        ]
        assert job.processed_songs == 2
        assert all(r is not None and r.lookup_failed for r in job.match_results)
        assert job.playlist_id is None

        stored = await service.get_import_job(OWNER, job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.match_results == job.match_results

    async def test_one_healthy_song_keeps_the_job_alive(self, db, locks, fake_adapter_cls, make_catalog_song) -> None:
        class FlakyCatalog(fake_adapter_cls):
            async def search(self, query: str, start: int = 0, limit: int = 10) -> list[Song]:
                if "song two" in query.lower():
                    raise ExternalServiceError("navidrome", "down")
                return await super().search(query, start, limit)

        adapter = FlakyCatalog(search_results={"song one": [make_catalog_song("nd-1", "Song One", "Artist A")]})
        service = ImportService(
            db.session_scope, CatalogAdapterRegistry(navidrome_adapter=adapter), SongMatcher(), locks
        )

        job = await service.start_import(OWNER, "Artist A - Song One\nArtist B - Song Two", _options())

        assert job.status == JobStatus.COMPLETED
        assert job.error_message is None
        assert (job.matched_songs, job.unmatched_songs) == (1, 1)
        assert job.warnings == ["Song 2: navidrome search failed: navidrome: down"]
        assert job.playlist_id is not None
        assert await _playlist_ids(db, job.playlist_id) == ["nd-1"]

    async def test_runner_returns_before_matching(self, db, locks, adapter) -> None:
        runner = BackgroundJobRunner()
        service = ImportService(
            db.session_scope,
            CatalogAdapterRegistry(navidrome_adapter=adapter),
            SongMatcher(scorer=_pinned_scorer),
            locks,
            runner=runner,
        )

        job = await service.start_import(OWNER, CONTENT, _options())
        assert runner.is_running(job.id)
        finished = await runner.wait(job.id)

        assert finished.awaiting_review is True
        stored = await service.get_import_job(OWNER, job.id)
        assert stored.processed_songs == 2


class TestFinalizeReview:
    """Tests for ImportService.finalize_review()."""

    async def test_decision_commits_in_playlist_order(self, service: ImportService, db) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        outcome = await service.finalize_review(
            OWNER, job.id, [ReviewDecision(1, "nd-2a", PlaylistPlatform.NAVIDROME)]
        )

        assert outcome.job.status == JobStatus.COMPLETED
        assert (outcome.added_songs, outcome.duplicate_songs) == (2, 0)
        assert outcome.playlist_id is not None
        assert await _playlist_ids(db, outcome.playlist_id) == ["nd-1", "nd-2a"]

    async def test_finalize_twice_adds_nothing(self, service: ImportService, db) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        decisions = [ReviewDecision(1, "nd-2a")]
        first = await service.finalize_review(OWNER, job.id, decisions)

        second = await service.finalize_review(OWNER, job.id, decisions)

        assert second.playlist_id == first.playlist_id
        assert second.added_songs == first.added_songs
        assert await _playlist_ids(db, first.playlist_id) == ["nd-1", "nd-2a"]  # type: ignore[arg-type]

    async def test_undecided_songs_are_skipped(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        outcome = await service.finalize_review(OWNER, job.id)

        final = outcome.job
        assert final.match_results[1].status == MatchStatus.SKIPPED  # type: ignore[union-attr]
        assert (final.matched_songs, final.unmatched_songs, final.pending_review_songs) == (1, 1, 0)
        assert final.matched_songs + final.unmatched_songs + final.pending_review_songs == final.processed_songs
        assert outcome.added_songs == 1

    async def test_unknown_candidate_is_rejected(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        with pytest.raises(ValidationException):
            await service.finalize_review(OWNER, job.id, [ReviewDecision(1, "nd-999")])

        stored = await service.get_import_job(OWNER, job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.pending_review_songs == 1

    async def test_reselecting_a_matched_song_elsewhere_is_rejected(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        with pytest.raises(InvalidStateException):
            await service.finalize_review(OWNER, job.id, [ReviewDecision(0)])

    async def test_still_matching_is_rejected(self, service: ImportService, db) -> None:
        job = ImportJob(
            id="half-done",
            owner_id=OWNER,
            format=PlaylistFormat.M3U,
            target_platform=PlaylistPlatform.NAVIDROME,
            playlist_name="Half",
            total_songs=2,
        )
        job.start()
        async with transaction(db.session_scope) as repos:
            await repos.import_jobs.add(job)

        with pytest.raises(InvalidStateException):
            await service.finalize_review(OWNER, "half-done")

    async def test_existing_playlist_counts_duplicates(self, service: ImportService, db) -> None:
        """Test appending songs already present adds only the new ones."""
        job = await service.start_import(OWNER, CONTENT, _options())
        first = await service.finalize_review(OWNER, job.id)
        assert await _playlist_ids(db, first.playlist_id) == ["nd-1"]  # type: ignore[arg-type]

        again = await service.start_import(OWNER, CONTENT, _options(playlist_id=first.playlist_id))
        outcome = await service.finalize_review(OWNER, again.id, [ReviewDecision(1, "nd-2b")])

        assert (outcome.added_songs, outcome.duplicate_songs) == (1, 1)
        assert await _playlist_ids(db, first.playlist_id) == ["nd-1", "nd-2b"]  # type: ignore[arg-type]

    async def test_other_owner_cannot_see_job(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        with pytest.raises(EntityNotFoundException):
            await service.finalize_review("someone-else", job.id)


class TestCancelImport:
    """Tests for ImportService.cancel_import()."""

    async def test_cancel_keeps_results(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        cancelled = await service.cancel_import(OWNER, job.id)

        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.processed_songs == 2

    async def test_cancel_is_idempotent(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        await service.cancel_import(OWNER, job.id)

        again = await service.cancel_import(OWNER, job.id)

        assert again.status == JobStatus.CANCELLED

    async def test_finalize_after_cancel_writes_nothing(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        await service.cancel_import(OWNER, job.id)

        outcome = await service.finalize_review(OWNER, job.id)

        assert outcome.job.status == JobStatus.CANCELLED
        assert outcome.playlist_id is None
        assert outcome.added_songs == 0

    async def test_completed_job_cannot_be_cancelled(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())
        await service.finalize_review(OWNER, job.id)
        with pytest.raises(InvalidStateException):
            await service.cancel_import(OWNER, job.id)


class TestQueueDownloads:
    """Tests for handing unresolved songs to the download orchestrator."""

    async def test_unresolved_songs_are_queued(self, db, locks, mocker) -> None:
        orchestrator = mocker.AsyncMock()
        orchestrator.queue_batch.return_value = mocker.Mock(id="dl-1")
        service = ImportService(
            db.session_scope, CatalogAdapterRegistry(), SongMatcher(), locks, download_orchestrator=orchestrator
        )

        job = await service.start_import(OWNER, CONTENT, _options(auto_match=False, queue_downloads=True))

        assert job.download_job_id == "dl-1"
        songs = orchestrator.queue_batch.call_args.args[1]
        assert [s.title for s in songs] == ["Song One", "Song Two"]
        assert orchestrator.queue_batch.call_args.kwargs["import_job_id"] == job.id
        stored = await service.get_import_job(OWNER, job.id)
        assert stored.download_job_id == "dl-1"

    async def test_queue_failure_becomes_a_warning(self, db, locks, mocker) -> None:
        orchestrator = mocker.AsyncMock()
        orchestrator.queue_batch.side_effect = ExternalServiceError("lidarr", "down")
        service = ImportService(
            db.session_scope, CatalogAdapterRegistry(), SongMatcher(), locks, download_orchestrator=orchestrator
        )

        job = await service.start_import(OWNER, CONTENT, _options(auto_match=False, queue_downloads=True))

        assert job.status == JobStatus.COMPLETED
        assert job.download_job_id is None
        assert "Download queueing failed: lidarr: down" in job.warnings


class TestReports:
    """Tests for report and CSV queries."""

    async def test_match_report(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        report = await service.get_match_report(OWNER, job.id)

        assert (report.total, report.matched, report.pending_review) == (2, 1, 1)

    async def test_export_match_results(self, service: ImportService) -> None:
        job = await service.start_import(OWNER, CONTENT, _options())

        text = await service.export_match_results(OWNER, job.id)

        assert text.splitlines()[0].startswith("position,original_artist")
        assert len(text.splitlines()) == 3

    def test_validate_import_never_raises(self, service: ImportService) -> None:
        report = service.validate_import("", PlaylistFormat.M3U)
        assert report.valid is False
