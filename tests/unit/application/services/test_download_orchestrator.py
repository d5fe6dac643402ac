"""Unit tests for DownloadOrchestrator routing, batching, sync and cancel."""

import pytest

from playbridge.application.services import (
    DownloadOrchestrator,
    build_organization_plan,
    generate_report,
)
from playbridge.domain.entities import (
    JobStatus,
    MatchCandidate,
    MatchConfidence,
    MatchStatus,
    PlaylistPlatform,
    Song,
    SongMatchResult,
)
from playbridge.domain.entities.download_queue import (
    DownloadPreferences,
    DownloadQueueItem,
    DownloadScope,
    DownloadService,
    QueueItemStatus,
)
from playbridge.domain.exceptions import ExternalServiceError, InvalidStateException
from playbridge.domain.ports.download_backend import (
    BackendQueueEntry,
    CatalogArtist,
    CatalogDownloadRequest,
    ICatalogManagerBackend,
    ISingleTrackFetcherBackend,
)
from playbridge.domain.value_objects import ErrorKind

OWNER = "user-1"


class FakeFetcher(ISingleTrackFetcherBackend):
    """Fetcher that accepts everything except the configured failures."""

    batch_size = 2

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.enqueued: list[str] = []
        self.cancelled: list[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.queue: list[BackendQueueEntry] = []
        self.done: list[BackendQueueEntry] = []
        self.status_error: Exception | None = None

    def is_configured(self) -> bool:
        return self.configured

    async def enqueue(self, url_or_term, media_format, quality, name_prefix=None) -> str:
        for needle, error in self.fail_on.items():
            if needle in url_or_term:
                raise error
        self.enqueued.append(url_or_term)
        return f"mt:{url_or_term}"

    async def cancel(self, job_id: str) -> bool:
        self.cancelled.append(job_id)
        return True

    async def get_queue(self) -> list[BackendQueueEntry]:
        if self.status_error is not None:
            raise self.status_error
        return list(self.queue)

    async def get_done(self) -> list[BackendQueueEntry]:
        if self.status_error is not None:
            raise self.status_error
        return list(self.done)


class FakeCatalogManager(ICatalogManagerBackend):
    """Catalog manager knowing a fixed set of artists."""

    def __init__(self, artists: list[str] | None = None, configured: bool = True) -> None:
        self.configured = configured
        self.artists = [CatalogArtist(foreign_artist_id=f"mb-{i}", name=n) for i, n in enumerate(artists or [])]
        self.requests: list[CatalogDownloadRequest] = []
        self.queue: list[BackendQueueEntry] = []
        self.history: list[BackendQueueEntry] = []

    def is_configured(self) -> bool:
        return self.configured

    async def search_artist(self, term: str) -> list[CatalogArtist]:
        return list(self.artists)

    async def enqueue_download(self, request: CatalogDownloadRequest) -> str:
        self.requests.append(request)
        return f"album:{len(self.requests)}"

    async def cancel(self, job_id: str) -> bool:
        return False

    async def get_queue(self) -> list[BackendQueueEntry]:
        return list(self.queue)

    async def get_history(self) -> list[BackendQueueEntry]:
        return list(self.history)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def catalog() -> FakeCatalogManager:
    return FakeCatalogManager(artists=["Daft Punk"])


@pytest.fixture
def orchestrator(db, locks, catalog, fetcher) -> DownloadOrchestrator:
    return DownloadOrchestrator(db.session_scope, catalog, fetcher, locks, organize_base_path="/music")


def _single(title: str, artist: str = "Artist") -> Song:
    return Song(title=title, artist=artist)


def _entry(service_job_id: str, title: str, status: QueueItemStatus, **extra) -> BackendQueueEntry:
    return BackendQueueEntry(
        service=DownloadService.SINGLE_TRACK_FETCHER,
        service_job_id=service_job_id,
        title=title,
        status=status,
        **extra,
    )


class TestChooseService:
    """Tests for per-song routing."""

    def test_albums_go_to_catalog_manager(self, orchestrator: DownloadOrchestrator) -> None:
        song = Song(title="One More Time", artist="Daft Punk", album="Discovery")
        assert orchestrator.choose_service(song) == DownloadService.CATALOG_MANAGER

    def test_singles_go_to_fetcher(self, orchestrator: DownloadOrchestrator) -> None:
        assert orchestrator.choose_service(_single("Song")) == DownloadService.SINGLE_TRACK_FETCHER

    def test_explicit_scope_wins(self, orchestrator: DownloadOrchestrator) -> None:
        song = Song(title="One More Time", artist="Daft Punk", album="Discovery")
        assert orchestrator.choose_service(song, scope=DownloadScope.TRACK) == DownloadService.SINGLE_TRACK_FETCHER

    def test_default_service_without_preferences(self, orchestrator: DownloadOrchestrator) -> None:
        prefs = DownloadPreferences(
            default_service=DownloadService.CATALOG_MANAGER,
            prefer_catalog_for_albums=False,
            prefer_fetcher_for_singles=False,
        )
        assert orchestrator.choose_service(_single("Song"), prefs) == DownloadService.CATALOG_MANAGER

    def test_unconfigured_backend_falls_back(self, db, locks, fetcher) -> None:
        orchestrator = DownloadOrchestrator(
            db.session_scope, FakeCatalogManager(configured=False), fetcher, locks
        )
        song = Song(title="One More Time", artist="Daft Punk", album="Discovery")
        assert orchestrator.choose_service(song) == DownloadService.SINGLE_TRACK_FETCHER


class TestQueueBatch:
    """Tests for DownloadOrchestrator.queue_batch()."""

    async def test_one_bad_item_does_not_sink_the_batch(
        self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher
    ) -> None:
        """Test five singles where one back-end call blows up and one is refused."""
        fetcher.fail_on = {
            "Broken": RuntimeError("socket exploded"),
            "Refused": ExternalServiceError("metube", "HTTP 500"),
        }
        songs = [_single(t) for t in ("One", "Two", "Broken", "Refused", "Five")]

        job = await orchestrator.queue_batch(OWNER, songs)

        statuses = [item.status for item in job.download_queue]
        assert statuses == [
            QueueItemStatus.DOWNLOADING,
            QueueItemStatus.DOWNLOADING,
            QueueItemStatus.FAILED,
            QueueItemStatus.FAILED,
            QueueItemStatus.DOWNLOADING,
        ]
        assert job.download_queue[2].error == "Unexpected error: socket exploded"
        assert job.download_queue[3].error == "metube: HTTP 500"
        assert job.status == JobStatus.PROCESSING
        assert (job.total_items, job.failed_items) == (5, 2)
        assert fetcher.enqueued == ["Artist - One", "Artist - Two", "Artist - Five"]

        stored = await orchestrator.get_download_job(OWNER, job.id)
        assert [i.status for i in stored.download_queue] == statuses

    async def test_items_route_independently(
        self, orchestrator: DownloadOrchestrator, catalog: FakeCatalogManager, fetcher: FakeFetcher
    ) -> None:
        songs = [
            Song(title="One More Time", artist="Daft Punk", album="Discovery"),
            _single("Loose Track"),
        ]

        job = await orchestrator.queue_batch(OWNER, songs, import_job_id="imp-1")

        album, single = job.download_queue
        assert album.service == DownloadService.CATALOG_MANAGER
        assert album.service_job_id == "album:1"
        assert album.needs_manual_organization is False
        assert catalog.requests[0].album_title == "Discovery"
        assert single.service == DownloadService.SINGLE_TRACK_FETCHER
        assert single.needs_manual_organization is True
        assert job.import_job_id == "imp-1"

    async def test_unknown_artist_fails_item(self, orchestrator: DownloadOrchestrator) -> None:
        song = Song(title="Song", artist="Nobody Knows", album="Album")

        job = await orchestrator.queue_batch(OWNER, [song])

        item = job.download_queue[0]
        assert item.status == QueueItemStatus.FAILED
        assert item.error == "Artist not found: Nobody Knows"
        assert job.status == JobStatus.FAILED
        assert job.error_message == "All 1 downloads failed: Artist not found: Nobody Knows"

    async def test_artist_scope_requests_whole_artist(
        self, orchestrator: DownloadOrchestrator, catalog: FakeCatalogManager
    ) -> None:
        song = Song(title="Song", artist="Daft Punk", album="Discovery")
        await orchestrator.queue_batch(OWNER, [song], scope=DownloadScope.ARTIST)
        assert catalog.requests[0].album_title is None

    async def test_nothing_configured(self, db, locks) -> None:
        orchestrator = DownloadOrchestrator(db.session_scope, None, FakeFetcher(configured=False), locks)

        job = await orchestrator.queue_batch(OWNER, [_single("A"), _single("B")])

        assert job.status == JobStatus.FAILED
        assert all(i.error == "No download back-end is configured" for i in job.download_queue)

    async def test_video_id_from_match_candidates(
        self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher
    ) -> None:
        song = _single("Song")
        result = SongMatchResult(
            original_song=song,
            status=MatchStatus.SKIPPED,
            matches=[
                MatchCandidate(
                    platform=PlaylistPlatform.YOUTUBE_MUSIC,
                    platform_id="dQw4w9WgXcQ",
                    title="Song",
                    artist="Artist",
                    confidence=MatchConfidence.LOW,
                    match_score=50.0,
                    match_reason="test",
                )
            ],
        )

        await orchestrator.queue_batch(OWNER, [song], [result])

        assert fetcher.enqueued == ["https://www.youtube.com/watch?v=dQw4w9WgXcQ"]

    async def test_queue_single(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        item = await orchestrator.queue_single(_single("Song"), video_id="abc")

        assert item.status == QueueItemStatus.DOWNLOADING
        assert item.service_job_id == "mt:https://www.youtube.com/watch?v=abc"
        assert await orchestrator.list_active_jobs(OWNER) == []


class TestSyncJob:
    """Tests for DownloadOrchestrator.sync_job()."""

    async def test_completed_fetch_needs_organization(
        self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher
    ) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("Song")])
        fetcher.done = [
            _entry("mt:Artist - Song", "Artist - Song", QueueItemStatus.COMPLETED, path="/downloads/Artist - Song.opus")
        ]

        synced = await orchestrator.sync_job(OWNER, job.id)

        assert synced.status == JobStatus.COMPLETED
        assert synced.download_queue[0].status == QueueItemStatus.COMPLETED
        assert synced.pending_organization is not None
        assert synced.pending_organization.files[0].suggested_path == "/music/Artist/Singles/Artist - Song.opus"

    async def test_fetcher_title_fallback(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        """Test a fetch whose id changed is still found by title."""
        job = await orchestrator.queue_batch(OWNER, [_single("Song")])
        fetcher.queue = [
            _entry("https://youtube.com/watch?v=zzz", "Artist - Song (Official Video)", QueueItemStatus.DOWNLOADING, progress=40.0)
        ]

        synced = await orchestrator.sync_job(OWNER, job.id)

        assert synced.status == JobStatus.PROCESSING
        assert synced.download_queue[0].progress == 40.0

    async def test_failed_fetch(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("Song")])
        fetcher.done = [_entry("mt:Artist - Song", "x", QueueItemStatus.FAILED, error="Video unavailable")]

        synced = await orchestrator.sync_job(OWNER, job.id)

        assert synced.status == JobStatus.FAILED
        assert synced.download_queue[0].error == "Video unavailable"

    async def test_catalog_import_waits_for_library(
        self, db, locks, catalog: FakeCatalogManager, fetcher: FakeFetcher, fake_adapter_cls, make_catalog_song
    ) -> None:
        """Test a catalog-manager download counts only once the library has it."""
        library = fake_adapter_cls()
        orchestrator = DownloadOrchestrator(db.session_scope, catalog, fetcher, locks, local_catalog=library)
        job = await orchestrator.queue_batch(
            OWNER, [Song(title="One More Time", artist="Daft Punk", album="Discovery")]
        )
        catalog.history = [
            BackendQueueEntry(
                service=DownloadService.CATALOG_MANAGER,
                service_job_id="queue:7",
                title="Discovery",
                status=QueueItemStatus.COMPLETED,
                related_job_ids=["album:1"],
            )
        ]

        first = await orchestrator.sync_job(OWNER, job.id)
        assert first.download_queue[0].status == QueueItemStatus.DOWNLOADING

        library.search_results = {"one more time": [make_catalog_song("nd-9", "One More Time", "Daft Punk")]}
        second = await orchestrator.sync_job(OWNER, job.id)
        assert second.download_queue[0].status == QueueItemStatus.COMPLETED
        assert second.status == JobStatus.COMPLETED
        assert second.pending_organization is None

    async def test_backend_error_leaves_items_alone(
        self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher
    ) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("Song")])
        fetcher.status_error = ExternalServiceError("metube", "timeout")

        synced = await orchestrator.sync_job(OWNER, job.id)

        assert synced.download_queue[0].status == QueueItemStatus.DOWNLOADING


class TestQueueStatus:
    """Tests for the merged queue view."""

    async def test_one_backend_down(
        self, orchestrator: DownloadOrchestrator, catalog: FakeCatalogManager, fetcher: FakeFetcher
    ) -> None:
        catalog.queue = [
            BackendQueueEntry(DownloadService.CATALOG_MANAGER, "queue:1", "Live", QueueItemStatus.DOWNLOADING)
        ]
        catalog.history = [
            BackendQueueEntry(DownloadService.CATALOG_MANAGER, "queue:0", "Done", QueueItemStatus.COMPLETED)
        ]
        fetcher.status_error = ExternalServiceError("metube", "timeout")

        status = await orchestrator.get_queue_status()

        assert [e.title for e in status.entries] == ["Done", "Live"]
        assert status.errors == {"single_track_fetcher": "metube: timeout"}


class TestOrganizationAndCancel:
    """Tests for mark_organized, cancel_item and cancel_job."""

    async def test_mark_organized_without_files(self, orchestrator: DownloadOrchestrator) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("Song")])

        result = await orchestrator.mark_organized(OWNER, job.id)

        assert result.ok is False
        assert result.error_kind == ErrorKind.INVALID_STATE

    async def test_mark_organized(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("Song")])
        fetcher.done = [_entry("mt:Artist - Song", "Artist - Song", QueueItemStatus.COMPLETED, path="/d/s.mp3")]
        await orchestrator.sync_job(OWNER, job.id)

        result = await orchestrator.mark_organized(OWNER, job.id)

        assert result.ok is True
        assert result.value is not None
        assert result.value.pending_organization is not None
        assert result.value.pending_organization.organized is True

    async def test_cancel_item(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("One"), _single("Two")])
        item = job.download_queue[0]

        result = await orchestrator.cancel_item(OWNER, job.id, item.id)

        assert result.ok is True and result.value is True
        assert fetcher.cancelled == ["mt:Artist - One"]
        stored = await orchestrator.get_download_job(OWNER, job.id)
        assert stored.download_queue[0].error == "Cancelled by user"
        assert stored.status == JobStatus.PROCESSING

    async def test_cancel_unknown_item(self, orchestrator: DownloadOrchestrator) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("One")])

        result = await orchestrator.cancel_item(OWNER, job.id, "nope")

        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_cancel_finished_item_is_a_no_op(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        fetcher.fail_on = {"Two": ExternalServiceError("metube", "HTTP 500")}
        job = await orchestrator.queue_batch(OWNER, [_single("One"), _single("Two")])

        result = await orchestrator.cancel_item(OWNER, job.id, job.download_queue[1].id)

        assert result.ok is True and result.value is False
        assert fetcher.cancelled == []

    async def test_cancel_on_unconfigured_backend(self, db, locks, fetcher) -> None:
        orchestrator = DownloadOrchestrator(db.session_scope, None, fetcher, locks)

        result = await orchestrator.cancel(DownloadService.CATALOG_MANAGER, "album:1")

        assert result.ok is False
        assert result.error_kind == ErrorKind.EXTERNAL

    async def test_cancel_job(self, orchestrator: DownloadOrchestrator, fetcher: FakeFetcher) -> None:
        job = await orchestrator.queue_batch(OWNER, [_single("One"), _single("Two")])

        cancelled = await orchestrator.cancel_job(OWNER, job.id)
        again = await orchestrator.cancel_job(OWNER, job.id)

        assert cancelled.status == JobStatus.CANCELLED
        assert again.status == JobStatus.CANCELLED
        assert sorted(fetcher.cancelled) == ["mt:Artist - One", "mt:Artist - Two"]
        assert await orchestrator.list_active_jobs(OWNER) == []

    async def test_cancel_finished_job(self, db, locks) -> None:
        orchestrator = DownloadOrchestrator(db.session_scope, None, None, locks)
        job = await orchestrator.queue_batch(OWNER, [_single("One")])
        assert job.status == JobStatus.FAILED

        with pytest.raises(InvalidStateException):
            await orchestrator.cancel_job(OWNER, job.id)


class TestMissingBackends:
    """Tests for operations that need a back-end which is not wired or not configured."""

    async def test_cancel_without_catalog_manager(self, db, locks, fetcher: FakeFetcher) -> None:
        orchestrator = DownloadOrchestrator(db.session_scope, None, fetcher, locks)

        result = await orchestrator.cancel(DownloadService.CATALOG_MANAGER, "album:1")

        assert result.ok is False
        assert result.error == "catalog_manager back-end is not configured"

    async def test_cancel_on_unconfigured_fetcher(self, db, locks, catalog: FakeCatalogManager) -> None:
        orchestrator = DownloadOrchestrator(db.session_scope, catalog, FakeFetcher(configured=False), locks)

        result = await orchestrator.cancel(DownloadService.SINGLE_TRACK_FETCHER, "mt:1")

        assert result.ok is False
        assert result.error == "single_track_fetcher back-end is not configured"

    async def test_queue_status_skips_unconfigured_backend(self, db, locks, fetcher: FakeFetcher) -> None:
        fetcher.queue = [_entry("mt:1", "Song", QueueItemStatus.DOWNLOADING)]
        orchestrator = DownloadOrchestrator(
            db.session_scope, FakeCatalogManager(configured=False), fetcher, locks
        )

        status = await orchestrator.get_queue_status()

        assert [e.title for e in status.entries] == ["Song"]
        assert status.errors == {}


class TestReportHelpers:
    """Tests for generate_report and build_organization_plan."""

    def _items(self) -> list[DownloadQueueItem]:
        done = DownloadQueueItem.from_song(
            Song(title="A/B", artist="AC/DC", album="Back in Black"), DownloadService.SINGLE_TRACK_FETCHER
        )
        done.mark_submitted("x")
        done.complete("/downloads/file")
        failed = DownloadQueueItem.from_song(_single("Gone"), DownloadService.CATALOG_MANAGER)
        failed.fail("Artist not found: Artist")
        return [done, failed]

    def test_generate_report(self) -> None:
        report = generate_report(self._items())

        assert report.total == 2
        assert report.by_service["single_track_fetcher"]["completed"] == 1
        assert report.by_service["catalog_manager"]["failed"] == 1
        assert report.needs_manual_organization == ["AC/DC - A/B"]
        assert report.failed == ["Artist - Gone: Artist not found: Artist"]

    def test_organization_plan_sanitizes_and_defaults_extension(self) -> None:
        plan = build_organization_plan(self._items(), "/library")

        assert len(plan) == 1
        assert plan[0].suggested_path == "/library/AC_DC/Back in Black/AC_DC - A_B.mp3"
        assert plan[0].path == "/downloads/file"
