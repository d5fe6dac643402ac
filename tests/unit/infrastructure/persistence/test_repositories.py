"""Unit tests for the SQLAlchemy repositories against a temporary SQLite file."""

import pytest

from playbridge.application.services import transaction
from playbridge.domain.entities import (
    ImportJob,
    JobStatus,
    MatchStatus,
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
)
from playbridge.domain.exceptions import DuplicateEntityException, ValidationException

OWNER = "user-1"


def _import_job(job_id: str = "imp-1") -> ImportJob:
    return ImportJob(
        id=job_id,
        owner_id=OWNER,
        format=PlaylistFormat.CSV,
        target_platform=PlaylistPlatform.NAVIDROME,
        playlist_name="Mix",
        total_songs=2,
    )


class TestPlaylistRepository:
    """Tests for PlaylistRepository."""

    async def test_duplicate_name_per_owner(self, db) -> None:
        async with transaction(db.session_scope) as repos:
            await repos.playlists.add(StoredPlaylist(id="p1", owner_id=OWNER, name="Mix"))

        with pytest.raises(DuplicateEntityException):
            async with transaction(db.session_scope) as repos:
                await repos.playlists.add(StoredPlaylist(id="p2", owner_id=OWNER, name="Mix"))

        # same name, different owner is fine
        async with transaction(db.session_scope) as repos:
            await repos.playlists.add(StoredPlaylist(id="p3", owner_id="user-2", name="Mix"))
            assert (await repos.playlists.get_by_name(OWNER, "Mix")).id == "p1"  # type: ignore[union-attr]
            assert [p.id for p in await repos.playlists.list_playlists(OWNER)] == ["p1"]

    async def test_append_songs_skips_members(self, db, make_catalog_song) -> None:
        """Test songs already in the playlist, or repeated in the batch, are duplicates."""
        one = make_catalog_song("nd-1", "One", "A")
        two = make_catalog_song("nd-2", "Two", "B")
        async with transaction(db.session_scope) as repos:
            await repos.playlists.add(StoredPlaylist(id="p1", owner_id=OWNER, name="Mix"))
            assert await repos.playlists.append_songs("p1", [one]) == (1, 0)

        async with transaction(db.session_scope) as repos:
            assert await repos.playlists.append_songs("p1", [one, two, two]) == (1, 2)

        async with transaction(db.session_scope) as repos:
            entries = await repos.playlists.list_songs("p1")
            playlist = await repos.playlists.get_by_id("p1")

        assert [(e.song_id, e.position) for e in entries] == [("nd-1", 0), ("nd-2", 1)]
        assert entries[1].song_artist_title == "B - Two"
        assert playlist is not None and playlist.song_count == 2

    async def test_same_id_on_another_platform_is_distinct(self, db, make_catalog_song) -> None:
        async with transaction(db.session_scope) as repos:
            await repos.playlists.add(StoredPlaylist(id="p1", owner_id=OWNER, name="Mix"))
            added = await repos.playlists.append_songs(
                "p1",
                [
                    make_catalog_song("42", "One", "A"),
                    make_catalog_song("42", "One", "A", platform=PlaylistPlatform.SPOTIFY),
                ],
            )
        assert added == (2, 0)

    async def test_unresolved_song_rejected(self, db) -> None:
        with pytest.raises(ValidationException):
            async with transaction(db.session_scope) as repos:
                await repos.playlists.add(StoredPlaylist(id="p1", owner_id=OWNER, name="Mix"))
                await repos.playlists.append_songs("p1", [Song(title="One", artist="A")])

    async def test_unknown_playlist(self, db, make_catalog_song) -> None:
        with pytest.raises(ValidationException):
            async with transaction(db.session_scope) as repos:
                await repos.playlists.append_songs("nope", [make_catalog_song("1", "One", "A")])


class TestJobRepositories:
    """Tests for the status-guarded job updates."""

    async def test_transition_status_is_compare_and_set(self, db) -> None:
        async with transaction(db.session_scope) as repos:
            await repos.import_jobs.add(_import_job())

        async with transaction(db.session_scope) as repos:
            first = await repos.import_jobs.transition_status("imp-1", JobStatus.PENDING, JobStatus.PROCESSING)
            second = await repos.import_jobs.transition_status("imp-1", JobStatus.PENDING, JobStatus.PROCESSING)

        assert (first, second) == (True, False)

    async def test_guarded_update(self, db) -> None:
        """Test a full update only lands while the row has the expected status."""
        job = _import_job()
        async with transaction(db.session_scope) as repos:
            await repos.import_jobs.add(job)

        job.start()
        job.record_result(
            1, SongMatchResult(original_song=Song(title="Two", artist="B"), status=MatchStatus.NO_MATCH)
        )
        async with transaction(db.session_scope) as repos:
            assert await repos.import_jobs.update(job, expected_status=JobStatus.PENDING) is True

        job.cancel()
        async with transaction(db.session_scope) as repos:
            assert await repos.import_jobs.update(job, expected_status=JobStatus.PENDING) is False
            stored = await repos.import_jobs.get_by_id("imp-1")

        assert stored is not None
        assert stored.status == JobStatus.PROCESSING
        assert stored.match_results[0] is None
        assert stored.match_results[1] is not None
        assert (stored.processed_songs, stored.unmatched_songs) == (1, 1)

    async def test_download_job_round_trip_and_active_list(self, db) -> None:
        item = DownloadQueueItem.from_song(Song(title="One", artist="A"), DownloadService.SINGLE_TRACK_FETCHER)
        item.mark_submitted("mt:1")
        job = DownloadJob(
            id="dl-1", owner_id=OWNER, service=DownloadService.SINGLE_TRACK_FETCHER, download_queue=[item]
        )
        job.start()
        async with transaction(db.session_scope) as repos:
            await repos.download_jobs.add(job)
            await repos.download_jobs.add(DownloadJob(id="dl-2", owner_id="user-2", service=DownloadService.CATALOG_MANAGER))

        async with transaction(db.session_scope) as repos:
            stored = await repos.download_jobs.get_by_id("dl-1")
            active = await repos.download_jobs.list_active(OWNER)

        assert stored is not None
        assert stored.download_queue[0].service_job_id == "mt:1"
        assert stored.download_queue[0].needs_manual_organization is True
        assert stored.updated_at == job.updated_at
        assert [j.id for j in active] == ["dl-1"]
