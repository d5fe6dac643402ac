"""Unit tests for SongMatcher scoring, ranking and review helpers."""

import csv
import io

import pytest

from playbridge.application.services import (
    MatchThresholds,
    SongMatcher,
    export_match_results_csv,
    generate_match_report,
    score_candidate,
    skip_song,
    update_match_selection,
)
from playbridge.domain.entities import MatchConfidence, MatchStatus, PlaylistPlatform, Song
from playbridge.domain.exceptions import ExternalServiceError, ValidationException


def _fixed_scores(scores: dict[str, float]):
    """Scorer that returns a preset score per platform id."""

    def scorer(song: Song, hit: Song) -> tuple[float, str]:
        return scores[hit.platform_id or ""], "fixed"

    return scorer


class TestScoreCandidate:
    """Tests for the weighted similarity score."""

    def test_text_only_tops_out_at_85(self) -> None:
        """Test title + artist alone can reach HIGH but never EXACT."""
        song = Song(title="One More Time", artist="Daft Punk")
        score, reason = score_candidate(song, song)
        assert score == 85.0
        assert reason == "title 100%, artist 100%"

    def test_album_and_duration_complete_the_score(self) -> None:
        song = Song(title="One More Time", artist="Daft Punk", album="Discovery", duration=320)
        hit = Song(title="One More Time", artist="Daft Punk", album="Discovery", duration=322)
        score, _ = score_candidate(song, hit)
        assert score == 100.0

    def test_version_suffix_does_not_hurt(self) -> None:
        song = Song(title="Get Lucky", artist="Daft Punk")
        hit = Song(title="Get Lucky (Radio Edit)", artist="Daft Punk feat. Pharrell Williams")
        score, _ = score_candidate(song, hit)
        assert score == 85.0

    def test_far_off_duration_adds_nothing(self) -> None:
        song = Song(title="Song", artist="Artist", duration=100)
        hit = Song(title="Song", artist="Artist", duration=200)
        assert score_candidate(song, hit)[0] == 85.0


class TestMatchThresholds:
    """Tests for confidence tiers."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (100.0, MatchConfidence.EXACT),
            (90.0, MatchConfidence.EXACT),
            (89.9, MatchConfidence.HIGH),
            (70.0, MatchConfidence.HIGH),
            (40.0, MatchConfidence.LOW),
            (39.9, None),
        ],
    )
    def test_confidence_for(self, score: float, expected: MatchConfidence | None) -> None:
        assert MatchThresholds().confidence_for(score) == expected

    def test_max_concurrency_must_be_positive(self) -> None:
        with pytest.raises(ValidationException):
            SongMatcher(max_concurrency=0)


class TestSongMatcher:
    """Tests for SongMatcher.match()."""

    async def test_isrc_hit_is_auto_selected(self, fake_adapter_cls, make_catalog_song) -> None:
        """Test an ISRC hit is EXACT and skips text search entirely."""
        hit = make_catalog_song("nd-1", "Song One (Remastered)", "Artist A", isrc="USAAA0000001")
        adapter = fake_adapter_cls(catalog=[hit])
        song = Song(title="Song One", artist="Artist A", isrc="USAAA0000001")

        result = await SongMatcher().match(song, [adapter])

        assert result.status == MatchStatus.MATCHED
        assert result.selected_match is not None
        assert result.selected_match.platform_id == "nd-1"
        assert result.matches[0].confidence == MatchConfidence.EXACT
        assert result.matches[0].match_score == 100.0
        assert adapter.search_calls == []

    async def test_isrc_never_makes_things_worse(self, fake_adapter_cls, make_catalog_song) -> None:
        """Test the same song scores at least as well with its ISRC as without."""
        hit = make_catalog_song("nd-1", "Song", "Artist", isrc="ISRC1")
        adapter = fake_adapter_cls(catalog=[hit], search_results={"song": [hit]})
        matcher = SongMatcher()

        with_isrc = await matcher.match(Song(title="Song", artist="Artist", isrc="ISRC1"), [adapter])
        without = await matcher.match(Song(title="Song", artist="Artist"), [adapter])

        assert with_isrc.matches[0].match_score >= without.matches[0].match_score

    async def test_unknown_isrc_falls_back_to_text(self, fake_adapter_cls, make_catalog_song) -> None:
        hit = make_catalog_song("nd-1", "Song", "Artist")
        adapter = fake_adapter_cls(search_results={"song": [hit]})

        result = await SongMatcher().match(Song(title="Song", artist="Artist", isrc="NOPE"), [adapter])

        assert adapter.isrc_calls == ["NOPE"]
        assert adapter.search_calls == ["Artist Song"]
        assert result.status == MatchStatus.MATCHED
        assert result.matches[0].confidence == MatchConfidence.HIGH

    async def test_candidates_sorted_and_capped(self, fake_adapter_cls, make_catalog_song) -> None:
        hits = [make_catalog_song(f"nd-{i}", "Song", "Artist") for i in range(4)]
        adapter = fake_adapter_cls(search_results={"song": hits})
        scores = {"nd-0": 50.0, "nd-1": 95.0, "nd-2": 30.0, "nd-3": 75.0}
        matcher = SongMatcher(
            thresholds=MatchThresholds(max_candidates=2), scorer=_fixed_scores(scores)
        )

        result = await matcher.match(Song(title="Song", artist="Artist"), [adapter])

        assert [c.platform_id for c in result.matches] == ["nd-1", "nd-3"]
        assert result.status == MatchStatus.MATCHED

    async def test_duplicate_hits_collapse(self, fake_adapter_cls, make_catalog_song) -> None:
        hit = make_catalog_song("nd-1", "Song", "Artist")
        adapter = fake_adapter_cls(search_results={"song": [hit], "artist": [hit]})

        result = await SongMatcher().match(Song(title="Song", artist="Artist"), [adapter])

        assert len(result.matches) == 1

    async def test_ambiguous_top_needs_review(self, fake_adapter_cls, make_catalog_song) -> None:
        """Test a runner-up within the gap on the same platform blocks auto-select."""
        hits = [make_catalog_song("a", "Song", "Artist"), make_catalog_song("b", "Song", "Artist")]
        adapter = fake_adapter_cls(search_results={"song": hits})
        matcher = SongMatcher(scorer=_fixed_scores({"a": 95.0, "b": 91.0}))

        result = await matcher.match(Song(title="Song", artist="Artist"), [adapter])

        assert result.status == MatchStatus.PENDING_REVIEW
        assert result.selected_match is None
        assert len(result.matches) == 2

    async def test_same_song_on_two_platforms_is_not_ambiguous(
        self, fake_adapter_cls, make_catalog_song
    ) -> None:
        local = fake_adapter_cls(search_results={"song": [make_catalog_song("a", "Song", "Artist")]})
        spotify = fake_adapter_cls(
            platform=PlaylistPlatform.SPOTIFY,
            search_results={
                "song": [make_catalog_song("b", "Song", "Artist", platform=PlaylistPlatform.SPOTIFY)]
            },
        )
        matcher = SongMatcher(scorer=_fixed_scores({"a": 95.0, "b": 94.0}))

        result = await matcher.match(Song(title="Song", artist="Artist"), [local, spotify])

        assert result.status == MatchStatus.MATCHED
        assert result.selected_match is not None
        assert result.selected_match.platform == PlaylistPlatform.NAVIDROME

    async def test_different_songs_on_two_platforms_are_ambiguous(
        self, fake_adapter_cls, make_catalog_song
    ) -> None:
        """Test a close runner-up from another platform still blocks auto-select."""
        local = fake_adapter_cls(search_results={"song": [make_catalog_song("a", "Song", "Artist")]})
        spotify = fake_adapter_cls(
            platform=PlaylistPlatform.SPOTIFY,
            search_results={
                "song": [
                    make_catalog_song("b", "Song (Live)", "Artist", platform=PlaylistPlatform.SPOTIFY)
                ]
            },
        )
        matcher = SongMatcher(scorer=_fixed_scores({"a": 80.0, "b": 78.0}))

        result = await matcher.match(Song(title="Song", artist="Artist"), [local, spotify])

        assert [c.match_score for c in result.matches] == [80.0, 78.0]
        assert result.status == MatchStatus.PENDING_REVIEW
        assert result.selected_match is None

    async def test_low_confidence_needs_review(self, fake_adapter_cls, make_catalog_song) -> None:
        adapter = fake_adapter_cls(search_results={"song": [make_catalog_song("a", "Song", "Artist")]})
        matcher = SongMatcher(scorer=_fixed_scores({"a": 55.0}))

        result = await matcher.match(Song(title="Song", artist="Artist"), [adapter])

        assert result.status == MatchStatus.PENDING_REVIEW
        assert result.matches[0].confidence == MatchConfidence.LOW

    async def test_scores_below_cutoff_are_dropped(self, fake_adapter_cls, make_catalog_song) -> None:
        adapter = fake_adapter_cls(search_results={"song": [make_catalog_song("a", "Song", "Artist")]})
        matcher = SongMatcher(scorer=_fixed_scores({"a": 12.0}))

        result = await matcher.match(Song(title="Song", artist="Artist"), [adapter])

        assert result.status == MatchStatus.NO_MATCH
        assert result.matches == []

    async def test_one_failing_adapter_is_isolated(self, fake_adapter_cls, make_catalog_song) -> None:
        """Test a broken platform does not sink matches from a healthy one."""
        healthy = fake_adapter_cls(search_results={"song": [make_catalog_song("a", "Song", "Artist")]})
        broken = fake_adapter_cls(
            platform=PlaylistPlatform.SPOTIFY, error=ExternalServiceError("spotify", "timeout")
        )

        result = await SongMatcher().match(Song(title="Song", artist="Artist"), [broken, healthy])

        assert result.status == MatchStatus.MATCHED
        assert result.warnings == []
        assert result.lookup_failed is False

    async def test_all_adapters_failing_gives_warnings(self, fake_adapter_cls) -> None:
        broken = fake_adapter_cls(error=ExternalServiceError("navidrome", "connection refused"))

        result = await SongMatcher().match(Song(title="Song", artist="Artist"), [broken])

        assert result.status == MatchStatus.NO_MATCH
        assert result.warnings == ["navidrome search failed: navidrome: connection refused"]
        assert result.lookup_failed is True

    async def test_failure_log_hint_only_with_other_catalogs(
        self, fake_adapter_cls, make_catalog_song, caplog: pytest.LogCaptureFixture
    ) -> None:
        broken = fake_adapter_cls(error=ExternalServiceError("navidrome", "down"))
        song = Song(title="Song", artist="Artist")

        with caplog.at_level("WARNING"):
            await SongMatcher().match(song, [broken])
        assert "Catalog Search Failed" in caplog.text
        assert "other catalogs" not in caplog.text

        caplog.clear()
        healthy = fake_adapter_cls(
            platform=PlaylistPlatform.SPOTIFY,
            search_results={"song": [make_catalog_song("a", "Song", "Artist", platform=PlaylistPlatform.SPOTIFY)]},
        )
        with caplog.at_level("WARNING"):
            await SongMatcher().match(song, [broken, healthy])
        assert "Matching continues with the other catalogs' results" in caplog.text

    async def test_nothing_found_is_not_a_failed_lookup(self, fake_adapter_cls) -> None:
        result = await SongMatcher().match(Song(title="Song", artist="Artist"), [fake_adapter_cls()])

        assert result.status == MatchStatus.NO_MATCH
        assert result.lookup_failed is False

    async def test_programming_errors_propagate(self, fake_adapter_cls) -> None:
        adapter = fake_adapter_cls(error=RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            await SongMatcher().match(Song(title="Song", artist="Artist"), [adapter])


class TestMatchMany:
    """Tests for SongMatcher.match_many()."""

    async def test_results_keep_playlist_order(self, fake_adapter_cls, make_catalog_song) -> None:
        adapter = fake_adapter_cls(
            search_results={
                "first": [make_catalog_song("1", "First", "A")],
                "second": [make_catalog_song("2", "Second", "B")],
            }
        )
        songs = [Song(title="First", artist="A"), Song(title="Second", artist="B"), Song(title="Third", artist="C")]
        seen: list[int] = []

        async def on_result(index: int, _result) -> None:
            seen.append(index)

        results = await SongMatcher(max_concurrency=2).match_many(songs, [adapter], on_result)

        assert [r.original_song.title for r in results] == ["First", "Second", "Third"]  # type: ignore[union-attr]
        assert sorted(seen) == [0, 1, 2]

    async def test_cancelled_songs_stay_empty(self, fake_adapter_cls) -> None:
        adapter = fake_adapter_cls()
        songs = [Song(title="Song", artist="Artist")] * 3

        results = await SongMatcher().match_many(songs, [adapter], is_cancelled=lambda: True)

        assert results == [None, None, None]
        assert adapter.search_calls == []


class TestReviewHelpers:
    """Tests for report, CSV export and selection helpers."""

    async def _results(self, fake_adapter_cls, make_catalog_song):
        adapter = fake_adapter_cls(
            search_results={
                "matched": [make_catalog_song("m", "Matched", "A")],
                "review": [make_catalog_song("r1", "Review", "B"), make_catalog_song("r2", "Review", "B")],
            }
        )
        matcher = SongMatcher(scorer=_fixed_scores({"m": 99.0, "r1": 75.0, "r2": 73.0}))
        songs = [
            Song(title="Matched", artist="A"),
            Song(title="Review", artist="B"),
            Song(title="Missing", artist="C"),
        ]
        return await matcher.match_many(songs, [adapter])

    async def test_report(self, fake_adapter_cls, make_catalog_song) -> None:
        results = await self._results(fake_adapter_cls, make_catalog_song)

        report = generate_match_report(results)

        assert (report.total, report.matched, report.pending_review, report.no_match) == (3, 1, 1, 1)
        assert report.by_confidence["exact"] == 1
        assert report.by_confidence["high"] == 1
        assert report.by_confidence["none"] == 1
        assert report.pending_songs == ["B - Review"]
        assert report.unmatched_songs == ["C - Missing"]

    async def test_csv_export(self, fake_adapter_cls, make_catalog_song) -> None:
        results = await self._results(fake_adapter_cls, make_catalog_song)

        rows = list(csv.DictReader(io.StringIO(export_match_results_csv(results))))

        assert [row["status"] for row in rows] == ["matched", "pending_review", "no_match"]
        assert rows[0]["matched_id"] == "m"
        assert rows[1]["matched_id"] == "r1"
        assert rows[2]["matched_id"] == ""
        assert rows[2]["confidence"] == "none"

    async def test_update_selection_returns_a_copy(self, fake_adapter_cls, make_catalog_song) -> None:
        results = await self._results(fake_adapter_cls, make_catalog_song)
        runner_up = results[1].matches[1]  # type: ignore[union-attr]

        updated = update_match_selection(results, 1, runner_up)

        assert updated[1].status == MatchStatus.MATCHED  # type: ignore[union-attr]
        assert updated[1].selected_match.platform_id == "r2"  # type: ignore[union-attr]
        assert results[1].status == MatchStatus.PENDING_REVIEW  # type: ignore[union-attr]

    async def test_skip_song(self, fake_adapter_cls, make_catalog_song) -> None:
        results = await self._results(fake_adapter_cls, make_catalog_song)

        updated = skip_song(results, 1)

        assert updated[1].status == MatchStatus.SKIPPED  # type: ignore[union-attr]
        assert generate_match_report(updated).skipped == 1

    async def test_helpers_validate_index(self, fake_adapter_cls, make_catalog_song) -> None:
        results = await self._results(fake_adapter_cls, make_catalog_song)
        with pytest.raises(ValidationException):
            skip_song(results, 7)
