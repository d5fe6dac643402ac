"""Song matcher - resolves parsed songs against catalog adapters.

Strategy, stopping at the first one that yields any candidate:

1. ISRC lookup on every adapter. Any hit is EXACT with score 100.
2. Text search ("artist title") on every adapter, each hit scored by a
   weighted sum of title, artist, album and duration similarity.

Adapters are queried in parallel per song. One adapter failing is the same as
that adapter finding nothing; only when all of them fail does the song carry
the failures as warnings.
"""

import asyncio
import csv
import io
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace

from rapidfuzz import fuzz

from playbridge.config import MatchingSettings
from playbridge.domain.entities import (
    MatchCandidate,
    MatchConfidence,
    MatchStatus,
    Song,
    SongMatchResult,
)
from playbridge.domain.exceptions import DomainException, ValidationException
from playbridge.domain.ports import ICatalogAdapter
from playbridge.domain.value_objects.text_normalization import (
    normalize_artist,
    normalize_string,
    normalize_title,
)
from playbridge.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 0.5
ARTIST_WEIGHT = 0.35
ALBUM_WEIGHT = 0.1
DURATION_WEIGHT = 0.05

# Duration bonus: full within ±3s, linear decay to nothing at ±15s
DURATION_FULL_BONUS_SECONDS = 3
DURATION_ZERO_BONUS_SECONDS = 15

Scorer = Callable[[Song, Song], tuple[float, str]]
ResultCallback = Callable[[int, SongMatchResult], Awaitable[None]]


@dataclass(frozen=True)
class MatchThresholds:
    """Score cutoffs and list limits."""

    exact: float = 90.0
    high: float = 70.0
    low: float = 40.0
    ambiguity_gap: float = 5.0
    max_candidates: int = 10
    search_limit: int = 5

    @classmethod
    def from_settings(cls, settings: MatchingSettings) -> "MatchThresholds":
        return cls(
            exact=settings.exact_threshold,
            high=settings.high_threshold,
            low=settings.low_threshold,
            ambiguity_gap=settings.ambiguity_gap,
            max_candidates=settings.max_candidates,
            search_limit=settings.search_limit,
        )

    def confidence_for(self, score: float) -> MatchConfidence | None:
        """Confidence tier for a score, None below the discard cutoff."""
        if score >= self.exact:
            return MatchConfidence.EXACT
        if score >= self.high:
            return MatchConfidence.HIGH
        if score >= self.low:
            return MatchConfidence.LOW
        return None


def _title_similarity(a: str, b: str) -> float:
    # max of normalized and raw: "Song (Remastered)" vs "Song" should be 100,
    # but normalization must never make an exact raw match look worse
    normalized = fuzz.ratio(normalize_title(a), normalize_title(b))
    original = fuzz.ratio(a.lower(), b.lower())
    return max(normalized, original) / 100.0


def _artist_similarity(a: str, b: str) -> float:
    left, right = normalize_artist(a), normalize_artist(b)
    return max(fuzz.ratio(left, right), fuzz.token_set_ratio(left, right)) / 100.0


def _duration_similarity(a: int, b: int) -> float:
    diff = abs(a - b)
    if diff <= DURATION_FULL_BONUS_SECONDS:
        return 1.0
    if diff >= DURATION_ZERO_BONUS_SECONDS:
        return 0.0
    span = DURATION_ZERO_BONUS_SECONDS - DURATION_FULL_BONUS_SECONDS
    return (DURATION_ZERO_BONUS_SECONDS - diff) / span


# Hey future me - album and duration only contribute when BOTH sides know
# them. A song parsed from a bare "Artist - Title" line therefore tops out at
# 85 from text search alone: HIGH, never EXACT. That is intended, EXACT from
# text needs the extra evidence.
def score_candidate(song: Song, hit: Song) -> tuple[float, str]:
    """Score a catalog hit against the parsed song (0-100) with a reason."""
    title = _title_similarity(song.title, hit.title)
    artist = _artist_similarity(song.artist, hit.artist)
    total = TITLE_WEIGHT * title + ARTIST_WEIGHT * artist
    reasons = [f"title {title:.0%}", f"artist {artist:.0%}"]

    if song.album and hit.album:
        album = fuzz.ratio(normalize_title(song.album), normalize_title(hit.album)) / 100.0
        total += ALBUM_WEIGHT * album
        reasons.append(f"album {album:.0%}")

    if song.duration is not None and hit.duration is not None:
        duration = _duration_similarity(song.duration, hit.duration)
        total += DURATION_WEIGHT * duration
        reasons.append(f"duration ±{abs(song.duration - hit.duration)}s")

    return round(total * 100, 1), ", ".join(reasons)


def _same_recording_elsewhere(top: MatchCandidate, other: MatchCandidate) -> bool:
    # normalize_string, not normalize_title: "Song (Live)" is another recording
    return (
        other.platform != top.platform
        and normalize_string(other.title) == normalize_string(top.title)
        and normalize_artist(other.artist) == normalize_artist(top.artist)
    )


def compose_query(song: Song) -> str:
    """Free-text query sent to every adapter."""
    return f"{song.artist} {song.title}".strip()


class SongMatcher:
    """Matches songs against catalog adapters."""

    def __init__(
        self,
        thresholds: MatchThresholds | None = None,
        scorer: Scorer = score_candidate,
        max_concurrency: int = 6,
    ) -> None:
        if max_concurrency < 1:
            raise ValidationException("max_concurrency must be at least 1")
        self.thresholds = thresholds or MatchThresholds()
        self._scorer = scorer
        self.max_concurrency = max_concurrency

    @classmethod
    def from_settings(cls, settings: MatchingSettings) -> "SongMatcher":
        return cls(
            thresholds=MatchThresholds.from_settings(settings),
            max_concurrency=settings.max_concurrency,
        )

    async def match(self, song: Song, adapters: Sequence[ICatalogAdapter]) -> SongMatchResult:
        """Match one song."""
        warnings: list[str] = []

        if song.isrc:
            isrc = song.isrc
            hits, failures = await self._query_all(
                adapters, song, lambda adapter: adapter.search_by_isrc(isrc)
            )
            if len(failures) == len(adapters):
                warnings.extend(failures)
            candidates = [
                self._candidate(adapter, hit, MatchConfidence.EXACT, 100.0, f"ISRC {isrc}")
                for adapter, hit in hits
            ]
            if candidates:
                return self._isrc_result(song, candidates, warnings)

        query = compose_query(song)
        limit = self.thresholds.search_limit
        hits, failures = await self._query_all(
            adapters, song, lambda adapter: adapter.search(query, 0, limit)
        )
        lookup_failed = bool(adapters) and len(failures) == len(adapters)
        if lookup_failed:
            warnings.extend(failures)

        candidates = []
        for adapter, hit in hits:
            score, reason = self._scorer(song, hit)
            confidence = self.thresholds.confidence_for(score)
            if confidence is None:
                continue
            candidates.append(self._candidate(adapter, hit, confidence, score, reason))

        result = self._text_result(song, candidates, warnings)
        result.lookup_failed = lookup_failed
        return result

    async def match_many(
        self,
        songs: Sequence[Song],
        adapters: Sequence[ICatalogAdapter],
        on_result: ResultCallback | None = None,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> list[SongMatchResult | None]:
        """Match songs with bounded concurrency.

        Results are written by original index, so out-of-order completion
        never reorders the playlist. Slots stay None for songs that were not
        matched because cancellation was requested.
        """
        results: list[SongMatchResult | None] = [None] * len(songs)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(index: int, song: Song) -> None:
            async with semaphore:
                if is_cancelled is not None and is_cancelled():
                    return
                result = await self.match(song, adapters)
                # the call was already in flight when cancel came in: drop it
                if is_cancelled is not None and is_cancelled():
                    logger.debug("Discarding match for song %d after cancellation", index)
                    return
                results[index] = result
                if on_result is not None:
                    await on_result(index, result)

        await asyncio.gather(*(run(i, song) for i, song in enumerate(songs)))
        return results

    async def _query_all(
        self,
        adapters: Sequence[ICatalogAdapter],
        song: Song,
        call: Callable[[ICatalogAdapter], Awaitable[list[Song]]],
    ) -> tuple[list[tuple[ICatalogAdapter, Song]], list[str]]:
        """Run ``call`` on every adapter in parallel, isolating domain failures."""
        outcomes = await asyncio.gather(
            *(call(adapter) for adapter in adapters), return_exceptions=True
        )
        answered = sum(1 for outcome in outcomes if not isinstance(outcome, BaseException))
        hint = "Matching continues with the other catalogs' results" if answered else None
        hits: list[tuple[ICatalogAdapter, Song]] = []
        failures: list[str] = []
        for adapter, outcome in zip(adapters, outcomes, strict=True):
            if isinstance(outcome, DomainException):
                logger.warning(
                    LogMessages.adapter_failed(
                        adapter.platform.value, song.display_name, outcome.message, hint
                    )
                )
                failures.append(f"{adapter.platform.value} search failed: {outcome.message}")
            elif isinstance(outcome, BaseException):
                # programming errors and cancellation are not "found nothing"
                raise outcome
            else:
                hits.extend((adapter, hit) for hit in outcome if hit.platform_id)
        return hits, failures

    def _candidate(
        self,
        adapter: ICatalogAdapter,
        hit: Song,
        confidence: MatchConfidence,
        score: float,
        reason: str,
    ) -> MatchCandidate:
        return MatchCandidate(
            platform=hit.platform or adapter.platform,
            platform_id=str(hit.platform_id),
            title=hit.title,
            artist=hit.artist,
            confidence=confidence,
            match_score=score,
            match_reason=reason,
            album=hit.album,
            duration=hit.duration,
            url=hit.url,
        )

    def _rank(self, candidates: list[MatchCandidate]) -> list[MatchCandidate]:
        """Dedupe by (platform, id) keeping the best score, sort, cap."""
        best: dict[tuple[str, str], MatchCandidate] = {}
        for candidate in candidates:
            key = (candidate.platform.value, candidate.platform_id)
            if key not in best or candidate.match_score > best[key].match_score:
                best[key] = candidate
        # sorted() is stable: equal scores keep adapter order
        ranked = sorted(best.values(), key=lambda c: c.match_score, reverse=True)
        return ranked[: self.thresholds.max_candidates]

    def _isrc_result(
        self, song: Song, candidates: list[MatchCandidate], warnings: list[str]
    ) -> SongMatchResult:
        # An ISRC hit is the same recording, so ties between platforms are
        # not ambiguity: the first adapter's hit wins.
        ranked = self._rank(candidates)
        result = SongMatchResult(
            original_song=song,
            matches=ranked,
            status=MatchStatus.PENDING_REVIEW,
            warnings=warnings,
        )
        result.select(ranked[0])
        return result

    def _text_result(
        self, song: Song, candidates: list[MatchCandidate], warnings: list[str]
    ) -> SongMatchResult:
        ranked = self._rank(candidates)
        if not ranked:
            return SongMatchResult(
                original_song=song, status=MatchStatus.NO_MATCH, warnings=warnings
            )

        result = SongMatchResult(
            original_song=song,
            matches=ranked,
            status=MatchStatus.PENDING_REVIEW,
            warnings=warnings,
        )
        top = ranked[0]
        if top.confidence in (MatchConfidence.EXACT, MatchConfidence.HIGH) and not self._is_ambiguous(
            top, ranked[1:]
        ):
            result.select(top)
        return result

    def _is_ambiguous(self, top: MatchCandidate, others: list[MatchCandidate]) -> bool:
        """Any runner-up within the gap blocks auto-select.

        The only exception is the same recording found on another platform
        (same normalized title and artist), which is not a competing answer.
        """
        return any(
            top.match_score - other.match_score <= self.thresholds.ambiguity_gap
            and not _same_recording_elsewhere(top, other)
            for other in others
        )


@dataclass
class MatchReport:
    """Summary of a job's match results."""

    total: int = 0
    matched: int = 0
    pending_review: int = 0
    no_match: int = 0
    skipped: int = 0
    by_confidence: dict[str, int] = field(default_factory=dict)
    unmatched_songs: list[str] = field(default_factory=list)
    pending_songs: list[str] = field(default_factory=list)


def generate_match_report(results: Sequence[SongMatchResult | None]) -> MatchReport:
    """Summary counts, confidence histogram and the songs needing attention."""
    report = MatchReport(by_confidence={c.value: 0 for c in MatchConfidence})
    for result in results:
        if result is None:
            continue
        report.total += 1
        top = result.top_candidate
        tier = top.confidence if top else MatchConfidence.NONE
        report.by_confidence[tier.value] += 1

        if result.status == MatchStatus.MATCHED:
            report.matched += 1
        elif result.status == MatchStatus.PENDING_REVIEW:
            report.pending_review += 1
            report.pending_songs.append(result.original_song.display_name)
        elif result.status == MatchStatus.SKIPPED:
            report.skipped += 1
        else:
            report.no_match += 1
            report.unmatched_songs.append(result.original_song.display_name)
    return report


CSV_COLUMNS = [
    "position",
    "original_artist",
    "original_title",
    "original_album",
    "status",
    "matched_platform",
    "matched_id",
    "matched_artist",
    "matched_title",
    "confidence",
    "score",
]


def export_match_results_csv(results: Sequence[SongMatchResult | None]) -> str:
    """One row per song with original and matched fields."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for position, result in enumerate(results, start=1):
        if result is None:
            continue
        song = result.original_song
        chosen = result.selected_candidate or (
            result.top_candidate if result.status == MatchStatus.PENDING_REVIEW else None
        )
        writer.writerow(
            {
                "position": position,
                "original_artist": song.artist,
                "original_title": song.title,
                "original_album": song.album or "",
                "status": result.status.value,
                "matched_platform": chosen.platform.value if chosen else "",
                "matched_id": chosen.platform_id if chosen else "",
                "matched_artist": chosen.artist if chosen else "",
                "matched_title": chosen.title if chosen else "",
                "confidence": chosen.confidence.value if chosen else MatchConfidence.NONE.value,
                "score": chosen.match_score if chosen else "",
            }
        )
    return buffer.getvalue()


def _result_at(results: Sequence[SongMatchResult | None], index: int) -> SongMatchResult:
    if not 0 <= index < len(results):
        raise ValidationException(f"Song index {index} out of range")
    result = results[index]
    if result is None:
        raise ValidationException(f"Song {index} has not been matched yet")
    return result


def update_match_selection(
    results: Sequence[SongMatchResult | None], index: int, candidate: MatchCandidate
) -> list[SongMatchResult | None]:
    """Copy of ``results`` with song ``index`` resolved to ``candidate``."""
    current = _result_at(results, index)
    updated = replace(current, warnings=list(current.warnings))
    updated.select(candidate)
    new_results = list(results)
    new_results[index] = updated
    return new_results


def skip_song(
    results: Sequence[SongMatchResult | None], index: int
) -> list[SongMatchResult | None]:
    """Copy of ``results`` with song ``index`` declined."""
    current = _result_at(results, index)
    updated = replace(current, warnings=list(current.warnings))
    updated.skip()
    new_results = list(results)
    new_results[index] = updated
    return new_results
