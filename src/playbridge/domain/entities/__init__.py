"""Domain entities for the playlist interchange pipeline."""

from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from playbridge.domain.exceptions import InvalidStateException, ValidationException


class PlaylistFormat(str, Enum):
    """Supported playlist text formats."""

    M3U = "m3u"
    XSPF = "xspf"
    JSON = "json"
    CSV = "csv"


class PlaylistPlatform(str, Enum):
    """Where a playlist or a resolved song comes from."""

    SPOTIFY = "spotify"
    YOUTUBE_MUSIC = "youtube_music"
    NAVIDROME = "navidrome"
    LOCAL = "local"


class MatchConfidence(str, Enum):
    """Coarse confidence tier of a match candidate.

    NONE is reserved for "zero candidates found", no scored candidate ever
    carries it.
    """

    EXACT = "exact"
    HIGH = "high"
    LOW = "low"
    NONE = "none"


class MatchStatus(str, Enum):
    """Outcome of matching one song."""

    MATCHED = "matched"
    PENDING_REVIEW = "pending_review"
    NO_MATCH = "no_match"
    SKIPPED = "skipped"


class JobStatus(str, Enum):
    """Lifecycle shared by import, export and download jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Terminal jobs never change again."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


# Hey future me, Song is FROZEN on purpose. The parsed original must survive
# untouched next to its resolved copy (the review UI shows both), so resolving
# a song always goes through with_resolution() which returns a new value.
@dataclass(frozen=True)
class Song:
    """Canonical song representation."""

    title: str
    artist: str
    album: str | None = None
    duration: int | None = None  # seconds
    isrc: str | None = None
    track_number: int | None = None
    platform: PlaylistPlatform | None = None
    platform_id: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        if self.duration is not None and self.duration < 0:
            raise ValidationException("Song duration cannot be negative")

    @property
    def display_name(self) -> str:
        """'Artist - Title' string used for denormalized storage and logs."""
        return f"{self.artist} - {self.title}"

    @property
    def is_resolved(self) -> bool:
        """True once the song is bound to a platform id."""
        return self.platform is not None and bool(self.platform_id)

    def with_resolution(
        self,
        platform: PlaylistPlatform,
        platform_id: str,
        url: str | None = None,
    ) -> "Song":
        """Return a resolved copy bound to a platform id."""
        return replace(self, platform=platform, platform_id=platform_id, url=url)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        data = asdict(self)
        data["platform"] = self.platform.value if self.platform else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Song":
        """Deserialize from JSON storage."""
        platform = data.get("platform")
        return cls(
            title=data["title"],
            artist=data["artist"],
            album=data.get("album"),
            duration=data.get("duration"),
            isrc=data.get("isrc"),
            track_number=data.get("track_number"),
            platform=PlaylistPlatform(platform) if platform else None,
            platform_id=data.get("platform_id"),
            url=data.get("url"),
        )


@dataclass
class Playlist:
    """Canonical playlist, songs in meaningful order."""

    name: str
    songs: list[Song] = field(default_factory=list)
    description: str | None = None
    creator: str | None = None
    platform: PlaylistPlatform | None = None
    created_at: datetime | None = None

    def __len__(self) -> int:
        return len(self.songs)


@dataclass(frozen=True)
class MatchCandidate:
    """One hypothesis for resolving a song on a platform."""

    platform: PlaylistPlatform
    platform_id: str
    title: str
    artist: str
    confidence: MatchConfidence
    match_score: float
    match_reason: str
    album: str | None = None
    duration: int | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        data = asdict(self)
        data["platform"] = self.platform.value
        data["confidence"] = self.confidence.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchCandidate":
        """Deserialize from JSON storage."""
        return cls(
            platform=PlaylistPlatform(data["platform"]),
            platform_id=str(data["platform_id"]),
            title=data["title"],
            artist=data["artist"],
            confidence=MatchConfidence(data["confidence"]),
            match_score=float(data["match_score"]),
            match_reason=data.get("match_reason", ""),
            album=data.get("album"),
            duration=data.get("duration"),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class SelectedMatch:
    """The platform + id a song was resolved to."""

    platform: PlaylistPlatform
    platform_id: str

    @property
    def key(self) -> tuple[str, str]:
        """Membership key used for playlist duplicate detection."""
        return (self.platform.value, self.platform_id)


# Listen up, status transitions here are deliberately narrow: only
# PENDING_REVIEW may move (to MATCHED via select() or SKIPPED via skip()).
# MATCHED and SKIPPED are terminal, which is what makes a repeated
# finalize_review a no-op instead of a second commit.
@dataclass
class SongMatchResult:
    """Matching outcome for a single song."""

    original_song: Song
    matches: list[MatchCandidate] = field(default_factory=list)
    status: MatchStatus = MatchStatus.NO_MATCH
    selected_match: SelectedMatch | None = None
    warnings: list[str] = field(default_factory=list)
    # every adapter errored, as opposed to every adapter finding nothing
    lookup_failed: bool = False

    @property
    def top_candidate(self) -> MatchCandidate | None:
        """Highest scored candidate, if any."""
        return self.matches[0] if self.matches else None

    @property
    def selected_candidate(self) -> MatchCandidate | None:
        """Candidate matching selected_match, if present in the list."""
        if self.selected_match is None:
            return None
        for candidate in self.matches:
            if (
                candidate.platform == self.selected_match.platform
                and candidate.platform_id == self.selected_match.platform_id
            ):
                return candidate
        return None

    @property
    def is_terminal(self) -> bool:
        """MATCHED, NO_MATCH and SKIPPED never change during review."""
        return self.status != MatchStatus.PENDING_REVIEW

    def find_candidate(
        self, platform: PlaylistPlatform, platform_id: str
    ) -> MatchCandidate | None:
        """Look up a candidate by platform and id."""
        for candidate in self.matches:
            if candidate.platform == platform and candidate.platform_id == platform_id:
                return candidate
        return None

    def select(self, candidate: MatchCandidate) -> None:
        """Resolve a pending review to the given candidate."""
        if self.status != MatchStatus.PENDING_REVIEW:
            raise InvalidStateException(
                f"Cannot select a match for a song in status {self.status.value}"
            )
        if self.find_candidate(candidate.platform, candidate.platform_id) is None:
            raise ValidationException(
                f"Candidate {candidate.platform.value}:{candidate.platform_id} "
                f"is not a match for '{self.original_song.display_name}'"
            )
        self.selected_match = SelectedMatch(candidate.platform, candidate.platform_id)
        self.status = MatchStatus.MATCHED

    def skip(self) -> None:
        """Explicitly decline a pending review."""
        if self.status != MatchStatus.PENDING_REVIEW:
            raise InvalidStateException(
                f"Cannot skip a song in status {self.status.value}"
            )
        self.selected_match = None
        self.status = MatchStatus.SKIPPED

    def resolved_song(self) -> Song | None:
        """Resolved copy of the original song, or None when not matched."""
        if self.status != MatchStatus.MATCHED or self.selected_match is None:
            return None
        candidate = self.selected_candidate
        return self.original_song.with_resolution(
            self.selected_match.platform,
            self.selected_match.platform_id,
            url=candidate.url if candidate else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        return {
            "original_song": self.original_song.to_dict(),
            "matches": [candidate.to_dict() for candidate in self.matches],
            "status": self.status.value,
            "selected_match": (
                {
                    "platform": self.selected_match.platform.value,
                    "platform_id": self.selected_match.platform_id,
                }
                if self.selected_match
                else None
            ),
            "warnings": list(self.warnings),
            "lookup_failed": self.lookup_failed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SongMatchResult":
        """Deserialize from JSON storage."""
        selected = data.get("selected_match")
        return cls(
            original_song=Song.from_dict(data["original_song"]),
            matches=[MatchCandidate.from_dict(c) for c in data.get("matches", [])],
            status=MatchStatus(data.get("status", MatchStatus.NO_MATCH.value)),
            selected_match=(
                SelectedMatch(
                    PlaylistPlatform(selected["platform"]),
                    str(selected["platform_id"]),
                )
                if selected
                else None
            ),
            warnings=list(data.get("warnings", [])),
            lookup_failed=bool(data.get("lookup_failed", False)),
        )


def _count_statuses(
    results: list[SongMatchResult | None],
) -> tuple[int, int, int, int]:
    """Return (processed, matched, unmatched, pending) for a result list."""
    processed = matched = unmatched = pending = 0
    for result in results:
        if result is None:
            continue
        processed += 1
        if result.status == MatchStatus.MATCHED:
            matched += 1
        elif result.status == MatchStatus.PENDING_REVIEW:
            pending += 1
        else:
            unmatched += 1
    return processed, matched, unmatched, pending


# Hey future me, ImportJob counters are DERIVED from match_results via
# _recount(), never incremented by hand. That keeps
# matched + unmatched + pending == processed true after every write, including
# review rounds where SKIPPED moves a song from pending to unmatched.
# match_results is pre-sized to total_songs and filled by index, so concurrent
# matching can finish out of order without scrambling playlist order.
@dataclass
class ImportJob:
    """Import job entity tracking a playlist through parse, match and commit."""

    id: str
    owner_id: str
    format: PlaylistFormat
    target_platform: PlaylistPlatform
    playlist_name: str
    status: JobStatus = JobStatus.PENDING
    playlist_id: str | None = None
    playlist_description: str | None = None
    original_filename: str | None = None
    total_songs: int = 0
    processed_songs: int = 0
    matched_songs: int = 0
    unmatched_songs: int = 0
    pending_review_songs: int = 0
    added_songs: int = 0
    duplicate_songs: int = 0
    match_results: list[SongMatchResult | None] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    # queue_downloads, search_platforms, download_preferences; never credentials
    options: dict[str, Any] = field(default_factory=dict)
    download_job_id: str | None = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.match_results and self.total_songs:
            self.match_results = [None] * self.total_songs
        if len(self.match_results) != self.total_songs:
            raise ValidationException(
                "match_results must have one slot per song "
                f"({len(self.match_results)} != {self.total_songs})"
            )

    @property
    def is_finished(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status.is_terminal

    @property
    def awaiting_review(self) -> bool:
        """Match pass is done but some songs still need a human decision."""
        return (
            self.status == JobStatus.PROCESSING
            and self.processed_songs == self.total_songs
            and self.pending_review_songs > 0
        )

    def start(self) -> None:
        """Mark job as processing."""
        if self.status != JobStatus.PENDING:
            raise InvalidStateException(
                f"Cannot start import job in status {self.status.value}"
            )
        self.status = JobStatus.PROCESSING
        self.started_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def record_result(self, index: int, result: SongMatchResult) -> None:
        """Store one song's result at its original position."""
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateException(
                f"Cannot record results for import job in status {self.status.value}"
            )
        if not 0 <= index < self.total_songs:
            raise ValidationException(f"Song index {index} out of range")
        self.match_results[index] = result
        self._recount()

    def refresh_counters(self) -> None:
        """Recompute counters after results were changed in place."""
        self._recount()

    def add_song_warnings(self, index: int, warnings: list[str]) -> None:
        """Copy one song's warnings onto the job, prefixed with its position."""
        for warning in warnings:
            message = f"Song {index + 1}: {warning}"
            if message not in self.warnings:
                self.warnings.append(message)

    def lookup_failure_summary(self) -> str | None:
        """Aggregate error when the catalog lookup failed for every song, else None."""
        results = self.completed_results()
        if not results or not all(result.lookup_failed for result in results):
            return None
        errors = sorted({warning for result in results for warning in result.warnings})
        return f"Catalog lookup failed for all {len(results)} songs: " + "; ".join(errors[:5])

    def complete(self) -> None:
        """Mark job as completed."""
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateException(
                f"Cannot complete import job in status {self.status.value}"
            )
        self.status = JobStatus.COMPLETED
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def fail(self, error_message: str, details: dict[str, Any] | None = None) -> None:
        """Mark job as failed, keeping every result collected so far."""
        if self.status.is_terminal:
            raise InvalidStateException(
                f"Cannot fail import job in status {self.status.value}"
            )
        self.status = JobStatus.FAILED
        self.error_message = error_message
        self.error_details = details
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def cancel(self) -> None:
        """Cancel the job, keeping already collected results."""
        if self.status.is_terminal:
            raise InvalidStateException(
                f"Cannot cancel import job in status {self.status.value}"
            )
        self.status = JobStatus.CANCELLED
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def completed_results(self) -> list[SongMatchResult]:
        """Results in playlist order, holes left by cancellation dropped."""
        return [result for result in self.match_results if result is not None]

    def _recount(self) -> None:
        (
            self.processed_songs,
            self.matched_songs,
            self.unmatched_songs,
            self.pending_review_songs,
        ) = _count_statuses(self.match_results)
        self.updated_at = datetime.now(UTC)


@dataclass
class ExportJob:
    """Export job entity, the inverse of ImportJob without a review phase."""

    id: str
    owner_id: str
    playlist_id: str
    format: PlaylistFormat
    status: JobStatus = JobStatus.PENDING
    options: dict[str, Any] = field(default_factory=dict)
    exported_data: str | None = None
    filename: str | None = None
    song_count: int = 0
    enriched_songs: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_finished(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status.is_terminal

    def start(self) -> None:
        """Mark export as processing."""
        if self.status != JobStatus.PENDING:
            raise InvalidStateException(
                f"Cannot start export job in status {self.status.value}"
            )
        self.status = JobStatus.PROCESSING
        self.started_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def complete(self, exported_data: str, filename: str, song_count: int) -> None:
        """Store rendered output and mark export as completed."""
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateException(
                f"Cannot complete export job in status {self.status.value}"
            )
        self.exported_data = exported_data
        self.filename = filename
        self.song_count = song_count
        self.status = JobStatus.COMPLETED
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)

    def fail(self, error_message: str) -> None:
        """Mark export as failed."""
        if self.status.is_terminal:
            raise InvalidStateException(
                f"Cannot fail export job in status {self.status.value}"
            )
        self.status = JobStatus.FAILED
        self.error_message = error_message
        self.completed_at = datetime.now(UTC)
        self.updated_at = datetime.now(UTC)


@dataclass
class StoredPlaylist:
    """A user's playlist in local storage."""

    id: str
    owner_id: str
    name: str
    description: str | None = None
    song_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class PlaylistEntry:
    """Position-ordered playlist membership.

    song_artist_title is the denormalized "Artist - Title" string kept so an
    export still works when the catalog is unreachable.
    """

    id: str
    playlist_id: str
    song_id: str
    platform: PlaylistPlatform
    song_artist_title: str
    position: int
    added_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> tuple[str, str]:
        """Membership key, same shape as SelectedMatch.key."""
        return (self.platform.value, self.song_id)


__all__ = [
    "ExportJob",
    "ImportJob",
    "JobStatus",
    "MatchCandidate",
    "MatchConfidence",
    "MatchStatus",
    "Playlist",
    "PlaylistEntry",
    "PlaylistFormat",
    "PlaylistPlatform",
    "SelectedMatch",
    "Song",
    "SongMatchResult",
    "StoredPlaylist",
]
