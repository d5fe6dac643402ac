"""SQLAlchemy ORM models for playbridge."""

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! UTC datetimes come
# back naive, so attach UTC again before handing them to entities.
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserPlaylistModel(Base):
    """A user's stored playlist."""

    __tablename__ = "user_playlists"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    song_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        sa.UniqueConstraint("owner_id", "name", name="uq_user_playlists_owner_name"),
    )


# Listen up, (playlist_id, platform, song_id) is UNIQUE. append_songs checks
# membership first, the constraint is the backstop when two finalizes race.
class PlaylistSongModel(Base):
    """Position-ordered playlist membership."""

    __tablename__ = "playlist_songs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    playlist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_playlists.id", ondelete="CASCADE"), nullable=False
    )
    song_id: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    song_artist_title: Mapped[str] = mapped_column(String(1024), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    __table_args__ = (
        sa.UniqueConstraint(
            "playlist_id", "platform", "song_id", name="uq_playlist_songs_membership"
        ),
        Index("ix_playlist_songs_position", "playlist_id", "position"),
    )


# Yo, match_results is one JSON array with a slot per song (null while the
# song is still being matched). Review rounds read it back from here, so it
# has to be written after every song, not just at the end.
class PlaylistImportJobModel(Base):
    """Import job state."""

    __tablename__ = "playlist_import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    format: Mapped[str] = mapped_column(String(20), nullable=False)
    target_platform: Mapped[str] = mapped_column(String(50), nullable=False)
    playlist_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    playlist_name: Mapped[str] = mapped_column(String(255), nullable=False)
    playlist_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    total_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmatched_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_review_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duplicate_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    match_results: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    warnings: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    options: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    download_job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    __table_args__ = (Index("ix_import_jobs_owner_created", "owner_id", "created_at"),)


class PlaylistExportJobModel(Base):
    """Export job state and the rendered output."""

    __tablename__ = "playlist_export_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    playlist_id: Mapped[str] = mapped_column(String(36), nullable=False)
    format: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    options: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    exported_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    song_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enriched_songs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


class PlaylistDownloadJobModel(Base):
    """Download batch state, the queue lives in one JSON column."""

    __tablename__ = "playlist_download_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    service: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    download_queue: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_organization: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    import_job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    playlist_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
