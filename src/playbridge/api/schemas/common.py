"""Shared API schemas."""

from pydantic import BaseModel, Field

from playbridge.domain.entities import PlaylistPlatform, Song


class SongSchema(BaseModel):
    """Canonical song on the wire."""

    title: str = Field(..., min_length=1)
    artist: str = Field(..., min_length=1)
    album: str | None = None
    duration: int | None = Field(default=None, ge=0, description="Seconds")
    isrc: str | None = None
    track_number: int | None = None
    platform: PlaylistPlatform | None = None
    platform_id: str | None = None
    url: str | None = None

    @classmethod
    def from_entity(cls, song: Song) -> "SongSchema":
        return cls(
            title=song.title,
            artist=song.artist,
            album=song.album,
            duration=song.duration,
            isrc=song.isrc,
            track_number=song.track_number,
            platform=song.platform,
            platform_id=song.platform_id,
            url=song.url,
        )

    def to_entity(self) -> Song:
        return Song(
            title=self.title,
            artist=self.artist,
            album=self.album,
            duration=self.duration,
            isrc=self.isrc,
            track_number=self.track_number,
            platform=self.platform,
            platform_id=self.platform_id,
            url=self.url,
        )
