"""Shared codec types and helpers."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from playbridge.domain.entities import Playlist, PlaylistFormat, PlaylistPlatform

DEFAULT_PLAYLIST_NAME = "Imported Playlist"
UNKNOWN_ARTIST = "Unknown Artist"

# Only short alphanumeric suffixes count as file extensions, otherwise
# "Artist - Mr. Brightside" would lose its title.
_EXTENSION_PATTERN = re.compile(r"\.[A-Za-z0-9]{2,5}$")


@dataclass
class ParseResult:
    """Parsed playlist plus per-line warnings."""

    playlist: Playlist
    format: PlaylistFormat
    warnings: list[str] = field(default_factory=list)


@dataclass
class RenderOptions:
    """Rendering switches.

    include_metadata: album / ISRC / track number lines and fields
    include_platform_ids: platform + id hints (re-import can skip matching)
    base_path: M3U path prefix for songs without a URL
    exported_at: timestamp written into formats that carry one
    """

    include_metadata: bool = True
    include_platform_ids: bool = True
    base_path: str | None = None
    exported_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RenderOptions":
        """Build options from a persisted/options dict."""
        data = data or {}
        return cls(
            include_metadata=bool(data.get("include_metadata", True)),
            include_platform_ids=bool(data.get("include_platform_ids", True)),
            base_path=data.get("base_path"),
        )


class PlaylistFormatCodec(ABC):
    """One playlist text format."""

    format: PlaylistFormat
    extension: str
    mime_type: str

    @abstractmethod
    def parse(self, content: str) -> ParseResult:
        """Parse text into a playlist. May return zero songs."""
        pass

    @abstractmethod
    def render(self, playlist: Playlist, options: RenderOptions) -> str:
        """Render a playlist to text."""
        pass

    @abstractmethod
    def sniff(self, content: str) -> bool:
        """True when the content looks like this format."""
        pass


def split_artist_title(text: str) -> tuple[str, str] | None:
    """Split 'Artist - Title' on the first separator."""
    artist, sep, title = text.partition(" - ")
    if not sep or not artist.strip() or not title.strip():
        return None
    return artist.strip(), title.strip()


def strip_extension(filename: str) -> str:
    """Drop a trailing file extension like '.mp3'."""
    return _EXTENSION_PATTERN.sub("", filename)


def parse_platform(value: Any) -> PlaylistPlatform | None:
    """Map a raw platform string onto PlaylistPlatform, None when unknown."""
    if not value:
        return None
    try:
        return PlaylistPlatform(str(value).strip().lower())
    except ValueError:
        return None


def coerce_int(value: Any) -> int | None:
    """Best-effort int conversion for loosely typed inputs."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def coerce_str(value: Any) -> str | None:
    """Stringify scalars, None for empty values."""
    if value is None:
        return None
    if isinstance(value, list):
        names = [coerce_str(v.get("name") if isinstance(v, dict) else v) for v in value]
        joined = ", ".join(n for n in names if n)
        return joined or None
    text = str(value).strip()
    return text or None
