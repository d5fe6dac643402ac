"""Format codec facade: detection, parse, render and export helpers.

parse_playlist() is tolerant: bad lines/rows become warnings. It only raises
when nothing at all could be recovered (EmptyPlaylistError) or when the
format is unknown (UnsupportedFormatError).
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import PurePosixPath

from playbridge.application.codecs.base import ParseResult, PlaylistFormatCodec, RenderOptions
from playbridge.application.codecs.csv_format import CSVCodec
from playbridge.application.codecs.json_format import JSONCodec
from playbridge.application.codecs.m3u import M3UCodec
from playbridge.application.codecs.xspf import XSPFCodec
from playbridge.domain.entities import Playlist, PlaylistFormat
from playbridge.domain.exceptions import (
    EmptyPlaylistError,
    PlaylistParseError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

_CODECS: dict[PlaylistFormat, PlaylistFormatCodec] = {
    PlaylistFormat.M3U: M3UCodec(),
    PlaylistFormat.XSPF: XSPFCodec(),
    PlaylistFormat.JSON: JSONCodec(),
    PlaylistFormat.CSV: CSVCodec(),
}

# Content sniffing order: directive marker, XML, brace/bracket, header row
_SNIFF_ORDER = (
    PlaylistFormat.M3U,
    PlaylistFormat.XSPF,
    PlaylistFormat.JSON,
    PlaylistFormat.CSV,
)

_EXTENSION_FORMATS: dict[str, PlaylistFormat] = {
    ".m3u": PlaylistFormat.M3U,
    ".m3u8": PlaylistFormat.M3U,
    ".xspf": PlaylistFormat.XSPF,
    ".xml": PlaylistFormat.XSPF,
    ".json": PlaylistFormat.JSON,
    ".csv": PlaylistFormat.CSV,
}


@dataclass
class ValidationReport:
    """Result of validate_playlist_content(). Never raised, always returned."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    song_count: int = 0
    format: PlaylistFormat | None = None
    playlist_name: str | None = None


def get_codec(playlist_format: PlaylistFormat | str) -> PlaylistFormatCodec:
    """Codec for a format, UnsupportedFormatError for unknown names."""
    try:
        return _CODECS[PlaylistFormat(playlist_format)]
    except ValueError:
        raise UnsupportedFormatError(str(playlist_format)) from None


def detect_format(content: str, filename: str | None = None) -> PlaylistFormat | None:
    """Guess the format from a filename hint, then from the content.

    Returns None when nothing matches - callers decide whether that's fatal.
    """
    if filename:
        suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
        if suffix in _EXTENSION_FORMATS:
            return _EXTENSION_FORMATS[suffix]

    for playlist_format in _SNIFF_ORDER:
        if _CODECS[playlist_format].sniff(content):
            return playlist_format
    return None


def parse_playlist(
    content: str,
    playlist_format: PlaylistFormat | str | None = None,
    filename: str | None = None,
) -> ParseResult:
    """Parse raw playlist text into the canonical representation."""
    if not content or not content.strip():
        raise EmptyPlaylistError("Playlist content is empty")

    if playlist_format is None:
        playlist_format = detect_format(content, filename)
        if playlist_format is None:
            raise UnsupportedFormatError()

    codec = get_codec(playlist_format)
    result = codec.parse(content)
    if not result.playlist.songs:
        raise EmptyPlaylistError(
            f"No songs could be recovered from {codec.format.value} input",
            warnings=result.warnings,
        )

    logger.debug(
        "Parsed %s playlist '%s': %d songs, %d warnings",
        codec.format.value,
        result.playlist.name,
        len(result.playlist.songs),
        len(result.warnings),
    )
    return result


def render_playlist(
    playlist: Playlist,
    playlist_format: PlaylistFormat | str,
    options: RenderOptions | None = None,
) -> str:
    """Render a playlist. Deterministic for identical input and options."""
    return get_codec(playlist_format).render(playlist, options or RenderOptions())


def validate_playlist_content(
    content: str,
    playlist_format: PlaylistFormat | str | None = None,
    filename: str | None = None,
) -> ValidationReport:
    """Dry-run parse for upload forms."""
    try:
        result = parse_playlist(content, playlist_format, filename)
    except PlaylistParseError as e:
        return ValidationReport(valid=False, errors=[e.message], warnings=e.warnings)
    except UnsupportedFormatError as e:
        return ValidationReport(valid=False, errors=[e.message])

    warnings = list(result.warnings)
    for index, song in enumerate(result.playlist.songs, 1):
        if song.artist == "Unknown Artist":
            warnings.append(f"Song {index}: Missing artist")

    return ValidationReport(
        valid=True,
        warnings=warnings,
        song_count=len(result.playlist.songs),
        format=result.format,
        playlist_name=result.playlist.name,
    )


def get_file_extension(playlist_format: PlaylistFormat | str) -> str:
    """File extension including the dot, e.g. '.m3u8'."""
    return get_codec(playlist_format).extension


def get_mime_type(playlist_format: PlaylistFormat | str) -> str:
    """MIME type for download responses."""
    return get_codec(playlist_format).mime_type


def generate_export_filename(
    playlist_name: str,
    playlist_format: PlaylistFormat | str,
    today: date | None = None,
) -> str:
    """'My Mix' + JSON -> 'My_Mix_2025-01-31.json'."""
    sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", playlist_name)
    sanitized = re.sub(r"\s+", "_", sanitized)
    sanitized = re.sub(r"_+", "_", sanitized).strip("_.") or "playlist"
    stamp = (today or datetime.now(UTC).date()).isoformat()
    return f"{sanitized}_{stamp}{get_file_extension(playlist_format)}"
