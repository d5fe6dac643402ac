"""Playlist format codecs (M3U, XSPF, JSON, CSV)."""

from playbridge.application.codecs.base import ParseResult, RenderOptions
from playbridge.application.codecs.playlist_codec import (
    ValidationReport,
    detect_format,
    generate_export_filename,
    get_codec,
    get_file_extension,
    get_mime_type,
    parse_playlist,
    render_playlist,
    validate_playlist_content,
)

__all__ = [
    "ParseResult",
    "RenderOptions",
    "ValidationReport",
    "detect_format",
    "generate_export_filename",
    "get_codec",
    "get_file_extension",
    "get_mime_type",
    "parse_playlist",
    "render_playlist",
    "validate_playlist_content",
]
