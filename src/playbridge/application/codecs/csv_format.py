"""CSV (spreadsheet export) codec.

Export tools don't agree on column names. Exportify writes "Track Name" and
"Artist Name(s)", other tools write "Title"/"Artist" or "track"/"artists".
COLUMN_ALIASES maps every variant we know onto the canonical field.
"""

import csv
import io
import re

from playbridge.application.codecs.base import (
    DEFAULT_PLAYLIST_NAME,
    ParseResult,
    PlaylistFormatCodec,
    RenderOptions,
    coerce_int,
    parse_platform,
)
from playbridge.domain.entities import Playlist, PlaylistFormat, PlaylistPlatform, Song
from playbridge.domain.exceptions import EmptyPlaylistError, ValidationException

# canonical field -> accepted header spellings (compared lowercased/stripped)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("track name", "track", "title", "song", "song name", "song title", "name"),
    "artist": (
        "artist name(s)",
        "artist name",
        "artist names",
        "artist(s)",
        "artist",
        "artists",
    ),
    "album": ("album name", "album", "album title"),
    "duration_ms": ("duration (ms)", "duration_ms", "duration ms", "track duration (ms)"),
    "duration": ("duration", "length", "time", "duration (s)"),
    "isrc": ("isrc",),
    "track_number": ("track number", "track no", "track #", "tracknumber"),
    "uri": ("track uri", "spotify uri", "uri", "url", "track url", "location"),
}

RENDER_HEADER = [
    "Track Name",
    "Artist Name(s)",
    "Album Name",
    "Duration (ms)",
    "ISRC",
    "Track Number",
    "Track URI",
]

_CLOCK_PATTERN = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{2})$")


def _normalize_header(header: str) -> str:
    return header.strip().lstrip("\ufeff").strip().lower()


def map_columns(headers: list[str]) -> dict[str, int]:
    """Map canonical fields to column indexes. First matching column wins."""
    normalized = [_normalize_header(h) for h in headers]
    mapping: dict[str, int] = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                mapping[canonical] = normalized.index(alias)
                break
    return mapping


def _parse_duration_seconds(value: str) -> int | None:
    """'215', '3:35' or '1:03:35' -> seconds."""
    value = value.strip()
    if not value:
        return None
    clock = _CLOCK_PATTERN.match(value)
    if clock:
        hours = int(clock.group(1) or 0)
        return hours * 3600 + int(clock.group(2)) * 60 + int(clock.group(3))
    return coerce_int(value)


def _parse_uri(value: str) -> tuple[PlaylistPlatform | None, str | None, str | None]:
    """Split a track URI into (platform, platform_id, url)."""
    value = value.strip()
    if not value:
        return None, None, None
    if value.startswith(("http://", "https://", "/")):
        return None, None, value
    parts = value.split(":")
    if len(parts) == 3 and parts[0] == "spotify" and parts[1] == "track":
        return PlaylistPlatform.SPOTIFY, parts[2], None
    if len(parts) >= 2:
        platform = parse_platform(parts[0])
        if platform:
            return platform, ":".join(parts[1:]), None
    return None, None, None


class CSVCodec(PlaylistFormatCodec):
    """CSV playlists with header row."""

    format = PlaylistFormat.CSV
    extension = ".csv"
    mime_type = "text/csv"

    def sniff(self, content: str) -> bool:
        first_line = next(
            (line for line in content.lstrip("\ufeff").splitlines() if line.strip()), ""
        )
        if not first_line:
            return False
        try:
            headers = next(csv.reader([first_line]))
        except csv.Error:
            return False
        mapping = map_columns(headers)
        return "title" in mapping and "artist" in mapping

    def parse(self, content: str) -> ParseResult:
        reader = csv.reader(io.StringIO(content.lstrip("\ufeff")))
        try:
            headers = next(reader)
        except StopIteration:
            raise EmptyPlaylistError("CSV input has no header row") from None
        except csv.Error as e:
            raise EmptyPlaylistError(f"Invalid CSV: {e}") from e

        columns = map_columns(headers)
        if "title" not in columns:
            raise EmptyPlaylistError(
                f"CSV header has no track name column: {', '.join(headers)}"
            )

        warnings: list[str] = []
        songs: list[Song] = []
        row_no = 1
        while True:
            row_no += 1
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                warnings.append(f"Row {row_no}: {e}")
                continue
            if not any(cell.strip() for cell in row):
                continue
            song = self._parse_row(row, columns, row_no, warnings)
            if song:
                songs.append(song)

        return ParseResult(
            playlist=Playlist(name=DEFAULT_PLAYLIST_NAME, songs=songs),
            format=self.format,
            warnings=warnings,
        )

    def render(self, playlist: Playlist, options: RenderOptions) -> str:
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(RENDER_HEADER)
        for song in playlist.songs:
            writer.writerow(
                [
                    song.title,
                    song.artist,
                    (song.album or "") if options.include_metadata else "",
                    song.duration * 1000 if song.duration else "",
                    (song.isrc or "") if options.include_metadata else "",
                    (song.track_number or "") if options.include_metadata else "",
                    self._uri_for(song, options),
                ]
            )
        return output.getvalue()

    def _parse_row(
        self,
        row: list[str],
        columns: dict[str, int],
        row_no: int,
        warnings: list[str],
    ) -> Song | None:
        def cell(field: str) -> str:
            index = columns.get(field)
            if index is None or index >= len(row):
                return ""
            return row[index].strip()

        title = cell("title")
        artist = cell("artist")
        if not title or not artist:
            warnings.append(f"Row {row_no}: missing track name or artist")
            return None

        duration_ms = coerce_int(cell("duration_ms"))
        if duration_ms:
            duration: int | None = duration_ms // 1000
        else:
            duration = _parse_duration_seconds(cell("duration"))

        platform, platform_id, url = _parse_uri(cell("uri"))
        try:
            return Song(
                title=title,
                artist=artist,
                album=cell("album") or None,
                duration=duration,
                isrc=cell("isrc") or None,
                track_number=coerce_int(cell("track_number")),
                platform=platform,
                platform_id=platform_id,
                url=url,
            )
        except ValidationException as e:
            warnings.append(f"Row {row_no}: {e.message}")
            return None

    def _uri_for(self, song: Song, options: RenderOptions) -> str:
        if options.include_platform_ids and song.platform and song.platform_id:
            if song.platform == PlaylistPlatform.SPOTIFY:
                return f"spotify:track:{song.platform_id}"
            return f"{song.platform.value}:{song.platform_id}"
        return song.url or ""
