"""Extended M3U codec (line-oriented).

Directives we write and read:

    #EXTM3U
    #PLAYLIST:<name>
    #EXTDESC:<description>
    #EXTCREATOR:<creator>
    #EXTINF:<seconds>,<artist> - <title>
    #EXTALB:<album>
    #EXTISRC:<isrc>
    #EXTPID:<platform>:<id>
    <path or url>

Lines without a preceding #EXTINF are treated as bare paths and parsed from
the file name ("Artist - Title.mp3").
"""

import re

from playbridge.application.codecs.base import (
    DEFAULT_PLAYLIST_NAME,
    UNKNOWN_ARTIST,
    ParseResult,
    PlaylistFormatCodec,
    RenderOptions,
    parse_platform,
    split_artist_title,
    strip_extension,
)
from playbridge.domain.entities import Playlist, PlaylistFormat, Song
from playbridge.domain.exceptions import ValidationException
from playbridge.domain.value_objects.text_normalization import sanitize_filename

_EXTINF_PATTERN = re.compile(r"^#EXTINF:\s*(-?\d+(?:\.\d+)?)\s*(?:[^,]*)?,(.*)$")
_EXTPID_PATTERN = re.compile(r"^#EXTPID:(\w+):(.+)$")


class M3UCodec(PlaylistFormatCodec):
    """Extended M3U playlists."""

    format = PlaylistFormat.M3U
    extension = ".m3u8"
    mime_type = "audio/x-mpegurl"

    def sniff(self, content: str) -> bool:
        first_line = next(
            (line.strip() for line in content.lstrip("\ufeff").splitlines() if line.strip()),
            "",
        )
        if first_line.startswith(("#EXTM3U", "#EXTINF", "#PLAYLIST")):
            return True
        # "#,Track Name,..." is a spreadsheet header, not a comment
        return first_line.startswith("#") and "," not in first_line

    def parse(self, content: str) -> ParseResult:
        warnings: list[str] = []
        songs: list[Song] = []
        name = DEFAULT_PLAYLIST_NAME
        description: str | None = None
        creator: str | None = None
        pending: dict[str, object] = {}

        for line_no, raw_line in enumerate(content.lstrip("\ufeff").splitlines(), 1):
            line = raw_line.strip()
            if not line or line.startswith("#EXTM3U"):
                continue

            if line.startswith("#PLAYLIST:"):
                name = line[len("#PLAYLIST:") :].strip() or name
            elif line.startswith("#EXTDESC:"):
                description = line[len("#EXTDESC:") :].strip() or None
            elif line.startswith("#EXTCREATOR:"):
                creator = line[len("#EXTCREATOR:") :].strip() or None
            elif line.startswith("#EXTINF:"):
                if pending.get("title"):
                    warnings.append(
                        f"Line {line_no}: #EXTINF without a path for the previous entry"
                    )
                pending = self._parse_extinf(line, line_no, warnings)
            elif line.startswith("#EXTALB:"):
                pending["album"] = line[len("#EXTALB:") :].strip() or None
            elif line.startswith("#EXTISRC:"):
                pending["isrc"] = line[len("#EXTISRC:") :].strip() or None
            elif line.startswith("#EXTPID:"):
                match = _EXTPID_PATTERN.match(line)
                platform = parse_platform(match.group(1)) if match else None
                if match and platform:
                    pending["platform"] = platform
                    pending["platform_id"] = match.group(2).strip()
                else:
                    warnings.append(f"Line {line_no}: Unrecognized platform id '{line}'")
            elif line.startswith("#"):
                continue
            elif pending.get("title"):
                song = self._build_song(pending, line, line_no, warnings)
                if song:
                    songs.append(song)
                pending = {}
            else:
                song = self._song_from_path(line, pending)
                if song:
                    songs.append(song)
                else:
                    warnings.append(
                        f"Line {line_no}: Could not parse song info from \"{line}\""
                    )
                pending = {}

        return ParseResult(
            playlist=Playlist(
                name=name, description=description, creator=creator, songs=songs
            ),
            format=self.format,
            warnings=warnings,
        )

    def render(self, playlist: Playlist, options: RenderOptions) -> str:
        lines = ["#EXTM3U", f"#PLAYLIST:{_one_line(playlist.name)}"]
        if playlist.description:
            lines.append(f"#EXTDESC:{_one_line(playlist.description)}")
        if playlist.creator:
            lines.append(f"#EXTCREATOR:{_one_line(playlist.creator)}")

        for song in playlist.songs:
            duration = song.duration if song.duration else -1
            lines.append(f"#EXTINF:{duration},{_one_line(song.display_name)}")
            if options.include_metadata:
                if song.album:
                    lines.append(f"#EXTALB:{_one_line(song.album)}")
                if song.isrc:
                    lines.append(f"#EXTISRC:{song.isrc}")
            if options.include_platform_ids and song.platform and song.platform_id:
                lines.append(f"#EXTPID:{song.platform.value}:{song.platform_id}")
            lines.append(self._path_for(song, options))

        return "\n".join(lines) + "\n"

    def _parse_extinf(
        self, line: str, line_no: int, warnings: list[str]
    ) -> dict[str, object]:
        match = _EXTINF_PATTERN.match(line)
        if not match:
            warnings.append(f"Line {line_no}: Malformed #EXTINF directive")
            return {}
        info = match.group(2).strip()
        parts = split_artist_title(info)
        if parts:
            artist, title = parts
        else:
            artist, title = UNKNOWN_ARTIST, info
        if not title:
            warnings.append(f"Line {line_no}: #EXTINF without a title")
            return {}
        duration = int(float(match.group(1)))
        return {
            "artist": artist,
            "title": title,
            "duration": duration if duration > 0 else None,
        }

    def _build_song(
        self, pending: dict[str, object], path: str, line_no: int, warnings: list[str]
    ) -> Song | None:
        try:
            return Song(
                title=str(pending["title"]),
                artist=str(pending["artist"]),
                album=pending.get("album"),  # type: ignore[arg-type]
                duration=pending.get("duration"),  # type: ignore[arg-type]
                isrc=pending.get("isrc"),  # type: ignore[arg-type]
                platform=pending.get("platform"),  # type: ignore[arg-type]
                platform_id=pending.get("platform_id"),  # type: ignore[arg-type]
                url=path,
            )
        except ValidationException as e:
            warnings.append(f"Line {line_no}: {e.message}")
            return None

    def _song_from_path(
        self, line: str, pending: dict[str, object] | None = None
    ) -> Song | None:
        basename = line.replace("\\", "/").rsplit("/", 1)[-1]
        filename = strip_extension(basename)
        parts = split_artist_title(filename)
        if not parts:
            return None
        artist, title = parts
        looks_like_path = basename != line or filename != basename
        # directives such as #EXTISRC may precede a bare line without #EXTINF
        extra = pending or {}
        return Song(
            title=title,
            artist=artist,
            album=extra.get("album"),  # type: ignore[arg-type]
            isrc=extra.get("isrc"),  # type: ignore[arg-type]
            platform=extra.get("platform"),  # type: ignore[arg-type]
            platform_id=extra.get("platform_id"),  # type: ignore[arg-type]
            url=line if looks_like_path else None,
        )

    def _path_for(self, song: Song, options: RenderOptions) -> str:
        if song.url:
            return song.url
        filename = f"{sanitize_filename(song.display_name)}.mp3"
        if options.base_path:
            return f"{options.base_path.rstrip('/')}/{filename}"
        return filename


def _one_line(value: str) -> str:
    return " ".join(value.split())
