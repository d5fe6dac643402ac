"""JSON playlist codec.

We render our own envelope:

    {"version": "1.0", "format": "playbridge-playlist", "playlist": {...}}

and on import also understand the shapes people actually paste:

- Spotify API dumps (``tracks.items[].track`` or ``items[].track``)
- YouTube playlist dumps (``playlistItems`` / ``videoIds``)
- a bare array of "Artist - Title" strings or song objects
- any object with a ``songs`` array
"""

import json
from datetime import datetime
from typing import Any

from playbridge.application.codecs.base import (
    DEFAULT_PLAYLIST_NAME,
    UNKNOWN_ARTIST,
    ParseResult,
    PlaylistFormatCodec,
    RenderOptions,
    coerce_int,
    coerce_str,
    parse_platform,
    split_artist_title,
)
from playbridge.domain.entities import Playlist, PlaylistFormat, PlaylistPlatform, Song
from playbridge.domain.exceptions import EmptyPlaylistError, ValidationException

FORMAT_TAG = "playbridge-playlist"
FORMAT_VERSION = "1.0"


class JSONCodec(PlaylistFormatCodec):
    """JSON playlists."""

    format = PlaylistFormat.JSON
    extension = ".json"
    mime_type = "application/json"

    def sniff(self, content: str) -> bool:
        return content.lstrip("\ufeff").lstrip()[:1] in ("{", "[")

    def parse(self, content: str) -> ParseResult:
        try:
            data = json.loads(content.lstrip("\ufeff"))
        except json.JSONDecodeError as e:
            raise EmptyPlaylistError(f"Invalid JSON: {e.msg} (line {e.lineno})") from e

        warnings: list[str] = []
        if isinstance(data, dict) and data.get("format") == FORMAT_TAG:
            playlist = self._parse_native(data, warnings)
        elif isinstance(data, dict) and ("tracks" in data or "items" in data):
            playlist = self._parse_spotify(data, warnings)
        elif isinstance(data, dict) and ("playlistItems" in data or "videoIds" in data):
            playlist = self._parse_youtube(data, warnings)
        elif isinstance(data, list):
            playlist = Playlist(
                name=DEFAULT_PLAYLIST_NAME,
                songs=self._parse_generic_items(data, warnings),
            )
        elif isinstance(data, dict) and isinstance(data.get("songs"), list):
            playlist = Playlist(
                name=coerce_str(data.get("name") or data.get("playlistName"))
                or DEFAULT_PLAYLIST_NAME,
                description=coerce_str(data.get("description")),
                songs=self._parse_generic_items(data["songs"], warnings),
            )
        else:
            raise EmptyPlaylistError(
                "Unrecognized JSON playlist: expected an array of songs "
                "or an object with a songs/tracks array"
            )
        return ParseResult(playlist=playlist, format=self.format, warnings=warnings)

    def render(self, playlist: Playlist, options: RenderOptions) -> str:
        songs = []
        for position, song in enumerate(playlist.songs, 1):
            entry: dict[str, Any] = {
                "position": position,
                "title": song.title,
                "artist": song.artist,
                "duration": song.duration,
            }
            if options.include_metadata:
                entry["album"] = song.album
                entry["track"] = song.track_number
                entry["isrc"] = song.isrc
            if options.include_platform_ids:
                entry["platform"] = song.platform.value if song.platform else None
                entry["platformId"] = song.platform_id
            entry["url"] = song.url
            songs.append(entry)

        document: dict[str, Any] = {
            "version": FORMAT_VERSION,
            "format": FORMAT_TAG,
        }
        if options.exported_at:
            document["exportedAt"] = options.exported_at.isoformat()
        document["playlist"] = {
            "name": playlist.name,
            "description": playlist.description,
            "creator": playlist.creator,
            "platform": playlist.platform.value if playlist.platform else None,
            "createdAt": playlist.created_at.isoformat() if playlist.created_at else None,
            "songCount": len(songs),
            "songs": songs,
        }
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"

    def _parse_native(self, data: dict[str, Any], warnings: list[str]) -> Playlist:
        body = data.get("playlist") or {}
        created_at = None
        if body.get("createdAt"):
            try:
                created_at = datetime.fromisoformat(body["createdAt"])
            except (TypeError, ValueError):
                warnings.append(f"Invalid createdAt '{body['createdAt']}' ignored")

        songs: list[Song] = []
        for index, item in enumerate(body.get("songs") or [], 1):
            if not isinstance(item, dict):
                warnings.append(f"Song {index}: expected an object")
                continue
            song = _make_song(
                index,
                warnings,
                title=coerce_str(item.get("title")),
                artist=coerce_str(item.get("artist")),
                album=coerce_str(item.get("album")),
                duration=coerce_int(item.get("duration")),
                track_number=coerce_int(item.get("track")),
                isrc=coerce_str(item.get("isrc")),
                platform=parse_platform(item.get("platform")),
                platform_id=coerce_str(item.get("platformId")),
                url=coerce_str(item.get("url")),
            )
            if song:
                songs.append(song)

        return Playlist(
            name=coerce_str(body.get("name")) or DEFAULT_PLAYLIST_NAME,
            description=coerce_str(body.get("description")),
            creator=coerce_str(body.get("creator")),
            platform=parse_platform(body.get("platform")),
            created_at=created_at,
            songs=songs,
        )

    def _parse_spotify(self, data: dict[str, Any], warnings: list[str]) -> Playlist:
        tracks = data.get("tracks")
        if isinstance(tracks, dict):
            items = tracks.get("items") or []
        elif isinstance(tracks, list):
            items = tracks
        else:
            items = data.get("items") or []

        songs: list[Song] = []
        for index, item in enumerate(items, 1):
            if not isinstance(item, dict):
                warnings.append(f"Track {index}: expected an object")
                continue
            track = item.get("track") if isinstance(item.get("track"), dict) else item
            album = track.get("album")
            external_ids = track.get("external_ids") or {}
            duration_ms = coerce_int(track.get("duration_ms"))
            song = _make_song(
                index,
                warnings,
                title=coerce_str(track.get("name")),
                artist=coerce_str(track.get("artists")) or UNKNOWN_ARTIST,
                album=coerce_str(album.get("name")) if isinstance(album, dict) else None,
                duration=duration_ms // 1000 if duration_ms else None,
                isrc=coerce_str(external_ids.get("isrc")),
                platform=PlaylistPlatform.SPOTIFY if track.get("id") else None,
                platform_id=coerce_str(track.get("id")),
            )
            if song:
                songs.append(song)

        return Playlist(
            name=coerce_str(data.get("name")) or DEFAULT_PLAYLIST_NAME,
            description=coerce_str(data.get("description")),
            platform=PlaylistPlatform.SPOTIFY,
            songs=songs,
        )

    def _parse_youtube(self, data: dict[str, Any], warnings: list[str]) -> Playlist:
        items = data.get("playlistItems") or data.get("videoIds") or []
        snippet = data.get("snippet") if isinstance(data.get("snippet"), dict) else {}

        songs: list[Song] = []
        for index, item in enumerate(items, 1):
            if not isinstance(item, dict):
                warnings.append(f"Item {index}: expected an object")
                continue
            item_snippet = item.get("snippet") if isinstance(item.get("snippet"), dict) else {}
            video_id = coerce_str(item.get("videoId") or item.get("id"))
            song = _make_song(
                index,
                warnings,
                title=coerce_str(item.get("title") or item_snippet.get("title")),
                artist=coerce_str(item.get("artist") or item_snippet.get("channelTitle"))
                or UNKNOWN_ARTIST,
                platform=PlaylistPlatform.YOUTUBE_MUSIC if video_id else None,
                platform_id=video_id,
            )
            if song:
                songs.append(song)

        return Playlist(
            name=coerce_str(data.get("title") or snippet.get("title"))
            or DEFAULT_PLAYLIST_NAME,
            description=coerce_str(data.get("description") or snippet.get("description")),
            platform=PlaylistPlatform.YOUTUBE_MUSIC,
            songs=songs,
        )

    def _parse_generic_items(self, items: list[Any], warnings: list[str]) -> list[Song]:
        songs: list[Song] = []
        for index, item in enumerate(items, 1):
            if isinstance(item, str):
                parts = split_artist_title(item)
                artist, title = parts if parts else (UNKNOWN_ARTIST, item.strip())
                song = _make_song(index, warnings, title=title, artist=artist)
            elif isinstance(item, dict):
                song = _make_song(
                    index,
                    warnings,
                    title=coerce_str(
                        item.get("title")
                        or item.get("name")
                        or item.get("track")
                        or item.get("songTitle")
                    ),
                    artist=coerce_str(
                        item.get("artist") or item.get("artists") or item.get("songArtist")
                    )
                    or UNKNOWN_ARTIST,
                    album=coerce_str(item.get("album")),
                    duration=coerce_int(item.get("duration")),
                    isrc=coerce_str(item.get("isrc")),
                )
            else:
                warnings.append(f"Item {index}: unsupported value {item!r:.60}")
                continue
            if song:
                songs.append(song)
        return songs


def _make_song(index: int, warnings: list[str], **fields: Any) -> Song | None:
    """Build a Song or record why it was skipped."""
    if not fields.get("title"):
        warnings.append(f"Item {index}: skipped entry without title")
        return None
    if not fields.get("artist"):
        fields["artist"] = UNKNOWN_ARTIST
    if not fields.get("platform_id"):
        fields["platform"] = None
    try:
        return Song(**fields)
    except ValidationException as e:
        warnings.append(f"Item {index}: {e.message}")
        return None
