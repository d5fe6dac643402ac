"""XSPF (XML Shareable Playlist Format) codec.

XSPF durations are milliseconds; the canonical Song uses seconds. ISRC and
platform ids ride in an <extension> block so other players ignore them.
"""

import xml.etree.ElementTree as ET

from playbridge.application.codecs.base import (
    DEFAULT_PLAYLIST_NAME,
    ParseResult,
    PlaylistFormatCodec,
    RenderOptions,
    coerce_int,
    parse_platform,
)
from playbridge.domain.entities import Playlist, PlaylistFormat, Song
from playbridge.domain.exceptions import EmptyPlaylistError, ValidationException

XSPF_NAMESPACE = "http://xspf.org/ns/0/"
EXTENSION_APPLICATION = "https://playbridge.dev/xspf"

_NS = f"{{{XSPF_NAMESPACE}}}"


def _child(element: ET.Element, tag: str) -> ET.Element | None:
    # Accept both namespaced and namespace-less documents
    found = element.find(f"{_NS}{tag}")
    if found is None:
        found = element.find(tag)
    return found


def _text(element: ET.Element, tag: str) -> str | None:
    child = _child(element, tag)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


class XSPFCodec(PlaylistFormatCodec):
    """XSPF playlists."""

    format = PlaylistFormat.XSPF
    extension = ".xspf"
    mime_type = "application/xspf+xml"

    def sniff(self, content: str) -> bool:
        head = content.lstrip("\ufeff").lstrip()[:512].lower()
        return head.startswith("<?xml") or head.startswith("<playlist")

    def parse(self, content: str) -> ParseResult:
        try:
            root = ET.fromstring(content.lstrip("\ufeff").strip())
        except ET.ParseError as e:
            raise EmptyPlaylistError(f"Invalid XSPF document: {e}") from e

        warnings: list[str] = []
        track_list = _child(root, "trackList")
        tracks = [] if track_list is None else list(track_list)

        songs: list[Song] = []
        for index, track in enumerate(tracks, 1):
            song = self._parse_track(track, index, warnings)
            if song:
                songs.append(song)

        playlist = Playlist(
            name=_text(root, "title") or DEFAULT_PLAYLIST_NAME,
            description=_text(root, "annotation"),
            creator=_text(root, "creator"),
            songs=songs,
        )
        return ParseResult(playlist=playlist, format=self.format, warnings=warnings)

    def render(self, playlist: Playlist, options: RenderOptions) -> str:
        ET.register_namespace("", XSPF_NAMESPACE)
        root = ET.Element(f"{_NS}playlist", {"version": "1"})
        ET.SubElement(root, f"{_NS}title").text = playlist.name
        if playlist.description:
            ET.SubElement(root, f"{_NS}annotation").text = playlist.description
        if playlist.creator:
            ET.SubElement(root, f"{_NS}creator").text = playlist.creator
        if playlist.created_at:
            ET.SubElement(root, f"{_NS}date").text = playlist.created_at.isoformat()

        track_list = ET.SubElement(root, f"{_NS}trackList")
        for song in playlist.songs:
            track = ET.SubElement(track_list, f"{_NS}track")
            if song.url:
                ET.SubElement(track, f"{_NS}location").text = song.url
            ET.SubElement(track, f"{_NS}title").text = song.title
            ET.SubElement(track, f"{_NS}creator").text = song.artist
            if options.include_metadata:
                if song.album:
                    ET.SubElement(track, f"{_NS}album").text = song.album
                if song.track_number:
                    ET.SubElement(track, f"{_NS}trackNum").text = str(song.track_number)
            if song.duration:
                ET.SubElement(track, f"{_NS}duration").text = str(song.duration * 1000)

            has_isrc = options.include_metadata and song.isrc
            has_pid = options.include_platform_ids and song.platform and song.platform_id
            if has_isrc or has_pid:
                extension = ET.SubElement(
                    track, f"{_NS}extension", {"application": EXTENSION_APPLICATION}
                )
                if has_isrc:
                    ET.SubElement(extension, f"{_NS}isrc").text = song.isrc
                if has_pid and song.platform:
                    ET.SubElement(
                        extension, f"{_NS}platformId", {"platform": song.platform.value}
                    ).text = song.platform_id

        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'

    def _parse_track(
        self, track: ET.Element, index: int, warnings: list[str]
    ) -> Song | None:
        title = _text(track, "title")
        artist = _text(track, "creator")
        if not title or not artist:
            warnings.append(f"Track {index}: Missing required title or artist")
            return None

        duration_ms = coerce_int(_text(track, "duration"))
        isrc = platform = platform_id = None
        extension = _child(track, "extension")
        if extension is not None:
            isrc = _text(extension, "isrc")
            pid = _child(extension, "platformId")
            if pid is not None and pid.text:
                platform = parse_platform(pid.get("platform"))
                platform_id = pid.text.strip() if platform else None

        try:
            return Song(
                title=title,
                artist=artist,
                album=_text(track, "album"),
                duration=duration_ms // 1000 if duration_ms else None,
                isrc=isrc,
                track_number=coerce_int(_text(track, "trackNum")),
                platform=platform,
                platform_id=platform_id,
                url=_text(track, "location"),
            )
        except ValidationException as e:
            warnings.append(f"Track {index}: {e.message}")
            return None
