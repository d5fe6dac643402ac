"""Spotify implementation of ICatalogAdapter, bound to one user's token."""

from typing import Any

from playbridge.domain.entities import PlaylistPlatform, Song
from playbridge.domain.ports import ICatalogAdapter
from playbridge.infrastructure.integrations.spotify_client import SpotifyClient


def song_from_spotify(track: dict[str, Any]) -> Song:
    """Map a Spotify track object onto the canonical Song."""
    artists = ", ".join(a.get("name", "") for a in track.get("artists") or [] if a.get("name"))
    duration_ms = track.get("duration_ms")
    return Song(
        title=track.get("name") or "Unknown Title",
        artist=artists or "Unknown Artist",
        album=(track.get("album") or {}).get("name"),
        duration=duration_ms // 1000 if isinstance(duration_ms, int) else None,
        isrc=(track.get("external_ids") or {}).get("isrc"),
        track_number=track.get("track_number"),
        platform=PlaylistPlatform.SPOTIFY,
        platform_id=str(track["id"]),
        url=(track.get("external_urls") or {}).get("spotify"),
    )


class SpotifyCatalogAdapter(ICatalogAdapter):
    """Searches Spotify with the caller's access token.

    The client (and its rate limiter) is shared; only the token is per user,
    so adapters are cheap and built per request.
    """

    def __init__(self, client: SpotifyClient, access_token: str) -> None:
        self._client = client
        self._access_token = access_token

    @property
    def platform(self) -> PlaylistPlatform:
        return PlaylistPlatform.SPOTIFY

    async def search(self, query: str, start: int = 0, limit: int = 10) -> list[Song]:
        tracks = await self._client.search_tracks(
            query, self._access_token, limit=limit, offset=start
        )
        return [song_from_spotify(track) for track in tracks if track.get("id")]

    async def search_by_isrc(self, isrc: str) -> list[Song]:
        tracks = await self._client.search_by_isrc(isrc, self._access_token)
        wanted = isrc.strip().upper()
        return [
            song_from_spotify(track)
            for track in tracks
            if track.get("id")
            and str((track.get("external_ids") or {}).get("isrc", "")).upper() == wanted
        ]

    async def get_by_ids(self, ids: list[str]) -> list[Song]:
        tracks = await self._client.get_tracks(ids, self._access_token)
        return [song_from_spotify(track) for track in tracks if track.get("id")]
