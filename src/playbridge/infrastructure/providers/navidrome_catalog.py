"""Local media server (Navidrome) implementation of ICatalogAdapter."""

import logging
from typing import Any

from playbridge.application.cache import BaseCache
from playbridge.domain.entities import PlaylistPlatform, Song
from playbridge.domain.ports import ICatalogAdapter
from playbridge.infrastructure.integrations.navidrome_client import NavidromeClient

logger = logging.getLogger(__name__)

CACHE_PREFIX = f"catalog:{PlaylistPlatform.NAVIDROME.value}:"


def _raw_isrcs(raw: dict[str, Any]) -> set[str]:
    """ISRCs of a raw song; newer servers put them under tags."""
    values: list[Any] = []
    for source in (raw.get("isrc"), (raw.get("tags") or {}).get("isrc")):
        if isinstance(source, list):
            values.extend(source)
        elif source:
            values.append(source)
    return {str(value).strip().upper() for value in values if value}


def song_from_navidrome(raw: dict[str, Any]) -> Song:
    """Map a raw Navidrome song onto the canonical Song."""
    duration = raw.get("duration")
    isrcs = sorted(_raw_isrcs(raw))
    return Song(
        title=raw.get("title") or raw.get("name") or "Unknown Title",
        artist=raw.get("artist") or "Unknown Artist",
        album=raw.get("album") or None,
        duration=max(0, round(duration)) if isinstance(duration, int | float) else None,
        isrc=isrcs[0] if isrcs else None,
        track_number=raw.get("trackNumber") or raw.get("track") or None,
        platform=PlaylistPlatform.NAVIDROME,
        platform_id=str(raw["id"]),
    )


# Hey future me - search results are cached per query because the matcher
# asks the same "artist title" question for every duplicate in a playlist
# and re-imports of the same file ask it all over again. Library scans change
# the answers, so call invalidate_cache() after one.
class NavidromeCatalogAdapter(ICatalogAdapter):
    """Searches the local Navidrome library."""

    def __init__(
        self,
        client: NavidromeClient,
        cache: BaseCache[list[Song]] | None = None,
        cache_ttl: int = 300,
    ) -> None:
        self._client = client
        self._cache = cache
        self._cache_ttl = cache_ttl

    @property
    def platform(self) -> PlaylistPlatform:
        return PlaylistPlatform.NAVIDROME

    async def search(self, query: str, start: int = 0, limit: int = 10) -> list[Song]:
        key = f"{CACHE_PREFIX}{query.strip().lower()}|{start}|{limit}"
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                return cached

        raw_songs = await self._client.search_songs(query, start=start, limit=limit)
        songs = [song_from_navidrome(raw) for raw in raw_songs if raw.get("id")]
        if self._cache is not None:
            await self._cache.set(key, songs, self._cache_ttl)
        return songs

    async def search_by_isrc(self, isrc: str) -> list[Song]:
        wanted = isrc.strip().upper()
        raw_songs = await self._client.search_by_isrc(wanted)
        # The server may ignore an unknown filter and return anything
        return [
            song_from_navidrome(raw)
            for raw in raw_songs
            if raw.get("id") and wanted in _raw_isrcs(raw)
        ]

    async def get_by_ids(self, ids: list[str]) -> list[Song]:
        raw_songs = await self._client.get_songs(ids)
        return [song_from_navidrome(raw) for raw in raw_songs if raw.get("id")]

    async def invalidate_cache(self) -> int:
        """Drop every cached search result of this catalog."""
        if self._cache is None:
            return 0
        removed = await self._cache.delete_prefix(CACHE_PREFIX)
        logger.debug("Dropped %d cached Navidrome searches", removed)
        return removed

    async def close(self) -> None:
        """Close the underlying client."""
        await self._client.close()
