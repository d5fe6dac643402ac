"""Shared fixtures: a throwaway SQLite database and an in-memory catalog."""

from collections.abc import AsyncIterator

import pytest

from playbridge.application.services import JobLockRegistry
from playbridge.config import DatabaseSettings, Settings
from playbridge.domain.entities import PlaylistPlatform, Song
from playbridge.domain.ports import ICatalogAdapter
from playbridge.infrastructure.persistence import Database


class FakeCatalogAdapter(ICatalogAdapter):
    """Catalog backed by plain lists.

    ``search_results`` maps a lowercase substring of the query to the hits it
    returns; ``catalog`` answers ISRC and id lookups. Set ``error`` to make
    every call raise it.
    """

    def __init__(
        self,
        platform: PlaylistPlatform = PlaylistPlatform.NAVIDROME,
        catalog: list[Song] | None = None,
        search_results: dict[str, list[Song]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._platform = platform
        self.catalog = list(catalog or [])
        self.search_results = dict(search_results or {})
        self.error = error
        self.search_calls: list[str] = []
        self.isrc_calls: list[str] = []
        self.id_calls: list[list[str]] = []

    @property
    def platform(self) -> PlaylistPlatform:
        return self._platform

    async def search(self, query: str, start: int = 0, limit: int = 10) -> list[Song]:
        self.search_calls.append(query)
        if self.error is not None:
            raise self.error
        lowered = query.lower()
        hits: list[Song] = []
        for needle, songs in self.search_results.items():
            if needle in lowered:
                hits.extend(songs)
        return hits[start : start + limit]

    async def search_by_isrc(self, isrc: str) -> list[Song]:
        self.isrc_calls.append(isrc)
        if self.error is not None:
            raise self.error
        return [song for song in self.catalog if song.isrc == isrc]

    async def get_by_ids(self, ids: list[str]) -> list[Song]:
        self.id_calls.append(list(ids))
        if self.error is not None:
            raise self.error
        wanted = set(ids)
        return [song for song in self.catalog if song.platform_id in wanted]


def catalog_song(
    platform_id: str,
    title: str,
    artist: str,
    platform: PlaylistPlatform = PlaylistPlatform.NAVIDROME,
    **extra: object,
) -> Song:
    """Resolved song as a catalog would return it."""
    return Song(title=title, artist=artist, platform=platform, platform_id=platform_id, **extra)  # type: ignore[arg-type]


@pytest.fixture
def fake_adapter_cls() -> type[FakeCatalogAdapter]:
    return FakeCatalogAdapter


@pytest.fixture
def make_catalog_song():
    return catalog_song


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a fresh SQLite file."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'playbridge.db'}")
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncIterator[Database]:
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def locks() -> JobLockRegistry:
    return JobLockRegistry()
