"""Tests for the Spotify client, its rate limiter and the catalog adapter."""

import httpx
import pytest

from playbridge.config import SpotifySettings
from playbridge.domain.entities import PlaylistPlatform
from playbridge.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    RateLimitExceededError,
)
from playbridge.infrastructure.integrations.spotify_client import SpotifyClient
from playbridge.infrastructure.providers.registry import CatalogAdapterRegistry
from playbridge.infrastructure.providers.spotify_catalog import SpotifyCatalogAdapter
from playbridge.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig


def _track(track_id: str, name: str, isrc: str | None = None) -> dict:
    return {
        "id": track_id,
        "name": name,
        "artists": [{"name": "Daft Punk"}, {"name": "Pharrell Williams"}],
        "album": {"name": "Random Access Memories"},
        "duration_ms": 369_000,
        "external_ids": {"isrc": isrc} if isrc else {},
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


def _fast_limiter() -> RateLimiter:
    return RateLimiter(
        config=RateLimiterConfig(max_tokens=100, refill_rate=1000.0, initial_backoff_seconds=0.0),
        name="test",
    )


def _client(handler) -> SpotifyClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpotifyClient(SpotifySettings(), http_client=http, rate_limiter=_fast_limiter())


class TestSpotifyClient:
    """Tests for SpotifyClient."""

    async def test_search_sends_user_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"tracks": {"items": [_track("sp-1", "Get Lucky")]}})

        items = await _client(handler).search_tracks("daft punk get lucky", "user-token", limit=80)

        assert [i["id"] for i in items] == ["sp-1"]
        assert seen[0].headers["Authorization"] == "Bearer user-token"
        assert seen[0].url.params["type"] == "track"
        assert seen[0].url.params["limit"] == "50"

    async def test_retries_after_429(self) -> None:
        """Test a 429 with Retry-After is waited out and the call retried."""
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "0"}),
                httpx.Response(200, json={"tracks": {"items": []}}),
            ]
        )
        client = _client(lambda request: next(responses))

        assert await client.search_tracks("x", "token") == []

    async def test_gives_up_after_max_retries(self) -> None:
        client = _client(lambda request: httpx.Response(429, headers={"Retry-After": "0"}))

        with pytest.raises(RateLimitExceededError):
            await client.search_tracks("x", "token")

    async def test_rejected_token(self) -> None:
        client = _client(lambda request: httpx.Response(401))
        with pytest.raises(AuthenticationError):
            await client.search_tracks("x", "expired")

    async def test_get_tracks_chunks_ids(self) -> None:
        calls: list[list[str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            ids = request.url.params["ids"].split(",")
            calls.append(ids)
            return httpx.Response(200, json={"tracks": [_track(i, i) if i != "gone" else None for i in ids]})

        ids = [f"t{i}" for i in range(50)] + ["gone"]
        tracks = await _client(handler).get_tracks(ids, "token")

        assert [len(c) for c in calls] == [50, 1]
        assert len(tracks) == 50


class TestRateLimiter:
    """Tests for the token bucket."""

    async def test_tokens_are_consumed(self) -> None:
        limiter = RateLimiter(config=RateLimiterConfig(max_tokens=3, refill_rate=0.001))
        async with limiter:
            pass
        assert limiter.available_tokens == pytest.approx(2.0, abs=0.01)

    async def test_retry_after_is_capped(self) -> None:
        limiter = RateLimiter(config=RateLimiterConfig(max_backoff_seconds=0.0))
        assert await limiter.handle_rate_limit_response(retry_after=999.0) == 0.0


class TestSpotifyCatalogAdapter:
    """Tests for the Song mapping and ISRC filtering."""

    async def test_search_maps_songs(self) -> None:
        client = _client(
            lambda request: httpx.Response(200, json={"tracks": {"items": [_track("sp-1", "Get Lucky")]}})
        )

        (song,) = await SpotifyCatalogAdapter(client, "token").search("get lucky")

        assert song.artist == "Daft Punk, Pharrell Williams"
        assert (song.album, song.duration) == ("Random Access Memories", 369)
        assert (song.platform, song.platform_id) == (PlaylistPlatform.SPOTIFY, "sp-1")
        assert song.url == "https://open.spotify.com/track/sp-1"

    async def test_isrc_lookup_is_exact(self) -> None:
        client = _client(
            lambda request: httpx.Response(
                200,
                json={
                    "tracks": {
                        "items": [
                            _track("sp-1", "Get Lucky", "USQX91300108"),
                            _track("sp-2", "Get Lucky (Radio Edit)", "USQX91300109"),
                        ]
                    }
                },
            )
        )

        songs = await SpotifyCatalogAdapter(client, "token").search_by_isrc("usqx91300108")

        assert [s.platform_id for s in songs] == ["sp-1"]


class TestCatalogAdapterRegistry:
    """Tests for resolving platforms to adapters."""

    def test_spotify_needs_a_token(self, fake_adapter_cls) -> None:
        local = fake_adapter_cls()
        registry = CatalogAdapterRegistry(
            navidrome_adapter=local, spotify_client=SpotifyClient(SpotifySettings())
        )

        adapters = registry.get_adapters([PlaylistPlatform.NAVIDROME, PlaylistPlatform.SPOTIFY])

        assert adapters == [local]

    def test_spotify_bound_to_token(self) -> None:
        registry = CatalogAdapterRegistry(spotify_client=SpotifyClient(SpotifySettings()))

        (adapter,) = registry.get_adapters([PlaylistPlatform.SPOTIFY], credential="user-token")

        assert isinstance(adapter, SpotifyCatalogAdapter)
        assert adapter.platform == PlaylistPlatform.SPOTIFY

    def test_nothing_usable(self) -> None:
        registry = CatalogAdapterRegistry(spotify_client=SpotifyClient(SpotifySettings()))
        with pytest.raises(ConfigurationError):
            registry.get_adapters([PlaylistPlatform.NAVIDROME, PlaylistPlatform.SPOTIFY])
