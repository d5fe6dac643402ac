"""HTTP client for Spotify Web API track lookups."""

import logging
from typing import Any

import httpx

from playbridge.config import SpotifySettings
from playbridge.domain.exceptions import (
    AuthenticationError,
    ExternalServiceError,
    RateLimitExceededError,
)
from playbridge.infrastructure.observability.log_messages import LogMessages
from playbridge.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SERVICE = "spotify"

# /tracks accepts at most 50 ids per call
MAX_IDS_PER_REQUEST = 50


class SpotifyClient:
    """Spotify Web API client. Access tokens are per user and passed per call."""

    def __init__(
        self,
        settings: SpotifySettings,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self.rate_limiter = rate_limiter or RateLimiter.for_spotify(
            settings.requests_per_second
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Hey future me - ALL calls go through here: token bucket first, then
    # retry on 429 honoring Retry-After. After max_retries we give up with
    # RateLimitExceededError so the matcher records it for this song only.
    async def _api_request(
        self,
        method: str,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.settings.api_base_url}{path}"
        headers = {"Authorization": f"Bearer {access_token}"}

        for attempt in range(max_retries + 1):
            try:
                async with self.rate_limiter:
                    response = await client.request(method, url, params=params, headers=headers)
            except httpx.TimeoutException as e:
                raise ExternalServiceError(SERVICE, f"Request timed out: {path}") from e
            except httpx.HTTPError as e:
                logger.warning(LogMessages.connection_failed(SERVICE, url, str(e)))
                raise ExternalServiceError(SERVICE, f"Request failed: {e}") from e

            if response.status_code == 429:
                retry_after_header = response.headers.get("Retry-After")
                retry_after = float(retry_after_header) if retry_after_header else None
                if attempt >= max_retries:
                    raise RateLimitExceededError(SERVICE, retry_after)
                await self.rate_limiter.handle_rate_limit_response(retry_after)
                continue
            if response.status_code in (401, 403):
                raise AuthenticationError(
                    SERVICE, f"Access token rejected (HTTP {response.status_code})"
                )
            if response.status_code >= 400:
                raise ExternalServiceError(
                    SERVICE,
                    f"{method} {path} failed: HTTP {response.status_code}",
                    response.status_code,
                )
            return response.json()

        raise RateLimitExceededError(SERVICE)

    async def search_tracks(
        self, query: str, access_token: str, limit: int = 10, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Track search using Spotify's query syntax."""
        data = await self._api_request(
            "GET",
            "/search",
            access_token,
            params={"q": query, "type": "track", "limit": min(limit, 50), "offset": offset},
        )
        return list((data.get("tracks") or {}).get("items") or [])

    async def search_by_isrc(self, isrc: str, access_token: str) -> list[dict[str, Any]]:
        """Tracks carrying the given ISRC."""
        return await self.search_tracks(f"isrc:{isrc}", access_token, limit=5)

    async def get_tracks(self, track_ids: list[str], access_token: str) -> list[dict[str, Any]]:
        """Several tracks by id. Unknown ids come back as null and are dropped."""
        tracks: list[dict[str, Any]] = []
        for i in range(0, len(track_ids), MAX_IDS_PER_REQUEST):
            chunk = track_ids[i : i + MAX_IDS_PER_REQUEST]
            data = await self._api_request(
                "GET", "/tracks", access_token, params={"ids": ",".join(chunk)}
            )
            tracks.extend(track for track in data.get("tracks") or [] if track)
        return tracks
