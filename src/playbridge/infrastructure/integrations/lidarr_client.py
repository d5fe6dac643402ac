"""HTTP client for the Lidarr v1 API."""

import logging
from typing import Any

import httpx

from playbridge.config import LidarrSettings
from playbridge.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExternalServiceError,
    RateLimitExceededError,
)
from playbridge.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

SERVICE = "lidarr"


class LidarrClient:
    """Lidarr client: artist lookup, monitoring, searches, queue and history."""

    def __init__(
        self,
        settings: LidarrSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.url, timeout=self.settings.timeout
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        if not self.settings.is_configured:
            raise ConfigurationError("Lidarr URL or API key not configured")

        client = await self._get_client()
        headers = {"X-Api-Key": self.settings.api_key.get_secret_value()}
        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise ExternalServiceError(SERVICE, f"Request timed out: {path}") from e
        except httpx.HTTPError as e:
            logger.warning(
                LogMessages.connection_failed(
                    SERVICE, f"{self.settings.url}{path}", str(e), hint="Is LIDARR_URL correct?"
                )
            )
            raise ExternalServiceError(SERVICE, f"Request failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(SERVICE, "API key rejected")
        if response.status_code == 429:
            raise RateLimitExceededError(SERVICE)
        if response.status_code >= 400:
            raise ExternalServiceError(
                SERVICE,
                f"{method} {path} failed: HTTP {response.status_code}",
                response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    async def search_artist(self, term: str, limit: int = 20) -> list[dict[str, Any]]:
        """Artist lookup against Lidarr's metadata server.

        ``term`` may also be ``lidarr:<foreign artist id>`` for an exact lookup.
        """
        data = await self._request("GET", "/api/v1/artist/lookup", params={"term": term})
        # Lidarr reports metadata server outages as {"message": ...}, not a list
        if isinstance(data, dict):
            raise ExternalServiceError(
                SERVICE, data.get("message") or "Metadata lookup failed"
            )
        return list(data or [])[:limit]

    async def get_artist_by_foreign_id(self, foreign_artist_id: str) -> dict[str, Any] | None:
        """Artist already in the library, None when not added yet."""
        data = await self._request("GET", "/api/v1/artist", params={"mbId": foreign_artist_id})
        if isinstance(data, list):
            return data[0] if data else None
        return data

    async def add_artist(
        self,
        lookup: dict[str, Any],
        monitored: bool = True,
        search_for_missing_albums: bool = False,
    ) -> dict[str, Any]:
        """Add a looked-up artist to the library."""
        payload = {
            **lookup,
            "qualityProfileId": self.settings.quality_profile_id,
            "metadataProfileId": self.settings.metadata_profile_id,
            "rootFolderPath": self.settings.root_folder_path,
            "monitored": monitored,
            "addOptions": {
                "monitor": "all" if search_for_missing_albums else "none",
                "searchForMissingAlbums": search_for_missing_albums,
            },
        }
        return dict(await self._request("POST", "/api/v1/artist", json=payload))

    async def get_albums(self, artist_id: int) -> list[dict[str, Any]]:
        """Albums of a library artist."""
        return list(await self._request("GET", "/api/v1/album", params={"artistId": artist_id}) or [])

    async def monitor_album(self, album_ids: list[int], monitored: bool = True) -> None:
        """Toggle monitoring for albums."""
        await self._request(
            "PUT",
            "/api/v1/album/monitor",
            json={"albumIds": album_ids, "monitored": monitored},
        )

    async def search_album(self, album_ids: list[int]) -> dict[str, Any]:
        """Trigger an AlbumSearch command."""
        return dict(
            await self._request(
                "POST", "/api/v1/command", json={"name": "AlbumSearch", "albumIds": album_ids}
            )
        )

    async def search_artist_albums(self, artist_id: int) -> dict[str, Any]:
        """Trigger an ArtistSearch command (all monitored albums)."""
        return dict(
            await self._request(
                "POST", "/api/v1/command", json={"name": "ArtistSearch", "artistId": artist_id}
            )
        )

    async def get_queue(self, page_size: int = 100) -> list[dict[str, Any]]:
        """Active download queue records."""
        data = await self._request(
            "GET", "/api/v1/queue", params={"pageSize": page_size, "includeAlbum": "true"}
        )
        return list((data or {}).get("records") or [])

    async def get_history(self, page_size: int = 50) -> list[dict[str, Any]]:
        """Most recent history records first."""
        data = await self._request(
            "GET",
            "/api/v1/history",
            params={"pageSize": page_size, "sortKey": "date", "sortDirection": "descending"},
        )
        return list((data or {}).get("records") or [])

    async def cancel(self, queue_id: int) -> bool:
        """Remove a queue record. False when it is already gone."""
        try:
            await self._request(
                "DELETE", f"/api/v1/queue/{queue_id}", params={"removeFromClient": "true"}
            )
        except ExternalServiceError as e:
            if e.status_code == 404:
                return False
            raise
        return True
