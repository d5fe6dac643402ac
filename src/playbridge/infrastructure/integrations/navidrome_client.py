"""HTTP client for the Navidrome native REST API."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from playbridge.config import NavidromeSettings
from playbridge.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExternalServiceError,
    RateLimitExceededError,
)
from playbridge.infrastructure.integrations.credential_cache import CredentialCache
from playbridge.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

SERVICE = "navidrome"

# Navidrome's song list endpoint accepts one of these as a filter. Which one
# actually matches depends on the server version, so search tries them in turn.
SEARCH_FILTERS = ("title", "fullText", "name")


@dataclass(frozen=True)
class NavidromeCredential:
    """Session returned by /auth/login."""

    token: str
    user_id: str
    subsonic_token: str | None = None
    subsonic_salt: str | None = None


class NavidromeClient:
    """HTTP client for Navidrome song lookups."""

    def __init__(
        self,
        settings: NavidromeSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self.credentials: CredentialCache[NavidromeCredential] = CredentialCache(
            self._login, SERVICE
        )

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

    async def _login(self) -> NavidromeCredential:
        if not self.settings.is_configured:
            raise ConfigurationError("Navidrome URL or credentials not configured")

        client = await self._get_client()
        try:
            response = await client.post(
                "/auth/login",
                json={
                    "username": self.settings.username,
                    "password": self.settings.password.get_secret_value(),
                },
            )
        except httpx.HTTPError as e:
            logger.warning(
                LogMessages.connection_failed(SERVICE, f"{self.settings.url}/auth/login", str(e))
            )
            raise ExternalServiceError(SERVICE, f"Login request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(SERVICE, "Login rejected, check username/password")
        if response.status_code >= 400:
            raise ExternalServiceError(
                SERVICE, f"Login failed: HTTP {response.status_code}", response.status_code
            )

        data = response.json()
        if not data.get("token") or not data.get("id"):
            raise AuthenticationError(SERVICE, "No token or id received from login")
        return NavidromeCredential(
            token=data["token"],
            user_id=data["id"],
            subsonic_token=data.get("subsonicToken"),
            subsonic_salt=data.get("subsonicSalt"),
        )

    # Hey future me - one retry on 401, never more. The retry goes through
    # credentials.refresh(stale=...) so fifty concurrent 401s cause ONE login.
    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        if not self.settings.is_configured:
            raise ConfigurationError("Navidrome URL or credentials not configured")

        client = await self._get_client()
        for attempt in range(2):
            credential = await self.credentials.get()
            headers = {
                "x-nd-authorization": f"Bearer {credential.token}",
                "x-nd-client-unique-id": self.settings.client_id,
            }
            try:
                response = await client.request(method, path, params=params, headers=headers)
            except httpx.TimeoutException as e:
                raise ExternalServiceError(
                    SERVICE, f"Request timed out ({self.settings.timeout}s): {path}"
                ) from e
            except httpx.HTTPError as e:
                logger.warning(LogMessages.connection_failed(SERVICE, path, str(e)))
                raise ExternalServiceError(SERVICE, f"Request failed: {e}") from e

            if response.status_code == 401:
                if attempt == 0:
                    await self.credentials.refresh(stale=credential)
                    continue
                raise AuthenticationError(SERVICE, "Token rejected after refresh")
            if response.status_code == 404 and allow_not_found:
                return None
            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                raise RateLimitExceededError(
                    SERVICE, float(retry_after) if retry_after else None
                )
            if response.status_code >= 400:
                raise ExternalServiceError(
                    SERVICE,
                    f"{method} {path} failed: HTTP {response.status_code}",
                    response.status_code,
                )
            return response.json()

        raise AuthenticationError(SERVICE, "Token rejected after refresh")

    async def search_songs(
        self, query: str, start: int = 0, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Search songs, trying each known filter until one returns hits."""
        last_error: ExternalServiceError | None = None
        for search_filter in SEARCH_FILTERS:
            params = {search_filter: query, "_start": start, "_end": start + limit}
            try:
                data = await self._request("GET", "/api/song", params=params)
            except AuthenticationError:
                raise
            except ExternalServiceError as e:
                logger.debug("Navidrome search with %s failed: %s", search_filter, e.message)
                last_error = e
                continue
            if data:
                return list(data)[:limit]
            last_error = None
        if last_error is not None:
            raise last_error
        return []

    async def search_by_isrc(self, isrc: str) -> list[dict[str, Any]]:
        """Songs tagged with the given ISRC."""
        data = await self._request("GET", "/api/song", params={"isrc": isrc, "_start": 0, "_end": 10})
        return list(data or [])

    async def get_song(self, song_id: str) -> dict[str, Any] | None:
        """Single song by id, None when unknown."""
        data = await self._request("GET", f"/api/song/{song_id}", allow_not_found=True)
        return data if isinstance(data, dict) else None

    async def get_songs(self, song_ids: list[str]) -> list[dict[str, Any]]:
        """Songs by id, unknown ids omitted, input order kept."""
        results = await asyncio.gather(*(self.get_song(song_id) for song_id in song_ids))
        return [song for song in results if song is not None]
