"""HTTP client for MeTube (yt-dlp web front-end)."""

import logging
from typing import Any

import httpx

from playbridge.config import MeTubeSettings
from playbridge.domain.exceptions import ConfigurationError, ExternalServiceError
from playbridge.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

SERVICE = "metube"


class MeTubeClient:
    """MeTube client.

    MeTube has no job ids of its own: downloads are keyed by the URL that was
    submitted, and ``/delete`` takes those URLs.
    """

    def __init__(
        self,
        settings: MeTubeSettings,
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

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        if not self.settings.is_configured:
            raise ConfigurationError("MeTube URL not configured")

        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(SERVICE, f"Request timed out: {path}") from e
        except httpx.HTTPError as e:
            logger.warning(LogMessages.connection_failed(SERVICE, f"{self.settings.url}{path}", str(e)))
            raise ExternalServiceError(SERVICE, f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise ExternalServiceError(
                SERVICE,
                f"{method} {path} failed: HTTP {response.status_code}",
                response.status_code,
            )
        return response.json()

    @staticmethod
    def search_url(query: str) -> str:
        """yt-dlp search term resolving to the first hit."""
        return f"ytsearch1:{query}"

    async def add(
        self,
        url: str,
        quality: str | None = None,
        media_format: str | None = None,
        folder: str | None = None,
        custom_name_prefix: str | None = None,
        auto_start: bool = True,
    ) -> dict[str, Any]:
        """Queue a download."""
        payload = {
            "url": url,
            "quality": quality or self.settings.default_quality,
            "format": media_format or self.settings.default_format,
            "folder": folder if folder is not None else self.settings.folder,
            "custom_name_prefix": custom_name_prefix or "",
            "playlist_strict_mode": True,
            "auto_start": auto_start,
        }
        result = await self._request("POST", "/add", json=payload)
        if not isinstance(result, dict) or result.get("status") != "ok":
            message = result.get("msg") if isinstance(result, dict) else None
            raise ExternalServiceError(SERVICE, message or "Download was not accepted")
        return result

    # MeTube answers /history with {"queue": [...], "done": [...], "pending": [...]};
    # older builds return a flat list or an id-keyed dict of finished items.
    async def get_history(self) -> dict[str, list[dict[str, Any]]]:
        """Queue, pending and done entries."""
        data = await self._request("GET", "/history")
        history: dict[str, list[dict[str, Any]]] = {"queue": [], "pending": [], "done": []}
        if isinstance(data, list):
            history["done"] = data
        elif isinstance(data, dict) and any(key in data for key in history):
            for key in history:
                section = data.get(key) or []
                history[key] = list(section.values()) if isinstance(section, dict) else list(section)
        elif isinstance(data, dict):
            history["done"] = [{**item, "id": item.get("id") or key} for key, item in data.items()]
        return history

    async def delete(self, ids: list[str], where: str = "queue") -> dict[str, Any]:
        """Remove entries from the queue or from history."""
        return dict(await self._request("POST", "/delete", json={"ids": ids, "where": where}))

    async def get_version(self) -> str:
        """MeTube version string (cheap connectivity check)."""
        data = await self._request("GET", "/version")
        return str(data.get("version", "unknown")) if isinstance(data, dict) else str(data)
