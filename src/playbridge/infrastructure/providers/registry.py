"""Catalog adapter registry.

Hands the matcher the adapters for a set of platforms. The local catalog
adapter is process-wide; streaming platform adapters are bound to the
caller's credential and built per request.
"""

import logging

from playbridge.domain.entities import PlaylistPlatform
from playbridge.domain.exceptions import ConfigurationError
from playbridge.domain.ports import ICatalogAdapter
from playbridge.infrastructure.integrations.spotify_client import SpotifyClient
from playbridge.infrastructure.providers.navidrome_catalog import NavidromeCatalogAdapter
from playbridge.infrastructure.providers.spotify_catalog import SpotifyCatalogAdapter

logger = logging.getLogger(__name__)


class CatalogAdapterRegistry:
    """Resolves platforms to catalog adapters."""

    def __init__(
        self,
        navidrome_adapter: NavidromeCatalogAdapter | None = None,
        spotify_client: SpotifyClient | None = None,
    ) -> None:
        self._navidrome = navidrome_adapter
        self._spotify_client = spotify_client

    def local_adapter(self) -> ICatalogAdapter | None:
        """Adapter for the local media server, None when not wired."""
        return self._navidrome

    def get_adapters(
        self,
        platforms: list[PlaylistPlatform],
        credential: str | None = None,
    ) -> list[ICatalogAdapter]:
        """Adapters for ``platforms`` in the given order.

        Platforms without a usable adapter are skipped (and logged); asking
        for nothing usable at all is a configuration problem.
        """
        adapters: list[ICatalogAdapter] = []
        for platform in dict.fromkeys(platforms):
            if platform == PlaylistPlatform.NAVIDROME and self._navidrome is not None:
                adapters.append(self._navidrome)
            elif platform == PlaylistPlatform.SPOTIFY and self._spotify_client is not None:
                if not credential:
                    logger.warning("Skipping Spotify search: no access token supplied")
                    continue
                adapters.append(SpotifyCatalogAdapter(self._spotify_client, credential))
            else:
                logger.warning("No catalog adapter available for platform %s", platform.value)

        if not adapters:
            raise ConfigurationError(
                "No catalog adapter available for "
                + ", ".join(p.value for p in platforms)
            )
        return adapters

    async def close(self) -> None:
        """Close the underlying HTTP clients."""
        if self._navidrome is not None:
            await self._navidrome.close()
        if self._spotify_client is not None:
            await self._spotify_client.close()
