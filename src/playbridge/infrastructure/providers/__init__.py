"""Port implementations backed by the integration clients."""

from playbridge.infrastructure.providers.lidarr_backend import LidarrCatalogBackend
from playbridge.infrastructure.providers.metube_backend import MeTubeFetcherBackend
from playbridge.infrastructure.providers.navidrome_catalog import NavidromeCatalogAdapter
from playbridge.infrastructure.providers.registry import CatalogAdapterRegistry
from playbridge.infrastructure.providers.spotify_catalog import SpotifyCatalogAdapter

__all__ = [
    "CatalogAdapterRegistry",
    "LidarrCatalogBackend",
    "MeTubeFetcherBackend",
    "NavidromeCatalogAdapter",
    "SpotifyCatalogAdapter",
]
