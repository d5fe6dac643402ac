"""External integration client implementations."""

from playbridge.infrastructure.integrations.credential_cache import CredentialCache
from playbridge.infrastructure.integrations.lidarr_client import LidarrClient
from playbridge.infrastructure.integrations.metube_client import MeTubeClient
from playbridge.infrastructure.integrations.navidrome_client import (
    NavidromeClient,
    NavidromeCredential,
)
from playbridge.infrastructure.integrations.spotify_client import SpotifyClient

__all__ = [
    "CredentialCache",
    "LidarrClient",
    "MeTubeClient",
    "NavidromeClient",
    "NavidromeCredential",
    "SpotifyClient",
]
