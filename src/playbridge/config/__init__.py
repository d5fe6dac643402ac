"""Configuration module for PlayBridge."""

from .settings import (
    DatabaseSettings,
    DownloadSettings,
    LidarrSettings,
    MatchingSettings,
    MeTubeSettings,
    NavidromeSettings,
    ObservabilitySettings,
    Settings,
    SpotifySettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "DownloadSettings",
    "LidarrSettings",
    "MatchingSettings",
    "MeTubeSettings",
    "NavidromeSettings",
    "ObservabilitySettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
