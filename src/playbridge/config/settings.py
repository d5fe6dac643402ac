"""Application settings loaded from environment variables and .env files.

Each external collaborator gets its own settings group with an env prefix, so
``LIDARR_API_KEY`` lands in ``settings.lidarr.api_key`` and
``MATCHING_MAX_CONCURRENCY`` in ``settings.matching.max_concurrency``.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_", env_file=".env", extra="ignore"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///./playbridge.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log all SQL statements")
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)
    pool_pre_ping: bool = True


class NavidromeSettings(BaseSettings):
    """Local media server (Navidrome) settings."""

    model_config = SettingsConfigDict(
        env_prefix="NAVIDROME_", env_file=".env", extra="ignore"
    )

    url: str = Field(default="", description="Navidrome base URL")
    username: str = ""
    password: SecretStr = SecretStr("")
    client_id: str = Field(
        default="playbridge",
        description="Value sent as x-nd-client-unique-id",
    )
    timeout: float = Field(default=5.0, gt=0)

    # Hey future me - url without credentials is useless, Navidrome has no
    # anonymous API. Both must be present before we even try to log in.
    @property
    def is_configured(self) -> bool:
        """True when URL and credentials are present."""
        return bool(self.url and self.username and self.password.get_secret_value())

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        return v.rstrip("/")


class SpotifySettings(BaseSettings):
    """Spotify Web API settings (per-user tokens are supplied by callers)."""

    model_config = SettingsConfigDict(
        env_prefix="SPOTIFY_", env_file=".env", extra="ignore"
    )

    api_base_url: str = "https://api.spotify.com/v1"
    timeout: float = Field(default=5.0, gt=0)
    requests_per_second: float = Field(default=10.0, gt=0)


class LidarrSettings(BaseSettings):
    """Catalog-manager back-end (Lidarr) settings."""

    model_config = SettingsConfigDict(
        env_prefix="LIDARR_", env_file=".env", extra="ignore"
    )

    url: str = ""
    api_key: SecretStr = SecretStr("")
    root_folder_path: str = "/music"
    quality_profile_id: int = 1
    metadata_profile_id: int = 1
    timeout: float = Field(default=10.0, gt=0)
    batch_size: int = Field(
        default=10, ge=1, description="Items sent per request chunk"
    )

    @property
    def is_configured(self) -> bool:
        """True when URL and API key are present."""
        return bool(self.url and self.api_key.get_secret_value())

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        return v.rstrip("/")


class MeTubeSettings(BaseSettings):
    """Single-track fetcher back-end (MeTube) settings."""

    model_config = SettingsConfigDict(
        env_prefix="METUBE_", env_file=".env", extra="ignore"
    )

    url: str = ""
    timeout: float = Field(default=10.0, gt=0)
    default_format: Literal["mp3", "mp4"] = "mp3"
    default_quality: str = "best"
    folder: str = "playbridge"
    batch_size: int = Field(default=5, ge=1)

    @property
    def is_configured(self) -> bool:
        """True when URL is present."""
        return bool(self.url)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        return v.rstrip("/")


class MatchingSettings(BaseSettings):
    """Song matcher tuning knobs."""

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_", env_file=".env", extra="ignore"
    )

    max_concurrency: int = Field(
        default=6, ge=1, le=8, description="Songs matched in parallel per job"
    )
    max_candidates: int = Field(default=10, ge=1)
    exact_threshold: float = Field(default=90.0, ge=0, le=100)
    high_threshold: float = Field(default=70.0, ge=0, le=100)
    low_threshold: float = Field(default=40.0, ge=0, le=100)
    ambiguity_gap: float = Field(
        default=5.0,
        ge=0,
        description="Runner-up within this many points blocks auto-selection",
    )
    search_limit: int = Field(default=5, ge=1, description="Hits per adapter query")
    search_cache_ttl: int = Field(default=300, ge=0)

    @model_validator(mode="after")
    def check_threshold_order(self) -> "MatchingSettings":
        """Thresholds must be strictly descending."""
        if not self.exact_threshold > self.high_threshold > self.low_threshold:
            raise ValueError(
                "Expected exact_threshold > high_threshold > low_threshold"
            )
        return self


class DownloadSettings(BaseSettings):
    """Download routing preferences."""

    model_config = SettingsConfigDict(
        env_prefix="DOWNLOAD_", env_file=".env", extra="ignore"
    )

    default_service: Literal["catalog_manager", "single_track_fetcher"] = (
        "single_track_fetcher"
    )
    prefer_catalog_for_albums: bool = True
    prefer_fetcher_for_singles: bool = True
    organize_base_path: str = "/music"


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_", env_file=".env", extra="ignore"
    )

    level: str = "INFO"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Only accept stdlib logging level names."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "playbridge"
    debug: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    navidrome: NavidromeSettings = Field(default_factory=NavidromeSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    lidarr: LidarrSettings = Field(default_factory=LidarrSettings)
    metube: MeTubeSettings = Field(default_factory=MeTubeSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    download: DownloadSettings = Field(default_factory=DownloadSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


# Yo, cached so every Depends(get_settings) shares one instance. Tests that
# tweak env vars must call get_settings.cache_clear() afterwards.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
