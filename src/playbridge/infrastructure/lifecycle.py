"""Application lifecycle management for startup and shutdown tasks.

Builds every long-lived collaborator once (database, HTTP clients, caches,
job controllers) and parks it on ``app.state`` so routes can reach it through
the dependencies in ``playbridge.api.dependencies``.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from playbridge.application.cache import InMemoryCache
from playbridge.application.services import (
    DownloadOrchestrator,
    ExportService,
    ImportService,
    JobLockRegistry,
    SongMatcher,
)
from playbridge.application.workers import BackgroundJobRunner
from playbridge.config import Settings, get_settings
from playbridge.domain.entities.download_queue import DownloadPreferences, DownloadService
from playbridge.infrastructure.integrations.lidarr_client import LidarrClient
from playbridge.infrastructure.integrations.metube_client import MeTubeClient
from playbridge.infrastructure.integrations.navidrome_client import NavidromeClient
from playbridge.infrastructure.integrations.spotify_client import SpotifyClient
from playbridge.infrastructure.observability import configure_logging
from playbridge.infrastructure.persistence import Database
from playbridge.infrastructure.providers import (
    CatalogAdapterRegistry,
    LidarrCatalogBackend,
    MeTubeFetcherBackend,
    NavidromeCatalogAdapter,
)

logger = logging.getLogger(__name__)


def preferences_from_settings(settings: Settings) -> DownloadPreferences:
    """Default routing preferences for download batches."""
    return DownloadPreferences(
        default_service=DownloadService(settings.download.default_service),
        prefer_catalog_for_albums=settings.download.prefer_catalog_for_albums,
        prefer_fetcher_for_singles=settings.download.prefer_fetcher_for_singles,
        fetcher_format=settings.metube.default_format,
        fetcher_quality=settings.metube.default_quality,
    )


@dataclass
class AppServices:
    """Everything the lifespan builds, in one place for shutdown."""

    db: Database
    registry: CatalogAdapterRegistry
    lidarr_client: LidarrClient
    metube_client: MeTubeClient
    runner: BackgroundJobRunner
    import_service: ImportService
    export_service: ExportService
    download_orchestrator: DownloadOrchestrator

    async def close(self) -> None:
        """Stop background jobs, then release clients and the engine."""
        await self.runner.stop()
        await self.registry.close()
        await self.lidarr_client.close()
        await self.metube_client.close()
        await self.db.close()


def build_services(settings: Settings, db: Database) -> AppServices:
    """Wire adapters, back-ends and controllers from settings."""
    navidrome_adapter = None
    if settings.navidrome.is_configured:
        navidrome_adapter = NavidromeCatalogAdapter(
            NavidromeClient(settings.navidrome),
            cache=InMemoryCache(),
            cache_ttl=settings.matching.search_cache_ttl,
        )
    else:
        logger.warning("Navidrome is not configured, local catalog matching disabled")

    registry = CatalogAdapterRegistry(
        navidrome_adapter=navidrome_adapter,
        spotify_client=SpotifyClient(settings.spotify),
    )
    lidarr_client = LidarrClient(settings.lidarr)
    metube_client = MeTubeClient(settings.metube)
    locks = JobLockRegistry()
    runner = BackgroundJobRunner()

    orchestrator = DownloadOrchestrator(
        db.session_scope,
        LidarrCatalogBackend(lidarr_client),
        MeTubeFetcherBackend(metube_client),
        locks,
        preferences=preferences_from_settings(settings),
        local_catalog=navidrome_adapter,
        organize_base_path=settings.download.organize_base_path,
    )
    import_service = ImportService(
        db.session_scope,
        registry,
        SongMatcher.from_settings(settings.matching),
        locks,
        download_orchestrator=orchestrator,
        runner=runner,
    )
    return AppServices(
        db=db,
        registry=registry,
        lidarr_client=lidarr_client,
        metube_client=metube_client,
        runner=runner,
        import_service=import_service,
        export_service=ExportService(db.session_scope, registry),
        download_orchestrator=orchestrator,
    )


# Listen future me, everything before `yield` runs at STARTUP, everything
# after at SHUTDOWN. create_app() may pin its own Settings on app.state
# (tests do), otherwise the cached env settings are used.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.observability.level,
        json_format=settings.observability.json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    db = Database(settings)
    await db.create_tables()
    logger.info("Database initialized: %s", settings.database.url)

    services = build_services(settings, db)
    app.state.db = db
    app.state.services = services
    app.state.import_service = services.import_service
    app.state.export_service = services.export_service
    app.state.download_orchestrator = services.download_orchestrator

    try:
        yield
    finally:
        logger.info("Shutting down application")
        await services.close()
        logger.info("Shutdown complete")
