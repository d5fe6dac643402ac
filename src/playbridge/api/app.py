"""FastAPI application factory."""

from fastapi import FastAPI

from playbridge import __version__
from playbridge.api.exception_handlers import register_exception_handlers
from playbridge.api.routers import api_router
from playbridge.config import Settings
from playbridge.infrastructure.lifecycle import lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app; ``settings`` overrides the environment (tests)."""
    app = FastAPI(
        title="PlayBridge",
        description="Playlist import, export and download orchestration",
        version=__version__,
        lifespan=lifespan,
    )
    if settings is not None:
        app.state.settings = settings
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app
