"""API routers."""

from fastapi import APIRouter

from playbridge.api.routers import downloads, exports, imports

api_router = APIRouter()
api_router.include_router(imports.router)
api_router.include_router(exports.router)
api_router.include_router(downloads.router)

__all__ = ["api_router"]
