"""Dependency injection for API endpoints."""

from typing import Annotated, cast

from fastapi import Depends, Header, HTTPException, Request

from playbridge.application.services import (
    DownloadOrchestrator,
    ExportService,
    ImportService,
)


# Yo, authentication lives in front of this service (reverse proxy, gateway).
# All we need is WHO is asking so jobs and playlists stay scoped per owner.
def get_owner_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """Owner id from the X-User-Id header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_platform_token(
    x_platform_token: Annotated[str | None, Header(alias="X-Platform-Token")] = None,
) -> str | None:
    """Per-user streaming platform token, never persisted."""
    return x_platform_token or None


def _from_state(request: Request, name: str) -> object:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return service


def get_import_service(request: Request) -> ImportService:
    return cast(ImportService, _from_state(request, "import_service"))


def get_export_service(request: Request) -> ExportService:
    return cast(ExportService, _from_state(request, "export_service"))


def get_download_orchestrator(request: Request) -> DownloadOrchestrator:
    return cast(DownloadOrchestrator, _from_state(request, "download_orchestrator"))


OwnerId = Annotated[str, Depends(get_owner_id)]
PlatformToken = Annotated[str | None, Depends(get_platform_token)]
ImportServiceDep = Annotated[ImportService, Depends(get_import_service)]
ExportServiceDep = Annotated[ExportService, Depends(get_export_service)]
DownloadOrchestratorDep = Annotated[DownloadOrchestrator, Depends(get_download_orchestrator)]
