"""Playlist export endpoints."""

from fastapi import APIRouter, Response, status

from playbridge.api.dependencies import ExportServiceDep, OwnerId
from playbridge.api.schemas.exports import ExportJobResponse, ExportRequest

router = APIRouter(prefix="/api/playlists/export", tags=["export"])


@router.post("", response_model=ExportJobResponse, status_code=status.HTTP_201_CREATED)
async def export_playlist(
    request: ExportRequest, owner_id: OwnerId, service: ExportServiceDep
) -> ExportJobResponse:
    """Render a stored playlist; fetch the output from /{export_id}/download."""
    job = await service.export_playlist(
        owner_id, request.playlist_id, request.format, request.to_options()
    )
    return ExportJobResponse.from_entity(job)


@router.get("/{export_id}", response_model=ExportJobResponse)
async def get_export(export_id: str, owner_id: OwnerId, service: ExportServiceDep) -> ExportJobResponse:
    job = await service.get_export_job(owner_id, export_id)
    return ExportJobResponse.from_entity(job)


@router.get("/{export_id}/download")
async def download_export(export_id: str, owner_id: OwnerId, service: ExportServiceDep) -> Response:
    """Stored output of a completed export."""
    export = await service.download_export(owner_id, export_id)
    return Response(
        content=export.data,
        media_type=export.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
