"""Download orchestration endpoints."""

from fastapi import APIRouter, HTTPException, status

from playbridge.api.dependencies import DownloadOrchestratorDep, OwnerId
from playbridge.api.exception_handlers import ERROR_KIND_STATUS
from playbridge.api.schemas.downloads import (
    CancelResponse,
    DownloadJobResponse,
    DownloadReportResponse,
    QueueBatchRequest,
    QueueItemResponse,
    QueueSingleRequest,
    QueueStatusResponse,
)
from playbridge.application.services import generate_report
from playbridge.domain.value_objects import Result

router = APIRouter(prefix="/api/playlists/downloads", tags=["downloads"])


def _unwrap[T](result: Result[T]) -> T:
    """Turn a failed per-item Result into the matching HTTP error."""
    if not result.ok:
        assert result.error_kind is not None
        raise HTTPException(status_code=ERROR_KIND_STATUS[result.error_kind], detail=result.error)
    return result.value  # type: ignore[return-value]


@router.post("/batch", response_model=DownloadJobResponse, status_code=status.HTTP_201_CREATED)
async def queue_batch(
    request: QueueBatchRequest, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> DownloadJobResponse:
    """Queue a batch; items that could not be submitted come back FAILED."""
    job = await orchestrator.queue_batch(
        owner_id,
        [song.to_entity() for song in request.songs],
        preferences=request.preferences.to_entity() if request.preferences else None,
        scope=request.scope,
        playlist_id=request.playlist_id,
    )
    return DownloadJobResponse.from_entity(job)


@router.post("/single", response_model=QueueItemResponse)
async def queue_single(
    request: QueueSingleRequest, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> QueueItemResponse:
    """Submit one song without creating a job."""
    item = await orchestrator.queue_single(
        request.song.to_entity(),
        service=request.service,
        preferences=request.preferences.to_entity() if request.preferences else None,
        scope=request.scope,
        video_id=request.video_id,
    )
    return QueueItemResponse.from_entity(item)


@router.get("/status", response_model=QueueStatusResponse)
async def get_queue_status(owner_id: OwnerId, orchestrator: DownloadOrchestratorDep) -> QueueStatusResponse:
    """Live queue of both back-ends."""
    return QueueStatusResponse.from_status(await orchestrator.get_queue_status())


@router.get("/active", response_model=list[DownloadJobResponse])
async def list_active(owner_id: OwnerId, orchestrator: DownloadOrchestratorDep) -> list[DownloadJobResponse]:
    jobs = await orchestrator.list_active_jobs(owner_id)
    return [DownloadJobResponse.from_entity(job) for job in jobs]


@router.get("/{job_id}", response_model=DownloadJobResponse)
async def get_download_job(
    job_id: str, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> DownloadJobResponse:
    job = await orchestrator.get_download_job(owner_id, job_id)
    return DownloadJobResponse.from_entity(job)


@router.post("/{job_id}/sync", response_model=DownloadJobResponse)
async def sync_download_job(
    job_id: str, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> DownloadJobResponse:
    """Pull back-end progress into the job."""
    job = await orchestrator.sync_job(owner_id, job_id)
    return DownloadJobResponse.from_entity(job)


@router.get("/{job_id}/report", response_model=DownloadReportResponse)
async def get_download_report(
    job_id: str, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> DownloadReportResponse:
    job = await orchestrator.get_download_job(owner_id, job_id)
    return DownloadReportResponse.from_report(generate_report(job.download_queue))


@router.post("/{job_id}/organized", response_model=DownloadJobResponse)
async def mark_organized(
    job_id: str, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> DownloadJobResponse:
    """Acknowledge that manually-organized files were moved."""
    job = _unwrap(await orchestrator.mark_organized(owner_id, job_id))
    return DownloadJobResponse.from_entity(job)


@router.post("/{job_id}/cancel", response_model=DownloadJobResponse)
async def cancel_download_job(
    job_id: str, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> DownloadJobResponse:
    job = await orchestrator.cancel_job(owner_id, job_id)
    return DownloadJobResponse.from_entity(job)


@router.post("/{job_id}/items/{item_id}/cancel", response_model=CancelResponse)
async def cancel_download_item(
    job_id: str, item_id: str, owner_id: OwnerId, orchestrator: DownloadOrchestratorDep
) -> CancelResponse:
    """Best-effort cancel; ``cancelled`` is false when nothing was left to stop."""
    cancelled = _unwrap(await orchestrator.cancel_item(owner_id, job_id, item_id))
    return CancelResponse(cancelled=bool(cancelled))
