"""Playlist import endpoints."""

import logging

from fastapi import APIRouter, Query, status
from fastapi.responses import PlainTextResponse

from playbridge.api.dependencies import ImportServiceDep, OwnerId, PlatformToken
from playbridge.api.schemas.imports import (
    FinalizeReviewRequest,
    FinalizeReviewResponse,
    ImportJobResponse,
    MatchReportResponse,
    StartImportRequest,
    ValidateImportRequest,
    ValidateImportResponse,
)

router = APIRouter(prefix="/api/playlists/import", tags=["import"])
logger = logging.getLogger(__name__)


@router.post("/validate", response_model=ValidateImportResponse)
async def validate_import(
    request: ValidateImportRequest, service: ImportServiceDep
) -> ValidateImportResponse:
    """Dry-run parse; problems come back as data, never as an error status."""
    report = service.validate_import(request.content, request.format, request.filename)
    return ValidateImportResponse.from_report(report)


# Hey future me - 202 because with the background runner the match pass is
# still going when we answer. Poll GET /{job_id} until awaiting_review or a
# terminal status shows up.
@router.post("", response_model=ImportJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_import(
    request: StartImportRequest,
    owner_id: OwnerId,
    token: PlatformToken,
    service: ImportServiceDep,
) -> ImportJobResponse:
    """Parse a playlist and start matching it."""
    job = await service.start_import(owner_id, request.content, request.to_options(token))
    return ImportJobResponse.from_entity(job)


@router.get("", response_model=list[ImportJobResponse])
async def list_imports(
    owner_id: OwnerId,
    service: ImportServiceDep,
    limit: int = Query(default=50, ge=1, le=200),
) -> list[ImportJobResponse]:
    """Recent import jobs, without per-song results."""
    jobs = await service.list_import_jobs(owner_id, limit)
    return [ImportJobResponse.from_entity(job, include_results=False) for job in jobs]


@router.get("/{job_id}", response_model=ImportJobResponse)
async def get_import(job_id: str, owner_id: OwnerId, service: ImportServiceDep) -> ImportJobResponse:
    job = await service.get_import_job(owner_id, job_id)
    return ImportJobResponse.from_entity(job)


@router.post("/{job_id}/finalize", response_model=FinalizeReviewResponse)
async def finalize_review(
    job_id: str,
    request: FinalizeReviewRequest,
    owner_id: OwnerId,
    service: ImportServiceDep,
) -> FinalizeReviewResponse:
    """Resolve pending reviews and commit matched songs to the playlist."""
    result = await service.finalize_review(
        owner_id, job_id, [decision.to_entity() for decision in request.decisions]
    )
    return FinalizeReviewResponse.from_result(result)


@router.post("/{job_id}/cancel", response_model=ImportJobResponse)
async def cancel_import(job_id: str, owner_id: OwnerId, service: ImportServiceDep) -> ImportJobResponse:
    job = await service.cancel_import(owner_id, job_id)
    return ImportJobResponse.from_entity(job)


@router.get("/{job_id}/report", response_model=MatchReportResponse)
async def get_match_report(
    job_id: str, owner_id: OwnerId, service: ImportServiceDep
) -> MatchReportResponse:
    report = await service.get_match_report(owner_id, job_id)
    return MatchReportResponse.from_report(report)


@router.get("/{job_id}/results.csv", response_class=PlainTextResponse)
async def export_match_results(
    job_id: str, owner_id: OwnerId, service: ImportServiceDep
) -> PlainTextResponse:
    """Match results as CSV for offline review."""
    data = await service.export_match_results(owner_id, job_id)
    return PlainTextResponse(
        data,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="match_results_{job_id}.csv"'},
    )
