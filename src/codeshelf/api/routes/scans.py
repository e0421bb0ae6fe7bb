"""Scan job routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from codeshelf.api.deps import get_scan_job_manager
from codeshelf.api.schemas.scans import ScanCancelResponse, ScanStartedResponse, StartScanRequest
from codeshelf.core.scan_job_manager import ScanJobManager
from codeshelf.models.scan import ScanJob

router = APIRouter(prefix="/api/v1/scans", tags=["scans"])


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=ScanStartedResponse)
async def start_scan(
    request: StartScanRequest,
    jobs: ScanJobManager = Depends(get_scan_job_manager),
) -> ScanStartedResponse:
    job_id = await jobs.start_scan(request.to_config())
    return ScanStartedResponse(job_id=job_id)


@router.get("/{job_id}", response_model=ScanJob)
async def get_scan(job_id: str, jobs: ScanJobManager = Depends(get_scan_job_manager)) -> ScanJob:
    job = jobs.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan job not found")
    return job


@router.post("/{job_id}/cancel", response_model=ScanCancelResponse)
async def cancel_scan(
    job_id: str, jobs: ScanJobManager = Depends(get_scan_job_manager)
) -> ScanCancelResponse:
    if jobs.get_job_status(job_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan job not found")
    return ScanCancelResponse(cancelled=jobs.cancel_scan(job_id))
