"""
Conversion job API routes for vidconv
"""

from typing import List, Dict, Any

from fastapi import APIRouter, HTTPException, Request

from ...errors import JobAlreadyRunningError, JobNotFoundError
from ...models import ConversionOptions, JobResponse
from ..dependencies import get_job_manager

router = APIRouter()


@router.post("/api/conversions", response_model=JobResponse, status_code=202)
async def start_conversion(options: ConversionOptions, request: Request):
    """Queue a new conversion job."""
    job_manager = get_job_manager(request)
    try:
        job = await job_manager.start_job(options)
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return job.to_response()


@router.get("/api/conversions", response_model=List[JobResponse])
async def list_conversions(request: Request):
    return [job.to_response() for job in get_job_manager(request).list_jobs()]


@router.get("/api/conversions/{job_id}")
async def get_conversion(job_id: str, request: Request) -> Dict[str, Any]:
    """Job status with the latest progress sample and the final result."""
    job = get_job_manager(request).get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@router.post("/api/conversions/{job_id}/cancel", response_model=JobResponse)
async def cancel_conversion(job_id: str, request: Request):
    """Cancel a queued or running job."""
    try:
        job = await get_job_manager(request).cancel_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return job.to_response()


@router.delete("/api/conversions/{job_id}")
async def delete_conversion(job_id: str, request: Request):
    """Delete a job, cancelling it first if it is still in flight."""
    removed = await get_job_manager(request).remove_job(job_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"status": "deleted", "job_id": job_id}
