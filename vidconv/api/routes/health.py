"""
Health, capability and stats API routes for vidconv
"""

import time
from typing import List, Dict, Any

from fastapi import APIRouter, Request

from ... import __version__
from ...hardware import check_tool_available, list_output_formats
from ...models import HealthResponse, CapabilitiesResponse, StatsResponse
from ..dependencies import get_job_manager

router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
def health_check(request: Request):
    """Health check endpoint."""
    job_manager = get_job_manager(request)
    engine = job_manager.engine

    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=time.time() - request.app.state.start_time,
        ffmpeg_available=check_tool_available(engine.ffmpeg_path),
        ffprobe_available=check_tool_available(engine.ffprobe_path),
        active_jobs=job_manager.get_active_count(),
        queued_jobs=job_manager.get_queue_length(),
    )


@router.get("/api/capabilities", response_model=CapabilitiesResponse)
def get_capabilities_endpoint(request: Request, refresh: bool = False):
    """Hardware encoder families the local ffmpeg offers."""
    capabilities = get_job_manager(request).engine.get_capabilities(force_refresh=refresh)
    return CapabilitiesResponse(**capabilities.to_dict())


@router.get("/api/formats")
def get_formats(request: Request) -> List[Dict[str, Any]]:
    """Output formats the local ffmpeg can write."""
    engine = get_job_manager(request).engine
    return [fmt.to_dict() for fmt in list_output_formats(engine.ffmpeg_path)]


@router.get("/api/stats", response_model=StatsResponse)
async def get_stats(request: Request):
    """Get service statistics."""
    job_manager = get_job_manager(request)
    stats = job_manager.stats

    return StatsResponse(
        total_jobs_processed=stats.total_jobs_processed,
        successful_jobs=stats.successful_jobs,
        failed_jobs=stats.failed_jobs,
        cancelled_jobs=stats.cancelled_jobs,
        active_jobs=job_manager.get_active_count(),
        total_conversion_time=stats.total_conversion_time,
        hw_accel_usage=stats.hw_accel_usage,
    )
