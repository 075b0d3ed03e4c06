"""
Media probing API routes for vidconv
"""

from pathlib import Path
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, Request

from ...conversion import MediaInfo
from ...errors import (
    ProbeToolUnavailableError,
    ProbeExecutionError,
    MalformedProbeOutputError,
)
from ...models import FilenameRequest, ProbeRequest
from ...naming import DEFAULT_TEMPLATE, MovieInfo, generate_filename
from ..dependencies import get_job_manager

router = APIRouter()


async def _probe_file(request: Request, path: str) -> MediaInfo:
    if not Path(path).is_file():
        raise HTTPException(status_code=404, detail=f"File not found: {path}")

    engine = get_job_manager(request).engine
    try:
        return await engine.probe_media(path)
    except ProbeToolUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except MalformedProbeOutputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ProbeExecutionError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/api/probe")
async def probe_media(body: ProbeRequest, request: Request) -> Dict[str, Any]:
    """Probe a local media file."""
    info = await _probe_file(request, body.path)
    return info.to_dict()


@router.post("/api/filename")
async def suggest_filename(body: FilenameRequest, request: Request) -> Dict[str, Any]:
    """Output filename for a local media file, from its resolution and optional movie metadata."""
    info = await _probe_file(request, body.path)
    movie = None
    if body.title:
        movie = MovieInfo(title=body.title, release_date=body.release_date, overview=body.overview)
    return {"filename": generate_filename(info, movie, body.template or DEFAULT_TEMPLATE)}
