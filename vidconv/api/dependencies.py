"""
Request-scoped accessors for objects created in the app lifespan.
"""

from fastapi import HTTPException, Request

from ..jobs import JobManager


def get_job_manager(request: Request) -> JobManager:
    job_manager = getattr(request.app.state, "job_manager", None)
    if job_manager is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return job_manager
