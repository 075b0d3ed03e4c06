"""
FastAPI application factory for vidconv
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import VidconvConfig, get_config
from ..conversion import ConversionEngine
from ..jobs import JobManager
from .routes import health_router, media_router, conversions_router
from .websocket import broadcast_progress, broadcast_result, broadcast_status, websocket_progress_handler

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[VidconvConfig] = None,
    engine: Optional[ConversionEngine] = None
) -> FastAPI:
    """Build the app. The job manager lives on ``app.state`` for the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or get_config()
        app.state.start_time = time.time()

        job_manager = JobManager(engine=engine, config=cfg)
        job_manager.register_progress_callback(broadcast_progress)
        job_manager.register_result_callback(broadcast_result)
        job_manager.register_status_callback(broadcast_status)
        await job_manager.start()
        app.state.job_manager = job_manager

        logger.info(f"vidconv v{__version__} started on http://{cfg.server.host}:{cfg.server.port}")

        yield

        logger.info("Shutting down vidconv...")
        await job_manager.stop()
        app.state.job_manager = None
        logger.info("vidconv shutdown complete")

    app = FastAPI(
        title="vidconv",
        description="Supervised ffmpeg conversions with live progress",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(media_router)
    app.include_router(conversions_router)

    @app.websocket("/ws/progress")
    async def websocket_progress(websocket: WebSocket):
        await websocket_progress_handler(websocket)

    return app
