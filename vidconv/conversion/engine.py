"""
Main conversion engine that orchestrates probing, command building,
process supervision, progress monitoring and cancellation.
"""

import asyncio
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Optional

from ..config import VidconvConfig, get_config
from ..errors import ToolUnavailableError, SpawnError
from ..hardware import GpuCapabilities, find_tool, get_capabilities
from ..models import ConversionOptions, ProgressMode
from .cancellation import CancellationController
from .commands import CommandBuilder
from .constants import CANCELLED_MESSAGE
from .encoders import classify_encoder
from .error_classifier import get_error_classifier
from .models import MediaInfo, ConversionResult
from .probe import MediaProbe
from .progress import ProgressTracker, ProgressMonitor, ProgressCallback
from .registry import JobRegistry
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]")


class ConversionEngine:
    """FFmpeg-based conversion engine.

    One registry is created per engine and shared by the supervisor and the
    cancellation controller; nothing here is module-global.
    """

    def __init__(self, config: Optional[VidconvConfig] = None):
        self.config = config or get_config()
        self.ffmpeg_path = find_tool(self.config.tools.ffmpeg_path, "ffmpeg")
        self.ffprobe_path = find_tool(self.config.tools.ffprobe_path, "ffprobe")

        self.registry = JobRegistry()
        grace = self.config.cancellation.grace_period_seconds
        self.supervisor = ProcessSupervisor(self.registry, grace)
        self.cancellation = CancellationController(self.registry, grace)

        self.probe = MediaProbe(self.ffprobe_path)
        self.command_builder = CommandBuilder(self.ffmpeg_path, self.config.hardware)
        self.classifier = get_error_classifier()

    def get_capabilities(self, force_refresh: bool = False) -> GpuCapabilities:
        return get_capabilities(self.ffmpeg_path, force_refresh)

    async def probe_media(self, path: str) -> MediaInfo:
        """Probe a media file. Raises ProbeError subclasses."""
        return await self.probe.probe(path)

    async def cancel(self, job_id: str) -> None:
        """Cancel a running conversion. Raises JobNotFoundError for unknown ids."""
        await self.cancellation.cancel(job_id)

    def is_running(self, job_id: str) -> bool:
        return job_id in self.registry

    def _create_sidecar(self, job_id: str) -> str:
        temp_dir = self.config.conversion.temp_directory
        if temp_dir:
            Path(temp_dir).mkdir(parents=True, exist_ok=True)
        prefix = _UNSAFE_FILENAME_CHARS.sub("_", job_id)
        fd, path = tempfile.mkstemp(prefix=f"{prefix}-", suffix=".progress", dir=temp_dir)
        os.close(fd)
        return path

    def _remove_sidecar(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[Convert] Failed to remove progress file {path}: {e}")

    def _cancelled_result(self, job_id: str, elapsed: float, exit_code: Optional[int] = None) -> ConversionResult:
        return ConversionResult(
            job_id=job_id,
            success=False,
            error=CANCELLED_MESSAGE,
            cancelled=True,
            exit_code=exit_code,
            duration=elapsed,
        )

    async def _resolve_capabilities(self, options: ConversionOptions) -> Optional[GpuCapabilities]:
        """Detect capabilities only when a hardware encoder was requested."""
        if not classify_encoder(options.video_codec).is_hardware:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, get_capabilities, self.ffmpeg_path)

    async def convert(
        self,
        options: ConversionOptions,
        progress_callback: Optional[ProgressCallback] = None,
        capabilities: Optional[GpuCapabilities] = None,
        media_info: Optional[MediaInfo] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> ConversionResult:
        """
        Run one conversion to completion.

        Failures and cancellations come back as ConversionResult values.
        ``cancel_event`` covers cancellation requested before the process is
        registered: it is checked before spawning and again right after.
        Raises JobAlreadyRunningError if ``options.job_id`` is in flight.
        """
        job_id = options.job_id
        self.registry.reserve(job_id)

        started = time.monotonic()
        progress_cfg = self.config.progress
        sidecar_path: Optional[str] = None
        handle = None
        monitor: Optional[ProgressMonitor] = None

        try:
            if capabilities is None:
                capabilities = await self._resolve_capabilities(options)

            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"[Convert] {job_id}: cancelled before start")
                return self._cancelled_result(job_id, time.monotonic() - started)

            try:
                if options.progress_mode == ProgressMode.SIDECAR:
                    try:
                        sidecar_path = self._create_sidecar(job_id)
                    except OSError as e:
                        raise SpawnError(f"Could not create progress file: {e}")

                argv = self.command_builder.build_command(options, capabilities, sidecar_path, media_info)
                handle = await self.supervisor.spawn(job_id, argv)
            except (ToolUnavailableError, SpawnError) as e:
                logger.error(f"[Convert] {job_id}: {e}")
                return ConversionResult(
                    job_id=job_id,
                    success=False,
                    error=str(e),
                    error_category="spawn",
                    duration=time.monotonic() - started,
                )

            tracker = ProgressTracker(
                job_id,
                total_frames=options.total_frames or (media_info.total_frames if media_info else None),
                duration=options.duration_seconds or (media_info.duration if media_info else None),
                rate_window_seconds=progress_cfg.rate_window_seconds,
                started_at=started,
            )
            monitor = ProgressMonitor(
                handle,
                tracker,
                mode=options.progress_mode,
                callback=progress_callback,
                emit_interval=progress_cfg.emit_interval_ms / 1000,
                sidecar_path=sidecar_path,
                poll_interval=progress_cfg.sidecar_poll_interval_ms / 1000,
                tail_lines=progress_cfg.diagnostic_tail_lines,
            )
            monitor.start()
            if cancel_event is not None and cancel_event.is_set():
                await self.cancellation.cancel(job_id)

            status = await self.supervisor.wait(handle)
            await monitor.finish(progress_cfg.settle_grace_seconds)
            elapsed = time.monotonic() - started

            if status.cancelled:
                logger.info(f"[Convert] {job_id}: cancelled after {elapsed:.1f}s")
                return self._cancelled_result(job_id, elapsed, status.returncode)

            if status.returncode == 0:
                monitor.complete()
                logger.info(f"[Convert] {job_id}: complete in {elapsed:.1f}s -> {options.output_path}")
                return ConversionResult(
                    job_id=job_id,
                    success=True,
                    output_path=options.output_path,
                    exit_code=0,
                    duration=elapsed,
                )

            tail = monitor.diagnostic_tail
            _, category = self.classifier.classify(tail)
            description = self.classifier.get_error_description(tail)
            error = f"{description} (exit code {status.returncode})"
            if tail:
                error = f"{error}\n{tail}"
            logger.warning(f"[Convert] {job_id}: ffmpeg failed with {status.returncode} ({category})")
            return ConversionResult(
                job_id=job_id,
                success=False,
                error=error,
                exit_code=status.returncode,
                error_category=category,
                duration=elapsed,
            )
        finally:
            if monitor is not None:
                await monitor.stop()
            if handle is not None:
                await self.supervisor.release(handle)
            if sidecar_path is not None:
                self._remove_sidecar(sidecar_path)
