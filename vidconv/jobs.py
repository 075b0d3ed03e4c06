"""
Job queue and management for vidconv
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, List, Callable, Any
from dataclasses import dataclass, field

from .models import ConversionOptions, JobStatus, JobResponse, ProgressMode, SubtitleStrategy
from .config import get_config, VidconvConfig
from .errors import JobAlreadyRunningError, JobNotFoundError, ProbeError
from .conversion import ConversionEngine, ConversionProgress, ConversionResult, MediaInfo, classify_encoder
from .conversion.constants import CANCELLED_MESSAGE

logger = logging.getLogger(__name__)

FINISHED_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Represents a conversion job."""
    id: str
    options: ConversionOptions
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0
    eta_seconds: Optional[float] = None
    last_progress: Optional[ConversionProgress] = None
    result: Optional[ConversionResult] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def to_response(self) -> JobResponse:
        return JobResponse(
            job_id=self.id,
            status=self.status,
            progress=self.progress,
            eta_seconds=self.eta_seconds,
            output_path=self.result.output_path if self.result else None,
            error_message=self.error_message,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_response().model_dump(mode="json")
        data["options"] = self.options.model_dump(mode="json")
        data["last_progress"] = self.last_progress.to_dict() if self.last_progress else None
        data["result"] = self.result.to_dict() if self.result else None
        return data


class JobStats:
    """Statistics for job processing."""

    def __init__(self):
        self.total_jobs_processed: int = 0
        self.successful_jobs: int = 0
        self.failed_jobs: int = 0
        self.cancelled_jobs: int = 0
        self.total_conversion_time: float = 0.0
        self.hw_accel_usage: Dict[str, int] = {}
        self.start_time: datetime = _utcnow()

    def record_job_complete(self, job: Job) -> None:
        """Record job completion stats."""
        self.total_jobs_processed += 1

        if job.status == JobStatus.CANCELLED:
            self.cancelled_jobs += 1
        elif job.status == JobStatus.COMPLETED:
            self.successful_jobs += 1
        else:
            self.failed_jobs += 1

        family = classify_encoder(job.options.video_codec).value
        self.hw_accel_usage[family] = self.hw_accel_usage.get(family, 0) + 1

        if job.result:
            self.total_conversion_time += job.result.duration

    @property
    def uptime_seconds(self) -> float:
        """Service uptime in seconds."""
        return (_utcnow() - self.start_time).total_seconds()


ProgressListener = Callable[[str, ConversionProgress], None]
ResultListener = Callable[[str, ConversionResult], None]
StatusListener = Callable[[str, JobStatus], None]


class JobManager:
    """Queues conversions and runs at most ``max_concurrent_jobs`` at a time."""

    def __init__(self, engine: Optional[ConversionEngine] = None, config: Optional[VidconvConfig] = None):
        self.config = config or get_config()
        self.engine = engine or ConversionEngine(self.config)
        self.jobs: Dict[str, Job] = {}
        self.queue: asyncio.Queue = asyncio.Queue()
        self.active_jobs: Dict[str, Job] = {}
        self.stats = JobStats()
        self.progress_callbacks: List[ProgressListener] = []
        self.result_callbacks: List[ResultListener] = []
        self.status_callbacks: List[StatusListener] = []
        self._workers: List[asyncio.Task] = []
        self._running = False

    async def start(self) -> None:
        """Start the job manager workers."""
        if self._running:
            return

        self._running = True
        max_workers = max(1, self.config.conversion.max_concurrent_jobs)
        for i in range(max_workers):
            self._workers.append(asyncio.create_task(self._worker(i)))

        logger.info(f"[Jobs] Started {max_workers} job workers")

    async def stop(self) -> None:
        """Stop the job manager. Running conversions are cancelled."""
        self._running = False

        for job_id in list(self.active_jobs):
            try:
                await self.engine.cancel(job_id)
            except JobNotFoundError:
                pass

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        logger.info("[Jobs] Job manager stopped")

    async def _worker(self, worker_id: int) -> None:
        """Worker coroutine that processes jobs from the queue."""
        logger.debug(f"[Jobs] Worker {worker_id} started")

        while self._running:
            try:
                job_id = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            job = self.jobs.get(job_id)
            if job is None or job.status != JobStatus.QUEUED:
                # Removed or cancelled while waiting
                self.queue.task_done()
                continue

            self.active_jobs[job_id] = job
            try:
                await self._process_job(job)
            except Exception as e:
                logger.exception(f"[Jobs] Worker {worker_id} error processing job {job_id}: {e}")
                self._finish(job, ConversionResult(job_id=job_id, success=False, error=str(e)))
            finally:
                self.queue.task_done()
                self.active_jobs.pop(job_id, None)

        logger.debug(f"[Jobs] Worker {worker_id} stopped")

    async def _process_job(self, job: Job) -> None:
        """Process a single job."""
        job.started_at = _utcnow()
        self._set_status(job, JobStatus.RUNNING)

        if job.cancel_requested:
            self._finish(job, self._cancelled_result(job.id))
            return

        try:
            media_info = await self._probe_input(job.options)
        except ProbeError as e:
            if job.cancel_requested:
                self._finish(job, self._cancelled_result(job.id))
            else:
                logger.warning(f"[Jobs] Job {job.id} probe failed: {e}")
                self._finish(job, ConversionResult(job_id=job.id, success=False, error=str(e), error_category="probe"))
            return

        def progress_callback(progress: ConversionProgress):
            job.progress = progress.progress
            job.eta_seconds = progress.eta_seconds
            job.last_progress = progress
            self._notify_progress(job.id, progress)

        result = await self.engine.convert(
            job.options,
            progress_callback,
            media_info=media_info,
            cancel_event=job.cancel_event,
        )
        self._finish(job, result)

    async def _probe_input(self, options: ConversionOptions) -> Optional[MediaInfo]:
        """Probe the input when progress totals or a subtitle position are needed from it."""
        missing_totals = options.duration_seconds is None and options.total_frames is None
        picks_subtitle = (
            options.subtitle_strategy == SubtitleStrategy.BURN_IN
            and options.subtitle_track_index is not None
        )
        if not (missing_totals or picks_subtitle):
            return None
        return await self.engine.probe_media(options.input_path)

    def _cancelled_result(self, job_id: str) -> ConversionResult:
        return ConversionResult(job_id=job_id, success=False, error=CANCELLED_MESSAGE, cancelled=True)

    def _finish(self, job: Job, result: ConversionResult) -> None:
        job.result = result
        job.completed_at = _utcnow()

        if result.success and not result.cancelled:
            job.progress = 1.0
            job.eta_seconds = 0.0
            status = JobStatus.COMPLETED
        else:
            job.error_message = result.error
            status = JobStatus.CANCELLED if result.cancelled else JobStatus.FAILED

        self._set_status(job, status)
        self.stats.record_job_complete(job)
        logger.info(f"[Jobs] Job {job.id} {job.status.value}")
        self._notify_result(job.id, result)

    def _set_status(self, job: Job, status: JobStatus) -> None:
        job.status = status
        for callback in self.status_callbacks:
            try:
                callback(job.id, status)
            except Exception as e:
                logger.error(f"[Jobs] Status callback error: {e}")

    def _notify_progress(self, job_id: str, progress: ConversionProgress) -> None:
        """Notify all registered progress callbacks."""
        for callback in self.progress_callbacks:
            try:
                callback(job_id, progress)
            except Exception as e:
                logger.error(f"[Jobs] Progress callback error: {e}")

    def _notify_result(self, job_id: str, result: ConversionResult) -> None:
        """Notify all registered result callbacks."""
        for callback in self.result_callbacks:
            try:
                callback(job_id, result)
            except Exception as e:
                logger.error(f"[Jobs] Result callback error: {e}")

    def register_progress_callback(self, callback: ProgressListener) -> None:
        self.progress_callbacks.append(callback)

    def register_result_callback(self, callback: ResultListener) -> None:
        self.result_callbacks.append(callback)

    def register_status_callback(self, callback: StatusListener) -> None:
        self.status_callbacks.append(callback)

    async def start_job(self, options: ConversionOptions) -> Job:
        """Queue a conversion. A finished job with the same id is replaced."""
        existing = self.jobs.get(options.job_id)
        if existing is not None and not existing.finished:
            raise JobAlreadyRunningError(options.job_id)

        if "progress_mode" not in options.model_fields_set:
            mode = ProgressMode(self.config.conversion.default_progress_mode)
            options = options.model_copy(update={"progress_mode": mode})

        job = Job(id=options.job_id, options=options)
        self.jobs[job.id] = job
        await self.queue.put(job.id)

        logger.info(f"[Jobs] Queued job {job.id}: {options.input_path} -> {options.output_path}")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        return list(self.jobs.values())

    async def cancel_job(self, job_id: str) -> Job:
        """Cancel a queued or running job.

        Raises JobNotFoundError for unknown or already finished jobs.
        """
        job = self.jobs.get(job_id)
        if job is None or job.finished:
            raise JobNotFoundError(job_id)

        job.cancel_event.set()
        if job.status == JobStatus.QUEUED:
            self._finish(job, self._cancelled_result(job_id))
            return job

        try:
            await self.engine.cancel(job_id)
        except JobNotFoundError:
            # Not spawned yet; the engine checks the event before and right after spawning
            logger.debug(f"[Jobs] Job {job_id} has no live process yet, cancelling at spawn")
        return job

    async def remove_job(self, job_id: str) -> bool:
        """Forget a job, cancelling it first if it is still queued or running."""
        job = self.jobs.get(job_id)
        if job is None:
            return False

        if not job.finished:
            try:
                await self.cancel_job(job_id)
            except JobNotFoundError:
                pass

        self.jobs.pop(job_id, None)
        logger.debug(f"[Jobs] Removed job {job_id}")
        return True

    def get_queue_length(self) -> int:
        return sum(1 for job in self.jobs.values() if job.status == JobStatus.QUEUED)

    def get_active_count(self) -> int:
        return len(self.active_jobs)
