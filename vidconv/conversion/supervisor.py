"""
Supervision of ffmpeg child processes.
"""

import asyncio
import logging
import subprocess
import sys
from typing import Any, Dict, List, Optional

from ..errors import ToolUnavailableError, SpawnError, JobAlreadyRunningError
from .models import ExitStatus
from .registry import JobRegistry, LiveJob

logger = logging.getLogger(__name__)


async def terminate_process(process: asyncio.subprocess.Process, grace: float = 2.0) -> None:
    """
    Stop a process: SIGTERM first, SIGKILL once ``grace`` seconds have passed.

    Windows has no usable graceful signal for a console child, so it is
    killed straight away.
    """
    if process.returncode is not None:
        return  # Already exited

    if sys.platform == "win32":
        try:
            process.kill()
        except (ProcessLookupError, OSError):
            pass
        await process.wait()
        logger.debug(f"[Supervisor] Killed pid {process.pid}")
        return

    try:
        process.terminate()
    except (ProcessLookupError, OSError):
        pass

    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
        logger.debug(f"[Supervisor] pid {process.pid} exited after SIGTERM")
        return
    except asyncio.TimeoutError:
        pass

    try:
        process.kill()
    except (ProcessLookupError, OSError):
        pass
    await process.wait()
    logger.warning(f"[Supervisor] pid {process.pid} ignored SIGTERM for {grace}s, killed")


class SupervisedProcess:
    """A running child plus its registry entry. Each stream can be taken once."""

    def __init__(self, job_id: str, process: asyncio.subprocess.Process, entry: LiveJob):
        self.job_id = job_id
        self.process = process
        self.entry = entry
        self._stderr_taken = False
        self._stdout_taken = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def take_stderr(self) -> asyncio.StreamReader:
        if self._stderr_taken:
            raise RuntimeError(f"stderr of job {self.job_id} was already taken")
        self._stderr_taken = True
        return self.process.stderr

    def take_stdout(self) -> asyncio.StreamReader:
        if self._stdout_taken:
            raise RuntimeError(f"stdout of job {self.job_id} was already taken")
        self._stdout_taken = True
        return self.process.stdout


class ProcessSupervisor:
    """Spawns ffmpeg, keeps the registry in sync, and reaps the child."""

    def __init__(self, registry: JobRegistry, grace_period: float = 2.0):
        self.registry = registry
        self.grace_period = grace_period

    async def spawn(self, job_id: str, argv: List[str]) -> SupervisedProcess:
        """Start ``argv`` and register it under ``job_id`` before returning.

        Raises JobAlreadyRunningError, ToolUnavailableError or SpawnError.
        """
        self.registry.reserve(job_id)

        kwargs: Dict[str, Any] = {
            "stdin": asyncio.subprocess.DEVNULL,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

        logger.info(f"[Supervisor] {job_id}: starting {' '.join(argv[:10])}...")
        try:
            process = await asyncio.create_subprocess_exec(*argv, **kwargs)
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailableError(argv[0], str(e))
        except OSError as e:
            raise SpawnError(f"Failed to start {argv[0]}: {e}")

        try:
            entry = self.registry.register(job_id, process)
        except JobAlreadyRunningError:
            # Lost a race for the id between reserve() and now
            await terminate_process(process, 0)
            raise

        logger.debug(f"[Supervisor] {job_id}: pid {process.pid}")
        return SupervisedProcess(job_id, process, entry)

    async def wait(self, handle: SupervisedProcess) -> ExitStatus:
        """Wait for exit. The registry entry is removed whatever happens."""
        try:
            returncode = await handle.process.wait()
            status = ExitStatus(returncode=returncode, cancelled=handle.entry.cancel_requested)
            logger.info(
                f"[Supervisor] {handle.job_id}: exited with {returncode}"
                f"{' (cancelled)' if status.cancelled else ''}"
            )
            return status
        finally:
            self.registry.remove(handle.job_id, handle.process)

    async def terminate(self, handle: SupervisedProcess, grace: Optional[float] = None) -> None:
        await terminate_process(handle.process, self.grace_period if grace is None else grace)

    async def release(self, handle: SupervisedProcess) -> None:
        """Kill the child if it is still running and drop its entry. Safe to repeat."""
        if handle.process.returncode is None:
            logger.warning(f"[Supervisor] {handle.job_id}: releasing a running process, killing it")
            try:
                handle.process.kill()
            except (ProcessLookupError, OSError):
                pass
            await handle.process.wait()
        self.registry.remove(handle.job_id, handle.process)
