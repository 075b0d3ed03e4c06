"""
Table of in-flight conversion processes, keyed by job id.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import JobAlreadyRunningError


@dataclass
class LiveJob:
    job_id: str
    process: asyncio.subprocess.Process
    cancel_requested: bool = False


class JobRegistry:
    """Lock-protected map of job id -> LiveJob.

    One instance is shared by the supervisor and the cancellation controller.
    """

    def __init__(self):
        self._jobs: Dict[str, LiveJob] = {}
        self._lock = threading.Lock()

    def register(self, job_id: str, process: asyncio.subprocess.Process) -> LiveJob:
        with self._lock:
            if job_id in self._jobs:
                raise JobAlreadyRunningError(job_id)
            entry = LiveJob(job_id=job_id, process=process)
            self._jobs[job_id] = entry
            return entry

    def reserve(self, job_id: str) -> None:
        """Fail early if the id is taken; spawning re-checks under the lock."""
        with self._lock:
            if job_id in self._jobs:
                raise JobAlreadyRunningError(job_id)

    def get(self, job_id: str) -> Optional[LiveJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def mark_cancel_requested(self, job_id: str) -> Optional[LiveJob]:
        """Flag the entry for cancellation and return it, or None if absent."""
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is not None:
                entry.cancel_requested = True
            return entry

    def is_cancel_requested(self, job_id: str) -> bool:
        with self._lock:
            entry = self._jobs.get(job_id)
            return entry is not None and entry.cancel_requested

    def remove(self, job_id: str, process: Optional[asyncio.subprocess.Process] = None) -> bool:
        """Remove an entry. With ``process`` given, only if it still owns the id."""
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return False
            if process is not None and entry.process is not process:
                return False
            del self._jobs[job_id]
            return True

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
