"""
Cancellation of in-flight conversions by job id.
"""

import logging

from ..errors import JobNotFoundError
from .registry import JobRegistry
from .supervisor import terminate_process

logger = logging.getLogger(__name__)


class CancellationController:
    """Stops running jobs found in the shared registry.

    The registry entry stays in place; the supervisor's ``wait()`` removes it
    once the process has exited and reports the exit as cancelled.
    """

    def __init__(self, registry: JobRegistry, grace_period: float = 2.0):
        self.registry = registry
        self.grace_period = grace_period

    async def cancel(self, job_id: str) -> None:
        """Raises JobNotFoundError (without touching any process) for unknown ids."""
        entry = self.registry.mark_cancel_requested(job_id)
        if entry is None:
            raise JobNotFoundError(job_id)

        logger.info(f"[Cancel] {job_id}: stopping pid {entry.process.pid}")
        await terminate_process(entry.process, self.grace_period)
