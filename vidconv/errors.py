"""
Exception hierarchy for vidconv.

Execution failures and user cancellations are reported as
``ConversionResult`` values, not raised. The exceptions below cover
everything that prevents a job from running at all, plus probe and
cancellation failures surfaced directly to the caller.
"""

from typing import Optional


class VidconvError(Exception):
    """Base class for all vidconv errors."""


class ToolUnavailableError(VidconvError):
    """An external binary is missing or not executable."""

    def __init__(self, tool: str, detail: str = ""):
        self.tool = tool
        self.detail = detail
        message = f"{tool} is not available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProbeError(VidconvError):
    """Base class for media probing failures."""


class ProbeToolUnavailableError(ProbeError, ToolUnavailableError):
    """The probing tool could not be spawned."""


class ProbeExecutionError(ProbeError):
    """The probing tool ran but exited non-zero."""

    def __init__(self, path: str, returncode: int, stderr: str = ""):
        self.path = path
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()[-500:] if stderr else "no diagnostic output"
        super().__init__(f"ffprobe failed on {path} (exit code {returncode}): {detail}")


class MalformedProbeOutputError(ProbeError):
    """The probe output was not parseable structured data."""

    MAX_RAW_LENGTH = 500

    def __init__(self, reason: str, raw: Optional[str] = None):
        self.reason = reason
        self.raw = (raw or "")[:self.MAX_RAW_LENGTH]
        super().__init__(f"Malformed ffprobe output: {reason}")


class SpawnError(VidconvError):
    """The transcoding subprocess could not be started."""


class JobAlreadyRunningError(VidconvError):
    """A job with the same id is already in flight."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already running")


class CancelError(VidconvError):
    """Base class for cancellation failures."""


class JobNotFoundError(CancelError):
    """Cancellation requested for an unknown or already finished job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")
