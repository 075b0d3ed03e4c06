"""
vidconv - supervised ffmpeg conversions with live progress and cancellation
"""

__version__ = "1.0.0"
__author__ = "vidconv Contributors"

from .config import VidconvConfig, get_config, load_config, set_config
from .errors import (
    VidconvError,
    ToolUnavailableError,
    ProbeError,
    SpawnError,
    JobAlreadyRunningError,
    CancelError,
    JobNotFoundError,
)

__all__ = [
    "__version__",
    "VidconvConfig",
    "get_config",
    "load_config",
    "set_config",
    "VidconvError",
    "ToolUnavailableError",
    "ProbeError",
    "SpawnError",
    "JobAlreadyRunningError",
    "CancelError",
    "JobNotFoundError",
]
