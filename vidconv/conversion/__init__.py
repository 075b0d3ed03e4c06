"""
Conversion package for vidconv.
Supervised ffmpeg conversions with live progress and cancellation.
"""

from .models import (
    AudioTrack,
    SubtitleTrack,
    MediaInfo,
    ProgressSample,
    ConversionProgress,
    ConversionResult,
    ExitStatus,
)
from .encoders import EncoderFamily, EncoderSelector, classify_encoder, software_equivalent
from .commands import CommandBuilder
from .probe import MediaProbe, parse_probe_output
from .progress import (
    parse_progress_line,
    parse_progress_sidecar,
    ProgressBlockParser,
    RateWindow,
    ProgressTracker,
    ProgressMonitor,
)
from .registry import JobRegistry, LiveJob
from .supervisor import ProcessSupervisor, SupervisedProcess, terminate_process
from .cancellation import CancellationController
from .error_classifier import ErrorClassifier, get_error_classifier
from .engine import ConversionEngine

__all__ = [
    # Models
    "AudioTrack",
    "SubtitleTrack",
    "MediaInfo",
    "ProgressSample",
    "ConversionProgress",
    "ConversionResult",
    "ExitStatus",
    # Command building
    "EncoderFamily",
    "EncoderSelector",
    "classify_encoder",
    "software_equivalent",
    "CommandBuilder",
    # Probing
    "MediaProbe",
    "parse_probe_output",
    # Progress
    "parse_progress_line",
    "parse_progress_sidecar",
    "ProgressBlockParser",
    "RateWindow",
    "ProgressTracker",
    "ProgressMonitor",
    # Supervision
    "JobRegistry",
    "LiveJob",
    "ProcessSupervisor",
    "SupervisedProcess",
    "terminate_process",
    "CancellationController",
    # Errors
    "ErrorClassifier",
    "get_error_classifier",
    # Engine
    "ConversionEngine",
]
