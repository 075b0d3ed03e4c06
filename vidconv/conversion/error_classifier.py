"""
FFmpeg error classification for failure reports.

Maps ffmpeg's diagnostic output to a coarse category and a short
human-readable description:
- hardware: the GPU encoder or its device could not be used
- resource: the host ran out of something (memory, disk, descriptors)
- input: the source, its streams or the requested options are unusable
- unknown: nothing recognisable
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple, Optional

logger = logging.getLogger(__name__)


@dataclass
class FFmpegError:
    """Represents a classified FFmpeg error."""
    pattern: str
    category: str  # 'hardware', 'resource', 'input'
    description: str


# First match wins, so specific patterns come before generic ones
FFMPEG_ERROR_MAP: List[FFmpegError] = [
    # === Resource errors ===
    FFmpegError("out of memory", "resource", "Out of memory"),
    FFmpegError("cannot allocate", "resource", "Memory allocation failed"),
    FFmpegError("too many open files", "resource", "File descriptor limit"),
    FFmpegError("no space left", "resource", "No disk space"),
    FFmpegError("disk quota", "resource", "Disk quota exceeded"),

    # === NVIDIA NVENC ===
    FFmpegError("no nvenc capable devices", "hardware", "No NVENC capable GPU"),
    FFmpegError("no capable devices found", "hardware", "No hardware encoder devices"),
    FFmpegError("openencodesessionex failed", "hardware", "NVENC session init failed"),
    FFmpegError("encodesessionlimitexceeded", "hardware", "NVENC session limit reached"),
    FFmpegError("nvenc", "hardware", "NVENC error"),
    FFmpegError("cuda error", "hardware", "CUDA error"),
    FFmpegError("cuda_error", "hardware", "CUDA error"),

    # === Intel QuickSync ===
    FFmpegError("mfx_err_device_failed", "hardware", "Intel QSV device failed"),
    FFmpegError("mfx_err_unsupported", "hardware", "Intel QSV unsupported operation"),
    FFmpegError("mfx_err", "hardware", "Intel QSV error"),
    FFmpegError("qsv init failed", "hardware", "Intel QSV initialization failed"),

    # === AMD AMF ===
    FFmpegError("amf device", "hardware", "AMD AMF device error"),
    FFmpegError("amf error", "hardware", "AMD AMF error"),
    FFmpegError("amf failed", "hardware", "AMD AMF operation failed"),
    FFmpegError("d3d11va", "hardware", "DirectX 11 VA error"),

    # === VAAPI ===
    FFmpegError("vaapi surface", "hardware", "VAAPI surface allocation failed"),
    FFmpegError("vaapi encode", "hardware", "VAAPI encode error"),
    FFmpegError("/dev/dri", "hardware", "DRI device error"),

    # === VideoToolbox ===
    FFmpegError("videotoolbox error", "hardware", "VideoToolbox error"),
    FFmpegError("vt_session", "hardware", "VideoToolbox session error"),

    # === Generic hardware ===
    FFmpegError("hw_frames_ctx", "hardware", "Hardware frame context error"),
    FFmpegError("hwaccel", "hardware", "Hardware acceleration error"),
    FFmpegError("hwupload", "hardware", "Hardware upload failed"),
    FFmpegError("encode session", "hardware", "Encoder session limit"),

    # === Input / option errors ===
    FFmpegError("no such file", "input", "File not found"),
    FFmpegError("permission denied", "input", "Permission denied"),
    FFmpegError("invalid data", "input", "Invalid input data"),
    FFmpegError("moov atom not found", "input", "Invalid MP4 file"),
    FFmpegError("stream map", "input", "Requested stream does not exist"),
    FFmpegError("matches no streams", "input", "Requested stream does not exist"),
    FFmpegError("unknown encoder", "input", "Encoder not found"),
    FFmpegError("encoder not found", "input", "Encoder not found"),
    FFmpegError("codec not found", "input", "Codec not found"),
    FFmpegError("decoder not found", "input", "Decoder not found"),
    FFmpegError("filter not found", "input", "Filter not found"),
    FFmpegError("could not find tag for codec", "input", "Codec not supported by the output container"),
    FFmpegError("subtitle encoding currently only possible from text to text", "input",
                "Bitmap subtitles cannot be converted to text"),
    FFmpegError("unrecognized option", "input", "Option not supported by this ffmpeg"),
    FFmpegError("invalid argument", "input", "Invalid argument"),
]


class ErrorClassifier:
    """Classifies FFmpeg errors from captured stderr."""

    def __init__(self, error_map: Optional[List[FFmpegError]] = None):
        self.error_map = error_map or FFMPEG_ERROR_MAP

    def classify(self, error_msg: str) -> Tuple[Optional[FFmpegError], str]:
        """
        Classify FFmpeg error using the error map.

        Returns:
            Tuple of (matched_error, category). Category is 'unknown' if no match.
        """
        error_lower = error_msg.lower()

        for error in self.error_map:
            if error.pattern in error_lower:
                return error, error.category

        return None, "unknown"

    def is_hardware_error(self, error_msg: str) -> bool:
        _, category = self.classify(error_msg)
        return category == "hardware"

    def get_error_description(self, error_msg: str) -> str:
        """Get human-readable description of the error."""
        error, _ = self.classify(error_msg)
        if error:
            return error.description
        return "Unknown error"


# Global classifier instance
_classifier: Optional[ErrorClassifier] = None


def get_error_classifier() -> ErrorClassifier:
    """Get or create the global error classifier."""
    global _classifier
    if _classifier is None:
        _classifier = ErrorClassifier()
    return _classifier
