"""
Constants and preset tables for conversion operations.
"""

from typing import Dict


# NVENC uses p1 (fastest) .. p7 (best quality); medium matches the p4 default
NVENC_PRESET_MAP: Dict[str, str] = {
    "ultrafast": "p1",
    "superfast": "p1",
    "veryfast": "p2",
    "faster": "p3",
    "fast": "p3",
    "medium": "p4",
    "slow": "p5",
    "slower": "p6",
    "veryslow": "p7",
}

# QSV stops at veryfast on the fast end
QSV_PRESET_MAP: Dict[str, str] = {
    "ultrafast": "veryfast",
    "superfast": "veryfast",
    "veryfast": "veryfast",
    "faster": "faster",
    "fast": "fast",
    "medium": "medium",
    "slow": "slow",
    "slower": "slower",
    "veryslow": "veryslow",
}

# AMF only has three quality levels
AMF_QUALITY_MAP: Dict[str, str] = {
    "ultrafast": "speed",
    "superfast": "speed",
    "veryfast": "speed",
    "faster": "speed",
    "fast": "balanced",
    "medium": "balanced",
    "slow": "quality",
    "slower": "quality",
    "veryslow": "quality",
}

DEFAULT_SOFTWARE_PRESET = "medium"

# Hardware encoder -> software encoder of the same codec
SOFTWARE_FALLBACK: Dict[str, str] = {
    "h264": "libx264",
    "hevc": "libx265",
    "av1": "libsvtav1",
    "vp9": "libvpx-vp9",
}

# Containers that reject bitmap/binary subtitle streams
SUBTITLE_CONTAINER_CODECS: Dict[str, str] = {
    "mp4": "mov_text",
    "m4v": "mov_text",
    "mov": "mov_text",
    "webm": "webvtt",
}

# Text subtitle codec for containers not listed above
DEFAULT_TEXT_SUBTITLE_CODEC = "srt"

PIPE_PROGRESS_TARGET = "pipe:1"

CANCELLED_MESSAGE = "Conversion stopped by user"
