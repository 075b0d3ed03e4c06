"""
Hardware encoder detection and ffmpeg tool discovery.

Everything here is best-effort: detection never raises, it reports
what it could not find.
"""

import logging
import re
import shutil
import subprocess
import threading
from typing import Dict, List

from .models import GpuCapabilities, HW_ENCODER_FRAGMENTS, OutputFormat

logger = logging.getLogger(__name__)

DETECTION_TIMEOUT = 15  # seconds

# `ffmpeg -formats` rows after the "--" separator, e.g. " DE matroska,webm   Matroska / WebM"
FORMAT_LINE_RE = re.compile(r"^\s*([DEd.]{1,3})\s+(\S+)\s+(.*?)\s*$")

FORMAT_EXTENSIONS: Dict[str, List[str]] = {
    "mp4": ["mp4"],
    "matroska": ["mkv"],
    "matroska,webm": ["mkv", "webm"],
    "webm": ["webm"],
    "avi": ["avi"],
    "mov": ["mov"],
    "mov,mp4,m4a,3gp,3g2,mj2": ["mov", "mp4", "m4a", "3gp", "3g2", "mj2"],
    "flv": ["flv"],
    "asf": ["wmv", "asf"],
    "ipod": ["m4v"],
    "3gp": ["3gp"],
    "ogv": ["ogv"],
    "mpegts": ["ts"],
}

_capabilities_cache: Dict[str, GpuCapabilities] = {}
_capabilities_lock = threading.Lock()


def find_tool(configured: str, name: str) -> str:
    """Resolve a tool path. "auto" searches PATH and falls back to the bare name."""
    if configured and configured != "auto":
        return configured
    return shutil.which(name) or name


def check_tool_available(tool_path: str) -> bool:
    """Run `<tool> -version` and report whether it exited cleanly."""
    try:
        result = subprocess.run(
            [tool_path, "-version"],
            capture_output=True,
            timeout=DETECTION_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"[Capabilities] {tool_path} -version failed: {e}")
        return False
    return result.returncode == 0


def parse_encoders_output(output: str) -> GpuCapabilities:
    """Match hardware encoder fragments (case-insensitive) in `ffmpeg -encoders` output."""
    text = output.lower()
    flags = {accel.value: fragment in text for accel, fragment in HW_ENCODER_FRAGMENTS.items()}

    encoders = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        name = parts[1]
        if any(fragment in name for fragment in HW_ENCODER_FRAGMENTS.values()):
            encoders.append(name)

    return GpuCapabilities(encoders=encoders, **flags)


def detect_capabilities(ffmpeg_path: str = "ffmpeg") -> GpuCapabilities:
    """Query ffmpeg's encoder list for hardware encoder families.

    An unreachable tool yields all flags false. The result is a hint,
    not a guarantee the encoder will initialise at runtime.
    """
    try:
        result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-encoders"],
            capture_output=True,
            timeout=DETECTION_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"[Capabilities] Could not run {ffmpeg_path}: {e}")
        return GpuCapabilities()

    output = result.stdout.decode("utf-8", errors="ignore")
    capabilities = parse_encoders_output(output)

    found = [accel.value for accel in capabilities.available]
    logger.info(f"[Capabilities] Hardware encoders: {', '.join(found) or 'none'}")
    return capabilities


def get_capabilities(ffmpeg_path: str = "ffmpeg", force_refresh: bool = False) -> GpuCapabilities:
    """Cached detect_capabilities(), one entry per ffmpeg binary."""
    with _capabilities_lock:
        cached = _capabilities_cache.get(ffmpeg_path)
    if cached is not None and not force_refresh:
        return cached

    capabilities = detect_capabilities(ffmpeg_path)
    with _capabilities_lock:
        _capabilities_cache[ffmpeg_path] = capabilities
    return capabilities


def clear_capabilities_cache() -> None:
    with _capabilities_lock:
        _capabilities_cache.clear()


def parse_formats_output(output: str) -> List[OutputFormat]:
    """Parse the table printed by `ffmpeg -formats`."""
    formats = []
    in_table = False

    for line in output.splitlines():
        if not in_table:
            if line.strip() == "--":
                in_table = True
            continue

        match = FORMAT_LINE_RE.match(line)
        if not match:
            continue

        flags, name, description = match.groups()
        extensions = FORMAT_EXTENSIONS.get(name, name.split(","))
        formats.append(OutputFormat(
            name=name,
            description=description,
            extensions=list(extensions),
            demuxing="D" in flags,
            muxing="E" in flags,
        ))

    return formats


def list_output_formats(ffmpeg_path: str = "ffmpeg") -> List[OutputFormat]:
    """Formats the local ffmpeg can write. Empty if ffmpeg cannot be run."""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-formats"],
            capture_output=True,
            timeout=DETECTION_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"[Capabilities] Could not list formats with {ffmpeg_path}: {e}")
        return []

    if result.returncode != 0:
        return []

    output = result.stdout.decode("utf-8", errors="ignore")
    return [fmt for fmt in parse_formats_output(output) if fmt.muxing]

