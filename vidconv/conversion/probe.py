"""
Media probing using ffprobe.
"""

import asyncio
import json
import logging
import math
import os
from typing import Optional, Dict, Any, List

from ..errors import ProbeToolUnavailableError, ProbeExecutionError, MalformedProbeOutputError
from .models import MediaInfo, AudioTrack, SubtitleTrack

logger = logging.getLogger(__name__)

_UNKNOWN = ("", "N/A", "n/a")


def _parse_float(value: Any) -> Optional[float]:
    """ffprobe reports numbers as strings; "" and "N/A" mean unknown."""
    if value is None or value in _UNKNOWN:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_int(value: Any) -> Optional[int]:
    number = _parse_float(value)
    if number is None or math.isnan(number) or math.isinf(number):
        return None
    return int(number)


def parse_frame_rate(rate: Any) -> Optional[float]:
    """Parse "num/den" (e.g. "30000/1001") into frames per second."""
    if not isinstance(rate, str) or rate in _UNKNOWN:
        return None
    if "/" not in rate:
        fps = _parse_float(rate)
        return fps if fps and fps > 0 else None
    num, _, den = rate.partition("/")
    try:
        num_f, den_f = float(num), float(den)
    except ValueError:
        return None
    if den_f <= 0 or num_f <= 0:
        return None
    return num_f / den_f


def _stream_frame_rate(stream: Dict[str, Any]) -> Optional[float]:
    return parse_frame_rate(stream.get("r_frame_rate")) or parse_frame_rate(stream.get("avg_frame_rate"))


def _pick_video_stream(streams: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Largest width*height wins; ties go to the first occurrence."""
    best = None
    best_pixels = -1
    for stream in streams:
        if stream.get("codec_type") != "video":
            continue
        pixels = (_parse_int(stream.get("width")) or 0) * (_parse_int(stream.get("height")) or 0)
        if pixels > best_pixels:
            best = stream
            best_pixels = pixels
    return best


def _count_frames(stream: Dict[str, Any], duration: Optional[float]) -> Optional[int]:
    nb_frames = _parse_int(stream.get("nb_frames"))
    if nb_frames is not None and nb_frames > 0:
        return nb_frames

    fps = _stream_frame_rate(stream)
    if duration is not None and fps is not None:
        return math.floor(duration * fps)

    return None


def parse_probe_output(raw: str, path: str = "", size: int = 0) -> MediaInfo:
    """Turn ffprobe's JSON into a MediaInfo.

    Raises MalformedProbeOutputError when the text is not JSON or carries no
    streams section.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedProbeOutputError(f"not valid JSON ({e})", raw)

    if not isinstance(data, dict) or not isinstance(data.get("streams"), list):
        raise MalformedProbeOutputError("missing streams section", raw)

    fmt = data.get("format") or {}
    streams = data["streams"]

    info = MediaInfo(path=path, size=size)
    info.container = fmt.get("format_name", "") or ""
    info.duration = _parse_float(fmt.get("duration"))
    info.bitrate = _parse_int(fmt.get("bit_rate"))

    video = _pick_video_stream(streams)
    if video is not None:
        info.video_stream_index = _parse_int(video.get("index"))
        info.video_codec = video.get("codec_name", "") or ""
        info.width = _parse_int(video.get("width")) or 0
        info.height = _parse_int(video.get("height")) or 0
        info.fps = _stream_frame_rate(video) or 0.0
        if info.duration is None:
            info.duration = _parse_float(video.get("duration"))
        info.total_frames = _count_frames(video, info.duration)

    for stream in streams:
        codec_type = stream.get("codec_type")
        tags = stream.get("tags") or {}
        index = _parse_int(stream.get("index"))
        if index is None:
            continue

        if codec_type == "audio":
            info.audio_tracks.append(AudioTrack(
                index=index,
                codec=stream.get("codec_name", "") or "",
                language=tags.get("language"),
                title=tags.get("title"),
                channels=_parse_int(stream.get("channels")) or 2,
                sample_rate=_parse_int(stream.get("sample_rate")),
                bitrate=_parse_int(stream.get("bit_rate")),
            ))
        elif codec_type == "subtitle":
            disposition = stream.get("disposition") or {}
            info.subtitle_tracks.append(SubtitleTrack(
                index=index,
                codec=stream.get("codec_name", "") or "",
                language=tags.get("language"),
                title=tags.get("title"),
                is_default=bool(disposition.get("default", 0)),
                is_forced=bool(disposition.get("forced", 0)),
            ))

    return info


class MediaProbe:
    """Runs ffprobe and parses its output."""

    def __init__(self, ffprobe_path: str = "ffprobe"):
        self.ffprobe_path = ffprobe_path

    def build_command(self, path: str) -> List[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            path,
        ]

    async def probe(self, path: str) -> MediaInfo:
        """Probe a media file.

        Raises ProbeToolUnavailableError, ProbeExecutionError or
        MalformedProbeOutputError.
        """
        cmd = self.build_command(path)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ProbeToolUnavailableError(self.ffprobe_path, str(e))

        stdout, stderr = await process.communicate()
        stderr_text = stderr.decode("utf-8", errors="ignore")

        if process.returncode != 0:
            logger.warning(f"[Probe] ffprobe exited with {process.returncode} for {path}")
            raise ProbeExecutionError(path, process.returncode, stderr_text)

        try:
            size = os.path.getsize(path)
        except OSError:
            size = 0

        info = parse_probe_output(stdout.decode("utf-8", errors="ignore"), path, size)
        logger.info(
            f"[Probe] {path}: {info.resolution} {info.video_codec}, "
            f"{info.duration or 0:.1f}s, {len(info.audio_tracks)} audio, "
            f"{len(info.subtitle_tracks)} subtitle"
        )
        return info
