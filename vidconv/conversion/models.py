"""
Data models for conversion operations.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


@dataclass
class AudioTrack:
    """Audio stream of a container. ``index`` is the absolute stream index."""
    index: int
    codec: str = ""
    language: Optional[str] = None
    title: Optional[str] = None
    channels: int = 2
    sample_rate: Optional[int] = None
    bitrate: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "codec": self.codec,
            "language": self.language,
            "title": self.title,
            "channels": self.channels,
            "sample_rate": self.sample_rate,
            "bitrate": self.bitrate,
        }


@dataclass
class SubtitleTrack:
    """Subtitle stream of a container. ``index`` is the absolute stream index."""
    index: int
    codec: str = ""
    language: Optional[str] = None
    title: Optional[str] = None
    is_default: bool = False
    is_forced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "codec": self.codec,
            "language": self.language,
            "title": self.title,
            "is_default": self.is_default,
            "is_forced": self.is_forced,
        }


@dataclass
class MediaInfo:
    """Media file information from ffprobe."""
    path: str = ""
    duration: Optional[float] = None
    width: int = 0
    height: int = 0
    container: str = ""
    video_codec: str = ""
    video_stream_index: Optional[int] = None
    fps: float = 0.0
    bitrate: Optional[int] = None
    audio_tracks: List[AudioTrack] = field(default_factory=list)
    subtitle_tracks: List[SubtitleTrack] = field(default_factory=list)
    total_frames: Optional[int] = None
    size: int = 0

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    def subtitle_position(self, index: int) -> Optional[int]:
        """Position of an absolute stream index among the subtitle tracks."""
        for position, track in enumerate(self.subtitle_tracks):
            if track.index == index:
                return position
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "resolution": self.resolution,
            "container": self.container,
            "video_codec": self.video_codec,
            "video_stream_index": self.video_stream_index,
            "fps": self.fps,
            "bitrate": self.bitrate,
            "audio_tracks": [t.to_dict() for t in self.audio_tracks],
            "subtitle_tracks": [t.to_dict() for t in self.subtitle_tracks],
            "total_frames": self.total_frames,
            "size": self.size,
        }


@dataclass
class ProgressSample:
    """One observation parsed from a stats line or a progress block."""
    frame: int = 0
    fps: float = 0.0
    time: float = 0.0  # Output position in seconds
    bitrate: str = ""
    speed: float = 0.0
    finished: bool = False


@dataclass
class ConversionProgress:
    """Progress event emitted to callers. ``progress`` is a fraction in [0, 1]."""
    job_id: str
    frame: int = 0
    fps: float = 0.0
    avg_fps: float = 0.0
    time: float = 0.0
    timestamp: str = "00:00:00.00"
    elapsed: float = 0.0
    bitrate: str = ""
    speed: float = 0.0
    progress: float = 0.0
    eta_seconds: Optional[float] = None

    @property
    def percent(self) -> float:
        return round(self.progress * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "frame": self.frame,
            "fps": round(self.fps, 2),
            "avg_fps": round(self.avg_fps, 2),
            "time": round(self.time, 3),
            "timestamp": self.timestamp,
            "elapsed": round(self.elapsed, 3),
            "bitrate": self.bitrate,
            "speed": round(self.speed, 3),
            "progress": self.progress,
            "percent": self.percent,
            "eta_seconds": round(self.eta_seconds, 1) if self.eta_seconds is not None else None,
        }


@dataclass
class ConversionResult:
    """Final outcome of one conversion. Failures and cancellations land here, not in exceptions."""
    job_id: str
    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False
    exit_code: Optional[int] = None
    error_category: Optional[str] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "success": self.success,
            "output_path": self.output_path,
            "error": self.error,
            "cancelled": self.cancelled,
            "exit_code": self.exit_code,
            "error_category": self.error_category,
            "duration": round(self.duration, 3),
        }


@dataclass
class ExitStatus:
    returncode: int
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.cancelled
