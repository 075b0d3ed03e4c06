"""
Request/response models and user-facing enums for vidconv
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, model_validator


class AudioStrategy(str, Enum):
    COPY_ALL = "copy_all"
    CONVERT_ALL = "convert_all"
    FIRST_TRACK = "first_track"
    EXPLICIT_INDEX = "explicit_index"


class SubtitleStrategy(str, Enum):
    COPY_ALL = "copy_all"
    BURN_IN = "burn_in"
    IGNORE = "ignore"
    EXPLICIT_INDEX = "explicit_index"


class ProgressMode(str, Enum):
    PIPE = "pipe"        # key=value blocks on stdout
    SIDECAR = "sidecar"  # key=value blocks in a polled temp file


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConversionOptions(BaseModel):
    """Everything the caller decides about one conversion."""

    job_id: str = Field(..., min_length=1)
    input_path: str
    output_path: str

    # Video
    video_codec: str = "libx264"
    video_track_index: Optional[int] = Field(None, ge=0)
    crf: Optional[int] = Field(None, ge=0, le=63)
    preset: Optional[str] = None
    profile: Optional[str] = None
    tune: Optional[str] = None

    # Audio
    audio_strategy: AudioStrategy = AudioStrategy.FIRST_TRACK
    audio_track_index: Optional[int] = Field(None, ge=0)
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"

    # Subtitles
    subtitle_strategy: SubtitleStrategy = SubtitleStrategy.IGNORE
    subtitle_track_index: Optional[int] = Field(None, ge=0)

    # Progress normalization
    duration_seconds: Optional[float] = Field(None, ge=0)
    total_frames: Optional[int] = Field(None, ge=0)
    progress_mode: ProgressMode = ProgressMode.PIPE

    @model_validator(mode="after")
    def _check_explicit_indices(self) -> "ConversionOptions":
        if self.audio_strategy == AudioStrategy.EXPLICIT_INDEX and self.audio_track_index is None:
            raise ValueError("audio_track_index is required for the explicit_index audio strategy")
        if self.subtitle_strategy == SubtitleStrategy.EXPLICIT_INDEX and self.subtitle_track_index is None:
            raise ValueError("subtitle_track_index is required for the explicit_index subtitle strategy")
        if self.subtitle_strategy == SubtitleStrategy.BURN_IN and self.video_codec == "copy":
            raise ValueError("burning in subtitles requires re-encoding the video stream")
        return self


class ProbeRequest(BaseModel):
    path: str


class FilenameRequest(BaseModel):
    """Suggest an output name for ``path``. Without a title the name says Unknown Title."""
    path: str
    title: Optional[str] = None
    release_date: Optional[str] = None  # "YYYY-MM-DD"
    overview: str = ""
    template: Optional[str] = None


class JobResponse(BaseModel):
    job_id: str
    status: JobStatus
    progress: float = 0.0
    eta_seconds: Optional[float] = None
    output_path: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    ffmpeg_available: bool
    ffprobe_available: bool
    active_jobs: int
    queued_jobs: int


class StatsResponse(BaseModel):
    total_jobs_processed: int
    successful_jobs: int
    failed_jobs: int
    cancelled_jobs: int
    active_jobs: int
    total_conversion_time: float
    hw_accel_usage: Dict[str, int]


class CapabilitiesResponse(BaseModel):
    nvenc: bool
    qsv: bool
    vaapi: bool
    videotoolbox: bool
    amf: bool
    encoders: List[str] = Field(default_factory=list)


class WebSocketMessage(BaseModel):
    type: str
    job_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
