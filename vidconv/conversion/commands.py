"""
FFmpeg command building for file conversions.
"""

import logging
from pathlib import Path
from typing import List, Optional

from ..models import ConversionOptions, AudioStrategy, SubtitleStrategy
from ..config import HardwareConfig
from ..hardware import GpuCapabilities
from .models import MediaInfo
from .constants import (
    SUBTITLE_CONTAINER_CODECS,
    DEFAULT_TEXT_SUBTITLE_CODEC,
    PIPE_PROGRESS_TARGET,
)
from .encoders import EncoderSelector, EncoderFamily

logger = logging.getLogger(__name__)


def escape_filter_value(value: str) -> str:
    """Escape a value for use as a filter option inside a filtergraph.

    Two levels: the filter option parser (``\\ : '``) and then the
    filtergraph parser (``\\ ' [ ] , ;``).
    """
    for ch in ("\\", ":", "'"):
        value = value.replace(ch, "\\" + ch)
    escaped = []
    for ch in value:
        if ch in "\\'[],;":
            escaped.append("\\")
        escaped.append(ch)
    return "".join(escaped)


class CommandBuilder:
    """Builds FFmpeg commands for conversion jobs.

    ``build_args`` is pure: the same options, capabilities and paths always
    produce the same argument list.
    """

    def __init__(self, ffmpeg_path: str, hw_config: HardwareConfig):
        self.ffmpeg_path = ffmpeg_path
        self.hw_config = hw_config
        self.encoder_selector = EncoderSelector(hw_config)

    def build_command(
        self,
        options: ConversionOptions,
        capabilities: Optional[GpuCapabilities] = None,
        progress_path: Optional[str] = None,
        media_info: Optional[MediaInfo] = None
    ) -> List[str]:
        """Full argv including the ffmpeg executable."""
        return [self.ffmpeg_path] + self.build_args(options, capabilities, progress_path, media_info)

    def build_args(
        self,
        options: ConversionOptions,
        capabilities: Optional[GpuCapabilities] = None,
        progress_path: Optional[str] = None,
        media_info: Optional[MediaInfo] = None
    ) -> List[str]:
        """Tool arguments without the executable.

        ``progress_path`` selects sidecar progress output; without it progress
        goes to stdout. The output path is always the last argument.
        """
        args = ["-hide_banner", "-nostdin", "-i", options.input_path]

        args.extend(self._video_args(options, capabilities, media_info))
        args.extend(self._audio_args(options))
        args.extend(self._subtitle_args(options))

        args.extend(["-y", "-progress", progress_path or PIPE_PROGRESS_TARGET])
        args.append(options.output_path)
        return args

    def _video_args(
        self,
        options: ConversionOptions,
        capabilities: Optional[GpuCapabilities],
        media_info: Optional[MediaInfo]
    ) -> List[str]:
        if options.video_track_index is not None:
            args = ["-map", f"0:{options.video_track_index}"]
        else:
            args = ["-map", "0:v:0"]

        encoder, family = self.encoder_selector.resolve_encoder(options.video_codec, capabilities)
        args.extend(["-c:v", encoder])

        if family == EncoderFamily.COPY:
            return args

        args.extend(self.encoder_selector.preset_args(family, options.preset))
        args.extend(self.encoder_selector.quality_args(family, options.crf))

        if options.profile:
            args.extend(["-profile:v", options.profile])
        if options.tune:
            args.extend(["-tune", options.tune])

        if options.subtitle_strategy == SubtitleStrategy.BURN_IN:
            args.extend(["-vf", self._burn_in_filter(options, media_info)])

        return args

    def _burn_in_filter(self, options: ConversionOptions, media_info: Optional[MediaInfo]) -> str:
        position = 0
        if media_info is not None and options.subtitle_track_index is not None:
            found = media_info.subtitle_position(options.subtitle_track_index)
            if found is None:
                logger.warning(
                    f"[Command] Subtitle stream {options.subtitle_track_index} not found, burning in the first one"
                )
            else:
                position = found
        return f"subtitles={escape_filter_value(options.input_path)}:si={position}"

    def _audio_args(self, options: ConversionOptions) -> List[str]:
        strategy = options.audio_strategy
        codec = options.audio_codec

        if strategy == AudioStrategy.COPY_ALL:
            return ["-map", "0:a?", "-c:a", "copy"]
        elif strategy == AudioStrategy.CONVERT_ALL:
            args = ["-map", "0:a?", "-c:a", codec]
        elif strategy in (AudioStrategy.FIRST_TRACK, AudioStrategy.EXPLICIT_INDEX):
            if options.audio_track_index is not None:
                stream = f"0:{options.audio_track_index}"
            else:
                stream = "0:a:0?"
            args = ["-map", stream, "-c:a", codec]
        else:
            raise ValueError(f"Unhandled audio strategy: {strategy}")

        if codec != "copy":
            args.extend(["-b:a", options.audio_bitrate])
        return args

    def _subtitle_args(self, options: ConversionOptions) -> List[str]:
        strategy = options.subtitle_strategy
        container = Path(options.output_path).suffix.lstrip(".").lower()

        if strategy == SubtitleStrategy.COPY_ALL:
            codec = SUBTITLE_CONTAINER_CODECS.get(container, "copy")
            return ["-map", "0:s?", "-c:s", codec]
        elif strategy == SubtitleStrategy.IGNORE:
            return ["-sn"]
        elif strategy == SubtitleStrategy.EXPLICIT_INDEX:
            codec = SUBTITLE_CONTAINER_CODECS.get(container, DEFAULT_TEXT_SUBTITLE_CODEC)
            return ["-map", f"0:{options.subtitle_track_index}", "-c:s", codec]
        elif strategy == SubtitleStrategy.BURN_IN:
            # The filter itself is part of the video arguments
            return ["-sn"]
        else:
            raise ValueError(f"Unhandled subtitle strategy: {strategy}")
