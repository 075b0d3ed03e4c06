"""
Tests for ffprobe output parsing and the MediaProbe client.
"""

import json

import pytest

from vidconv.conversion import MediaProbe, parse_probe_output
from vidconv.conversion.probe import parse_frame_rate
from vidconv.errors import (
    MalformedProbeOutputError,
    ProbeExecutionError,
    ProbeToolUnavailableError,
)


def probe_payload(**overrides):
    payload = {
        "streams": [
            {
                "index": 0,
                "codec_type": "video",
                "codec_name": "h264",
                "width": 1920,
                "height": 1080,
                "r_frame_rate": "25/1",
                "avg_frame_rate": "25/1",
                "nb_frames": "250",
            },
            {
                "index": 1,
                "codec_type": "audio",
                "codec_name": "ac3",
                "channels": 6,
                "sample_rate": "48000",
                "bit_rate": "448000",
                "tags": {"language": "eng", "title": "Surround"},
            },
            {
                "index": 2,
                "codec_type": "subtitle",
                "codec_name": "subrip",
                "tags": {"language": "fre"},
                "disposition": {"default": 1, "forced": 0},
            },
        ],
        "format": {
            "format_name": "matroska,webm",
            "duration": "10.000000",
            "bit_rate": "5000000",
        },
    }
    payload.update(overrides)
    return payload


class TestParseProbeOutput:

    def test_basic_fields(self):
        info = parse_probe_output(json.dumps(probe_payload()), "/media/movie.mkv", 1234)

        assert info.path == "/media/movie.mkv"
        assert info.size == 1234
        assert info.container == "matroska,webm"
        assert info.duration == 10.0
        assert info.bitrate == 5000000
        assert info.video_codec == "h264"
        assert info.resolution == "1920x1080"
        assert info.fps == 25.0
        assert info.total_frames == 250
        assert info.video_stream_index == 0

    def test_audio_and_subtitle_tracks(self):
        info = parse_probe_output(json.dumps(probe_payload()))

        assert len(info.audio_tracks) == 1
        audio = info.audio_tracks[0]
        assert audio.index == 1
        assert audio.codec == "ac3"
        assert audio.channels == 6
        assert audio.sample_rate == 48000
        assert audio.language == "eng"
        assert audio.title == "Surround"

        assert len(info.subtitle_tracks) == 1
        subtitle = info.subtitle_tracks[0]
        assert subtitle.index == 2
        assert subtitle.language == "fre"
        assert subtitle.is_default is True
        assert subtitle.is_forced is False

    def test_largest_video_stream_wins(self):
        payload = probe_payload(streams=[
            {"index": 0, "codec_type": "video", "codec_name": "mjpeg", "width": 320, "height": 240},
            {"index": 1, "codec_type": "video", "codec_name": "hevc", "width": 3840, "height": 2160,
             "r_frame_rate": "24000/1001"},
            {"index": 2, "codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080},
        ])
        info = parse_probe_output(json.dumps(payload))

        assert info.video_codec == "hevc"
        assert info.video_stream_index == 1
        assert info.height == 2160
        assert info.fps == pytest.approx(23.976, rel=1e-3)

    def test_equal_size_streams_keep_first(self):
        payload = probe_payload(streams=[
            {"index": 0, "codec_type": "video", "codec_name": "h264", "width": 1280, "height": 720},
            {"index": 1, "codec_type": "video", "codec_name": "vp9", "width": 1280, "height": 720},
        ])
        info = parse_probe_output(json.dumps(payload))
        assert info.video_codec == "h264"

    def test_not_available_values_are_unknown(self):
        payload = probe_payload(format={"format_name": "mpegts", "duration": "N/A", "bit_rate": "N/A"})
        payload["streams"][0]["nb_frames"] = "N/A"
        info = parse_probe_output(json.dumps(payload))

        assert info.duration is None
        assert info.bitrate is None
        # No duration and no frame count: nothing to derive frames from
        assert info.total_frames is None

    def test_frames_derived_from_duration_and_rate(self):
        payload = probe_payload()
        del payload["streams"][0]["nb_frames"]
        payload["streams"][0]["r_frame_rate"] = "30000/1001"
        info = parse_probe_output(json.dumps(payload))

        assert info.total_frames == 299  # floor(10 * 29.97)

    def test_zero_frame_count_falls_back(self):
        payload = probe_payload()
        payload["streams"][0]["nb_frames"] = "0"
        info = parse_probe_output(json.dumps(payload))
        assert info.total_frames == 250

    def test_duration_falls_back_to_video_stream(self):
        payload = probe_payload(format={"format_name": "matroska,webm"})
        payload["streams"][0]["duration"] = "42.5"
        info = parse_probe_output(json.dumps(payload))
        assert info.duration == 42.5

    def test_audio_only(self):
        payload = probe_payload(streams=[
            {"index": 0, "codec_type": "audio", "codec_name": "flac"},
        ])
        info = parse_probe_output(json.dumps(payload))

        assert info.video_codec == ""
        assert info.video_stream_index is None
        assert info.total_frames is None
        assert info.audio_tracks[0].channels == 2

    def test_invalid_json(self):
        with pytest.raises(MalformedProbeOutputError) as exc_info:
            parse_probe_output("this is not json")
        assert "not valid JSON" in str(exc_info.value)
        assert exc_info.value.raw == "this is not json"

    def test_missing_streams(self):
        with pytest.raises(MalformedProbeOutputError) as exc_info:
            parse_probe_output(json.dumps({"format": {}}))
        assert exc_info.value.reason == "missing streams section"


class TestFrameRate:

    @pytest.mark.parametrize("rate,expected", [
        ("25/1", 25.0),
        ("30000/1001", 30000 / 1001),
        ("24", 24.0),
        ("0/0", None),
        ("N/A", None),
        ("", None),
        (None, None),
    ])
    def test_parse_frame_rate(self, rate, expected):
        assert parse_frame_rate(rate) == expected


class TestMediaProbe:

    def test_build_command(self):
        probe = MediaProbe("/usr/bin/ffprobe")
        cmd = probe.build_command("/media/in.mkv")

        assert cmd[0] == "/usr/bin/ffprobe"
        assert cmd[-1] == "/media/in.mkv"
        assert "-show_streams" in cmd
        assert "-show_format" in cmd
        assert cmd[cmd.index("-print_format") + 1] == "json"
        # Errors stay on stderr so a failed probe can say why
        assert cmd[cmd.index("-v") + 1] == "error"

    @pytest.mark.asyncio
    async def test_probe_success(self, fake_ffprobe, tmp_path):
        media = tmp_path / "movie.mkv"
        media.write_bytes(b"x" * 64)
        probe = MediaProbe(fake_ffprobe(probe_payload()))

        info = await probe.probe(str(media))

        assert info.path == str(media)
        assert info.size == 64
        assert info.total_frames == 250

    @pytest.mark.asyncio
    async def test_probe_nonzero_exit(self, fake_ffprobe, tmp_path):
        probe = MediaProbe(fake_ffprobe("", exit_code=1, stderr="movie.mkv: Invalid data found when processing input"))

        with pytest.raises(ProbeExecutionError) as exc_info:
            await probe.probe(str(tmp_path / "movie.mkv"))

        assert exc_info.value.returncode == 1
        assert "Invalid data" in exc_info.value.stderr
        assert "Invalid data" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_probe_malformed_output(self, fake_ffprobe, tmp_path):
        probe = MediaProbe(fake_ffprobe("{truncated"))

        with pytest.raises(MalformedProbeOutputError):
            await probe.probe(str(tmp_path / "movie.mkv"))

    @pytest.mark.asyncio
    async def test_probe_missing_tool(self, tmp_path):
        probe = MediaProbe(str(tmp_path / "no-such-ffprobe"))

        with pytest.raises(ProbeToolUnavailableError) as exc_info:
            await probe.probe(str(tmp_path / "movie.mkv"))

        assert exc_info.value.tool.endswith("no-such-ffprobe")
