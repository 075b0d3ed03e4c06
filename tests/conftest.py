"""
vidconv Test Configuration and Fixtures

Provides:
- A scriptable fake ffmpeg for end-to-end supervision tests (no real ffmpeg needed)
- Fake process handles for supervisor/cancellation unit tests
- Shared fixtures for config, engine and API client
"""

import asyncio
import json
import shutil
import stat
import sys
from pathlib import Path
from typing import Generator, Callable, Optional

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vidconv.api import create_app
from vidconv.config import (
    VidconvConfig,
    ToolsConfig,
    ConversionConfig,
    ProgressConfig,
    CancellationConfig,
    set_config,
)
from vidconv.conversion import (
    ConversionEngine,
    ConversionProgress,
    ConversionResult,
    JobRegistry,
    MediaInfo,
)
from vidconv.conversion.constants import CANCELLED_MESSAGE
from vidconv.errors import JobNotFoundError
from vidconv.hardware import GpuCapabilities


# =============================================================================
# FAKE FFMPEG
# =============================================================================

FAKE_FFMPEG_TEMPLATE = r'''#!__PYTHON__
import signal
import sys
import time

BEHAVIOR = "__BEHAVIOR__"
ENCODERS_DELAY = __ENCODERS_DELAY__
args = sys.argv[1:]

if "-encoders" in args:
    time.sleep(ENCODERS_DELAY)
    sys.stdout.write(" V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)\n")
    sys.exit(0)

target = args[args.index("-progress") + 1] if "-progress" in args else None
output = args[-1]


def emit(block):
    if target == "pipe:1":
        sys.stdout.write(block)
        sys.stdout.flush()
    elif target:
        with open(target, "a") as f:
            f.write(block)


def block(frame, end=False):
    return (
        "frame=%d\nfps=25.00\nbitrate=1000.0kbits/s\nout_time_us=%d\nspeed=2.0x\nprogress=%s\n"
        % (frame, frame * 40000, "end" if end else "continue")
    )


def stats(frame):
    seconds = frame * 0.04
    sys.stderr.write(
        "frame=%5d fps= 25 q=28.0 size=     256kB time=00:00:%05.2f bitrate=1000.0kbits/s speed=2.0x\r"
        % (frame, seconds)
    )
    sys.stderr.flush()


if BEHAVIOR == "success":
    sys.stderr.write("Input #0, matroska,webm, from 'input.mkv':\n")
    for frame in (25, 50, 75, 100):
        emit(block(frame, end=frame == 100))
        stats(frame)
        time.sleep(0.05)
    with open(output, "w") as f:
        f.write("converted")
    sys.exit(0)

elif BEHAVIOR == "fail":
    sys.stderr.write("[vost#0:0 @ 0x1] Unknown encoder 'nope'\n")
    sys.stderr.write("Error opening output files: Invalid argument\n")
    sys.exit(1)

elif BEHAVIOR in ("hang", "ignore_term"):
    if BEHAVIOR == "ignore_term":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    emit(block(25))
    stats(25)
    time.sleep(30)
    sys.exit(0)

elif BEHAVIOR == "args":
    with open(output, "w") as f:
        f.write("\n".join(args))
    sys.exit(0)
'''


@pytest.fixture
def fake_ffmpeg(tmp_path) -> Callable[[str], str]:
    """
    Factory writing an executable fake ffmpeg with the given behavior.

    Behaviors: success, fail, hang, ignore_term, args (dumps its argv to the output file).
    `-encoders` lists h264_nvenc after ``encoders_delay`` seconds.
    """
    if sys.platform == "win32":
        pytest.skip("Fake ffmpeg relies on a shebang script")

    def make(behavior: str = "success", encoders_delay: float = 0.0) -> str:
        script = tmp_path / f"fake_ffmpeg_{behavior}"
        script.write_text(
            FAKE_FFMPEG_TEMPLATE
            .replace("__PYTHON__", sys.executable)
            .replace("__BEHAVIOR__", behavior)
            .replace("__ENCODERS_DELAY__", repr(float(encoders_delay)))
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return make


@pytest.fixture
def fake_ffprobe(tmp_path) -> Callable[..., str]:
    """Factory for a fake ffprobe printing ``payload`` and exiting with ``exit_code``."""
    if sys.platform == "win32":
        pytest.skip("Fake ffprobe relies on a shebang script")

    def make(payload, exit_code: int = 0, stderr: str = "") -> str:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        script = tmp_path / f"fake_ffprobe_{exit_code}"
        script.write_text(
            f"#!{sys.executable}\n"
            "import sys\n"
            f"sys.stdout.write({text!r})\n"
            f"sys.stderr.write({stderr!r})\n"
            f"sys.exit({exit_code})\n"
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return make


# =============================================================================
# FAKE PROCESS HANDLES
# =============================================================================

class FakeProcess:
    """Stands in for asyncio.subprocess.Process in supervisor and cancel tests."""

    def __init__(self, pid: int = 4242, ignore_terminate: bool = False):
        self.pid = pid
        self.returncode = None
        self.ignore_terminate = ignore_terminate
        self.signals = []
        self._exited = asyncio.Event()

    def terminate(self):
        self.signals.append("TERM")
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self):
        self.signals.append("KILL")
        self.exit(-9)

    def exit(self, code: int):
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class FakeHandle:
    """Minimal SupervisedProcess stand-in exposing two stream readers."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", job_id: str = "job-1"):
        self.job_id = job_id
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stdout.feed_eof()
        self.stderr.feed_data(stderr)
        self.stderr.feed_eof()

    def take_stdout(self):
        return self.stdout

    def take_stderr(self):
        return self.stderr


class FakeEngine:
    """
    In-process stand-in for ConversionEngine used by job manager and API tests.

    Each conversion reports one progress event at 50%. With ``hold`` set it then
    blocks until cancelled or ``release`` is set. A conversion whose cancel event
    is already set never starts.
    """

    def __init__(self, hold: bool = False):
        self.ffmpeg_path = "/nonexistent/ffmpeg"
        self.ffprobe_path = "/nonexistent/ffprobe"
        self.hold = hold
        self.release = asyncio.Event()
        self.running = set()
        self.started = []
        self.cancelled = []
        self.probe_error = None
        self.probe_gate: Optional[asyncio.Event] = None
        self.probed = []
        self.media_info = {}
        self.capabilities = GpuCapabilities(nvenc=True, encoders=["h264_nvenc"])

    async def convert(self, options, progress_callback=None, media_info=None, cancel_event=None,
                      **kwargs) -> ConversionResult:
        job_id = options.job_id
        self.media_info[job_id] = media_info
        if cancel_event is not None and cancel_event.is_set():
            return ConversionResult(job_id=job_id, success=False, error=CANCELLED_MESSAGE, cancelled=True)

        self.running.add(job_id)
        self.started.append(job_id)
        try:
            if progress_callback:
                progress_callback(ConversionProgress(job_id=job_id, frame=10, progress=0.5, eta_seconds=3.0))
            if self.hold:
                await self.release.wait()
        finally:
            self.running.discard(job_id)

        if job_id in self.cancelled:
            return ConversionResult(job_id=job_id, success=False, error=CANCELLED_MESSAGE, cancelled=True)
        return ConversionResult(job_id=job_id, success=True, output_path=options.output_path, exit_code=0, duration=1.5)

    async def cancel(self, job_id: str) -> None:
        if job_id not in self.running:
            raise JobNotFoundError(job_id)
        self.cancelled.append(job_id)
        self.release.set()

    def is_running(self, job_id: str) -> bool:
        return job_id in self.running

    def get_capabilities(self, force_refresh: bool = False) -> GpuCapabilities:
        return self.capabilities

    async def probe_media(self, path: str) -> MediaInfo:
        self.probed.append(path)
        if self.probe_gate is not None:
            await self.probe_gate.wait()
        if self.probe_error is not None:
            raise self.probe_error
        return MediaInfo(path=path, duration=10.0, width=1920, height=1080, video_codec="h264", fps=25.0)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


# =============================================================================
# CONFIG / ENGINE / API
# =============================================================================

@pytest.fixture
def test_config(tmp_path) -> VidconvConfig:
    """Fast settings with a per-test temp directory for sidecar files."""
    config = VidconvConfig(
        tools=ToolsConfig(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe"),
        conversion=ConversionConfig(temp_directory=str(tmp_path / "work"), max_concurrent_jobs=2),
        progress=ProgressConfig(
            emit_interval_ms=0,
            sidecar_poll_interval_ms=20,
            settle_grace_seconds=2.0,
        ),
        cancellation=CancellationConfig(grace_period_seconds=0.5),
    )
    set_config(config)
    return config


@pytest.fixture
def engine_factory(test_config) -> Callable[[str], ConversionEngine]:
    """Build an engine whose ffmpeg is the given executable."""
    def make(ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe") -> ConversionEngine:
        config = test_config.model_copy(deep=True)
        config.tools.ffmpeg_path = ffmpeg_path
        config.tools.ffprobe_path = ffprobe_path
        return ConversionEngine(config)

    return make


@pytest.fixture
def api_client(test_config, fake_engine) -> Generator[TestClient, None, None]:
    """
    Test client for API endpoints, backed by the fake engine.
    The lifespan (job manager start/stop) runs inside the context manager.
    """
    with TestClient(create_app(test_config, fake_engine)) as client:
        yield client


@pytest.fixture
def temp_output_dir(tmp_path) -> Path:
    """Per-test temp directory for output files."""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir


# =============================================================================
# SKIP CONDITIONS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_ffmpeg: marks tests that require FFmpeg"
    )


@pytest.fixture
def requires_ffmpeg():
    """Skip test if FFmpeg not available."""
    if not shutil.which("ffmpeg"):
        pytest.skip("FFmpeg not available")
