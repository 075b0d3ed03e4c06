"""
Progress parsing and monitoring for running conversions.

ffmpeg reports progress two ways: human-readable stats lines on stderr
(``frame= 120 fps= 30 ... speed=1.2x``) and machine-readable ``key=value``
blocks terminated by ``progress=continue|end`` written to the ``-progress``
target. Both are parsed into ProgressSample objects, normalized by a
ProgressTracker and emitted by a ProgressMonitor.
"""

import asyncio
import codecs
import logging
import re
import time
from collections import deque
from typing import Optional, Callable, Dict, List, Deque, Tuple

from ..models import ProgressMode
from .models import ProgressSample, ConversionProgress

logger = logging.getLogger(__name__)
ffmpeg_logger = logging.getLogger("vidconv.ffmpeg")

STATS_LINE_RE = re.compile(
    r"frame=\s*(\d+)\s+fps=\s*([\d\.]+)\s+.*time=\s*([\d:.]+)\s+.*bitrate=\s*([\w\./]+)\s+.*speed=\s*([\d\.]+)x"
)

LINE_SPLIT_RE = re.compile(r"[\r\n]")

READ_CHUNK_SIZE = 4096

# Never report completion before the process has exited successfully
RUNNING_PROGRESS_CAP = 0.999


def parse_timestamp(value: str) -> float:
    """Parse "HH:MM:SS.ss" (or plain seconds) into seconds. Garbage yields 0."""
    value = value.strip()
    if not value or value.startswith("-"):
        return 0.0
    try:
        seconds = 0.0
        for part in value.split(":"):
            seconds = seconds * 60 + float(part)
        return seconds
    except ValueError:
        return 0.0


def format_timestamp(seconds: float) -> str:
    seconds = max(0.0, seconds)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds - hours * 3600 - minutes * 60
    return f"{hours:02d}:{minutes:02d}:{secs:05.2f}"


def _parse_speed(value: str) -> float:
    try:
        return max(0.0, float(value.strip().rstrip("x")))
    except ValueError:
        return 0.0


def _parse_number(value: Optional[str], default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_progress_line(line: str) -> Optional[ProgressSample]:
    """Parse one stats line from stderr. Anything else returns None."""
    match = STATS_LINE_RE.search(line)
    if not match:
        return None

    frame, fps, timestamp, bitrate, speed = match.groups()
    return ProgressSample(
        frame=int(frame),
        fps=_parse_number(fps),
        time=parse_timestamp(timestamp),
        bitrate=bitrate,
        speed=_parse_speed(speed),
    )


def sample_from_fields(fields: Dict[str, str]) -> ProgressSample:
    """Build a sample from one progress block's key/value pairs."""
    # out_time_ms is in microseconds as well
    if fields.get("out_time_us", "N/A") != "N/A":
        position = max(0.0, _parse_number(fields["out_time_us"]) / 1_000_000)
    elif fields.get("out_time_ms", "N/A") != "N/A":
        position = max(0.0, _parse_number(fields["out_time_ms"]) / 1_000_000)
    else:
        position = parse_timestamp(fields.get("out_time", ""))

    return ProgressSample(
        frame=int(_parse_number(fields.get("frame"))),
        fps=_parse_number(fields.get("fps")),
        time=position,
        bitrate=fields.get("bitrate", "").strip(),
        speed=_parse_speed(fields.get("speed", "")),
        finished=fields.get("progress") == "end",
    )


def _split_field(line: str) -> Optional[Tuple[str, str]]:
    key, sep, value = line.strip().partition("=")
    if not sep or not key:
        return None
    return key.strip(), value.strip()


class ProgressBlockParser:
    """Incremental parser for the ``-progress pipe:1`` stream."""

    def __init__(self):
        self._fields: Dict[str, str] = {}

    def feed(self, line: str) -> Optional[ProgressSample]:
        """Consume one line; returns a sample when a block is terminated."""
        field = _split_field(line)
        if field is None:
            return None

        key, value = field
        self._fields[key] = value
        if key != "progress":
            return None

        sample = sample_from_fields(self._fields)
        self._fields = {}
        return sample


def parse_progress_sidecar(text: str) -> Optional[ProgressSample]:
    """Parse a whole sidecar progress file.

    Returns the last complete block (one closed by a ``progress=`` line) that
    reports a frame, or None until ffmpeg has written one. A block still being
    written is ignored.
    """
    parser = ProgressBlockParser()
    latest: Optional[ProgressSample] = None
    for line in text.splitlines():
        sample = parser.feed(line)
        if sample is not None and sample.frame > 0:
            latest = sample
    return latest


class RateWindow:
    """Sliding window of (timestamp, frame) observations for a smoothed fps."""

    def __init__(self, window_seconds: float = 10.0):
        self.window_seconds = window_seconds
        self._samples: Deque[Tuple[float, int]] = deque()

    def __len__(self) -> int:
        return len(self._samples)

    def add(self, timestamp: float, frame: int) -> None:
        self._samples.append((timestamp, frame))
        newest = timestamp
        while len(self._samples) > 1 and newest - self._samples[0][0] > self.window_seconds:
            self._samples.popleft()

    def average_fps(self, fallback: float = 0.0) -> float:
        """Frames per second between the oldest and newest observation.

        With fewer than two observations or no elapsed time, ``fallback``
        (normally the instantaneous fps) is returned.
        """
        if len(self._samples) < 2:
            return fallback
        oldest_t, oldest_frame = self._samples[0]
        newest_t, newest_frame = self._samples[-1]
        span = newest_t - oldest_t
        if span <= 0:
            return fallback
        return (newest_frame - oldest_frame) / span


class ProgressTracker:
    """Turns raw samples into monotonic ConversionProgress events for one job."""

    def __init__(
        self,
        job_id: str,
        total_frames: Optional[int] = None,
        duration: Optional[float] = None,
        rate_window_seconds: float = 10.0,
        started_at: Optional[float] = None
    ):
        self.job_id = job_id
        self.total_frames = total_frames if total_frames and total_frames > 0 else None
        self.duration = duration if duration and duration > 0 else None
        self.window = RateWindow(rate_window_seconds)
        self.started_at = started_at if started_at is not None else time.monotonic()
        self._last_sample: Optional[ProgressSample] = None
        self._progress = 0.0
        self.latest: Optional[ConversionProgress] = None

    def _fraction(self, sample: ProgressSample) -> Optional[float]:
        if self.total_frames:
            return sample.frame / self.total_frames
        if self.duration:
            return sample.time / self.duration
        return None

    def _eta(self, sample: ProgressSample, avg_fps: float) -> Optional[float]:
        if sample.finished:
            return 0.0
        if self.total_frames:
            if avg_fps <= 0:
                return None
            return max(0.0, (self.total_frames - sample.frame) / avg_fps)
        if self.duration:
            remaining = self.duration - sample.time
            if sample.speed > 0:
                remaining /= sample.speed
            return max(0.0, remaining)
        return None

    def update(self, sample: ProgressSample, now: Optional[float] = None) -> Optional[ConversionProgress]:
        """Fold in one sample. Out-of-order samples are dropped (returns None)."""
        now = time.monotonic() if now is None else now
        last = self._last_sample
        if last is not None and (sample.frame < last.frame or sample.time < last.time):
            logger.debug(f"[Progress] {self.job_id}: dropping out-of-order sample at frame {sample.frame}")
            return None
        self._last_sample = sample

        self.window.add(now, sample.frame)
        avg_fps = self.window.average_fps(sample.fps)

        fraction = self._fraction(sample)
        if fraction is not None:
            fraction = min(max(fraction, 0.0), 1.0)
            if not sample.finished:
                fraction = min(fraction, RUNNING_PROGRESS_CAP)
            self._progress = max(self._progress, fraction)

        self.latest = ConversionProgress(
            job_id=self.job_id,
            frame=sample.frame,
            fps=sample.fps,
            avg_fps=avg_fps,
            time=sample.time,
            timestamp=format_timestamp(sample.time),
            elapsed=max(0.0, now - self.started_at),
            bitrate=sample.bitrate,
            speed=sample.speed,
            progress=self._progress,
            eta_seconds=self._eta(sample, avg_fps),
        )
        return self.latest

    def finalize(self, now: Optional[float] = None) -> ConversionProgress:
        """The 100% event, produced only after a successful exit."""
        now = time.monotonic() if now is None else now
        last = self.latest
        self._progress = 1.0
        self.latest = ConversionProgress(
            job_id=self.job_id,
            frame=last.frame if last else 0,
            fps=last.fps if last else 0.0,
            avg_fps=last.avg_fps if last else 0.0,
            time=last.time if last else 0.0,
            timestamp=last.timestamp if last else format_timestamp(0),
            elapsed=max(0.0, now - self.started_at),
            bitrate=last.bitrate if last else "",
            speed=last.speed if last else 0.0,
            progress=1.0,
            eta_seconds=0.0,
        )
        return self.latest


ProgressCallback = Callable[[ConversionProgress], None]


class ProgressMonitor:
    """Consumes a supervised process's output streams and emits progress.

    The stderr reader always runs so the pipe never fills up, whatever the
    progress mode. Emissions are rate-limited; an event held back by the limit
    goes out once the interval has passed, or at ``finish()``, whichever is first.
    """

    def __init__(
        self,
        handle,
        tracker: ProgressTracker,
        mode: ProgressMode = ProgressMode.PIPE,
        callback: Optional[ProgressCallback] = None,
        emit_interval: float = 0.15,
        sidecar_path: Optional[str] = None,
        poll_interval: float = 0.25,
        tail_lines: int = 100,
        clock: Callable[[], float] = time.monotonic
    ):
        if mode == ProgressMode.SIDECAR and not sidecar_path:
            raise ValueError("sidecar progress mode needs a sidecar path")

        self.handle = handle
        self.tracker = tracker
        self.mode = mode
        self.callback = callback
        self.emit_interval = emit_interval
        self.sidecar_path = sidecar_path
        self.poll_interval = poll_interval
        self.clock = clock

        self._tail: Deque[str] = deque(maxlen=tail_lines)
        self._block_parser = ProgressBlockParser()
        self._readers: List[asyncio.Task] = []
        self._poller: Optional[asyncio.Task] = None
        self._stop_polling = asyncio.Event()
        self._last_polled: Optional[ProgressSample] = None
        self._pending: Optional[ConversionProgress] = None
        self._last_emit: Optional[float] = None
        self._flush_handle: Optional[asyncio.TimerHandle] = None

    @property
    def job_id(self) -> str:
        return self.tracker.job_id

    @property
    def diagnostic_tail(self) -> str:
        return "\n".join(self._tail)

    def start(self) -> None:
        stderr = self.handle.take_stderr()
        stdout = self.handle.take_stdout()
        self._readers.append(asyncio.create_task(self._read_stderr(stderr)))
        self._readers.append(asyncio.create_task(self._read_stdout(stdout)))
        if self.mode == ProgressMode.SIDECAR:
            self._poller = asyncio.create_task(self._poll_sidecar())

    async def _read_stderr(self, stream: asyncio.StreamReader) -> None:
        """Read stderr in chunks; stats lines are separated by carriage returns."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="ignore")
        buffer = ""
        try:
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                buffer += decoder.decode(chunk)
                *lines, buffer = LINE_SPLIT_RE.split(buffer)
                for line in lines:
                    self._handle_stderr_line(line)
            buffer += decoder.decode(b"", final=True)
            if buffer:
                self._handle_stderr_line(buffer)
        except Exception as e:
            logger.debug(f"[Progress] {self.job_id}: stderr reader error: {e}")

    def _handle_stderr_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        sample = parse_progress_line(line)
        if sample is None:
            ffmpeg_logger.debug(f"[{self.job_id}] {line}")
            self._tail.append(line)
        elif self.mode == ProgressMode.PIPE:
            self._handle_sample(sample)

    async def _read_stdout(self, stream: asyncio.StreamReader) -> None:
        try:
            while True:
                line = await stream.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="ignore")
                if self.mode == ProgressMode.PIPE:
                    sample = self._block_parser.feed(text)
                    if sample is not None:
                        self._handle_sample(sample)
                else:
                    ffmpeg_logger.debug(f"[{self.job_id}] stdout: {text.rstrip()}")
        except Exception as e:
            logger.debug(f"[Progress] {self.job_id}: stdout reader error: {e}")

    def _read_sidecar_file(self) -> str:
        with open(self.sidecar_path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read()

    async def _read_sidecar_once(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self._read_sidecar_file)
        except OSError as e:
            logger.debug(f"[Progress] {self.job_id}: sidecar not readable yet: {e}")
            return

        sample = parse_progress_sidecar(text)
        if sample is None or sample == self._last_polled:
            return
        self._last_polled = sample
        self._handle_sample(sample)

    async def _poll_sidecar(self) -> None:
        while not self._stop_polling.is_set():
            try:
                await asyncio.wait_for(self._stop_polling.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            await self._read_sidecar_once()

    def _handle_sample(self, sample: ProgressSample) -> None:
        progress = self.tracker.update(sample, self.clock())
        if progress is None:
            return

        self._pending = progress
        now = self.clock()
        if self._last_emit is None or now - self._last_emit >= self.emit_interval:
            self._flush(now)
        elif self._flush_handle is None:
            delay = self.emit_interval - (now - self._last_emit)
            self._flush_handle = asyncio.get_running_loop().call_later(delay, self._deferred_flush)

    def _deferred_flush(self) -> None:
        self._flush_handle = None
        self._flush(self.clock())

    def _cancel_deferred_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def _flush(self, now: float) -> None:
        self._cancel_deferred_flush()
        progress = self._pending
        self._pending = None
        if progress is None:
            return
        self._last_emit = now
        self._emit(progress)

    def _emit(self, progress: ConversionProgress) -> None:
        if not self.callback:
            return
        try:
            self.callback(progress)
        except Exception as e:
            logger.warning(f"[Progress] {self.job_id}: progress callback error: {e}")

    async def finish(self, grace: float = 0.5) -> None:
        """Settle after process exit: drain readers, stop polling, flush.

        Never emits 100% on its own; see ``complete()``.
        """
        if self._readers:
            _, pending = await asyncio.wait(self._readers, timeout=grace)
            for task in pending:
                task.cancel()
            if pending:
                logger.debug(f"[Progress] {self.job_id}: {len(pending)} reader(s) still open after {grace}s")
                await asyncio.gather(*pending, return_exceptions=True)

        if self._poller is not None:
            self._stop_polling.set()
            await self._poller
            self._poller = None

        self._flush(self.clock())

    def complete(self) -> ConversionProgress:
        """Emit the final 100% event after a successful exit."""
        progress = self.tracker.finalize(self.clock())
        self._emit(progress)
        return progress

    async def stop(self) -> None:
        """Cancel all reader tasks without flushing. Used on early-exit paths."""
        self._cancel_deferred_flush()
        tasks = list(self._readers)
        if self._poller is not None:
            tasks.append(self._poller)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._readers = []
        self._poller = None
