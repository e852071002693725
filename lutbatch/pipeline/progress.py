"""Progress tracking for a running ffmpeg process.

ffmpeg is started with `-progress pipe:1`, which writes key=value lines to
stdout. Older builds (and stderr status lines) report `time=HH:MM:SS.ff`
instead, so a small ordered table of recognised formats normalises every
variant to whole media seconds. Lines that match none of them are ignored.
"""

import re
import threading
import time
from typing import Callable, List, Optional, Pattern, Tuple
from lutbatch.domain.models import ProgressSnapshot

# Estimates are noisy until ffmpeg has been running for a few seconds
SPEED_WARMUP_SECONDS = 5.0
# Anything beyond this is shown as "calculating"
ETA_CEILING_SECONDS = 7200
BAR_LENGTH = 30


def _from_microseconds(match) -> int:
    return int(match.group(1)) // 1_000_000


def _from_timestamp(match) -> int:
    hours, minutes, seconds = (int(g) for g in match.group(1, 2, 3))
    return hours * 3600 + minutes * 60 + seconds


def _from_fractional_seconds(match) -> int:
    return int(match.group(1))


ParserEntry = Tuple[str, Pattern[str], Callable[..., int]]

PROGRESS_FORMATS: List[ParserEntry] = [
    ("out_time_us", re.compile(r"out_time_us=(\d+)"), _from_microseconds),
    # ffmpeg reports microseconds under this key too
    ("out_time_ms", re.compile(r"out_time_ms=(\d+)"), _from_microseconds),
    ("timestamp", re.compile(r"time=(\d+):(\d+):(\d+)(?:\.\d+)?"), _from_timestamp),
    ("seconds", re.compile(r"time=(\d+)\.\d+"), _from_fractional_seconds),
]


def parse_elapsed_seconds(line: str) -> Optional[int]:
    """Returns elapsed media seconds from one progress line, or None."""
    for _name, pattern, convert in PROGRESS_FORMATS:
        match = pattern.search(line)
        if match:
            return convert(match)
    return None


def format_clock(seconds: float) -> str:
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


class ProgressMonitor:
    """Tracks (elapsed, total) media seconds for one job and derives estimates.

    Purely advisory: nothing here raises on bad input, it degrades to
    "no estimate" instead.
    """

    def __init__(self, total_media_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.total_media_seconds = max(0, int(round(total_media_seconds or 0)))
        self.elapsed_media_seconds = 0
        self._clock = clock
        self._started_at = clock()
        self._lock = threading.Lock()

    def feed(self, line: str) -> bool:
        """Consumes one line; returns True when it advanced the elapsed time."""
        try:
            elapsed = parse_elapsed_seconds(line)
        except (TypeError, ValueError):
            return False
        if elapsed is None or elapsed <= 0:
            return False
        with self._lock:
            self.elapsed_media_seconds = elapsed
        return True

    def wall_seconds(self) -> float:
        return max(0.0, self._clock() - self._started_at)

    def percent(self) -> Optional[int]:
        if self.total_media_seconds <= 0:
            return None
        return min(100, (100 * self.elapsed_media_seconds) // self.total_media_seconds)

    def speed(self) -> Optional[float]:
        wall = self.wall_seconds()
        if wall < SPEED_WARMUP_SECONDS or self.elapsed_media_seconds <= 0:
            return None
        return self.elapsed_media_seconds / wall

    def eta_seconds(self) -> Optional[int]:
        speed = self.speed()
        if not speed or self.total_media_seconds <= 0:
            return None
        remaining = max(0, self.total_media_seconds - self.elapsed_media_seconds)
        eta = remaining / speed
        if eta > ETA_CEILING_SECONDS:
            return None
        return int(eta)

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            elapsed = self.elapsed_media_seconds
        return ProgressSnapshot(
            elapsed_media_seconds=elapsed,
            total_media_seconds=self.total_media_seconds,
            percent=self.percent(),
            speed=self.speed(),
            eta_seconds=self.eta_seconds(),
        )

    def render_line(self, name: str, bar_length: int = BAR_LENGTH) -> str:
        snap = self.snapshot()
        percent = snap.percent or 0
        filled = bar_length * percent // 100
        bar = "#" * filled + "-" * (bar_length - filled)
        line = f"{name} [{bar}] {percent:3d}%"

        if self.wall_seconds() < SPEED_WARMUP_SECONDS:
            return f"{line} | Starting..."
        if snap.speed is None:
            return f"{line} | Initializing..."
        if snap.eta_seconds is None:
            return f"{line} | {snap.speed:.1f}x | Calculating ETA..."
        return f"{line} | {snap.speed:.1f}x | ETA {format_clock(snap.eta_seconds)}"
