import math
import subprocess
from pathlib import Path
from lutbatch.domain.errors import UnreadableMedia


class FFprobeAdapter:
    """Wrapper around ffprobe to read a file's total media duration."""

    def __init__(self, binary: str = "ffprobe", timeout: float = 60.0):
        self.binary = binary
        self.timeout = timeout

    @staticmethod
    def _parse_duration(text: str) -> float:
        value = text.strip().splitlines()[0].strip() if text.strip() else ""
        if not value or value.upper() == "N/A":
            raise ValueError(f"no duration reported ({value or 'empty'})")
        duration = float(value)
        if not math.isfinite(duration) or duration <= 0:
            raise ValueError(f"invalid duration {value}")
        return duration

    def get_duration(self, file_path: Path) -> float:
        """Returns the duration in seconds or raises UnreadableMedia."""
        cmd = [
            self.binary,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(file_path),
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise UnreadableMedia(f"ffprobe failed for {file_path.name}: {e}") from e

        if result.returncode != 0:
            raise UnreadableMedia(f"ffprobe failed for {file_path.name}: {result.stderr.strip()}")

        try:
            return self._parse_duration(result.stdout or "")
        except ValueError as e:
            raise UnreadableMedia(f"Cannot determine video duration of {file_path.name}: {e}") from e
