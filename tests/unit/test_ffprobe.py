import pytest
import subprocess
from pathlib import Path
from unittest.mock import patch
from lutbatch.domain.errors import UnreadableMedia
from lutbatch.infrastructure.ffprobe import FFprobeAdapter


def test_ffprobe_duration():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.stdout = "12.480000\n"
        mock_run.return_value.returncode = 0

        adapter = FFprobeAdapter()
        duration = adapter.get_duration(Path("clip.mp4"))

        assert duration == pytest.approx(12.48)
        cmd = mock_run.call_args[0][0]
        assert cmd == [
            "ffprobe", "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            "clip.mp4",
        ]


@pytest.mark.parametrize("stdout", ["", "N/A\n", "abc\n", "0\n", "-3.0\n", "nan\n"])
def test_ffprobe_unusable_duration_raises(stdout):
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.stdout = stdout
        mock_run.return_value.returncode = 0

        with pytest.raises(UnreadableMedia):
            FFprobeAdapter().get_duration(Path("clip.mp4"))


def test_ffprobe_error_exit():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 1
        mock_run.return_value.stderr = "clip.mp4: Invalid data found when processing input"
        mock_run.return_value.stdout = ""

        with pytest.raises(UnreadableMedia, match="Invalid data"):
            FFprobeAdapter().get_duration(Path("clip.mp4"))


def test_ffprobe_timeout():
    with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="ffprobe", timeout=60)):
        with pytest.raises(UnreadableMedia):
            FFprobeAdapter().get_duration(Path("clip.mp4"))


def test_ffprobe_missing_binary():
    with patch("subprocess.run", side_effect=FileNotFoundError("ffprobe")):
        with pytest.raises(UnreadableMedia):
            FFprobeAdapter().get_duration(Path("clip.mp4"))
