import pytest
import threading
from types import SimpleNamespace
import yaml
from pathlib import Path
from lutbatch.config.models import AppConfig
from lutbatch.domain.errors import EngineFailure, TranscodeInterrupted, UnreadableMedia
from lutbatch.domain.models import TranscodeSpec
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.infrastructure.ffmpeg import HardwareProfile

MB = 1024 * 1024

# ============================================================================
# Fake adapters (no real ffmpeg/ffprobe needed)
# ============================================================================

class FakeFFprobe:
    """Reports a fixed duration; file names listed in `unreadable` fail to probe."""

    def __init__(self, duration: float = 10.0, unreadable=()):
        self.duration = duration
        self.unreadable = set(unreadable)
        self.calls = []

    def get_duration(self, file_path: Path) -> float:
        self.calls.append(file_path)
        if file_path.name in self.unreadable:
            raise UnreadableMedia(f"Cannot determine video duration of {file_path.name}")
        return self.duration


class FakeFFmpeg:
    """Writes the temp output and feeds ffmpeg-style progress lines.

    File names listed in `failing` exit non-zero after writing a partial
    temp file. `gate`, when given, blocks every transcode until it is set.
    """

    def __init__(self, failing=(), gate: threading.Event = None, content: bytes = b"rec709"):
        self.failing = set(failing)
        self.gate = gate
        self.content = content
        self.calls = []
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def detect_hardware(self, force_encoder: str = "auto") -> HardwareProfile:
        return HardwareProfile()

    def transcode(self, job, spec, on_progress_line=None, shutdown_event=None) -> str:
        with self._lock:
            self.calls.append(job.input_path)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            job.temp_path.write_bytes(b"partial")
            if on_progress_line is not None:
                on_progress_line("frame=10\n")
                on_progress_line("out_time_us=5000000\n")
            if self.gate is not None:
                while not self.gate.wait(timeout=0.05):
                    if shutdown_event is not None and shutdown_event.is_set():
                        raise TranscodeInterrupted(f"{job.label}: interrupted")
            if job.input_path.name in self.failing:
                raise EngineFailure("ffmpeg exited with code 1", returncode=1, diagnostic="Invalid data found")
            job.temp_path.write_bytes(self.content)
            return ""
        finally:
            with self._lock:
                self.active -= 1

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns an AppConfig pointing at tmp_path directories."""
    lut = tmp_path / "luts" / "test.cube"
    lut.parent.mkdir()
    lut.write_text("LUT_3D_SIZE 2\n")
    return AppConfig(
        general={
            "quality_preset": "standard",
            "parallel_jobs": 2,
            "extensions": ["mp4", "mov"],
            "min_file_size_mb": 0,
            "min_free_space_gb": 0,
        },
        paths={
            "source_dir": tmp_path / "input",
            "output_dir": tmp_path / "output",
            "lut_file": lut,
            "backup_dir": tmp_path / "backup",
        },
    )


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "lutbatch.yaml"

    content = {
        'general': {
            'quality_preset': 'professional',
            'parallel_jobs': 3,
            'extensions': ['mp4', 'MOV'],
            'min_file_size_mb': 50,
            'custom_ffmpeg_args': '-tune film -g 48',
        },
        'paths': {
            'source_dir': str(tmp_path / "footage"),
            'output_dir': str(tmp_path / "converted"),
            'lut_file': str(tmp_path / "DJI.cube"),
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file


@pytest.fixture
def make_spec(tmp_path):
    """Factory for TranscodeSpec with tmp_path defaults."""
    def _make(**overrides):
        values = {
            "output_root": tmp_path / "output",
            "lut_file": tmp_path / "test.cube",
            "quality_args": ["-crf", "23", "-preset", "medium"],
            "quality_preset": "standard",
        }
        values.update(overrides)
        return TranscodeSpec(**values)
    return _make

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def test_input_dir(tmp_path):
    """Creates a test input directory."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    return input_dir


@pytest.fixture
def test_output_dir(tmp_path):
    """Creates a test output directory."""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir


@pytest.fixture
def dummy_video_files(test_input_dir):
    """Creates dummy video files in test input directory."""
    files = []

    for i in range(3):
        f = test_input_dir / f"video{i}.mp4"
        f.write_bytes(b"dummy video content " * 100)  # ~2KB
        files.append(f)

    subdir = test_input_dir / "subdir"
    subdir.mkdir()
    f = subdir / "subvideo.mov"
    f.write_bytes(b"dummy video content " * 100)
    files.append(f)

    return files


@pytest.fixture
def fake_ffprobe():
    return FakeFFprobe()


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def fakes():
    """Fake adapter classes, for tests that need custom failing or gated fakes."""
    return SimpleNamespace(FFprobe=FakeFFprobe, FFmpeg=FakeFFmpeg)

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
