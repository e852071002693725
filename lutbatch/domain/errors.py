from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BatchSummary


class UnreadableMedia(RuntimeError):
    """ffprobe could not report a numeric duration for the file."""


class EngineFailure(RuntimeError):
    """ffmpeg exited non-zero (or produced no output)."""

    def __init__(self, message: str, returncode: Optional[int] = None, diagnostic: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.diagnostic = diagnostic


class TranscodeInterrupted(RuntimeError):
    """ffmpeg was terminated because the batch is shutting down."""


class PreflightError(OSError):
    """Fatal condition detected before any job is admitted."""


class SourceDirectoryError(PreflightError):
    """Source directory is missing or unreadable."""


class InvalidTransition(ValueError):
    """Attempted to move a job backwards through its lifecycle."""


class BatchInterrupted(Exception):
    """Raised by the scheduler after an interrupt has been fully handled."""

    def __init__(self, summary: "BatchSummary"):
        super().__init__("Batch interrupted")
        self.summary = summary
