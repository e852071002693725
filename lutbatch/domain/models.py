from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidTransition


class JobState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.SKIPPED})

_ALLOWED_TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING},
    JobState.RUNNING: set(TERMINAL_STATES),
    JobState.SUCCEEDED: set(),
    JobState.FAILED: set(),
    JobState.SKIPPED: set(),
}


class FailureReason(str, Enum):
    UNREADABLE_MEDIA = "UnreadableMedia"
    ENGINE_FAILURE = "EngineFailure"
    OUTPUT_CONFLICT = "OutputConflict"
    IO_ERROR = "IOError"
    INTERRUPTED = "Interrupted"
    INTERNAL_ERROR = "InternalError"


class SchedulerPhase(str, Enum):
    IDLE = "IDLE"
    ADMITTING = "ADMITTING"
    DRAINING = "DRAINING"
    DONE = "DONE"
    INTERRUPTED = "INTERRUPTED"


class ProgressSnapshot(BaseModel):
    elapsed_media_seconds: int = 0
    total_media_seconds: int = 0
    percent: Optional[int] = None
    speed: Optional[float] = None
    eta_seconds: Optional[int] = None


class TranscodeSpec(BaseModel):
    """Per-run transcode settings, resolved once and shared by every job."""

    model_config = ConfigDict(frozen=True)

    output_root: Path
    lut_file: Path
    encoder: str = "libx264"
    hwaccel_args: List[str] = Field(default_factory=list)
    quality_preset: str = "high"
    quality_args: List[str] = Field(default_factory=list)
    custom_args: List[str] = Field(default_factory=list)
    skip_existing: bool = True
    organize_by_date: bool = False
    date_format: str = "%Y-%m-%d"
    preserve_metadata: bool = True
    preserve_timestamps: bool = True
    add_processing_metadata: bool = False
    backup_dir: Optional[Path] = None
    job_log_dir: Optional[Path] = None
    debug: bool = False


class Job(BaseModel):
    id: int
    input_path: Path
    output_path: Path
    state: JobState = JobState.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    progress: ProgressSnapshot = Field(default_factory=ProgressSnapshot)
    failure_reason: Optional[FailureReason] = None
    failure_detail: Optional[str] = None
    duration_seconds: Optional[float] = None

    @property
    def name(self) -> str:
        return self.input_path.name

    @property
    def label(self) -> str:
        """Prefix used to attribute interleaved log lines to this job."""
        return f"#{self.id} {self.name}"

    @property
    def temp_path(self) -> Path:
        return self.output_path.with_name(self.output_path.name + ".tmp")

    def transition(self, new_state: JobState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.label}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        if new_state == JobState.RUNNING:
            self.started_at = datetime.now()
        elif new_state.is_terminal:
            self.finished_at = datetime.now()


class TaskOutcome(BaseModel):
    """What a transcode task hands back to the scheduler."""

    state: JobState
    reason: Optional[FailureReason] = None
    detail: Optional[str] = None
    duration_seconds: Optional[float] = None


class SchedulerStatus(BaseModel):
    phase: SchedulerPhase = SchedulerPhase.IDLE
    total_candidates: int = 0
    running_count: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def status_line(self) -> str:
        line = (
            f"Status: {self.completed}/{self.total_candidates} completed | "
            f"{self.running_count} running | {self.succeeded} successful"
        )
        if self.skipped:
            line += f" | {self.skipped} skipped"
        if self.failed:
            line += f" | {self.failed} errors"
        return line


class BatchSummary(BaseModel):
    total_candidates: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    elapsed_seconds: float = 0.0
    average_job_seconds: Optional[float] = None
    # succeeded * average job time / wall clock; a rough figure only
    approximate_speedup: Optional[float] = None
    interrupted: bool = False

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed + self.skipped
