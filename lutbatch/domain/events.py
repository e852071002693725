"""Domain events for the transcode pipeline.

Events flow through the EventBus and decouple the scheduler from the status
surface (UI state, dashboard, tests observing ticks).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from pydantic import BaseModel
from .models import Job, ProgressSnapshot, SchedulerPhase, BatchSummary


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a single job."""

    job: Job


class JobStarted(JobEvent):
    """Emitted when the scheduler admits a job."""

    pass


class JobProgressUpdated(JobEvent):
    """Emitted by a running task whenever ffmpeg reports a new media time."""

    progress: ProgressSnapshot
    line: str


class JobSucceeded(JobEvent):
    """Emitted after the temp file has been renamed into place."""

    pass


class JobSkipped(JobEvent):
    """Emitted when the output already exists and skip-existing is on."""

    pass


class JobFailed(JobEvent):
    error_message: str


class DiscoveryStarted(Event):
    directory: Path


class DiscoveryFinished(Event):
    """Emitted once the candidate list is final."""

    files_found: int


class SchedulerTick(Event):
    """Emitted on every polling tick after free slots have been filled."""

    phase: SchedulerPhase
    running_count: int
    pending_count: int
    concurrency: int


class InterruptRequested(Event):
    """Emitted when an interrupt signal reaches the coordinator."""

    pass


class ProcessingFinished(Event):
    summary: BatchSummary
