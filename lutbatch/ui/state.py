import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional
from lutbatch.domain.models import BatchSummary, Job, SchedulerPhase


class UIState:
    """Thread-safe state manager for the dashboard."""

    def __init__(self, activity_feed_max_items: int = 5):
        self._lock = threading.RLock()

        # Counters
        self.completed_count = 0
        self.failed_count = 0
        self.skipped_count = 0
        self.interrupted_count = 0  # Failed jobs interrupted by Ctrl+C / SIGTERM

        # Job lists
        self.active_jobs: List[Job] = []
        self.progress_lines: Dict[int, str] = {}  # job id -> rendered progress line
        self.recent_jobs = deque(maxlen=activity_feed_max_items)

        # Scheduler status (from SchedulerTick)
        self.phase = SchedulerPhase.IDLE
        self.running_count = 0
        self.pending_count = 0
        self.concurrency = 0

        # Global Status
        self.source_directory: Optional[str] = None
        self.discovery_finished = False
        self.total_files_found = 0
        self.interrupt_requested = False
        self.finished = False
        self.summary: Optional[BatchSummary] = None
        self.processing_start_time: Optional[datetime] = None

        self.last_action: str = ""

    @property
    def done_count(self) -> int:
        with self._lock:
            return self.completed_count + self.failed_count + self.skipped_count

    def add_active_job(self, job: Job):
        with self._lock:
            if all(active.id != job.id for active in self.active_jobs):
                self.active_jobs.append(job)
            if self.processing_start_time is None:
                self.processing_start_time = datetime.now()

    def remove_active_job(self, job: Job):
        with self._lock:
            self.active_jobs = [active for active in self.active_jobs if active.id != job.id]
            self.progress_lines.pop(job.id, None)

    def set_progress_line(self, job: Job, line: str):
        with self._lock:
            self.progress_lines[job.id] = line

    def add_completed_job(self, job: Job):
        with self._lock:
            self.completed_count += 1
            self.recent_jobs.appendleft(job)
            self.remove_active_job(job)

    def add_failed_job(self, job: Job, interrupted: bool = False):
        with self._lock:
            self.failed_count += 1
            if interrupted:
                self.interrupted_count += 1
            self.recent_jobs.appendleft(job)
            self.remove_active_job(job)

    def add_skipped_job(self, job: Job):
        with self._lock:
            self.skipped_count += 1
            self.recent_jobs.appendleft(job)
            self.remove_active_job(job)

    def set_last_action(self, action: str):
        with self._lock:
            self.last_action = action

    def status_line(self) -> str:
        """One-line status in the same shape the scheduler reports."""
        with self._lock:
            line = (
                f"Status: {self.done_count}/{self.total_files_found} completed | "
                f"{self.running_count} running | {self.completed_count} successful"
            )
            if self.skipped_count:
                line += f" | {self.skipped_count} skipped"
            if self.failed_count:
                line += f" | {self.failed_count} errors"
            return line
