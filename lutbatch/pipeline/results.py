import threading
import time
from typing import Callable, List, Optional
from lutbatch.domain.models import BatchSummary, JobState


class ResultAggregator:
    """Counts terminal jobs for one batch run.

    The scheduler's coordinator is the only writer; the lock only keeps
    snapshots taken from the status thread consistent.
    """

    def __init__(self, total_candidates: int = 0, clock: Callable[[], float] = time.monotonic):
        self.total_candidates = total_candidates
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0
        self._job_durations: List[float] = []
        self._clock = clock
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None
        self._interrupted = False
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            self._started_at = self._clock()
            self._finished_at = None

    def finish(self, interrupted: bool = False):
        with self._lock:
            self._finished_at = self._clock()
            self._interrupted = interrupted

    def record(self, state: JobState, duration_seconds: Optional[float] = None):
        with self._lock:
            if state == JobState.SUCCEEDED:
                self.succeeded += 1
                if duration_seconds is not None:
                    self._job_durations.append(duration_seconds)
            elif state == JobState.FAILED:
                self.failed += 1
            elif state == JobState.SKIPPED:
                self.skipped += 1
            else:
                raise ValueError(f"Cannot record non-terminal state {state.value}")

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else self._clock()
        return max(0.0, end - self._started_at)

    def snapshot(self) -> BatchSummary:
        with self._lock:
            elapsed = self._elapsed()
            average = (
                sum(self._job_durations) / len(self._job_durations)
                if self._job_durations else None
            )
            speedup = None
            if average is not None and elapsed > 0:
                speedup = (self.succeeded * average) / elapsed
            return BatchSummary(
                total_candidates=self.total_candidates,
                succeeded=self.succeeded,
                failed=self.failed,
                skipped=self.skipped,
                elapsed_seconds=elapsed,
                average_job_seconds=average,
                approximate_speedup=speedup,
                interrupted=self._interrupted,
            )
