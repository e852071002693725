"""Bounded-concurrency job scheduler.

One coordinator thread (the caller of `run`) owns the pending queue, the
running set, job state transitions and the result counts. Worker threads only
execute `TranscodeTask.run` and hand a TaskOutcome back through their future.

With a concurrency of 1 every task runs inline in the coordinator thread, in
candidate order, so Ctrl+C reaches ffmpeg's wait loop directly.
"""

import concurrent.futures
import logging
import threading
import time
from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Optional, Sequence
from lutbatch.domain.errors import BatchInterrupted
from lutbatch.domain.events import (
    InterruptRequested,
    JobFailed,
    JobSkipped,
    JobStarted,
    JobSucceeded,
    SchedulerTick,
)
from lutbatch.domain.models import (
    BatchSummary,
    FailureReason,
    Job,
    JobState,
    SchedulerPhase,
    SchedulerStatus,
    TaskOutcome,
)
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.pipeline.results import ResultAggregator
from lutbatch.pipeline.task import TranscodeTask


class JobScheduler:
    def __init__(
        self,
        task: TranscodeTask,
        concurrency: int,
        event_bus: Optional[EventBus] = None,
        poll_interval: float = 0.5,
        drain_interval: float = 1.0,
        grace_timeout: float = 10.0,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.task = task
        self.concurrency = concurrency
        self.event_bus = event_bus or EventBus()
        self.poll_interval = poll_interval
        self.drain_interval = drain_interval
        self.grace_timeout = grace_timeout
        self.logger = logging.getLogger(__name__)

        self.jobs: List[Job] = []
        self._pending: Deque[Job] = deque()
        self._running: Dict[concurrent.futures.Future, Job] = {}
        self._current: Optional[Job] = None  # sequential path
        self._conflicts: Dict[int, Job] = {}  # job id -> job that owns the output path
        self._phase = SchedulerPhase.IDLE
        self._aggregator = ResultAggregator()
        self._shutdown_event = threading.Event()
        self._lock = threading.Lock()

    # Status surface (safe to call from any thread)

    def status(self) -> SchedulerStatus:
        summary = self._aggregator.snapshot()
        with self._lock:
            running = len(self._running) + (1 if self._current is not None else 0)
            phase = self._phase
        return SchedulerStatus(
            phase=phase,
            total_candidates=summary.total_candidates,
            running_count=running,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
        )

    def progress_lines(self) -> List[str]:
        with self._lock:
            running = list(self._running.values())
            if self._current is not None:
                running.append(self._current)
        lines = []
        for job in sorted(running, key=lambda j: j.id):
            line = self.task.progress_line(job)
            lines.append(line if line else f"{job.name} | Starting...")
        return lines

    # Coordinator internals

    def _set_phase(self, phase: SchedulerPhase):
        with self._lock:
            self._phase = phase

    def _create_jobs(self, candidates: Sequence[Path]):
        owners: Dict[Path, Job] = {}
        for index, path in enumerate(candidates, start=1):
            job = self.task.create_job(index, path)
            owner = owners.get(job.output_path)
            if owner is not None:
                self._conflicts[job.id] = owner
            else:
                owners[job.output_path] = job
            self.jobs.append(job)
        self._pending = deque(self.jobs)

    def _publish_tick(self):
        with self._lock:
            phase = self._phase
            running = len(self._running) + (1 if self._current is not None else 0)
        self.event_bus.publish(SchedulerTick(
            phase=phase,
            running_count=running,
            pending_count=len(self._pending),
            concurrency=self.concurrency,
        ))

    def _start(self, job: Job):
        job.transition(JobState.RUNNING)
        self.logger.info(f"{job.label}: started")
        self.event_bus.publish(JobStarted(job=job))

    def _finish(self, job: Job, outcome: TaskOutcome):
        job.transition(outcome.state)
        job.duration_seconds = outcome.duration_seconds
        if outcome.state == JobState.FAILED:
            job.failure_reason = outcome.reason or FailureReason.INTERNAL_ERROR
            job.failure_detail = outcome.detail
        self._aggregator.record(outcome.state, outcome.duration_seconds)

        if outcome.state == JobState.SUCCEEDED:
            self.event_bus.publish(JobSucceeded(job=job))
        elif outcome.state == JobState.SKIPPED:
            self.event_bus.publish(JobSkipped(job=job))
        else:
            self.logger.error(f"{job.label}: failed ({job.failure_reason.value})")
            self.event_bus.publish(JobFailed(job=job, error_message=self._failure_message(job)))

    @staticmethod
    def _failure_message(job: Job) -> str:
        detail = (job.failure_detail or "").strip()
        if not detail:
            return job.failure_reason.value
        # Last diagnostic line is usually the one that names the problem
        return f"{job.failure_reason.value}: {detail.splitlines()[-1]}"

    def _conflict_outcome(self, job: Job) -> Optional[TaskOutcome]:
        owner = self._conflicts.get(job.id)
        if owner is None:
            return None
        self.logger.error(f"{job.label}: output {job.output_path} already claimed by {owner.label}")
        return TaskOutcome(
            state=JobState.FAILED,
            reason=FailureReason.OUTPUT_CONFLICT,
            detail=f"Output path {job.output_path} is also the target of {owner.label}",
            duration_seconds=0.0,
        )

    def _internal_error(self, job: Job, error: Exception) -> TaskOutcome:
        self.logger.exception(f"{job.label}: unexpected error: {error}")
        return TaskOutcome(state=JobState.FAILED, reason=FailureReason.INTERNAL_ERROR, detail=str(error))

    def _remove_temp(self, job: Job):
        try:
            job.temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"{job.label}: cannot remove temp file {job.temp_path}: {e}")

    def _mark_interrupted(self, job: Job):
        if job.state.is_terminal:
            return
        self._remove_temp(job)
        self._finish(job, TaskOutcome(
            state=JobState.FAILED,
            reason=FailureReason.INTERRUPTED,
            detail="Interrupted before completion",
        ))

    # Execution paths
    #
    # A started job leaves `_pending` only once `_current` or `_running` holds
    # it, and leaves `_running` only after `_finish` has recorded it.

    def _run_sequential(self):
        while self._pending:
            job = self._pending[0]
            self._start(job)
            conflict = self._conflict_outcome(job)
            if conflict is not None:
                self._finish(job, conflict)
                self._pending.popleft()
                continue

            with self._lock:
                self._current = job
                self._pending.popleft()
            self._set_phase(SchedulerPhase.ADMITTING if self._pending else SchedulerPhase.DRAINING)
            self._publish_tick()
            try:
                outcome = self.task.run(job, self._shutdown_event)
            except Exception as e:
                outcome = self._internal_error(job, e)
            self._finish(job, outcome)
            with self._lock:
                self._current = None

    def _admit(self, executor: concurrent.futures.Executor):
        while self._pending and len(self._running) < self.concurrency:
            job = self._pending[0]
            self._start(job)
            conflict = self._conflict_outcome(job)
            if conflict is not None:
                self._finish(job, conflict)
                self._pending.popleft()
                continue
            future = executor.submit(self.task.run, job, self._shutdown_event)
            with self._lock:
                self._running[future] = job
                self._pending.popleft()

    def _collect(self, future: concurrent.futures.Future):
        job = self._running[future]
        if not job.state.is_terminal:
            try:
                outcome = future.result()
            except Exception as e:
                outcome = self._internal_error(job, e)
            self._finish(job, outcome)
        with self._lock:
            self._running.pop(future, None)

    def _run_threaded(self, executor: concurrent.futures.ThreadPoolExecutor):
        while True:
            self._admit(executor)
            self._set_phase(SchedulerPhase.ADMITTING if self._pending else SchedulerPhase.DRAINING)
            self._publish_tick()
            if not self._running:
                break

            interval = self.poll_interval if self._pending else self.drain_interval
            done, _ = concurrent.futures.wait(
                set(self._running),
                timeout=interval,
                return_when=concurrent.futures.FIRST_COMPLETED,
            )
            for future in done:
                self._collect(future)

    def _handle_interrupt(self, executor: Optional[concurrent.futures.ThreadPoolExecutor]):
        self.logger.info("Interrupt received - stopping admission and terminating active jobs...")
        self._shutdown_event.set()
        self.event_bus.publish(InterruptRequested())

        if self._current is not None:
            job = self._current
            with self._lock:
                self._current = None
            self._mark_interrupted(job)
        if self._pending and self._pending[0].state == JobState.RUNNING:
            # Started but not yet handed to a slot
            self._mark_interrupted(self._pending.popleft())

        if executor is not None:
            for future in list(self._running):
                future.cancel()

            self.logger.info(f"Waiting for active ffmpeg processes to terminate (max {self.grace_timeout:.0f}s)...")
            deadline = time.monotonic() + self.grace_timeout
            while True:
                unfinished = [f for f in self._running if not f.done()]
                if not unfinished:
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                concurrent.futures.wait(
                    unfinished,
                    timeout=min(0.2, remaining),
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )

            for future in list(self._running):
                if future.done() and not future.cancelled():
                    self._collect(future)
            for future in list(self._running):
                self._mark_interrupted(self._running[future])
                with self._lock:
                    self._running.pop(future, None)

            executor.shutdown(wait=False, cancel_futures=True)

        self._set_phase(SchedulerPhase.INTERRUPTED)
        self._aggregator.finish(interrupted=True)
        self.logger.info("Shutdown complete")

    def run(self, candidates: Sequence[Path]) -> BatchSummary:
        """Runs every candidate to a terminal state and returns the batch summary.

        Raises BatchInterrupted, carrying the partial summary, when the
        coordinator receives KeyboardInterrupt.
        """
        self._create_jobs(candidates)
        self._aggregator = ResultAggregator(total_candidates=len(self.jobs))
        self._aggregator.start()
        self._set_phase(SchedulerPhase.ADMITTING)
        self.logger.info(f"Scheduling {len(self.jobs)} job(s) with concurrency {self.concurrency}")

        executor = None
        try:
            if self.concurrency == 1:
                self._run_sequential()
            else:
                executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.concurrency, thread_name_prefix="lutbatch-job"
                )
                self._run_threaded(executor)
                executor.shutdown(wait=True)
        except KeyboardInterrupt:
            self._handle_interrupt(executor)
            raise BatchInterrupted(self._aggregator.snapshot())

        self._set_phase(SchedulerPhase.DONE)
        self._aggregator.finish()
        summary = self._aggregator.snapshot()
        self.logger.info(
            f"All jobs finished: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary
