import logging
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.ui.state import UIState
from lutbatch.domain.events import (
    DiscoveryStarted, DiscoveryFinished,
    JobStarted, JobSucceeded, JobSkipped, JobFailed, JobProgressUpdated,
    SchedulerTick, InterruptRequested, ProcessingFinished,
)
from lutbatch.domain.models import FailureReason

logger = logging.getLogger(__name__)


class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryStarted, self.on_discovery_started)
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(JobSucceeded, self.on_job_succeeded)
        self.bus.subscribe(JobSkipped, self.on_job_skipped)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(SchedulerTick, self.on_scheduler_tick)
        self.bus.subscribe(InterruptRequested, self.on_interrupt_request)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def on_discovery_started(self, event: DiscoveryStarted):
        with self.state._lock:
            self.state.discovery_finished = False
            self.state.source_directory = str(event.directory)

    def on_discovery_finished(self, event: DiscoveryFinished):
        logger.debug(f"UI: discovery finished, files_found={event.files_found}")
        with self.state._lock:
            self.state.total_files_found = event.files_found
            self.state.discovery_finished = True

    def on_job_started(self, event: JobStarted):
        self.state.add_active_job(event.job)

    def on_job_progress(self, event: JobProgressUpdated):
        self.state.set_progress_line(event.job, event.line)

    def on_job_succeeded(self, event: JobSucceeded):
        self.state.add_completed_job(event.job)
        self.state.set_last_action(f"Completed: {event.job.name}")

    def on_job_skipped(self, event: JobSkipped):
        self.state.add_skipped_job(event.job)

    def on_job_failed(self, event: JobFailed):
        interrupted = event.job.failure_reason == FailureReason.INTERRUPTED
        self.state.add_failed_job(event.job, interrupted=interrupted)
        self.state.set_last_action(f"Failed: {event.job.name} ({event.error_message})")

    def on_scheduler_tick(self, event: SchedulerTick):
        with self.state._lock:
            self.state.phase = event.phase
            self.state.running_count = event.running_count
            self.state.pending_count = event.pending_count
            self.state.concurrency = event.concurrency

    def on_interrupt_request(self, event: InterruptRequested):
        with self.state._lock:
            self.state.interrupt_requested = True
        self.state.set_last_action("Interrupt - terminating active jobs...")

    def on_processing_finished(self, event: ProcessingFinished):
        with self.state._lock:
            self.state.finished = True
            self.state.summary = event.summary
