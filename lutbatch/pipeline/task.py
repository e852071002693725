import logging
import os
import shutil
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from lutbatch.domain.errors import EngineFailure, TranscodeInterrupted, UnreadableMedia
from lutbatch.domain.events import JobProgressUpdated
from lutbatch.domain.models import FailureReason, Job, JobState, TaskOutcome, TranscodeSpec
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.infrastructure.ffmpeg import FFmpegAdapter
from lutbatch.infrastructure.ffprobe import FFprobeAdapter
from lutbatch.pipeline.progress import ProgressMonitor


class TranscodeTask:
    """Runs one job end to end: skip check, probe, ffmpeg, atomic publish.

    The task never touches the job's lifecycle state; it only replaces
    `job.progress` while running and returns a TaskOutcome for the scheduler
    to classify.
    """

    def __init__(
        self,
        spec: TranscodeSpec,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.spec = spec
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.event_bus = event_bus
        self._clock = clock
        self.logger = logging.getLogger(__name__)
        self._monitors = {}  # job id -> ProgressMonitor
        self._monitors_lock = threading.Lock()

    def date_bucket(self, input_path: Path) -> str:
        try:
            stamp = datetime.fromtimestamp(input_path.stat().st_mtime)
        except OSError:
            stamp = datetime.now()
        return stamp.strftime(self.spec.date_format)

    def output_path_for(self, input_path: Path) -> Path:
        output_dir = self.spec.output_root
        if self.spec.organize_by_date:
            output_dir = output_dir / self.date_bucket(input_path)
        return output_dir / input_path.name

    def create_job(self, job_id: int, input_path: Path) -> Job:
        return Job(id=job_id, input_path=input_path, output_path=self.output_path_for(input_path))

    def progress_line(self, job: Job) -> Optional[str]:
        with self._monitors_lock:
            monitor = self._monitors.get(job.id)
        return monitor.render_line(job.name) if monitor else None

    def _remove_temp(self, job: Job):
        try:
            job.temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"{job.label}: cannot remove temp file {job.temp_path}: {e}")

    def _backup(self, job: Job):
        backup_path = self.spec.backup_dir / job.input_path.name
        if backup_path.exists():
            return
        try:
            backup_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(job.input_path, backup_path)
            self.logger.info(f"{job.label}: backup created at {backup_path}")
        except OSError as e:
            self.logger.warning(f"{job.label}: failed to create backup: {e}")

    def _write_job_log(self, job: Job, status: str, diagnostic: str):
        if self.spec.job_log_dir is None:
            return
        log_path = self.spec.job_log_dir / f"job_{job.id}_{job.input_path.stem}.log"
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.write_text(f"{status}: {job.name}\n{diagnostic}\n")
        except OSError as e:
            self.logger.warning(f"{job.label}: cannot write job log {log_path}: {e}")

    def _preserve_timestamps(self, job: Job):
        try:
            st = job.input_path.stat()
            os.utime(job.output_path, (st.st_atime, st.st_mtime))
        except OSError as e:
            self.logger.warning(f"{job.label}: cannot copy timestamps: {e}")

    def _failed(self, job: Job, reason: FailureReason, detail: str, started: float) -> TaskOutcome:
        return TaskOutcome(
            state=JobState.FAILED,
            reason=reason,
            detail=detail,
            duration_seconds=self._clock() - started,
        )

    def run(self, job: Job, shutdown_event: Optional[threading.Event] = None) -> TaskOutcome:
        started = self._clock()

        if self.spec.skip_existing and job.output_path.exists():
            self.logger.info(f"{job.label}: skipping (already exists)")
            return TaskOutcome(state=JobState.SKIPPED, duration_seconds=self._clock() - started)

        try:
            duration = self.ffprobe_adapter.get_duration(job.input_path)
        except UnreadableMedia as e:
            self.logger.error(f"{job.label}: cannot read video file: {e}")
            return self._failed(job, FailureReason.UNREADABLE_MEDIA, str(e), started)

        try:
            job.output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"{job.label}: cannot create {job.output_path.parent}: {e}")
            return self._failed(job, FailureReason.IO_ERROR, str(e), started)

        if self.spec.backup_dir is not None:
            self._backup(job)

        monitor = ProgressMonitor(duration, clock=self._clock)
        with self._monitors_lock:
            self._monitors[job.id] = monitor

        def _on_progress_line(line: str):
            if not monitor.feed(line):
                return
            snapshot = monitor.snapshot()
            job.progress = snapshot
            if self.event_bus is not None:
                self.event_bus.publish(
                    JobProgressUpdated(job=job, progress=snapshot, line=monitor.render_line(job.name))
                )

        self.logger.info(
            f"{job.label}: processing, duration {int(duration)}s "
            f"(quality: {self.spec.quality_preset}, encoder: {self.spec.encoder})"
        )

        try:
            diagnostic = self.ffmpeg_adapter.transcode(
                job, self.spec, on_progress_line=_on_progress_line, shutdown_event=shutdown_event
            )
            if not job.temp_path.exists():
                raise EngineFailure("ffmpeg produced no output file", returncode=0, diagnostic=diagnostic)
            # Sole publication point: the final name only ever holds a complete file
            os.replace(job.temp_path, job.output_path)
        except EngineFailure as e:
            self._remove_temp(job)
            detail = e.diagnostic or str(e)
            self.logger.error(f"{job.label}: error processing ({e}): {detail}")
            self._write_job_log(job, "FAILED", detail)
            return self._failed(job, FailureReason.ENGINE_FAILURE, detail, started)
        except TranscodeInterrupted as e:
            self._remove_temp(job)
            return self._failed(job, FailureReason.INTERRUPTED, str(e), started)
        except OSError as e:
            self._remove_temp(job)
            self.logger.error(f"{job.label}: cannot publish output: {e}")
            return self._failed(job, FailureReason.IO_ERROR, str(e), started)
        except KeyboardInterrupt:
            self._remove_temp(job)
            raise
        finally:
            with self._monitors_lock:
                self._monitors.pop(job.id, None)

        self._write_job_log(job, "COMPLETED", diagnostic)

        if self.spec.preserve_timestamps:
            self._preserve_timestamps(job)

        elapsed = self._clock() - started
        self.logger.info(f"{job.label}: completed in {elapsed:.1f}s")
        return TaskOutcome(state=JobState.SUCCEEDED, duration_seconds=elapsed)
