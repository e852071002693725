"""Batch run orchestration: pre-flight, housekeeping, discovery, scheduling.

The Orchestrator wires the configured adapters together for one run:
- Verify dependencies and directories before anything is admitted
- Remove stale .tmp outputs left behind by an earlier interrupted run
- Probe the hardware encoders once and freeze a TranscodeSpec
- Discover candidates and hand them to the JobScheduler
- Publish the final BatchSummary on the EventBus
"""

import logging
from pathlib import Path
from typing import List, Optional
from lutbatch.config.models import AppConfig, resolve_concurrency
from lutbatch.domain.errors import BatchInterrupted
from lutbatch.domain.events import DiscoveryFinished, DiscoveryStarted, ProcessingFinished
from lutbatch.domain.models import BatchSummary, SchedulerStatus, TranscodeSpec
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.infrastructure.ffmpeg import FFmpegAdapter, HardwareProfile, quality_args_for
from lutbatch.infrastructure.ffprobe import FFprobeAdapter
from lutbatch.infrastructure.file_scanner import FileScanner
from lutbatch.infrastructure.housekeeping import HousekeepingService
from lutbatch.infrastructure.preflight import PreflightChecker
from lutbatch.pipeline.scheduler import JobScheduler
from lutbatch.pipeline.task import TranscodeTask

EXIT_OK = 0
EXIT_JOB_FAILURES = 1
EXIT_PREFLIGHT_ERROR = 2
EXIT_INTERRUPTED = 130

JOB_LOG_DIR_NAME = "job_logs"


def exit_code_for(summary: BatchSummary) -> int:
    if summary.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_JOB_FAILURES if summary.failed else EXIT_OK


class Orchestrator:
    """Runs one D-Log to Rec.709 batch.

    Args:
        config: AppConfig with general and paths sections.
        event_bus: EventBus receiving discovery, job and summary events.
        ffprobe_adapter: FFprobeAdapter used for duration probing.
        ffmpeg_adapter: FFmpegAdapter used for hardware detection and transcoding.
        file_scanner: Optional FileScanner; built from config when omitted.
        preflight: Optional PreflightChecker; built from config when omitted.
        housekeeping: Optional HousekeepingService.
        check_binaries: Verify ffmpeg/ffprobe are on PATH during pre-flight.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        file_scanner: Optional[FileScanner] = None,
        preflight: Optional[PreflightChecker] = None,
        housekeeping: Optional[HousekeepingService] = None,
        check_binaries: bool = True,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.preflight = preflight or PreflightChecker(config.general.min_free_space_gb)
        self.housekeeping = housekeeping or HousekeepingService()
        self.check_binaries = check_binaries
        self.logger = logging.getLogger(__name__)

        paths = config.paths
        self.source_dir = paths.source_dir.expanduser().resolve()
        self.output_dir = paths.output_dir.expanduser().resolve()
        self.lut_file = paths.lut_file.expanduser().resolve()
        self.backup_dir = paths.backup_dir.expanduser().resolve()

        self.file_scanner = file_scanner or FileScanner(
            extensions=config.general.extensions,
            min_size_mb=config.general.min_file_size_mb,
            max_size_gb=config.general.max_file_size_gb,
            exclude_dirs=[self.output_dir, self.backup_dir],
            verbose=config.general.verbose,
        )
        self.scheduler: Optional[JobScheduler] = None

    def _job_log_dir(self) -> Optional[Path]:
        if not self.config.general.keep_job_logs:
            return None
        if self.config.paths.job_log_dir is not None:
            return self.config.paths.job_log_dir.expanduser().resolve()
        return self.output_dir / JOB_LOG_DIR_NAME

    def build_spec(self, profile: HardwareProfile) -> TranscodeSpec:
        general = self.config.general
        return TranscodeSpec(
            output_root=self.output_dir,
            lut_file=self.lut_file,
            encoder=profile.encoder,
            hwaccel_args=profile.hwaccel_args,
            quality_preset=general.quality_preset,
            quality_args=quality_args_for(profile.encoder, general.quality_preset),
            custom_args=general.custom_ffmpeg_args,
            skip_existing=general.skip_existing,
            organize_by_date=general.organize_by_date,
            date_format=general.date_format,
            preserve_metadata=general.preserve_metadata,
            preserve_timestamps=general.preserve_timestamps,
            add_processing_metadata=general.add_processing_metadata,
            backup_dir=self.backup_dir if general.auto_backup else None,
            job_log_dir=self._job_log_dir(),
            debug=general.debug,
        )

    def discover(self) -> List[Path]:
        self.logger.info(f"Discovery started: {self.source_dir}")
        self.event_bus.publish(DiscoveryStarted(directory=self.source_dir))
        candidates = self.file_scanner.find(self.source_dir)
        self.logger.info(f"Discovery finished: found={len(candidates)}")
        self.event_bus.publish(DiscoveryFinished(files_found=len(candidates)))
        return candidates

    def status(self) -> SchedulerStatus:
        if self.scheduler is None:
            return SchedulerStatus()
        return self.scheduler.status()

    def progress_lines(self) -> List[str]:
        if self.scheduler is None:
            return []
        return self.scheduler.progress_lines()

    def run(self) -> BatchSummary:
        """Runs the batch. PreflightError and BatchInterrupted propagate to the caller."""
        self.preflight.run(self.source_dir, self.output_dir, self.lut_file, check_binaries=self.check_binaries)
        self.housekeeping.cleanup_temp_files(self.output_dir)

        profile = self.ffmpeg_adapter.detect_hardware(self.config.general.force_encoder)
        spec = self.build_spec(profile)
        self.logger.info(
            f"Encoder: {spec.encoder}, quality: {spec.quality_preset}, LUT: {spec.lut_file.name}"
        )

        candidates = self.discover()
        if not candidates:
            self.logger.info("No files to process")

        concurrency = resolve_concurrency(self.config.general.parallel_jobs)
        task = TranscodeTask(spec, self.ffprobe_adapter, self.ffmpeg_adapter, self.event_bus)
        self.scheduler = JobScheduler(task, concurrency, self.event_bus)

        try:
            summary = self.scheduler.run(candidates)
        except BatchInterrupted as e:
            self.event_bus.publish(ProcessingFinished(summary=e.summary))
            raise

        self.event_bus.publish(ProcessingFinished(summary=summary))
        return summary
