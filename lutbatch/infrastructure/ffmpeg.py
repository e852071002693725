import logging
import platform
import queue
import shlex
import subprocess
import threading
import time
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from lutbatch.domain.errors import EngineFailure, TranscodeInterrupted
from lutbatch.domain.models import Job, TranscodeSpec

DIAGNOSTIC_LINES = 50
TERMINATE_GRACE_SECONDS = 3.0
PROCESSED_BY = "lutbatch"

SOFTWARE_ENCODER = "libx264"

# preset -> encoder args; VideoToolbox takes a quality scale instead of CRF
_VIDEOTOOLBOX_QUALITY = {
    "draft": ["-q:v", "80", "-realtime", "1"],
    "standard": ["-q:v", "65"],
    "high": ["-q:v", "50"],
    "professional": ["-q:v", "35"],
}
_CRF_QUALITY = {
    "draft": ["-crf", "28", "-preset", "ultrafast"],
    "standard": ["-crf", "23", "-preset", "medium"],
    "high": ["-crf", "20", "-preset", "slow"],
    "professional": ["-crf", "18", "-preset", "veryslow"],
}


class HardwareProfile(BaseModel):
    """Encoder selection made once per run from `ffmpeg -encoders`."""

    model_config = ConfigDict(frozen=True)

    name: str = "software"
    encoder: str = SOFTWARE_ENCODER
    hwaccel_args: List[str] = Field(default_factory=list)

    @property
    def accelerated(self) -> bool:
        return self.name != "software"


def quality_args_for(encoder: str, preset: str) -> List[str]:
    table = _VIDEOTOOLBOX_QUALITY if encoder == "h264_videotoolbox" else _CRF_QUALITY
    return list(table.get(preset, table["standard"]))


def lut_filter(lut_file: Path) -> str:
    """lut3d filter expression; single quotes in the path are closed, escaped and reopened."""
    escaped = str(lut_file).replace("'", "'\\''")
    return f"lut3d=file='{escaped}'"


class FFmpegAdapter:
    """Wrapper around ffmpeg for LUT transcoding."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def detect_hardware(self, force_encoder: str = "auto") -> HardwareProfile:
        """Probes the available hardware encoders once at startup."""
        system = platform.system()
        try:
            result = subprocess.run(
                [self.binary, "-hide_banner", "-encoders"],
                capture_output=True, text=True, timeout=30,
            )
            encoders = result.stdout if result.returncode == 0 else ""
        except (OSError, subprocess.TimeoutExpired) as e:
            self.logger.warning(f"Cannot list ffmpeg encoders: {e}")
            encoders = ""

        if system == "Darwin" and "h264_videotoolbox" in encoders:
            profile = HardwareProfile(
                name="videotoolbox", encoder="h264_videotoolbox", hwaccel_args=["-hwaccel", "videotoolbox"]
            )
        elif system == "Linux" and "h264_vaapi" in encoders:
            profile = HardwareProfile(name="vaapi", encoder="h264_vaapi", hwaccel_args=["-hwaccel", "vaapi"])
        elif system == "Linux" and "h264_nvenc" in encoders:
            profile = HardwareProfile(name="nvenc", encoder="h264_nvenc")
        else:
            profile = HardwareProfile()

        if profile.accelerated:
            self.logger.info(f"Hardware acceleration ({profile.name}) available")
        else:
            self.logger.warning("Hardware acceleration not available, falling back to software encoding")

        if force_encoder and force_encoder != "auto":
            self.logger.info(f"Using forced encoder: {force_encoder}")
            profile = profile.model_copy(update={"encoder": force_encoder})
        return profile

    def build_command(self, job: Job, spec: TranscodeSpec) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-progress", "pipe:1",
            "-nostdin",
        ]
        cmd.extend(spec.hwaccel_args)
        cmd.extend([
            "-i", str(job.input_path),
            "-vf", lut_filter(spec.lut_file),
            "-c:v", spec.encoder,
        ])
        cmd.extend(spec.quality_args)
        cmd.extend(["-c:a", "copy"])

        if spec.preserve_metadata:
            cmd.extend(["-map_metadata", "0"])

        # Pre-tokenized by the config layer, appended verbatim
        cmd.extend(spec.custom_args)

        if spec.add_processing_metadata:
            cmd.extend([
                "-metadata", f"processed_by={PROCESSED_BY}",
                "-metadata", f"processing_date={datetime.now().isoformat(timespec='seconds')}",
                "-metadata", f"quality_preset={spec.quality_preset}",
            ])

        # .tmp extension says nothing about the container, so force mp4
        cmd.extend([
            "-f", "mp4",
            "-movflags", "+faststart",
            "-y", str(job.temp_path),
        ])
        return cmd

    def _stop(self, process: subprocess.Popen, job: Job):
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"{job.label}: ffmpeg did not exit after terminate, killing")
            process.kill()
            process.wait()

    def transcode(
        self,
        job: Job,
        spec: TranscodeSpec,
        on_progress_line: Optional[Callable[[str], None]] = None,
        shutdown_event: Optional[threading.Event] = None,
    ) -> str:
        """Runs ffmpeg into the job's temp file.

        Returns the captured diagnostic text on success. Raises EngineFailure on
        a non-zero exit and TranscodeInterrupted when shutdown_event is set.
        The temp file is left for the caller to publish or remove.
        """
        cmd = self.build_command(job, spec)
        start_time = time.monotonic()
        if spec.debug:
            self.logger.debug(f"FFMPEG_CMD: {job.label}: {shlex.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                bufsize=1,
            )
        except OSError as e:
            raise EngineFailure(f"Cannot start ffmpeg: {e}", diagnostic=str(e)) from e

        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()
        diagnostic: deque = deque(maxlen=DIAGNOSTIC_LINES)

        def _read_progress():
            if process.stdout:
                for line in process.stdout:
                    output_queue.put(line)
            output_queue.put(None)

        def _read_diagnostic():
            if process.stderr:
                for line in process.stderr:
                    diagnostic.append(line.rstrip())

        progress_reader = threading.Thread(target=_read_progress, daemon=True)
        diagnostic_reader = threading.Thread(target=_read_diagnostic, daemon=True)
        progress_reader.start()
        diagnostic_reader.start()

        try:
            while True:
                if shutdown_event is not None and shutdown_event.is_set():
                    self.logger.info(f"FFMPEG_INTERRUPTED: {job.label} (shutdown signal)")
                    self._stop(process, job)
                    raise TranscodeInterrupted(f"{job.label}: interrupted")

                try:
                    line = output_queue.get(timeout=0.1)
                except queue.Empty:
                    if process.poll() is not None and not progress_reader.is_alive():
                        break
                    continue

                if line is None:
                    break
                if on_progress_line is not None:
                    on_progress_line(line)

            process.wait()
        except KeyboardInterrupt:
            self.logger.info(f"FFMPEG_INTERRUPTED: {job.label} (KeyboardInterrupt)")
            self._stop(process, job)
            raise

        diagnostic_reader.join(timeout=1.0)
        diagnostic_text = "\n".join(diagnostic)

        if spec.debug:
            elapsed = time.monotonic() - start_time
            self.logger.debug(f"FFMPEG_END: {job.label} code={process.returncode} elapsed={elapsed:.2f}s")

        if process.returncode != 0:
            raise EngineFailure(
                f"ffmpeg exited with code {process.returncode}",
                returncode=process.returncode,
                diagnostic=diagnostic_text,
            )
        return diagnostic_text
