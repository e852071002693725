import logging
import os
import shutil
from pathlib import Path
from typing import Iterable
from lutbatch.domain.errors import PreflightError, SourceDirectoryError

BYTES_PER_GB = 1024 ** 3


class PreflightChecker:
    """Directory-level checks that must pass before any job is admitted."""

    def __init__(self, min_free_space_gb: float = 5.0):
        self.min_free_space_gb = min_free_space_gb
        self.logger = logging.getLogger(__name__)

    def check_dependencies(self, binaries: Iterable[str] = ("ffmpeg", "ffprobe")):
        missing = [name for name in binaries if shutil.which(name) is None]
        if missing:
            raise PreflightError(f"Missing required dependency: {', '.join(missing)}")

    def check_source(self, source_dir: Path):
        if not source_dir.is_dir():
            raise SourceDirectoryError(f"Source directory does not exist: {source_dir}")
        if not os.access(source_dir, os.R_OK | os.X_OK):
            raise SourceDirectoryError(f"Source directory is not readable: {source_dir}")

    def check_lut(self, lut_file: Path):
        if not lut_file.is_file():
            raise PreflightError(f"LUT file does not exist: {lut_file}")
        if not os.access(lut_file, os.R_OK):
            raise PreflightError(f"LUT file is not readable: {lut_file}")

    def check_distinct_roots(self, source_dir: Path, output_dir: Path):
        # Outputs keep the input basename, so a shared root would replace the sources
        if output_dir.resolve() == source_dir.resolve():
            raise PreflightError(f"Output directory must differ from the source directory: {output_dir}")

    def ensure_output_dir(self, output_dir: Path):
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreflightError(f"Failed to create output directory {output_dir}: {e}") from e
        if not os.access(output_dir, os.W_OK | os.X_OK):
            raise PreflightError(f"Output directory is not writable: {output_dir}")

    def check_free_space(self, output_dir: Path):
        if self.min_free_space_gb <= 0:
            return
        try:
            usage = shutil.disk_usage(output_dir)
        except OSError as e:
            raise PreflightError(f"Cannot determine free space in {output_dir}: {e}") from e
        available_gb = usage.free / BYTES_PER_GB
        self.logger.info(f"Available disk space: {available_gb:.1f}GB in {output_dir}")
        if available_gb < self.min_free_space_gb:
            raise PreflightError(
                f"Insufficient disk space in {output_dir}: "
                f"{available_gb:.1f}GB available, {self.min_free_space_gb:.1f}GB required"
            )

    def run(self, source_dir: Path, output_dir: Path, lut_file: Path, check_binaries: bool = True):
        if check_binaries:
            self.check_dependencies()
        self.check_source(source_dir)
        self.check_distinct_roots(source_dir, output_dir)
        self.check_lut(lut_file)
        self.ensure_output_dir(output_dir)
        self.check_free_space(output_dir)
