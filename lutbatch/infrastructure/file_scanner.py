import logging
import os
from pathlib import Path
from typing import Iterable, List
from lutbatch.domain.errors import SourceDirectoryError

BYTES_PER_MB = 1024 * 1024


class FileScanner:
    """Recursively finds candidate video files below a source directory."""

    def __init__(
        self,
        extensions: Iterable[str],
        min_size_mb: int = 0,
        max_size_gb: int = 0,
        exclude_dirs: Iterable[Path] = (),
        verbose: bool = False,
    ):
        self.extensions = {(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions}
        self.min_size_mb = min_size_mb
        self.max_size_gb = max_size_gb
        self.exclude_dirs = {Path(d).resolve() for d in exclude_dirs}
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def _report_exclusion(self, file_path: Path, reason: str):
        level = logging.INFO if self.verbose else logging.DEBUG
        self.logger.log(level, f"Skipping ({reason}): {file_path.name}")

    def _size_allowed(self, file_path: Path, size_bytes: int) -> bool:
        size_mb = size_bytes // BYTES_PER_MB
        if size_mb < self.min_size_mb:
            self._report_exclusion(file_path, f"too small: {size_mb}MB")
            return False
        if self.max_size_gb > 0 and size_mb > self.max_size_gb * 1024:
            self._report_exclusion(file_path, f"too large: {size_mb // 1024}GB")
            return False
        return True

    def find(self, root_dir: Path) -> List[Path]:
        """Returns absolute candidate paths, deduplicated and sorted by path."""
        root = Path(root_dir).resolve()
        if not root.is_dir():
            raise SourceDirectoryError(f"Source directory does not exist: {root}")
        if not os.access(root, os.R_OK | os.X_OK):
            raise SourceDirectoryError(f"Source directory is not readable: {root}")

        found = set()

        def _on_error(err: OSError):
            # Only the root itself is fatal; unreadable subdirectories are skipped
            if Path(err.filename or "").resolve() == root:
                raise SourceDirectoryError(f"Source directory is not readable: {root}") from err
            self.logger.warning(f"Cannot read directory {err.filename}: {err.strerror}")

        for current, dirs, files in os.walk(root, onerror=_on_error):
            current_path = Path(current)
            dirs[:] = sorted(d for d in dirs if (current_path / d).resolve() not in self.exclude_dirs)

            for file_name in files:
                file_path = current_path / file_name
                if file_path.suffix.lower() not in self.extensions:
                    continue
                try:
                    size_bytes = file_path.stat().st_size
                except OSError:
                    # Vanished or unreadable between listing and stat
                    continue
                if self._size_allowed(file_path, size_bytes):
                    found.add(file_path)

        return sorted(found, key=str)
