import logging
import os
from pathlib import Path
from typing import List

TEMP_SUFFIX = ".tmp"


class HousekeepingService:
    """Removes stale temp outputs left behind by an interrupted run."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_temp_files(self, directory: Path) -> List[Path]:
        """Recursively removes all .tmp files in the directory."""
        removed: List[Path] = []
        if not directory.is_dir():
            return removed
        for root, dirs, files in os.walk(directory):
            for file in files:
                if file.endswith(TEMP_SUFFIX):
                    path = Path(root) / file
                    try:
                        path.unlink()
                        removed.append(path)
                    except OSError as e:
                        self.logger.warning(f"Cannot remove stale temp file {path}: {e}")
        if removed:
            self.logger.info(f"Cleaned up {len(removed)} temporary file(s) in {directory}")
        return removed
