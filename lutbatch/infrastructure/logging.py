import logging
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "lutbatch.log"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def resolve_log_file(output_dir: Path, log_path: Optional[Path] = None) -> Path:
    """An explicit log path wins; otherwise the log sits beside the converted files."""
    return Path(log_path) if log_path else output_dir / LOG_FILE_NAME


def setup_logging(output_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """Route every lutbatch record to a single run log.

    Nothing is written to the terminal: while a batch runs the console is
    owned by the live dashboard. Calling this again replaces the previous
    handlers, so each run logs to exactly one file.

    Args:
        output_dir: Root of the converted files; holds lutbatch.log by default.
        debug: Log ffmpeg command lines, probe results and per-job timings.
        log_path: Write the run log here instead.
    """
    log_file = resolve_log_file(output_dir, log_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file)],
        force=True,
    )

    logger = logging.getLogger("lutbatch")
    logger.info(f"Run log: {log_file} (debug {'on' if debug else 'off'})")
    return logger
