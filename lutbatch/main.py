import signal
import typer
from pathlib import Path
from typing import Optional
from pydantic import ValidationError
from rich.console import Console
from lutbatch.config.loader import load_config
from lutbatch.config.models import AppConfig, normalize_quality_preset, resolve_concurrency
from lutbatch.domain.errors import BatchInterrupted, PreflightError
from lutbatch.infrastructure.logging import setup_logging
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.infrastructure.ffprobe import FFprobeAdapter
from lutbatch.infrastructure.ffmpeg import FFmpegAdapter
from lutbatch.pipeline.orchestrator import (
    EXIT_INTERRUPTED,
    EXIT_PREFLIGHT_ERROR,
    Orchestrator,
    exit_code_for,
)
from lutbatch.ui.state import UIState
from lutbatch.ui.manager import UIManager
from lutbatch.ui.dashboard import Dashboard, render_summary

DEFAULT_CONFIG_PATH = Path("conf/lutbatch.yaml")

app = typer.Typer(help="lutbatch - batch D-Log to Rec.709 LUT conversion")


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt()


def _load(config_path: Optional[Path]) -> AppConfig:
    if config_path is not None:
        return load_config(config_path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return AppConfig()


def _fail(message: str, code: int = EXIT_PREFLIGHT_ERROR):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


@app.command()
def process(
    source_dir: Optional[Path] = typer.Argument(None, help="Directory with D-Log footage (optional if set in config)"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory for converted files"),
    lut_file: Optional[Path] = typer.Option(None, "--lut", "-l", help="3D LUT (.cube) to apply"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    jobs: Optional[str] = typer.Option(None, "--jobs", "-j", help="Parallel jobs (1-32 or 'auto')"),
    quality: Optional[str] = typer.Option(None, "--quality", "-q", help="draft, standard, high or professional"),
    encoder: Optional[str] = typer.Option(None, "--encoder", help="Force an ffmpeg video encoder"),
    skip_existing: Optional[bool] = typer.Option(
        None, "--skip-existing/--no-skip-existing", help="Skip files whose output already exists"
    ),
    organize_by_date: Optional[bool] = typer.Option(
        None, "--organize-by-date/--no-organize-by-date", help="Sort outputs into date folders"
    ),
    backup: Optional[bool] = typer.Option(None, "--backup/--no-backup", help="Copy originals to the backup directory"),
    keep_job_logs: bool = typer.Option(False, "--keep-job-logs", help="Write one ffmpeg log per job"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    dashboard: bool = typer.Option(True, "--dashboard/--no-dashboard", help="Show the live dashboard"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every skipped file"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Apply a LUT to every matching video below SOURCE_DIR."""
    try:
        config = _load(config_path)
        # Apply CLI overrides
        if source_dir is not None: config.paths.source_dir = source_dir
        if output_dir is not None: config.paths.output_dir = output_dir
        if lut_file is not None: config.paths.lut_file = lut_file
        if log_path is not None: config.paths.log_file = log_path
        if jobs is not None:
            resolve_concurrency(jobs)
            config.general.parallel_jobs = "auto" if jobs.strip().lower() == "auto" else int(jobs)
        if quality is not None: config.general.quality_preset = normalize_quality_preset(quality)
        if encoder is not None: config.general.force_encoder = encoder
        if skip_existing is not None: config.general.skip_existing = skip_existing
        if organize_by_date is not None: config.general.organize_by_date = organize_by_date
        if backup is not None: config.general.auto_backup = backup
        if keep_job_logs: config.general.keep_job_logs = True
        if verbose: config.general.verbose = True
        if debug: config.general.debug = True
    except (FileNotFoundError, ValueError, ValidationError) as e:
        _fail(str(e))

    logger = setup_logging(config.paths.output_dir, debug=config.general.debug, log_path=config.paths.log_file)
    logger.info(
        f"lutbatch started: source={config.paths.source_dir}, output={config.paths.output_dir}, "
        f"lut={config.paths.lut_file}"
    )
    logger.info(
        f"Config: parallel_jobs={config.general.parallel_jobs}, quality={config.general.quality_preset}, "
        f"skip_existing={config.general.skip_existing}, debug={config.general.debug}"
    )

    bus = EventBus()
    ui_state = UIState()
    UIManager(bus, ui_state)
    orchestrator = Orchestrator(
        config=config,
        event_bus=bus,
        ffprobe_adapter=FFprobeAdapter(),
        ffmpeg_adapter=FFmpegAdapter(),
    )
    console = Console()

    previous_handler = signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)
    try:
        if dashboard:
            with Dashboard(ui_state, console=console):
                summary = orchestrator.run()
        else:
            summary = orchestrator.run()
    except PreflightError as e:
        logger.error(f"Pre-flight check failed: {e}")
        _fail(str(e))
    except BatchInterrupted as e:
        console.print(render_summary(e.summary))
        typer.secho("Processing stopped by user", fg=typer.colors.YELLOW)
        raise typer.Exit(code=EXIT_INTERRUPTED)
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    console.print(render_summary(summary))
    raise typer.Exit(code=exit_code_for(summary))


if __name__ == "__main__":
    app()
