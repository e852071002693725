import threading
import time
from datetime import datetime
from typing import Optional
from rich.live import Live
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.progress_bar import ProgressBar
from rich.text import Text
from lutbatch.ui.state import UIState
from lutbatch.domain.models import BatchSummary, JobState


def format_time(seconds: Optional[float]) -> str:
    """Format time: 59s, 01m 01s, 1h 01m."""
    if seconds is None:
        return "--:--"
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60):02d}m {int(seconds % 60):02d}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60):02d}m"


def render_summary(summary: BatchSummary) -> Panel:
    """Final report printed once the batch has drained or been interrupted."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Total files", str(summary.total_candidates))
    table.add_row("Successful", f"[green]{summary.succeeded}[/green]")
    table.add_row("Skipped", f"[yellow]{summary.skipped}[/yellow]")
    table.add_row("Errors", f"[red]{summary.failed}[/red]" if summary.failed else "0")
    table.add_row("Elapsed", format_time(summary.elapsed_seconds))
    if summary.average_job_seconds is not None:
        table.add_row("Average per file", format_time(summary.average_job_seconds))
    if summary.approximate_speedup is not None:
        table.add_row("Parallel speedup", f"~{summary.approximate_speedup:.1f}x (approximate)")

    if summary.interrupted:
        title, style = "INTERRUPTED", "yellow"
    elif summary.failed:
        title, style = "FINISHED WITH ERRORS", "red"
    else:
        title, style = "FINISHED", "green"
    return Panel(table, title=title, border_style=style)


class Dashboard:
    """Live status display refreshed from UIState on a background thread."""

    def __init__(self, state: UIState, max_active_jobs: int = 8, console: Optional[Console] = None):
        self.state = state
        self.max_active_jobs = max_active_jobs
        self.console = console or Console()
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()

    def _generate_status(self) -> Panel:
        with self.state._lock:
            if self.state.interrupt_requested:
                phase = Text("INTERRUPTING", style="bold yellow")
            elif self.state.finished:
                phase = Text("FINISHED", style="bold green")
            elif not self.state.discovery_finished:
                phase = Text("DISCOVERING", style="cyan")
            else:
                phase = Text(self.state.phase.value, style="cyan")

            elapsed = None
            if self.state.processing_start_time:
                elapsed = (datetime.now() - self.state.processing_start_time).total_seconds()

            total = self.state.total_files_found
            done = self.state.done_count
            bar = ProgressBar(total=max(total, 1), completed=min(done, max(total, 1)), width=None)

            grid = Table.grid(padding=(0, 1), expand=True)
            grid.add_column(ratio=1)
            grid.add_column(justify="right")
            grid.add_row(Text(self.state.status_line()), phase)
            bar_row = Table.grid(padding=(0, 1), expand=True)
            bar_row.add_column(ratio=1)
            bar_row.add_column()
            bar_row.add_row(bar, f"{done}/{total} • {format_time(elapsed)} • {self.state.concurrency} slots")

            rows = [grid, bar_row]
            if self.state.interrupted_count:
                rows.append(Text(f"{self.state.interrupted_count} job(s) interrupted", style="yellow"))
            if self.state.last_action:
                rows.append(Text(self.state.last_action, style="dim"))
        return Panel(Group(*rows), title="LUTBATCH", border_style="cyan")

    def _generate_active_jobs_panel(self) -> Panel:
        with self.state._lock:
            jobs = self.state.active_jobs[:self.max_active_jobs]
            lines = [self.state.progress_lines.get(job.id, f"{job.name} | Starting...") for job in jobs]
            extra = len(self.state.active_jobs) - len(jobs)
        if extra > 0:
            lines.append(f"... +{extra} more")
        content = Text("\n".join(lines)) if lines else Text("No active jobs", style="dim")
        return Panel(content, title="ACTIVE JOBS", border_style="cyan")

    def _generate_activity_panel(self) -> Panel:
        table = Table.grid(padding=(0, 1))
        with self.state._lock:
            jobs = list(self.state.recent_jobs)
        for job in jobs:
            if job.state == JobState.SUCCEEDED:
                table.add_row("[green]OK[/green]", job.name, format_time(job.duration_seconds))
            elif job.state == JobState.SKIPPED:
                table.add_row("[yellow]SKIP[/yellow]", job.name, "")
            else:
                reason = job.failure_reason.value if job.failure_reason else ""
                table.add_row("[red]ERR[/red]", job.name, reason)
        return Panel(table, title="ACTIVITY", border_style="cyan")

    def create_display(self) -> RenderableType:
        return Group(self._generate_status(), self._generate_active_jobs_panel(), self._generate_activity_panel())

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            if self._live:
                try:
                    display = self.create_display()
                    with self._ui_lock:
                        self._live.update(display)
                except Exception:
                    pass  # Resilience
            time.sleep(0.5)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final update to show INTERRUPTED/FINISHED state
            try:
                self._live.update(self.create_display())
            except Exception:
                pass
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
