"""
Rich Live displays for the download queue and for the playback session.
"""

import asyncio
import logging
from datetime import datetime

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from hifi_cli.core.player import PlaybackSession, PlaybackState
from hifi_cli.core.queue import DownloadQueue
from hifi_cli.models.job import DownloadJob, JobStatus
from hifi_cli.utils.formatting import format_eta, format_track_duration

log = logging.getLogger("hifi_cli")

MAX_FINISHED_ROWS = 6


class QueueDisplay:
    """
    Mirrors a DownloadQueue in a live layout: a header with bucket counts,
    one progress bar per active job, and the most recently finished jobs.
    """

    def __init__(self, console: Console, queue: DownloadQueue):
        self.console = console
        self.queue = queue

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=20),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TextColumn("{task.fields[phase]}"),
            TextColumn("[cyan]{task.fields[eta]}"),
            console=console,
            transient=False,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._tasks: dict[str, TaskID] = {}
        self._start_time = datetime.now()

        queue.subscribe(self.on_job_changed)

    @staticmethod
    def _describe(job: DownloadJob) -> str:
        description = job.filename
        if len(description) > 50:
            description = description[:47] + "..."
        return description

    def on_job_changed(self, job: DownloadJob):
        task_id = self._tasks.get(job.id)

        # Removed jobs are reported once more so their row can go
        if job.status.is_active and self.queue.get(job.id) is job:
            if task_id is None:
                task_id = self.progress.add_task(
                    self._describe(job), total=100, phase="", eta=""
                )
                self._tasks[job.id] = task_id
            if job.status is JobStatus.CONVERTING:
                # ffmpeg reports no progress; show a pulsing bar
                self.progress.reset(
                    task_id, start=False, phase="[magenta]converting", eta=""
                )
            else:
                self.progress.update(
                    task_id,
                    completed=job.progress,
                    phase="[blue]downloading",
                    eta=format_eta(self.queue.estimated_seconds(job.id)),
                )
        elif task_id is not None:
            self.progress.remove_task(task_id)
            del self._tasks[job.id]

        self._update_display()

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="progress", ratio=1),
            Layout(name="finished", size=MAX_FINISHED_ROWS + 2),
        )
        return layout

    def _generate_header(self) -> Panel:
        elapsed = int((datetime.now() - self._start_time).total_seconds())
        header_text = Text()
        header_text.append("🎵 hifi-cli ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(f"{elapsed // 60:02d}:{elapsed % 60:02d}", style="yellow")
        header_text.append(" │ ", style="dim")
        header_text.append(f"Active {len(self.queue.active)}", style="cyan")
        header_text.append("  ")
        header_text.append(f"Done {len(self.queue.completed)}", style="green")
        header_text.append("  ")
        header_text.append(f"Failed {len(self.queue.errored)}", style="red")
        header_text.append("  ")
        header_text.append(f"Cancelled {len(self.queue.cancelled)}", style="yellow")
        return Panel(header_text, border_style="cyan")

    def _generate_progress_panel(self) -> Panel:
        if not self._tasks:
            return Panel(
                Text("Waiting for downloads to start...", style="dim italic", justify="center"),
                title="[bold]📥 Active Downloads[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]📥 Active Downloads ({len(self._tasks)})[/bold]",
            border_style="green",
        )

    def _generate_finished_panel(self) -> Panel:
        finished = [j for j in self.queue.jobs if j.status.is_terminal]
        table = Table.grid(padding=(0, 1))
        table.add_column(width=2)
        table.add_column()
        for job in finished[-MAX_FINISHED_ROWS:]:
            if job.status is JobStatus.COMPLETED:
                table.add_row("[green]✓[/green]", job.filename)
            elif job.status is JobStatus.ERROR:
                table.add_row("[red]✗[/red]", f"{job.filename} [dim]({job.error})[/dim]")
            else:
                table.add_row("[yellow]○[/yellow]", f"[dim]{job.filename}[/dim]")
        return Panel(table, title="[bold]Finished[/bold]", border_style="blue")

    def _update_display(self):
        if not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["progress"].update(self._generate_progress_panel())
        self._layout["finished"].update(self._generate_finished_panel())

    async def __aenter__(self):
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()


_STATE_STYLES = {
    PlaybackState.IDLE: ("■", "dim"),
    PlaybackState.LOADING: ("…", "yellow"),
    PlaybackState.PLAYING: ("▶", "green"),
    PlaybackState.PAUSED: ("⏸", "cyan"),
    PlaybackState.ENDED: ("■", "blue"),
    PlaybackState.FAILED: ("✗", "red"),
}


def render_session(session: PlaybackSession) -> Panel:
    """Renders the now-playing panel."""
    track = session.current_track
    icon, style = _STATE_STYLES[session.state]

    if track is None:
        body = Text("Nothing playing.", style="dim italic")
        return Panel(body, title="[bold]Now Playing[/bold]", border_style="dim")

    header = Text()
    header.append(f"{icon} ", style=style)
    header.append(track.title, style="bold")
    header.append(f"  {', '.join(track.artist_names)}", style="cyan")
    header.append(f"  [{track.album.title}]", style="dim")

    bar_width = 30
    filled = int(bar_width * session.progress / 100)
    bar = Text()
    bar.append("█" * filled, style=style)
    bar.append("░" * (bar_width - filled), style="dim")
    bar.append(
        f"  {format_track_duration(int(session.position))}"
        f" / {format_track_duration(track.duration)}"
    )

    details = Text(style="dim")
    if session.playlist and session.current_index >= 0:
        details.append(f"Track {session.current_index + 1}/{len(session.playlist)}  ")
    volume = "muted" if session.muted else f"{session.volume}%"
    details.append(f"Volume {volume}  ")
    details.append(session.state.value)
    if session.error:
        details.append(f"  {session.error}", style="red")

    return Panel(
        Group(header, bar, details),
        title="[bold]Now Playing[/bold]",
        subtitle="[dim]p pause · n next · b back · +/- volume · m mute · q quit[/dim]",
        border_style=style,
    )
