"""Rich terminal rendering for the ratio-master CLI."""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from ratiomaster.tracker import AnnounceStatus
from ratiomaster.utils.formatting import (
    format_duration,
    format_ratio,
    format_size,
    ratio_status,
)

if TYPE_CHECKING:
    from ratiomaster.models import (
        InfoHash,
        SessionIdentity,
        SimulationConfig,
        TorrentMetadata,
    )
    from ratiomaster.session import AnnounceSession
    from ratiomaster.tracker import AnnounceOutcome

BANNER = r"""
  ____       _   _           __  __           _
 |  _ \ __ _| |_(_) ___     |  \/  | __ _ ___| |_ ___ _ __
 | |_) / _` | __| |/ _ \    | |\/| |/ _` / __| __/ _ \ '__|
 |  _ < (_| | |_| | (_) |   | |  | | (_| \__ \ ||  __/ |
 |_| \_\__,_|\__|_|\___/    |_|  |_|\__,_|___/\__\___|_|
"""


def create_console(no_color: bool = False) -> Console:
    """Create a Rich Console honouring --no-color and NO_COLOR."""
    return Console(
        file=sys.stdout,
        force_terminal=None,
        no_color=no_color or "NO_COLOR" in os.environ,
        legacy_windows=False,
        safe_box=True,
    )


def print_error(message: str, console: Console, **kwargs: Any) -> None:
    """Print an error message."""
    console.print(f"[red]✗[/red] {message}", **kwargs)


def print_warning(message: str, console: Console, **kwargs: Any) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}", **kwargs)


def print_success(message: str, console: Console, **kwargs: Any) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}", **kwargs)


def _field_table() -> Table:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="dim", no_wrap=True)
    table.add_column()
    return table


def render_torrent_info(
    console: Console,
    metadata: TorrentMetadata,
    info_hash: InfoHash,
) -> None:
    """Print the banner and the torrent file panel."""
    console.print(BANNER, style="bold cyan", highlight=False)

    table = _field_table()
    table.add_row("Name:", metadata.name)
    if metadata.size_known:
        table.add_row("Size:", format_size(metadata.total_length))
        table.add_row(
            "Pieces:",
            f"{metadata.piece_count} ({format_size(metadata.piece_length)}/piece)",
        )
    else:
        table.add_row("Size:", "Unknown")
    if metadata.tracker_url:
        table.add_row("Tracker:", metadata.tracker_url)
    if metadata.comment:
        table.add_row("Comment:", metadata.comment)
    table.add_row("Info hash:", info_hash.hex)

    console.print(Panel(table, title="[bold]TORRENT FILE[/bold]", title_align="left"))


def render_parameters(
    console: Console,
    simulation: SimulationConfig,
    identity: SessionIdentity | None = None,
) -> None:
    """Print the simulation parameters panel."""
    table = _field_table()
    table.add_row("Speed:", f"{simulation.speed_kib} KB/s (±{simulation.jitter:.0%})")

    target = simulation.upload_target
    if target is not None:
        table.add_row("Simulated upload:", format_size(target))
        estimated = target // (simulation.speed_kib * 1024)
        table.add_row("Estimated time:", format_duration(estimated))
    if simulation.duration is not None:
        table.add_row("Duration:", format_duration(simulation.duration))
    if target is None and simulation.duration is None:
        table.add_row("Duration:", "until interrupted (Ctrl+C)")

    if identity is not None:
        table.add_row("Listen port:", str(identity.listen_port))
        table.add_row("Peer id:", identity.peer_id[:8].decode("ascii", errors="replace"))

    console.print(
        Panel(table, title="[bold]SIMULATION PARAMETERS[/bold]", title_align="left")
    )


class SessionDisplay:
    """Live progress for a running announce session."""

    def __init__(self, console: Console, upload_target: int | None = None):
        """Initialize the display.

        Args:
            console: Rich console for output
            upload_target: Bytes to upload, for a bar with percentage and ETA

        """
        self.console = console
        self.upload_target = upload_target
        self.progress = self._create_progress()
        self._task_id = self.progress.add_task(
            "Seeding",
            total=upload_target,
            uploaded="0 B",
            speed="0 KB/s",
            eta="ETA --",
            announce="",
        )

    def _create_progress(self) -> Progress:
        if self.upload_target is not None:
            return Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TextColumn("{task.fields[uploaded]}"),
                TextColumn("{task.fields[speed]}"),
                TextColumn("{task.fields[eta]}"),
                TextColumn("[dim]{task.fields[announce]}"),
                console=self.console,
            )
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TextColumn("{task.fields[uploaded]}"),
            TextColumn("{task.fields[speed]}"),
            TimeElapsedColumn(),
            TextColumn("[dim]{task.fields[announce]}"),
            console=self.console,
        )

    def __enter__(self) -> SessionDisplay:
        """Start live rendering."""
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Stop live rendering and restore the cursor."""
        self.progress.stop()

    def on_tick(self, session: AnnounceSession) -> None:
        """Refresh counters after a tick."""
        uploaded = session.state.uploaded
        speed_kib = session.current_speed / 1024
        eta = "ETA --"
        if self.upload_target is not None and uploaded > 0 and session.target_speed > 0:
            remaining = max(self.upload_target - uploaded, 0)
            eta = f"ETA {format_duration(remaining // session.target_speed)}"

        uploaded_text = format_size(uploaded)
        if self.upload_target is not None:
            uploaded_text = f"{uploaded_text} / {format_size(self.upload_target)}"

        self.progress.update(
            self._task_id,
            completed=uploaded,
            uploaded=uploaded_text,
            speed=f"{speed_kib:.0f} KB/s",
            eta=eta,
            announce=f"next announce {format_duration(session.seconds_until_announce())}",
        )

    def on_announce(self, session: AnnounceSession, outcome: AnnounceOutcome) -> None:
        """Print the outcome of an announce above the progress line."""
        render_outcome(self.console, outcome)


def render_outcome(console: Console, outcome: AnnounceOutcome) -> None:
    """Print one announce outcome."""
    label = f"announce [bold]{outcome.event.label}[/bold]"
    if outcome.status is AnnounceStatus.OK:
        detail = f" (interval {outcome.interval}s)" if outcome.interval is not None else ""
        print_success(f"{label} accepted{detail}", console)
    elif outcome.status is AnnounceStatus.TRACKER_ERROR:
        print_error(
            f"{label} rejected by tracker: [bold red]{outcome.failure_reason}[/bold red]",
            console,
        )
    else:
        print_error(f"{label} failed: {outcome.error}", console)


def render_results(
    console: Console,
    session: AnnounceSession,
    interrupted: bool = False,
) -> None:
    """Print the end-of-session summary and simulated ratio."""
    state = session.state
    title = "SESSION INTERRUPTED" if interrupted else "SESSION COMPLETE"

    table = _field_table()
    table.add_row("Uploaded:", format_size(state.uploaded))
    if session.metadata.size_known:
        table.add_row("Torrent size:", format_size(state.downloaded))
    table.add_row("Announces:", f"{state.announce_count} ({state.failure_count} failed)")

    ratio = format_ratio(state.uploaded, state.downloaded)
    table.add_row("Simulated ratio:", f"[bold]{ratio}[/bold]")

    status = ratio_status(state.uploaded, state.downloaded)
    if status == "low":
        table.add_row("Status:", "[yellow]Ratio below 1.0[/yellow]")
    elif status == "equal":
        table.add_row("Status:", "[green]Ratio equal to 1.0[/green]")
    else:
        table.add_row("Status:", "[green]Ratio above 1.0 - Excellent![/green]")

    console.print(Panel(table, title=f"[bold green]{title}[/bold green]", title_align="left"))
