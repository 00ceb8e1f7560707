from __future__ import annotations

"""Console output for sync runs."""

from enum import Enum
from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)


class OutputLevel(Enum):
    """Output verbosity level."""

    QUIET = 0  # Only errors
    NORMAL = 1  # Standard with progress bar
    VERBOSE = 2  # All details


class SyncOutputter:
    """Output handler for sync runs.

    Handles quiet/normal/verbose modes with a progress bar for the package
    download phase.
    """

    def __init__(self, level: OutputLevel = OutputLevel.NORMAL, console: Console | None = None):
        self.level = level
        self.console = console or Console()
        self.err_console = Console(stderr=True)
        self.progress: Progress | None = None
        self.task: TaskID | None = None

    def header(self, root: str, reference_url: str, **kwargs: Any) -> None:
        """Show repository header."""
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(f"Syncing SoftPaq repository: {root}", style="bold")
        self.console.print(f"Reference URL: {reference_url}")
        for key, value in kwargs.items():
            display_key = key.replace("_", " ").title()
            self.console.print(f"{display_key}: {value}")
        self.console.print()

    def phase(self, name: str, number: int | None = None) -> None:
        """Show phase marker."""
        if self.level == OutputLevel.QUIET:
            return

        if number is not None:
            self.console.print(f"\n=== Phase {number}: {name} ===", style="bold cyan")
        else:
            self.console.print(f"\n=== {name} ===", style="bold cyan")

    def start_progress(self, total: int, description: str = "Processing", unit: str = "items") -> None:
        """Start progress bar."""
        if self.level != OutputLevel.NORMAL:
            return

        self.progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("({task.completed}/{task.total} {task.fields[unit]})"),
            TimeRemainingColumn(),
            console=self.console,
        )
        self.progress.start()
        self.task = self.progress.add_task(description, total=total, unit=unit)

    def update_progress(self, advance: int = 1) -> None:
        if self.progress and self.task is not None:
            self.progress.update(self.task, advance=advance)

    def finish_progress(self) -> None:
        if self.progress:
            self.progress.stop()
            self.progress = None
            self.task = None

    def info(self, message: str) -> None:
        if self.level == OutputLevel.QUIET:
            return
        self.console.print(message)

    def verbose(self, message: str) -> None:
        if self.level != OutputLevel.VERBOSE:
            return
        self.console.print(message)

    def success(self, message: str) -> None:
        if self.level == OutputLevel.QUIET:
            return
        self.console.print(f"✓ {message}", style="green")

    def warning(self, message: str) -> None:
        if self.level == OutputLevel.QUIET:
            return
        self.console.print(f"⚠️  {message}", style="yellow")

    def error(self, message: str) -> None:
        """Show error message (always shown, even in quiet mode)."""
        self.err_console.print(f"✗ {message}", style="red")

    def package(self, softpaq_id: str, state: str, current: int, total: int) -> None:
        """Show the final state of one package.

        In NORMAL mode this only advances the progress bar.
        """
        if self.level == OutputLevel.VERBOSE:
            self.console.print(f"→ {current}/{total}: {softpaq_id} ({state})")
        self.update_progress()

    def summary(self, **stats: Any) -> None:
        """Show summary statistics."""
        if self.level == OutputLevel.QUIET:
            return

        self.console.print("\n=== Summary ===", style="bold")
        for key, value in stats.items():
            display_key = key.replace("_", " ").title()
            self.console.print(f"  {display_key}: {value}")
