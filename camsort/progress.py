"""Console rendering of run events and summaries."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, TaskID
from rich.table import Table

from .events import BatchSubmitted, FolderCreated, GroupFailed, JobPolled, RunFinished
from .models import JobState, Plan
from .report import RunSummary


class ProgressContext:
    """Encapsulates progress tracking state for cleaner parameter passing."""

    def __init__(self, progress: Optional[Progress] = None, task: Optional[TaskID] = None):
        self.progress = progress
        self.task = task

    @property
    def is_active(self) -> bool:
        """Check if progress tracking is active."""
        return self.progress is not None and self.task is not None

    def update(self, description: str) -> None:
        """Update progress description if tracking is active."""
        if self.is_active:
            self.progress.update(self.task, description=description)

    def advance(self, steps: int = 1) -> None:
        """Advance progress by given number of steps."""
        if self.is_active:
            self.progress.advance(self.task, steps)


class ConsoleReporter:
    """Event listener that narrates a run on the console."""

    def __init__(self, console: Console, verbose: bool = False):
        self.console = console
        self.verbose = verbose

    def __call__(self, event: object) -> None:
        if isinstance(event, FolderCreated):
            if not event.already_existed:
                self.console.print(f"Created folder [blue]{event.path}[/blue]")
        elif isinstance(event, BatchSubmitted):
            if event.job_id:
                self.console.print(f"Moving {event.entry_count} files into "
                                   f"[blue]{event.destination}[/blue] (job {event.job_id})")
            else:
                self.console.print(f"Moved {event.moved_count} files into "
                                   f"[blue]{event.destination}[/blue]")
        elif isinstance(event, JobPolled):
            if event.state is JobState.FAILED:
                self.console.print(f"[red]Job {event.job_id} failed[/red]")
            elif event.state is JobState.COMPLETE:
                self.console.print(f"[green]Job {event.job_id} complete[/green]")
            elif self.verbose:
                self.console.print(f"Job {event.job_id} still {event.tag or 'pending'} "
                                   f"(round {event.round})")
        elif isinstance(event, GroupFailed):
            self.console.print(f"[red]{escape(event.group)}: {escape(event.error)}[/red]")
        elif isinstance(event, RunFinished):
            print_summary(event.summary, self.console)


def print_plan(plan: Plan, console: Console) -> None:
    """Print the groups and folders of a plan without touching the remote side."""
    table = Table(title=f"Plan for {plan.destination_root}")
    table.add_column("Group", style="cyan")
    table.add_column("Files", style="green")
    table.add_column("New Folder", style="yellow")

    for group, moves in plan.moves.items():
        if not moves:
            continue
        table.add_row(group, str(len(moves)), "yes" if group in plan.folders_to_create else "")

    console.print(table)
    if plan.skipped:
        console.print(f"Skipping {len(plan.skipped)} files")
    for path, message in plan.errors:
        console.print(f"[yellow]{escape(path)}: {escape(message)}[/yellow]")


def print_summary(summary: RunSummary, console: Console) -> None:
    """Print processing summary."""
    table = Table(title="Run Summary")
    table.add_column("Category", style="cyan")
    table.add_column("Count", style="green")

    table.add_row("Folders Created", str(summary.folders_created))
    table.add_row("Files Moved", str(summary.files_moved))
    table.add_row("Jobs Submitted", str(summary.jobs_submitted))
    table.add_row("Jobs Failed", str(len(summary.jobs_failed)))
    table.add_row("Jobs Unresolved", str(len(summary.jobs_unresolved)))
    table.add_row("Errors", str(len(summary.errors)))

    console.print(table)

    for job_id in summary.jobs_failed:
        console.print(f"[red]Failed job: {job_id}[/red]")
    for job_id, state in summary.jobs_unresolved:
        console.print(f"[yellow]Job {job_id} {state.replace('_', ' ')}[/yellow]")
    for scope, message in summary.errors:
        console.print(f"[red]{escape(scope)}: {escape(message)}[/red]")
