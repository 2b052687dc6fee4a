"""CLI entry point for jig."""

import logging
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from jig.core.detector import WorkerState
from jig.core.spawn import SpawnCoordinator, TaskStatus
from jig.errors import JigError

console = Console()

STATUS_STYLES = {
    TaskStatus.RUNNING: "green",
    TaskStatus.EXITED: "yellow",
    TaskStatus.NO_SESSION: "red",
    TaskStatus.NO_WINDOW: "red",
}

STATE_STYLES = {
    WorkerState.WORKING: "green",
    WorkerState.IDLE: "yellow",
    WorkerState.STUCK: "red",
}


def get_coordinator() -> SpawnCoordinator:
    """
    Get a SpawnCoordinator for the current repository.

    Raises:
        click.ClickException: If the repository or its jig files are unusable.
    """
    try:
        return SpawnCoordinator()
    except JigError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(package_name="jig")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """jig - parallel coding agents in git worktrees and tmux windows."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command("spawn")
@click.argument("name")
@click.option("-c", "--context", help="Task description passed to the agent.")
@click.option(
    "--auto/--no-auto",
    default=None,
    help="Start the agent in auto mode (default: [spawn] auto in jig.toml).",
)
@click.option("--issue", "issue_ref", help="Issue reference stored with the task.")
def spawn_worker(
    name: str,
    context: Optional[str],
    auto: Optional[bool],
    issue_ref: Optional[str],
) -> None:
    """Spawn worker NAME in its own worktree and tmux window.

    Example:
        jig spawn fix-login -c "Fix the login redirect loop"
    """
    coordinator = get_coordinator()

    try:
        with console.status(f"[bold blue]Spawning '{name}'..."):
            worker = coordinator.spawn(name, context=context, auto=auto, issue_ref=issue_ref)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold green]Spawned worker:[/bold green] {worker.name}")
    console.print(f"[bold]Branch:[/bold]  {worker.branch}")
    console.print(f"[bold]Path:[/bold]    {worker.worktree_path}")
    console.print(f"[dim]Attach with: jig attach {worker.name}[/dim]")


@main.command("ps")
@click.option("-a", "--all", "show_all", is_flag=True, help="Include merged, failed and archived workers.")
def list_workers(show_all: bool) -> None:
    """List workers with their live tmux state."""
    coordinator = get_coordinator()

    try:
        listings = coordinator.list_workers(include_inactive=show_all)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    if not listings:
        console.print("[yellow]No workers found.[/yellow]")
        return

    table = Table(title="Workers", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("State")
    table.add_column("Window", justify="center")
    table.add_column("Branch", style="green")
    table.add_column("Commits", justify="right")
    table.add_column("Dirty", justify="center")

    for listing in listings:
        style = STATUS_STYLES[listing.status]
        table.add_row(
            listing.name,
            listing.worker.state,
            f"[{style}]{listing.status.value}[/{style}]",
            listing.branch,
            str(listing.commits_ahead),
            "[yellow]*[/yellow]" if listing.is_dirty else "",
        )

    console.print(table)

    stale = [listing.name for listing in listings if listing.worker.is_active and listing.status.is_stale]
    if stale:
        console.print(f"[dim]Removed stale workers: {', '.join(stale)}[/dim]")


@main.command("kill")
@click.argument("name")
def kill_worker(name: str) -> None:
    """Close worker NAME's window and forget it. The worktree is kept."""
    coordinator = get_coordinator()

    try:
        coordinator.kill(name)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold green]Killed worker:[/bold green] {name}")


@main.command("remove")
@click.argument("pattern")
@click.option("-f", "--force", is_flag=True, help="Remove even with uncommitted changes.")
def remove_worktrees(pattern: str, force: bool) -> None:
    """Remove worktrees matching PATTERN (a name or glob like 'feature/*').

    Branches are kept. Kill active workers first.
    """
    coordinator = get_coordinator()

    try:
        removed = coordinator.remove_worktrees(pattern, force=force)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    for name in removed:
        console.print(f"[bold green]Removed worktree:[/bold green] {name}")


@main.command("status")
@click.argument("name", required=False)
def show_status(name: Optional[str]) -> None:
    """Show lifecycle status of worker NAME, or of all active workers."""
    coordinator = get_coordinator()

    if name is None:
        workers = list(coordinator.state.active_workers())
        if not workers:
            console.print("[yellow]No active workers.[/yellow]")
        for worker in workers:
            console.print(f"[bold]{worker.name}[/bold]  {worker.state}")
        return

    try:
        status = coordinator.get_status(name)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold]{name}[/bold]  {status.state}")
    if status.state == "waiting_review":
        stats = status.diff_stats
        console.print(
            f"  {stats.files_changed} files, "
            f"[green]+{stats.insertions}[/green] [red]-{stats.deletions}[/red]"
        )
    elif status.state == "failed":
        console.print(f"  [red]{status.reason}[/red]")


@main.command("approve")
@click.argument("name")
def approve_worker(name: str) -> None:
    """Approve worker NAME's changes after review."""
    coordinator = get_coordinator()

    try:
        coordinator.approve(name)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold green]Approved:[/bold green] {name}")


@main.command("merged")
@click.argument("name")
def mark_merged(name: str) -> None:
    """Mark worker NAME merged once its branch is in the base branch."""
    coordinator = get_coordinator()

    try:
        coordinator.mark_merged(name)
    except JigError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold green]Merged:[/bold green] {name}")


@main.command("health")
def check_health() -> None:
    """Poll every active worker once and report its health."""
    coordinator = get_coordinator()

    try:
        reports = coordinator.check_health()
    except JigError as e:
        raise click.ClickException(str(e)) from e

    if not reports:
        console.print("[yellow]No workers to check.[/yellow]")
        return

    table = Table(title="Worker Health", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Pane")
    table.add_column("Status")
    table.add_column("Commits", justify="right")
    table.add_column("Since commit", justify="right")
    table.add_column("Nudges")

    for report in reports:
        style = STATE_STYLES[report.state]
        nudges = ", ".join(f"{k}={v}" for k, v in sorted(report.nudges.items()))
        if report.needs_attention:
            nudges = f"[red]{nudges}[/red]"
        table.add_row(
            report.name,
            f"[{style}]{report.state.value}[/{style}]",
            report.worker_status,
            str(report.commit_count),
            f"{report.hours_since_commit}h",
            nudges,
        )

    console.print(table)


@main.command("attach")
@click.argument("name", required=False)
def attach(name: Optional[str]) -> None:
    """Attach to the repository's tmux session, optionally at worker NAME."""
    coordinator = get_coordinator()

    try:
        coordinator.attach(name)
    except JigError as e:
        raise click.ClickException(str(e)) from e


if __name__ == "__main__":
    main()
