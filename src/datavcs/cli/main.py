"""Main CLI entry point for datavcs."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from datavcs.constants import CONTROL_DIR, EXIT_USER_ERROR
from datavcs.core import FileResult, FileStatus, Outcome, Repository, summarize
from datavcs.errors import DataVCSError

console = Console()
app = typer.Typer(
    name="datavcs",
    help="Content-addressed version control for large data files",
    add_completion=False,
)

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    FileStatus.CURRENT: "green",
    FileStatus.UNSYNCED: "yellow",
    FileStatus.ABSENT: "red",
    FileStatus.UNTRACKED: "dim",
    FileStatus.ERROR: "bold red",
}


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.2f} MB"


def _fail(error: DataVCSError) -> None:
    logger.debug("Command failed", exc_info=error)
    console.print(f"[bold red]Error:[/bold red] {escape(error.message)}", style="red")
    if error.hint:
        console.print(f"  hint: {escape(error.hint)}", style="yellow")
    raise typer.Exit(EXIT_USER_ERROR)


def _open_repo() -> Repository:
    try:
        return Repository.discover(Path.cwd())
    except DataVCSError as e:
        _fail(e)


def _print_results(results: List[FileResult], verb: str) -> None:
    for result in results:
        name = result.relative_path or result.input
        if result.outcome is Outcome.COPIED:
            console.print(
                f"  [green]+[/green] {name}  "
                f"[dim]({format_size(result.size)}, {result.oid.algorithm.value}:{result.checksum[:8]})[/dim]"
            )
        elif result.outcome is Outcome.PRESENT:
            console.print(f"  [dim]= {name}  (up to date)[/dim]")
        else:
            console.print(f"  [red]x[/red] {name}  [red]{result.error.value}:[/red] {escape(result.error_message)}")

    summary = summarize(results)
    succeeded = summary["total"] - summary[Outcome.ERROR.value]
    style = "green" if summary[Outcome.ERROR.value] == 0 else "yellow"
    console.print(
        f"\n[bold {style}]>[/bold {style}] {succeeded} of {summary['total']} file(s) {verb} "
        f"[dim]({summary[Outcome.COPIED.value]} copied, {summary[Outcome.PRESENT.value]} present)[/dim]"
    )


@app.callback()
def cli(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Content-addressed version control for large data files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Show datavcs version."""
    from datavcs import __version__
    typer.echo(f"datavcs version {__version__}")


@app.command()
def init(
    storage_dir: Optional[str] = typer.Option(
        None,
        "--storage-dir",
        "-s",
        help="Directory holding stored file contents (default: .datavcs-storage)",
    ),
    hash_algorithm: Optional[str] = typer.Option(
        None,
        "--hash",
        help="Default hash algorithm: sha256, blake3, xxh3 or md5",
    ),
    metadata_format: Optional[str] = typer.Option(
        None,
        "--metadata-format",
        help="Sidecar format: json or toml",
    ),
    permissions: Optional[str] = typer.Option(
        None,
        "--permissions",
        help="Octal mode applied to stored objects, e.g. 664",
    ),
    group: Optional[str] = typer.Option(
        None,
        "--group",
        help="Group ownership applied to stored objects",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress output except errors",
    ),
) -> None:
    """Initialize a datavcs repository in the current directory."""
    root = Path.cwd()
    try:
        mode = int(permissions, 8) if permissions is not None else None
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Invalid permissions: {permissions}", style="red")
        raise typer.Exit(EXIT_USER_ERROR)

    try:
        repo = Repository.init(
            root,
            storage_dir=storage_dir,
            hash_algorithm=hash_algorithm,
            metadata_format=metadata_format,
            permissions=mode,
            group=group,
        )
    except DataVCSError as e:
        _fail(e)

    if not quiet:
        success_message = f"""[bold green]✓[/bold green] Initialized datavcs repository

[dim]Repository root:[/dim] {repo.root}
[dim]Storage location:[/dim] {repo.storage.root}
[dim]Hash algorithm:[/dim] {repo.config.hash_algorithm.value}
[dim]Metadata format:[/dim] {repo.config.metadata_format.value}

[bold]Next steps:[/bold]
  1. Track data files: [cyan]datavcs add data/*.csv -m "raw data"[/cyan]
  2. Commit the small [cyan].dvs[/cyan] sidecars and [cyan]{CONTROL_DIR}/[/cyan] with Git
  3. Elsewhere, restore contents: [cyan]datavcs get data/*.csv[/cyan]
"""
        console.print(Panel(success_message, border_style="green", title="datavcs Initialized"))


@app.command()
def add(
    paths: List[str] = typer.Argument(..., help="Files or glob patterns to add"),
    message: Optional[str] = typer.Option(
        None,
        "--message",
        "-m",
        help="Message stored with the new versions",
    ),
    hash_algorithm: Optional[str] = typer.Option(
        None,
        "--hash",
        help="Override the hash algorithm",
    ),
    metadata_format: Optional[str] = typer.Option(
        None,
        "--metadata-format",
        help="Override the sidecar format (json or toml)",
    ),
) -> None:
    """Track files: store their contents and write metadata sidecars."""
    repo = _open_repo()
    try:
        results = repo.add(
            paths, message=message, algorithm=hash_algorithm, metadata_format=metadata_format
        )
    except DataVCSError as e:
        _fail(e)

    _print_results(results, "tracked")
    if any(not r.ok for r in results):
        raise typer.Exit(EXIT_USER_ERROR)


@app.command()
def get(
    paths: List[str] = typer.Argument(..., help="Tracked files or glob patterns to restore"),
) -> None:
    """Restore tracked files from storage."""
    repo = _open_repo()
    try:
        results = repo.get(paths)
    except DataVCSError as e:
        _fail(e)

    _print_results(results, "restored")
    if any(not r.ok for r in results):
        raise typer.Exit(EXIT_USER_ERROR)


@app.command()
def status(
    paths: Optional[List[str]] = typer.Argument(None, help="Files or glob patterns (default: all tracked)"),
) -> None:
    """Show whether tracked files match their recorded versions."""
    repo = _open_repo()
    try:
        results = repo.status(paths)
    except DataVCSError as e:
        _fail(e)

    if not results:
        console.print("[dim]No tracked files[/dim]")
        console.print("  Use [bold]datavcs add <file>[/bold] to track files")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Path")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Hash", style="dim")
    table.add_column("Added by", style="dim")
    table.add_column("Message", style="dim")
    for result in results:
        style = STATUS_STYLES[result.status]
        table.add_row(
            result.relative_path,
            f"[{style}]{result.status.value}[/{style}]",
            format_size(result.size) if result.oid else "",
            f"{result.oid.algorithm.value}:{result.oid.hex[:8]}" if result.oid else "",
            result.created_by or "",
            escape(result.message or result.error_message or ""),
        )
    console.print(table)

    if any(r.status is FileStatus.ERROR for r in results):
        raise typer.Exit(EXIT_USER_ERROR)


@app.command()
def log(
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-n",
        help="Show at most N entries",
    ),
) -> None:
    """Show the history of add and rollback operations."""
    repo = _open_repo()
    try:
        entries = repo.log(limit=limit)
    except DataVCSError as e:
        _fail(e)

    if not entries:
        console.print("[dim]No history yet[/dim]")
        return

    for item in entries:
        entry = item.entry
        console.print(
            f"[yellow]{item.index:>3}[/yellow]  [bold]{entry.op.value:<8}[/bold] "
            f"[cyan]{(entry.new_state_id or entry.new)[:12]}[/cyan]  "
            f"[dim]{entry.ts}  {entry.actor}[/dim]"
        )
        if entry.message:
            console.print(f"       {entry.message}")
        for path in entry.paths:
            console.print(f"       [dim]- {path}[/dim]")


@app.command()
def rollback(
    target: str = typer.Argument(..., help="Reflog index (see 'datavcs log') or state id"),
) -> None:
    """Restore sidecars and the manifest to an earlier state."""
    repo = _open_repo()
    try:
        entry = repo.rollback(target)
    except DataVCSError as e:
        _fail(e)

    if entry is None:
        console.print("[dim]Already at that state, nothing to do[/dim]")
        return
    console.print(
        f"[bold green]✓[/bold green] Rolled back to [cyan]{(entry.new_state_id or entry.new)[:12]}[/cyan] "
        f"[dim]({len(entry.paths)} sidecar(s) changed)[/dim]"
    )
    console.print("  Run [bold]datavcs get[/bold] to restore file contents")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
