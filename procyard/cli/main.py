"""procyard CLI.

`procyard` with no command runs every process in the foreground (`dev`).
`start`/`status`/`stop`/`logs`/`restart` drive the background daemon;
`run` executes a task; `list` shows what the project defines.
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from procyard.cli.context import CliContext, run_async
from procyard.config import ColorMode, configure_logging
from procyard.exceptions import ProcyardError

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="procyard",
    help="procyard -- run a project's processes and tasks, in the foreground or as a daemon.",
    invoke_without_command=True,
)


@contextmanager
def _reported() -> Iterator[None]:
    """Render procyard errors in red and exit 1."""
    try:
        yield
    except ProcyardError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _ctx(ctx: typer.Context) -> CliContext:
    return ctx.obj


@app.callback()
def main_callback(
    ctx: typer.Context,
    root: Path = typer.Option(
        Path("."), "--root", help="Project root containing proc.toml or Procfile"
    ),
    color: Optional[ColorMode] = typer.Option(
        None, "--color", help="Colorize prefixes: auto, always or never"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Diagnostic log level (default: $PROCYARD_LOG_LEVEL)"
    ),
):
    """Run the project's processes in the foreground when no command is given."""
    configure_logging(log_level)
    ctx.obj = CliContext(root=root.expanduser().resolve(), color=color)
    ctx.obj.apply()
    if ctx.invoked_subcommand is None:
        dev(ctx, names=None, grace=None)


@app.command("dev")
def dev(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Argument(None, help="Only these processes"),
    grace: Optional[float] = typer.Option(None, "--grace", help="Seconds before SIGKILL"),
):
    """Run processes in the foreground with prefixed output."""
    from procyard.foreground import run_foreground

    cli = _ctx(ctx)
    with _reported():
        code = run_async(run_foreground(cli.config(), names=names, grace=grace))
    raise typer.Exit(code)


@app.command("start")
def start(
    ctx: typer.Context,
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow logs after starting"),
    grace: Optional[float] = typer.Option(None, "--grace", help="Shutdown grace for the daemon"),
):
    """Start every process in a background daemon."""
    from procyard.control import follow_logs, log_sources
    from procyard.daemon import start_daemon

    cli = _ctx(ctx)
    with _reported():
        config = cli.config()
        store = cli.store()
        state = start_daemon(config, store, grace)
        console.print(
            f"[green]Started {len(state.processes)} process(es)[/green] "
            f"(manager pid {state.manager.pid}, logs in {store.log_dir})"
        )
        if follow:
            run_async(follow_logs(log_sources(store, config)))


@app.command("status")
def status(ctx: typer.Context):
    """Show the daemon's processes."""
    from procyard.control import daemon_status

    cli = _ctx(ctx)
    with _reported():
        report = daemon_status(cli.store())

    if report.stale:
        console.print("[dim]Removed state left by a daemon that is no longer running.[/dim]")
    if report.state is None:
        console.print("[dim]No daemon running for this project.[/dim]")
        return

    state = report.state
    table = Table(title=f"procyard: {state.project_root}")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("PID", justify="right")
    table.add_column("PGID", justify="right")
    table.add_column("Status")
    table.add_column("Started", style="dim")
    table.add_column("Command", style="white")

    for proc in state.processes:
        label = report.label(proc.name)
        style = {
            "Running": "bold green",
            "Stopped": "dim",
            "Unknown": "yellow",
        }.get(label, "bold red")
        table.add_row(
            proc.name,
            str(proc.pid) if proc.pid else "-",
            str(proc.pgid) if proc.pgid else "-",
            f"[{style}]{label}[/{style}]",
            proc.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            proc.command,
        )

    console.print(table)
    console.print(f"[dim]Manager pid {state.manager.pid}, log {state.manager.log_path}[/dim]")


@app.command("stop")
def stop(
    ctx: typer.Context,
    grace: Optional[float] = typer.Option(None, "--grace", help="Seconds before SIGKILL"),
):
    """Stop the daemon and all its processes."""
    from procyard.control import stop_daemon

    cli = _ctx(ctx)
    with _reported():
        report = run_async(stop_daemon(cli.store(), grace))
    _print_stop(report)


def _print_stop(report) -> None:
    if report.already_stopped:
        suffix = " (cleaned up stale state)" if report.stale else ""
        console.print(f"[dim]No daemon running; already stopped{suffix}.[/dim]")
        return
    console.print(
        f"[green]Stopped {len(report.stopped)} process(es)[/green] "
        f"(manager pid {report.manager_pid})"
    )
    if report.force_killed:
        console.print(f"[yellow]SIGKILL needed for: {', '.join(report.force_killed)}[/yellow]")
    if report.manager_killed:
        console.print("[yellow]Manager did not exit on SIGTERM and was killed.[/yellow]")


@app.command("restart")
def restart(
    ctx: typer.Context,
    grace: Optional[float] = typer.Option(None, "--grace", help="Seconds before SIGKILL"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow logs after restarting"),
):
    """Stop the daemon (if any) and start it again."""
    from procyard.control import follow_logs, log_sources, restart_daemon

    cli = _ctx(ctx)
    with _reported():
        config = cli.config()
        store = cli.store()
        report, state = restart_daemon(config, store, grace)
        _print_stop(report)
        console.print(
            f"[green]Started {len(state.processes)} process(es)[/green] "
            f"(manager pid {state.manager.pid})"
        )
        if follow:
            run_async(follow_logs(log_sources(store, config)))


@app.command("logs")
def logs(
    ctx: typer.Context,
    follow: bool = typer.Option(False, "--follow", "-f", help="Keep printing new lines"),
    lines: Optional[int] = typer.Option(None, "--lines", "-n", help="Lines per log file"),
    name: Optional[str] = typer.Option(None, "--name", help="Only this process"),
):
    """Show the daemon's process logs."""
    from procyard.control import follow_logs, log_sources, show_logs

    cli = _ctx(ctx)
    with _reported():
        sources = log_sources(cli.store(), cli.config(), name)
        if not sources:
            console.print("[dim]No matching processes.[/dim]")
            raise typer.Exit(1 if name else 0)
        if follow:
            run_async(follow_logs(sources, lines))
        else:
            show_logs(sources, lines)


@app.command(
    "run",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    task: str = typer.Argument(help="Task name, e.g. test or build:frontend"),
    args: Optional[List[str]] = typer.Argument(None, help="Arguments appended to each command"),
    grace: Optional[float] = typer.Option(None, "--grace", help="Seconds before SIGKILL"),
):
    """Run a task; its exit code becomes procyard's."""
    from procyard.tasks.executor import run_task

    cli = _ctx(ctx)
    extra = list(args or []) + list(ctx.args)
    with _reported():
        result = run_async(run_task(cli.config(), task, extra, grace=grace))
    if not result.ok and result.error:
        err_console.print(f"[red]{escape(result.error)}[/red]")
    raise typer.Exit(result.exit_code)


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Machine-readable output"),
    names_only: bool = typer.Option(False, "--names-only", help="One name per line"),
    processes_only: bool = typer.Option(False, "--processes-only", help="Only processes"),
    tasks_only: bool = typer.Option(False, "--tasks-only", help="Only tasks"),
):
    """List processes and tasks."""
    from procyard.listing import (
        format_list_human,
        format_list_json,
        format_list_names_only,
        gather_list_info,
    )

    cli = _ctx(ctx)
    with _reported():
        if processes_only and tasks_only:
            raise ProcyardError("--processes-only and --tasks-only are mutually exclusive")
        info = gather_list_info(cli.config())

    if as_json:
        out = format_list_json(info, processes_only, tasks_only)
    elif names_only:
        out = format_list_names_only(info, processes_only, tasks_only)
    else:
        out = format_list_human(info, processes_only, tasks_only).rstrip("\n")
    typer.echo(out)


@app.command("version")
def version_cmd():
    """Show procyard version."""
    from procyard import __version__
    console.print(f"procyard v{__version__}")


def main() -> None:
    app(prog_name="procyard")


if __name__ == "__main__":
    sys.exit(main())
