"""Operations a separate invocation performs against a running daemon.

There is no control socket: everything here works from the persisted
DaemonState and process-group signals.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path

import psutil
from rich.console import Console

from procyard.config import settings
from procyard.daemon import start_daemon
from procyard.logs.colors import make_console, render_line
from procyard.logs.multiplexer import LogMultiplexer, source_label
from procyard.logs.tail import tail_lines
from procyard.processes.groups import ProcessGroup, pid_alive
from procyard.processes.shutdown import terminate_groups
from procyard.processes.signals import run_interruptible
from procyard.state.lock import ManagerLock
from procyard.state.store import StateStore
from procyard.types import DaemonState, ProjectConfig

_logger = logging.getLogger(__name__)

_MANAGER_POLL_INTERVAL = 0.05


# ── Status ──────────────────────────────────────────────────────


@dataclass
class StatusReport:
    state: DaemonState | None = None
    stale: bool = False
    alive: dict[str, bool] = field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.state is not None

    def label(self, name: str) -> str:
        proc = self.state.process(name) if self.state else None
        if proc is None:
            return "Unknown"
        return proc.status_label(self.alive.get(name))


def daemon_status(store: StateStore) -> StatusReport:
    """Current daemon state; state left behind by a dead manager is discarded."""
    stale = store.discard_if_stale()
    state = store.load()
    if state is None:
        return StatusReport(stale=stale)
    alive = {p.name: pid_alive(p.pid) for p in state.processes if p.is_active and p.pid > 0}
    return StatusReport(state=state, stale=stale, alive=alive)


# ── Stop ────────────────────────────────────────────────────────


@dataclass
class StopReport:
    already_stopped: bool = False
    stale: bool = False
    manager_pid: int | None = None
    stopped: list[str] = field(default_factory=list)
    force_killed: list[str] = field(default_factory=list)
    manager_killed: bool = False


async def stop_daemon(store: StateStore, grace: float | None = None) -> StopReport:
    """Stop every recorded process group, then the manager, then clean up.

    Groups get SIGTERM, ``grace`` seconds, then SIGKILL. Stopping a
    project with no live daemon reports ``already_stopped``.
    """
    grace = settings.grace_seconds if grace is None else grace
    state = store.load()
    if state is None:
        pid = store.read_pid()
        if pid is not None and pid_alive(pid) and ManagerLock(store.lock_path).held_elsewhere():
            return await _stop_unrecorded_manager(store, pid, grace)
        stale = store.discard_if_stale()
        return StopReport(already_stopped=True, stale=stale)
    if store.is_stale(state):
        _logger.info("Manager pid %s is gone; discarding its state", state.manager.pid)
        store.clear()
        return StopReport(already_stopped=True, stale=True, manager_pid=state.manager.pid)

    own_group = os.getpgrp()
    active = [p for p in state.processes if p.is_active and p.pgid > 1 and p.pgid != own_group]
    groups = [ProcessGroup(p.pgid, label=p.name) for p in active]
    force_killed = await terminate_groups(groups, grace)

    manager_killed = await _stop_manager(state.manager.pid)
    store.clear()
    return StopReport(
        manager_pid=state.manager.pid,
        stopped=[p.name for p in active],
        force_killed=force_killed,
        manager_killed=manager_killed,
    )


async def _stop_unrecorded_manager(store: StateStore, pid: int, grace: float) -> StopReport:
    """Stop a live manager whose state file is missing or unreadable.

    The process groups are unknown here, so the manager's own shutdown
    terminates them; it gets its grace period on top of the usual timeout.
    """
    _logger.warning("No readable state for live manager pid %s; stopping it", pid)
    timeout = settings.manager_stop_timeout + max(grace, settings.grace_seconds)
    manager_killed = await _stop_manager(pid, timeout)
    store.clear()
    return StopReport(manager_pid=pid, manager_killed=manager_killed)


async def _stop_manager(pid: int, timeout: float | None = None) -> bool:
    """SIGTERM the manager, SIGKILL it if it lingers. True if killed."""
    try:
        manager = psutil.Process(pid)
        manager.send_signal(signal.SIGTERM)
    except psutil.NoSuchProcess:
        return False

    timeout = settings.manager_stop_timeout if timeout is None else timeout
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            return False
        await asyncio.sleep(_MANAGER_POLL_INTERVAL)

    _logger.warning("Manager pid %s ignored SIGTERM; killing it", pid)
    try:
        manager.kill()
    except psutil.NoSuchProcess:
        return False
    return True


def restart_daemon(
    config: ProjectConfig, store: StateStore, grace: float | None = None
) -> tuple[StopReport, DaemonState]:
    """Stop whatever is running, then start afresh."""
    report = asyncio.run(stop_daemon(store, grace))
    return report, start_daemon(config, store, grace)


# ── Logs ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LogSource:
    name: str
    stdout_path: Path
    stderr_path: Path


def log_sources(
    store: StateStore, config: ProjectConfig, name: str | None = None
) -> list[LogSource]:
    """Log files per process, from the live daemon state or the config."""
    state = store.load()
    if state is not None:
        sources = [
            LogSource(p.name, Path(p.stdout_path), Path(p.stderr_path))
            for p in state.processes
            if p.stdout_path and p.stderr_path
        ]
    else:
        sources = []
        for spec in config.processes:
            out, err = spec.log_paths(config.root, store.log_dir)
            sources.append(LogSource(spec.name, out, err))
    if name is not None:
        sources = [s for s in sources if s.name == name]
    return sources


def show_logs(
    sources: list[LogSource], lines: int | None = None, console: Console | None = None
) -> None:
    """Print the last ``lines`` lines of each source, labeled."""
    lines = settings.tail_lines if lines is None else lines
    console = console or make_console(settings.color_mode())
    for source in sources:
        for path, stderr in ((source.stdout_path, False), (source.stderr_path, True)):
            label = source_label(source.name, stderr)
            try:
                for line in tail_lines(path, lines):
                    console.print(render_line(label, line, source.name))
            except FileNotFoundError:
                console.print(render_line(label, f"(no log yet at {path})", source.name))


async def follow_logs(
    sources: list[LogSource], lines: int | None = None, mux: LogMultiplexer | None = None
) -> None:
    """Print recent lines, then follow every file until interrupted."""
    mux = mux or LogMultiplexer()
    show_logs(sources, lines, mux.console)
    for source in sources:
        mux.attach_file(source.name, source.stdout_path)
        mux.attach_file(source.name, source.stderr_path, stderr=True)
    try:
        await run_interruptible(_wait_forever())
    finally:
        await mux.stop()


async def _wait_forever() -> None:
    await asyncio.Event().wait()
