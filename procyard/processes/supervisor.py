"""Supervisor — owns a set of managed OS processes.

Spawns each process in its own group, routes its output (to per-process
log files when daemonized, to the LogMultiplexer in the foreground),
records exits, and shuts everything down with a grace period. There is no
restart policy: a process that exits stays exited.

Every lifecycle transition is persisted through the StateStore (when one
is attached) before control returns, so separate `status`/`stop`
invocations never see a state older than the last completed transition.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Sequence

from procyard.config import settings
from procyard.exceptions import SpawnError, StateIOError
from procyard.logs.lines import pump_lines
from procyard.logs.multiplexer import LogMultiplexer, source_label
from procyard.processes.groups import ProcessGroup, process_create_time
from procyard.processes.runner import ProcessHandle, append_args, spawn
from procyard.processes.shutdown import terminate_groups
from procyard.processes.state_machine import ProcessStateMachine
from procyard.state.dirs import project_id
from procyard.state.store import StateStore
from procyard.types import (
    DaemonState,
    ManagerInfo,
    ProcessName,
    ProcessSpec,
    ProcessState,
    RunningProcess,
    utcnow,
)

_logger = logging.getLogger(__name__)

# Exit code recorded for a process the OS could not launch
SPAWN_FAILED_EXIT = 127

# How long shutdown waits for output readers after the processes are gone
_READER_SETTLE_SECONDS = 2.0


@dataclass
class ManagedProcess:
    """A process owned by the supervisor."""

    spec: ProcessSpec
    command: str
    machine: ProcessStateMachine
    stdout_path: Path | None = None
    stderr_path: Path | None = None
    handle: ProcessHandle | None = None
    started_at: datetime = field(default_factory=utcnow)
    stopped_at: datetime | None = None
    exit_code: int | None = None
    force_killed: bool = False
    error: str | None = None
    readers: list[asyncio.Task] = field(default_factory=list)
    waiter: asyncio.Task | None = None

    @property
    def name(self) -> ProcessName:
        return self.spec.name

    @property
    def state(self) -> ProcessState:
        return self.machine.state

    def record(self) -> RunningProcess:
        return RunningProcess(
            name=self.name,
            pid=self.handle.pid if self.handle else 0,
            pgid=self.handle.pgid if self.handle else 0,
            command=self.command,
            cwd=self.spec.cwd,
            stdout_path=str(self.stdout_path or ""),
            stderr_path=str(self.stderr_path or ""),
            started_at=self.started_at,
            state=self.state,
            exit_code=self.exit_code,
            stopped_at=self.stopped_at,
            force_killed=self.force_killed,
        )


class Supervisor:
    """Process supervisor for one project.

    With ``mux`` the output of every process is multiplexed to the console
    (foreground mode); otherwise each stream is appended to its log file
    (daemon mode). With ``store`` every transition is persisted.
    """

    def __init__(
        self,
        specs: Sequence[ProcessSpec],
        root: Path,
        log_dir: Path | None = None,
        store: StateStore | None = None,
        mux: LogMultiplexer | None = None,
        grace: float | None = None,
        extra_args: Sequence[str] = (),
    ) -> None:
        self._specs = list(specs)
        self._root = Path(root)
        self._store = store
        self._mux = mux
        self._log_dir = log_dir or (store.log_dir if store else None)
        if mux is None and self._log_dir is None:
            raise ValueError("Supervisor needs a log directory or a multiplexer")
        self._grace = settings.grace_seconds if grace is None else grace
        self._extra_args = list(extra_args)

        self._processes: dict[ProcessName, ManagedProcess] = {}
        self._created_at = utcnow()
        pid = os.getpid()
        self._manager = ManagerInfo(
            pid=pid,
            create_time=process_create_time(pid),
            log_path=str(store.log_path) if store else "",
        )
        self._shutting_down = False
        self._shutdown_done = asyncio.Event()
        self._force_killed: list[str] = []

    @property
    def processes(self) -> list[ManagedProcess]:
        return list(self._processes.values())

    def get(self, name: ProcessName) -> ManagedProcess | None:
        return self._processes.get(name)

    def snapshot(self) -> DaemonState:
        return DaemonState(
            project_id=self._store.project_id if self._store else project_id(self._root),
            project_root=str(self._root),
            manager=self._manager,
            processes=[m.record() for m in self._processes.values()],
            created_at=self._created_at,
        )

    # ── Starting ────────────────────────────────────────────────

    async def start(self) -> None:
        """Spawn every process. One failed spawn does not stop the others."""
        for spec in self._specs:
            await self._start_one(spec)
        await self._persist()

    async def _start_one(self, spec: ProcessSpec) -> None:
        managed = ManagedProcess(
            spec=spec,
            command=append_args(spec.command, self._extra_args),
            machine=ProcessStateMachine(spec.name),
        )
        if self._mux is None:
            managed.stdout_path, managed.stderr_path = spec.log_paths(self._root, self._log_dir)
        managed.machine.on_transition(self._on_transition)
        self._processes[spec.name] = managed

        try:
            handle = await spawn(managed.command, cwd=spec.working_dir(self._root))
        except SpawnError as e:
            _logger.error("Failed to start %s: %s", spec.name, e)
            managed.error = str(e)
            managed.exit_code = SPAWN_FAILED_EXIT
            managed.stopped_at = utcnow()
            if self._mux is not None:
                self._mux.emit(
                    source_label(spec.name, stderr=True),
                    f"failed to start: {e}",
                    color_key=spec.name,
                )
            await managed.machine.transition(ProcessState.EXITED)
            return

        managed.handle = handle
        if self._mux is not None:
            managed.readers = [
                self._mux.attach_stream(spec.name, handle.stdout),
                self._mux.attach_stream(spec.name, handle.stderr, stderr=True),
            ]
        else:
            managed.readers = [
                asyncio.create_task(_write_log(handle.stdout, managed.stdout_path)),
                asyncio.create_task(_write_log(handle.stderr, managed.stderr_path)),
            ]
        await managed.machine.transition(ProcessState.RUNNING)
        managed.waiter = asyncio.create_task(self._watch(managed))

    async def _watch(self, managed: ManagedProcess) -> None:
        """Reap the child and record an exit it made on its own."""
        code = await managed.handle.wait()
        if managed.state != ProcessState.RUNNING:
            return
        managed.exit_code = code
        managed.stopped_at = utcnow()
        if await managed.machine.try_transition(ProcessState.EXITED):
            _logger.info("%s exited with code %s", managed.name, code)

    # ── Persistence ─────────────────────────────────────────────

    async def _on_transition(
        self, name: ProcessName, old: ProcessState, new: ProcessState
    ) -> None:
        _logger.debug("%s: %s -> %s", name, old.value, new.value)
        await self._persist()

    async def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self.snapshot())
        except StateIOError as e:
            _logger.error("Could not persist daemon state: %s", e)

    # ── Running ─────────────────────────────────────────────────

    async def serve(self, stop: asyncio.Event) -> list[str]:
        """Daemon body: start, keep supervising until ``stop`` fires, shut down."""
        await self.start()
        await stop.wait()
        return await self.shutdown()

    async def run_until_idle(self) -> int:
        """Foreground body: return once every process has ended.

        Cancellation shuts all processes down before propagating.
        """
        try:
            if not self._processes:
                await self.start()
            waiters = [m.waiter for m in self._processes.values() if m.waiter]
            if waiters:
                await asyncio.gather(*waiters)
            readers = [t for m in self._processes.values() for t in m.readers]
            if readers:
                await asyncio.gather(*readers, return_exceptions=True)
        except asyncio.CancelledError:
            await self.shutdown()
            raise
        return self.exit_code()

    def exit_code(self) -> int:
        """First non-zero exit among processes that ended on their own."""
        for managed in self._processes.values():
            if managed.state == ProcessState.EXITED and managed.exit_code:
                return managed.exit_code
        return 0

    # ── Stopping ────────────────────────────────────────────────

    async def shutdown(self, grace: float | None = None) -> list[str]:
        """Stop every running process group; returns those that needed SIGKILL.

        Returns only after every group has exited or been killed. Calling it
        again (or concurrently) waits for the first call and does nothing.
        """
        if self._shutting_down:
            await self._shutdown_done.wait()
            return list(self._force_killed)
        self._shutting_down = True
        grace = self._grace if grace is None else grace

        try:
            stopping: list[ManagedProcess] = []
            for managed in self._processes.values():
                if await managed.machine.try_transition(ProcessState.STOPPING):
                    stopping.append(managed)

            groups = [ProcessGroup(m.handle.pgid, label=m.name) for m in stopping]
            if groups:
                _logger.info(
                    "Stopping %d process(es) with %.1fs grace", len(groups), grace
                )
            self._force_killed = await terminate_groups(groups, grace)

            for managed in stopping:
                managed.exit_code = await managed.handle.wait()
                managed.stopped_at = utcnow()
                managed.force_killed = managed.name in self._force_killed
                await managed.machine.transition(ProcessState.STOPPED)

            await self._settle_readers()
        finally:
            self._shutdown_done.set()
        return list(self._force_killed)

    async def _settle_readers(self) -> None:
        readers = [t for m in self._processes.values() for t in m.readers if not t.done()]
        if not readers:
            return
        _, pending = await asyncio.wait(readers, timeout=_READER_SETTLE_SECONDS)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


async def _write_log(reader: asyncio.StreamReader, path: Path) -> None:
    """Append every line of ``reader`` to ``path``."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        f = open(path, "ab")
    except OSError as e:
        _logger.error("Cannot open log file %s: %s; discarding output", path, e)
        await pump_lines(reader, lambda line: None)
        return

    def _on_line(line: bytes) -> None:
        f.write(line + b"\n")
        f.flush()

    try:
        await pump_lines(reader, _on_line)
    finally:
        f.close()
