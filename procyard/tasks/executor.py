"""Task Executor — runs a resolved task plan.

Leaves run once with the terminal's stdio (or, under a parallel group,
with output multiplexed under the leaf's name). Process references run
the named long-running processes in the foreground. Sequential groups
stop at the first failure; parallel groups let every child finish and
fail if any child failed. Extra arguments are appended to every command
reached.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Sequence

from procyard.config import settings
from procyard.exceptions import SpawnError
from procyard.logs.multiplexer import LogMultiplexer, source_label
from procyard.processes.runner import append_args, exit_status, spawn
from procyard.processes.shutdown import terminate_groups
from procyard.processes.signals import run_interruptible
from procyard.processes.supervisor import SPAWN_FAILED_EXIT, Supervisor
from procyard.tasks.graph import PlanNode, TaskGraph
from procyard.tasks.names import display_task_name
from procyard.types import GroupTask, LeafTask, ProcessRefTask, ProjectConfig, TaskResult

_logger = logging.getLogger(__name__)

INTERRUPTED_EXIT = 130


class TaskExecutor:
    """Executes tasks of one project."""

    def __init__(
        self,
        config: ProjectConfig,
        graph: TaskGraph | None = None,
        grace: float | None = None,
        mux: LogMultiplexer | None = None,
    ) -> None:
        self._config = config
        self._graph = graph or TaskGraph(config.tasks, config.processes)
        self._grace = settings.grace_seconds if grace is None else grace
        self._mux = mux

    @property
    def graph(self) -> TaskGraph:
        return self._graph

    def plan(self, name: str) -> PlanNode:
        return self._graph.plan(name)

    async def run(self, name: str, extra_args: Sequence[str] = ()) -> TaskResult:
        """Resolve ``name`` (failing before anything runs) and execute it."""
        return await self.execute(self.plan(name), extra_args)

    async def execute(self, plan: PlanNode, extra_args: Sequence[str] = ()) -> TaskResult:
        args = tuple(extra_args)
        try:
            result = await self._execute(plan, args, captured=False)
        except asyncio.CancelledError:
            if self._mux is not None:
                await self._mux.stop()
            raise
        if self._mux is not None:
            await self._mux.close()
        return result

    def _ensure_mux(self) -> LogMultiplexer:
        if self._mux is None:
            self._mux = LogMultiplexer()
        self._mux.start()
        return self._mux

    async def _execute(self, node: PlanNode, args: tuple[str, ...], captured: bool) -> TaskResult:
        task = node.task
        if isinstance(task, LeafTask):
            return await self._run_leaf(node, task, args, captured)
        if isinstance(task, ProcessRefTask):
            return await self._run_processes(node, args)
        if isinstance(task, GroupTask) and task.parallel:
            return await self._run_parallel(node, args)
        return await self._run_sequential(node, args, captured)

    # ── Leaves ──────────────────────────────────────────────────

    def _leaf_cwd(self, task: LeafTask) -> Path:
        if not task.cwd:
            return self._config.root
        path = Path(task.cwd)
        return path if path.is_absolute() else self._config.root / path

    async def _run_leaf(
        self, node: PlanNode, task: LeafTask, args: tuple[str, ...], captured: bool
    ) -> TaskResult:
        label = node.display_name
        command = append_args(task.cmd, args)
        _logger.info("Running task %s: %s", label, command)

        try:
            handle = await spawn(command, cwd=self._leaf_cwd(task), capture=captured)
        except SpawnError as e:
            _logger.error("Task %s could not start: %s", label, e)
            if captured:
                self._ensure_mux().emit(source_label(label, stderr=True), str(e), color_key=label)
            return TaskResult(name=label, exit_code=SPAWN_FAILED_EXIT, error=str(e))

        readers: list[asyncio.Task] = []
        if captured:
            mux = self._ensure_mux()
            readers = [
                mux.attach_stream(label, handle.stdout),
                mux.attach_stream(label, handle.stderr, stderr=True),
            ]

        try:
            code = exit_status(await handle.wait())
            if readers:
                await asyncio.gather(*readers, return_exceptions=True)
        except asyncio.CancelledError:
            await terminate_groups([handle.group], self._grace)
            raise

        if code != 0:
            _logger.info("Task %s failed with exit code %s", label, code)
            return TaskResult(name=label, exit_code=code, error=f"task {label} exited with {code}")
        return TaskResult(name=label, exit_code=0)

    # ── Process references ──────────────────────────────────────

    async def _run_processes(self, node: PlanNode, args: tuple[str, ...]) -> TaskResult:
        supervisor = Supervisor(
            node.processes,
            root=self._config.root,
            mux=self._ensure_mux(),
            grace=self._grace,
            extra_args=args,
        )
        code = exit_status(await supervisor.run_until_idle())
        return TaskResult(
            name=node.display_name,
            exit_code=code,
            error=None if code == 0 else f"a process of {node.display_name} exited with {code}",
        )

    # ── Groups ──────────────────────────────────────────────────

    async def _run_sequential(
        self, node: PlanNode, args: tuple[str, ...], captured: bool
    ) -> TaskResult:
        for child in node.children:
            result = await self._execute(child, args, captured)
            if not result.ok:
                # later children are skipped
                return result
        return TaskResult(name=node.display_name, exit_code=0)

    async def _run_parallel(self, node: PlanNode, args: tuple[str, ...]) -> TaskResult:
        outcomes = await asyncio.gather(
            *(self._execute(child, args, captured=True) for child in node.children),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        for outcome in outcomes:
            if not outcome.ok:
                return outcome
        return TaskResult(name=node.display_name, exit_code=0)


async def run_task(
    config: ProjectConfig,
    name: str,
    extra_args: Sequence[str] = (),
    grace: float | None = None,
) -> TaskResult:
    """Run one task as an interactive session.

    Resolution errors are raised before anything starts. SIGINT/SIGTERM
    cancel everything in flight and yield exit code 130.
    """
    executor = TaskExecutor(config, grace=grace)
    plan = executor.plan(name)
    result, interrupted = await run_interruptible(executor.execute(plan, extra_args))
    if interrupted:
        return TaskResult(
            name=display_task_name(plan.name), exit_code=INTERRUPTED_EXIT, error="interrupted"
        )
    return result
