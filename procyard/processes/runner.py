"""Process Runner — one OS process per command, in its own process group."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from procyard.exceptions import SpawnError
from procyard.processes.groups import ProcessGroup

_logger = logging.getLogger(__name__)


def append_args(command: str, extra_args: Sequence[str]) -> str:
    """Append shell-quoted arguments to a command line."""
    if not extra_args:
        return command
    return f"{command} {shlex.join(extra_args)}"


def exit_status(returncode: int) -> int:
    """Shell-style status: a child killed by signal N becomes 128 + N."""
    return returncode if returncode >= 0 else 128 - returncode


@dataclass
class ProcessHandle:
    """A spawned child: its ids and (when captured) its output streams."""

    command: str
    process: asyncio.subprocess.Process
    pgid: int

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self.process.stderr

    @property
    def group(self) -> ProcessGroup:
        return ProcessGroup(self.pgid, label=self.command)

    async def wait(self) -> int:
        return await self.process.wait()


async def spawn(
    command: str,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    capture: bool = True,
) -> ProcessHandle:
    """Launch ``command`` through ``sh -c`` as the leader of a new session.

    With ``capture`` the child's stdout/stderr are pipes; otherwise they are
    inherited from the caller. ``env`` overrides individual variables.
    """
    if cwd is not None and not Path(cwd).is_dir():
        raise SpawnError(f"Working directory does not exist: {cwd}")

    pipe = asyncio.subprocess.PIPE if capture else None
    proc_env = {**os.environ, **env} if env else None

    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=pipe,
            stderr=pipe,
            cwd=str(cwd) if cwd is not None else None,
            env=proc_env,
            start_new_session=True,
        )
    except OSError as e:
        raise SpawnError(f"Failed to launch {command!r}: {e}") from e

    try:
        pgid = os.getpgid(proc.pid)
    except ProcessLookupError:
        # Already exited and reaped; with start_new_session the pgid is the pid
        pgid = proc.pid

    _logger.debug("Spawned %r pid=%s pgid=%s", command, proc.pid, pgid)
    return ProcessHandle(command=command, process=proc, pgid=pgid)
