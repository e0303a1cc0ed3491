"""Foreground mode: run the project's processes attached to the terminal."""

from __future__ import annotations

import logging
from typing import Sequence

from procyard.exceptions import ConfigError
from procyard.logs.multiplexer import LogMultiplexer
from procyard.processes.runner import exit_status
from procyard.processes.signals import run_interruptible
from procyard.processes.supervisor import Supervisor
from procyard.project.loader import check_working_dirs
from procyard.types import ProcessSpec, ProjectConfig

_logger = logging.getLogger(__name__)


def select_processes(config: ProjectConfig, names: Sequence[str] | None) -> list[ProcessSpec]:
    """All processes, or only ``names`` in the order given."""
    if not names:
        return list(config.processes)
    selected = []
    for name in names:
        spec = config.process(name)
        if spec is None:
            raise ConfigError(f"Unknown process '{name}'")
        selected.append(spec)
    return selected


async def run_foreground(
    config: ProjectConfig,
    names: Sequence[str] | None = None,
    grace: float | None = None,
    mux: LogMultiplexer | None = None,
) -> int:
    """Run processes with multiplexed output until they all end or Ctrl-C.

    Returns the first non-zero exit status of a process that ended on its
    own (128 + N for a process killed by signal N), or 0 when interrupted.
    """
    specs = select_processes(config, names)
    if not specs:
        raise ConfigError("No processes defined")
    check_working_dirs(config, specs)

    mux = mux or LogMultiplexer()
    mux.start()
    supervisor = Supervisor(specs, root=config.root, mux=mux, grace=grace)

    code, interrupted = await run_interruptible(supervisor.run_until_idle())
    await mux.close()
    if interrupted:
        _logger.info("Interrupted; all processes stopped")
        return 0
    return exit_status(code or 0)
