"""Background manager: detach, supervise, persist.

`start_daemon` runs in the invoking process. It validates everything that
can fail early, takes the project lock, then double-forks. The grandchild
becomes the manager (session leader of nothing, no controlling terminal,
output in ``manager.log``) and the invoker waits for the manager to publish
its first state before returning.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from pathlib import Path

from procyard.config import configure_logging, settings
from procyard.exceptions import LockHeldError, ProcyardError
from procyard.processes.groups import pid_alive
from procyard.processes.signals import shutdown_signals
from procyard.processes.supervisor import Supervisor
from procyard.project.loader import check_working_dirs
from procyard.state.lock import ManagerLock
from procyard.state.store import StateStore
from procyard.types import DaemonState, ProjectConfig

_logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


def daemonize(log_path: Path, workdir: Path) -> bool:
    """Double-fork. Returns True in the daemon, False in the caller."""
    sys.stdout.flush()
    sys.stderr.flush()

    pid = os.fork()
    if pid > 0:
        # the intermediate child exits right after the second fork
        os.waitpid(pid, 0)
        return False

    try:
        os.setsid()
        if os.fork() > 0:
            os._exit(0)
    except OSError as e:
        print(f"procyard: fork failed: {e}", file=sys.stderr)
        os._exit(1)

    os.chdir(workdir)
    os.umask(0o022)

    with open(os.devnull, "rb") as dev_null:
        os.dup2(dev_null.fileno(), sys.stdin.fileno())
    with open(log_path, "ab") as log:
        os.dup2(log.fileno(), sys.stdout.fileno())
        os.dup2(log.fileno(), sys.stderr.fileno())
    return True


async def run_manager(
    config: ProjectConfig,
    store: StateStore,
    grace: float | None = None,
    stop_event: asyncio.Event | None = None,
) -> list[str]:
    """The daemon body: supervise every process until told to stop.

    Returns the names of processes that had to be SIGKILLed on the way out.
    """
    supervisor = Supervisor(config.processes, root=config.root, store=store, grace=grace)
    if stop_event is not None:
        return await supervisor.serve(stop_event)
    async with shutdown_signals() as stop:
        return await supervisor.serve(stop)


def start_daemon(
    config: ProjectConfig, store: StateStore, grace: float | None = None
) -> DaemonState:
    """Launch the manager for ``config`` and return its first published state."""
    store.discard_if_stale()
    existing = store.load()
    if existing is not None:
        raise LockHeldError(
            f"Daemon already running for {store.root} (manager pid {existing.manager.pid})"
        )
    if not config.processes:
        raise ProcyardError("No processes defined")
    check_working_dirs(config)
    store.ensure_dir()

    lock = ManagerLock(store.lock_path)
    lock.acquire()

    if daemonize(store.log_path, config.root):
        _run_daemon(config, store, lock, grace)

    lock.close()
    return _wait_for_manager(store)


def _run_daemon(
    config: ProjectConfig, store: StateStore, lock: ManagerLock, grace: float | None
) -> None:
    code = 0
    try:
        store.write_pid()
        configure_logging("INFO", daemon=True)
        _logger.info("Manager %s starting for %s", os.getpid(), config.root)
        killed = asyncio.run(run_manager(config, store, grace))
        if killed:
            _logger.warning("Force-killed: %s", ", ".join(killed))
        _logger.info("Manager %s exiting", os.getpid())
    except Exception:
        _logger.exception("Manager crashed")
        code = 1
    finally:
        store.remove_pid()
        lock.release()
        logging.shutdown()
    os._exit(code)


def _wait_for_manager(store: StateStore) -> DaemonState:
    deadline = time.monotonic() + settings.start_timeout
    while time.monotonic() < deadline:
        pid = store.read_pid()
        if pid is not None:
            state = store.load()
            if state is not None and state.manager.pid == pid:
                return state
            if not pid_alive(pid):
                break
        time.sleep(_POLL_INTERVAL)
    raise ProcyardError(
        f"Daemon did not report its state within {settings.start_timeout:.0f}s; "
        f"see {store.log_path}"
    )
