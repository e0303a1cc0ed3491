"""Daemon state persistence — the only state shared between invocations.

One directory per project (see ``dirs``) holds:

    state.json    serialized DaemonState
    manager.pid   the manager's pid, text
    manager.log   the manager's own stdout/stderr
    manager.lock  advisory lock held by the live manager
    logs/         default per-process log files

Writes go to a temp file in the same directory and are renamed into
place, so readers only ever see a complete file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from procyard.exceptions import StaleStateError, StateIOError
from procyard.processes.groups import pid_alive, process_create_time
from procyard.state.dirs import canonical_root, project_id, state_dir_for
from procyard.types import DaemonState, utcnow

logger = logging.getLogger(__name__)

# psutil create_time is float seconds; allow for rounding between readers
_CREATE_TIME_TOLERANCE = 1.0


class StateStore:
    """Reads and writes one project's daemon state directory."""

    def __init__(self, root: Path | str, state_dir: Path | None = None) -> None:
        self.root = canonical_root(root)
        self.project_id = project_id(self.root)
        self.dir = state_dir if state_dir is not None else state_dir_for(self.root)

    @property
    def state_path(self) -> Path:
        return self.dir / "state.json"

    @property
    def pid_path(self) -> Path:
        return self.dir / "manager.pid"

    @property
    def lock_path(self) -> Path:
        return self.dir / "manager.lock"

    @property
    def log_path(self) -> Path:
        return self.dir / "manager.log"

    @property
    def log_dir(self) -> Path:
        return self.dir / "logs"

    def ensure_dir(self) -> None:
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
            self.log_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise StateIOError(f"Cannot create state directory {self.dir}: {e}") from e

    # ── Save / Load ─────────────────────────────────────────────

    def load(self) -> DaemonState | None:
        """Load state from disk; missing or corrupt state counts as none."""
        if not self.state_path.exists():
            return None
        try:
            raw = self.state_path.read_text(encoding="utf-8")
            return DaemonState.model_validate_json(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.state_path, e)
            return None

    def load_fresh(self) -> DaemonState | None:
        """Load state, raising StaleStateError if its manager is gone."""
        state = self.load()
        if state is not None and self.is_stale(state):
            raise StaleStateError(
                f"Manager pid {state.manager.pid} recorded in {self.state_path} is not running"
            )
        return state

    def save(self, state: DaemonState) -> None:
        """Persist atomically: write a temp file, then rename over state.json."""
        state.updated_at = utcnow()
        self.ensure_dir()
        fd, tmp = tempfile.mkstemp(prefix=".state.", suffix=".tmp", dir=self.dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.state_path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise StateIOError(f"Failed to write {self.state_path}: {e}") from e

    # ── Freshness ───────────────────────────────────────────────

    def is_stale(self, state: DaemonState) -> bool:
        """True unless the recorded manager pid is a live process we started.

        A recycled pid is caught by comparing process creation times.
        """
        pid = state.manager.pid
        if not pid_alive(pid):
            return True
        if state.manager.create_time is None:
            return False
        actual = process_create_time(pid)
        if actual is None:
            return False
        return abs(actual - state.manager.create_time) > _CREATE_TIME_TOLERANCE

    def discard_if_stale(self) -> bool:
        """Remove leftovers of a dead daemon. Returns True if anything was stale."""
        try:
            self.load_fresh()
        except StaleStateError as e:
            logger.info("Discarding stale daemon state: %s", e)
            self.clear()
            return True

        pid = self.read_pid()
        if pid is not None and not pid_alive(pid) and self.load() is None:
            logger.info("Removing stale manager.pid (pid %s)", pid)
            self.clear()
            return True
        return False

    # ── PID file ────────────────────────────────────────────────

    def write_pid(self, pid: int | None = None) -> None:
        self.ensure_dir()
        try:
            self.pid_path.write_text(f"{pid or os.getpid()}\n", encoding="utf-8")
        except OSError as e:
            raise StateIOError(f"Failed to write {self.pid_path}: {e}") from e

    def read_pid(self) -> int | None:
        try:
            return int(self.pid_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def remove_pid(self) -> None:
        self.pid_path.unlink(missing_ok=True)

    def clear(self) -> None:
        """Remove state, pid and lock files. Logs are kept."""
        for path in (self.state_path, self.pid_path, self.lock_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)
