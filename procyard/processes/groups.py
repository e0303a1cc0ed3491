"""Process groups as the unit of signal delivery.

Shell commands may fork children of their own; signaling only the leading
pid would let those escape. Everything here targets the group id.
"""

from __future__ import annotations

import logging
import os
import signal
from typing import Protocol

import psutil

_logger = logging.getLogger(__name__)


class Killable(Protocol):
    label: str

    def send(self, sig: signal.Signals) -> bool: ...

    def alive(self) -> bool: ...


class ProcessGroup:
    """A process group addressed by its pgid."""

    def __init__(self, pgid: int, label: str = "") -> None:
        if pgid <= 1:
            raise ValueError(f"refusing to address process group {pgid}")
        self.pgid = pgid
        self.label = label or str(pgid)

    def send(self, sig: signal.Signals) -> bool:
        """Signal every member. Returns False if the group is already gone."""
        if self.pgid == os.getpgrp():
            raise ValueError(f"refusing to signal our own process group {self.pgid}")
        try:
            os.killpg(self.pgid, sig)
        except ProcessLookupError:
            return False
        except PermissionError:
            _logger.warning("Not permitted to signal group %s (%s)", self.pgid, self.label)
            return False
        _logger.debug("Sent %s to group %s (%s)", sig.name, self.pgid, self.label)
        return True

    def alive(self) -> bool:
        """True while any member is running; zombies awaiting reaping don't count."""
        try:
            os.killpg(self.pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return any(True for _ in self.members())

    def members(self) -> list[psutil.Process]:
        """Non-zombie processes currently in the group."""
        found = []
        for proc in psutil.process_iter():
            try:
                if os.getpgid(proc.pid) == self.pgid and proc.status() != psutil.STATUS_ZOMBIE:
                    found.append(proc)
            except (ProcessLookupError, psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return found

    def __repr__(self) -> str:
        return f"ProcessGroup(pgid={self.pgid}, label={self.label!r})"


def pid_alive(pid: int) -> bool:
    """True if pid exists and is not a zombie waiting to be reaped."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


def process_create_time(pid: int) -> float | None:
    try:
        return psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None
