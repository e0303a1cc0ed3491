"""Managed process state machine — enforces valid lifecycle transitions."""

from __future__ import annotations

import asyncio
from typing import Callable, Awaitable

from procyard.types import ProcessName, ProcessState
from procyard.exceptions import ProcessStateError

TransitionCallback = Callable[[ProcessName, ProcessState, ProcessState], Awaitable[None]]

# No restart policy: stopped and exited are terminal
VALID_TRANSITIONS: dict[ProcessState, set[ProcessState]] = {
    ProcessState.STARTING: {ProcessState.RUNNING, ProcessState.EXITED},
    ProcessState.RUNNING: {ProcessState.EXITED, ProcessState.STOPPING},
    ProcessState.STOPPING: {ProcessState.STOPPED},
    ProcessState.STOPPED: set(),  # terminal
    ProcessState.EXITED: set(),  # terminal
}


class ProcessStateMachine:
    """Manages the lifecycle state of a single managed process.

    Enforces that only valid transitions occur and notifies listeners
    on every state change.
    """

    def __init__(self, name: ProcessName):
        self.name = name
        self._state = ProcessState.STARTING
        self._listeners: list[TransitionCallback] = []
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ProcessState:
        return self._state

    async def transition(self, target: ProcessState) -> None:
        async with self._lock:
            valid = VALID_TRANSITIONS.get(self._state, set())
            if target not in valid:
                raise ProcessStateError(
                    f"Cannot transition process {self.name} "
                    f"from {self._state.value} to {target.value}"
                )
            old = self._state
            self._state = target
        # Notify listeners outside the lock
        for listener in self._listeners:
            await listener(self.name, old, target)

    async def try_transition(self, target: ProcessState) -> bool:
        """Like transition(), but returns False instead of raising."""
        try:
            await self.transition(target)
        except ProcessStateError:
            return False
        return True

    def on_transition(self, callback: TransitionCallback) -> None:
        self._listeners.append(callback)
