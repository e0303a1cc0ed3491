"""CLI runtime context — project resolution and the sync/async bridge."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Coroutine

from procyard.config import ColorMode, settings
from procyard.project.loader import load_project
from procyard.state.store import StateStore
from procyard.types import ProjectConfig


@dataclass
class CliContext:
    """Per-invocation options shared by every command."""

    root: Path
    color: ColorMode | None = None

    def config(self) -> ProjectConfig:
        return load_project(self.root)

    def store(self) -> StateStore:
        return StateStore(self.root)

    def apply(self) -> None:
        if self.color is not None:
            settings.color = self.color


def run_async(coro: Coroutine) -> Any:
    """Run a procyard coroutine to completion on a fresh event loop.

    Sessions install SIGINT/SIGTERM handlers on their loop, which only
    works on the main thread, so nesting inside a running loop is refused.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    coro.close()
    raise RuntimeError("run_async() cannot be called from a running event loop")
