"""Global configuration — loaded from environment variables."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings
from rich.console import Console
from rich.logging import RichHandler


class ColorMode(str, Enum):
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


class ProcyardSettings(BaseSettings):
    state_home: Path | None = None  # falls back to $XDG_STATE_HOME, then ~/.local/state
    grace_seconds: float = 5.0
    color: ColorMode = ColorMode.AUTO
    log_level: str = "WARNING"

    # Log tailing
    follow_poll_interval: float = 0.3
    tail_lines: int = 10

    # Daemon handoff
    start_timeout: float = 5.0  # how long `start` waits for the daemon's state file
    manager_stop_timeout: float = 5.0

    model_config = {"env_prefix": "PROCYARD_"}

    def resolved_state_home(self) -> Path:
        if self.state_home is not None:
            return self.state_home
        xdg = os.environ.get("XDG_STATE_HOME")
        if xdg:
            return Path(xdg)
        return Path.home() / ".local" / "state"

    def color_mode(self) -> ColorMode:
        # NO_COLOR only overrides auto
        if self.color == ColorMode.AUTO and os.environ.get("NO_COLOR"):
            return ColorMode.NEVER
        return self.color


settings = ProcyardSettings()


def configure_logging(level: str | None = None, daemon: bool = False) -> None:
    """Install the root handler for an interactive run or for the daemon."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if daemon:
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
        )
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)

    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())
