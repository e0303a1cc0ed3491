"""Label colors and console construction."""

from __future__ import annotations

import hashlib
from typing import IO

from rich.console import Console
from rich.text import Text

from procyard.config import ColorMode

PALETTE = (
    "red",
    "green",
    "yellow",
    "blue",
    "magenta",
    "cyan",
    "bright_red",
    "bright_green",
    "bright_yellow",
    "bright_blue",
    "bright_magenta",
    "bright_cyan",
)


def color_index(key: str) -> int:
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "little") % len(PALETTE)


def color_for(key: str) -> str:
    """Stable palette color for a process or task name."""
    return PALETTE[color_index(key)]


def make_console(mode: ColorMode = ColorMode.AUTO, file: IO[str] | None = None) -> Console:
    """A console for prefixed log output.

    ``auto`` colors only when the destination is a terminal.
    """
    common = {"file": file, "highlight": False, "emoji": False, "soft_wrap": True}
    if mode == ColorMode.ALWAYS:
        return Console(force_terminal=True, color_system="standard", **common)
    if mode == ColorMode.NEVER:
        return Console(color_system=None, no_color=True, **common)
    return Console(**common)


def render_line(label: str, text: str, color_key: str | None = None) -> Text:
    """``[label] text`` with only the label styled."""
    line = Text("[")
    line.append(label, style=color_for(color_key or label))
    line.append("] ")
    line.append_text(Text.from_ansi(text))
    return line
