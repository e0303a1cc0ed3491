"""Reading log files: last N lines, and follow mode."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from procyard.logs.lines import LineBuffer, LineCallback

_logger = logging.getLogger(__name__)

_CHUNK = 8192


def tail_lines(path: Path | str, n: int) -> list[str]:
    """Return the last ``n`` lines of ``path``.

    Reads backwards in fixed chunks and stops as soon as enough newlines
    have been seen, so large files are never loaded whole.
    Raises FileNotFoundError if the file does not exist.
    """
    if n <= 0:
        return []
    with open(path, "rb") as f:
        size = f.seek(0, os.SEEK_END)
        buf = b""
        offset = size
        while offset > 0:
            step = min(_CHUNK, offset)
            offset -= step
            f.seek(offset)
            buf = f.read(step) + buf
            if buf.count(b"\n") > n:
                break

    lines = buf.decode("utf-8", errors="replace").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines[-n:]


async def follow_file(
    path: Path | str,
    on_line: LineCallback,
    poll_interval: float = 0.3,
    from_end: bool = True,
) -> None:
    """Deliver lines appended to ``path`` until cancelled.

    Waits for the file to appear. Starts at the end of the file unless
    ``from_end`` is False. Truncation restarts from the beginning and a
    replaced file (new inode) is reopened. A partial line is delivered
    when the follower is cancelled.
    """
    path = Path(path)
    while not path.exists():
        await asyncio.sleep(poll_interval)

    buffer = LineBuffer()
    f = open(path, "rb")
    try:
        pos = f.seek(0, os.SEEK_END) if from_end else 0
        while True:
            data = f.read(_CHUNK)
            if data:
                pos += len(data)
                for line in buffer.feed(data):
                    on_line(line)
                continue

            await asyncio.sleep(poll_interval)

            try:
                current = os.stat(path)
            except FileNotFoundError:
                continue
            if current.st_ino != os.fstat(f.fileno()).st_ino:
                _logger.debug("%s was replaced, reopening", path)
                f.close()
                f = open(path, "rb")
                pos = 0
                buffer.clear()
            elif current.st_size < pos:
                _logger.debug("%s was truncated, reading from start", path)
                pos = f.seek(0)
                buffer.clear()
    finally:
        tail = buffer.flush()
        if tail is not None:
            on_line(tail)
        f.close()
