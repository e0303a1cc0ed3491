"""Byte streams to complete lines."""

from __future__ import annotations

import asyncio
from typing import Callable

LineCallback = Callable[[bytes], None]

_CHUNK = 64 * 1024


class LineBuffer:
    """Splits incoming bytes on newlines, holding back a partial tail."""

    def __init__(self) -> None:
        self._partial = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        self._partial.extend(data)
        if b"\n" not in data:
            return []
        *complete, rest = bytes(self._partial).split(b"\n")
        self._partial = bytearray(rest)
        return complete

    def flush(self) -> bytes | None:
        """Return and clear the partial tail, if any."""
        if not self._partial:
            return None
        tail = bytes(self._partial)
        self._partial.clear()
        return tail

    def clear(self) -> None:
        self._partial.clear()


async def pump_lines(reader: asyncio.StreamReader, on_line: LineCallback) -> None:
    """Deliver every line of ``reader`` to ``on_line`` until EOF.

    A trailing line without newline is delivered at EOF, and also when the
    pump is cancelled, so no partial line is ever dropped.
    """
    buffer = LineBuffer()
    try:
        while True:
            data = await reader.read(_CHUNK)
            if not data:
                break
            for line in buffer.feed(data):
                on_line(line)
    finally:
        tail = buffer.flush()
        if tail is not None:
            on_line(tail)


def decode_line(line: bytes) -> str:
    return line.decode("utf-8", errors="replace").rstrip("\r")
