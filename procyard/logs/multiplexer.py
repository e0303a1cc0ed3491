"""Log Multiplexer — fan-in of many labeled line sources into one console.

Every source gets its own reader task that only ever enqueues; a single
consumer task owns the console, so lines from different sources never
interleave mid-line. Order within one source is preserved; order across
sources is arrival order and nothing more.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from procyard.config import ColorMode, settings
from procyard.logs.colors import make_console, render_line
from procyard.logs.lines import decode_line, pump_lines
from procyard.logs.tail import follow_file

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogLine:
    label: str
    text: str
    color_key: str


def source_label(name: str, stderr: bool = False) -> str:
    return f"{name} ERR" if stderr else name


class LogMultiplexer:
    """Merges labeled byte-line sources into one prefixed output."""

    def __init__(self, console: Console | None = None, mode: ColorMode | None = None) -> None:
        self._console = console or make_console(mode or settings.color_mode())
        self._queue: asyncio.Queue[LogLine] = asyncio.Queue()
        self._sources: list[asyncio.Task] = []
        self._consumer: asyncio.Task | None = None

    @property
    def console(self) -> Console:
        return self._console

    def start(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._drain())

    def emit(self, label: str, text: str, color_key: str | None = None) -> None:
        self._queue.put_nowait(LogLine(label, text, color_key or label))

    def _sink(self, name: str, stderr: bool):
        label = source_label(name, stderr)

        def _on_line(line: bytes) -> None:
            self.emit(label, decode_line(line), color_key=name)

        return _on_line

    def attach_stream(
        self, name: str, reader: asyncio.StreamReader, stderr: bool = False
    ) -> asyncio.Task:
        """Read a live pipe until EOF."""
        self.start()
        task = asyncio.create_task(pump_lines(reader, self._sink(name, stderr)))
        self._sources.append(task)
        return task

    def attach_file(
        self,
        name: str,
        path: Path | str,
        stderr: bool = False,
        from_end: bool = True,
        poll_interval: float | None = None,
    ) -> asyncio.Task:
        """Follow a log file until the multiplexer is stopped."""
        self.start()
        interval = poll_interval if poll_interval is not None else settings.follow_poll_interval
        task = asyncio.create_task(
            follow_file(path, self._sink(name, stderr), poll_interval=interval, from_end=from_end)
        )
        self._sources.append(task)
        return task

    async def _drain(self) -> None:
        while True:
            line = await self._queue.get()
            try:
                self._write(line)
            except Exception:
                _logger.exception("Failed to write log line for %s", line.label)
            finally:
                self._queue.task_done()

    def _write(self, line: LogLine) -> None:
        self._console.print(render_line(line.label, line.text, line.color_key))

    async def close(self) -> None:
        """Wait for all sources to finish, write what they produced, stop."""
        if self._sources:
            await asyncio.gather(*self._sources, return_exceptions=True)
            self._sources.clear()
        await self._shutdown_consumer()

    async def stop(self) -> None:
        """Cancel every source (partial lines are flushed), drain, stop."""
        for task in self._sources:
            task.cancel()
        if self._sources:
            await asyncio.gather(*self._sources, return_exceptions=True)
            self._sources.clear()
        await self._shutdown_consumer()

    async def _shutdown_consumer(self) -> None:
        if self._consumer is None:
            return
        await self._queue.join()
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None

    async def __aenter__(self) -> LogMultiplexer:
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
