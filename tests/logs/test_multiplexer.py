"""Tests for the log multiplexer."""

from __future__ import annotations

import asyncio
import io

import pytest

from procyard.config import ColorMode
from procyard.logs.colors import make_console
from procyard.logs.multiplexer import LogMultiplexer, source_label


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def mux(output):
    return LogMultiplexer(console=make_console(ColorMode.NEVER, file=output))


def _reader(*chunks: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    reader.feed_eof()
    return reader


def test_source_label():
    assert source_label("web") == "web"
    assert source_label("web", stderr=True) == "web ERR"


@pytest.mark.asyncio
async def test_lines_are_prefixed(mux, output):
    mux.attach_stream("web", _reader(b"hello\nworld\n"))
    mux.attach_stream("web", _reader(b"boom\n"), stderr=True)
    await mux.close()

    lines = output.getvalue().splitlines()
    assert sorted(lines) == ["[web ERR] boom", "[web] hello", "[web] world"]


@pytest.mark.asyncio
async def test_order_within_a_source_is_preserved(mux, output):
    payload = b"".join(f"{i}\n".encode() for i in range(500))
    mux.attach_stream("a", _reader(payload))
    mux.attach_stream("b", _reader(payload))
    await mux.close()

    lines = output.getvalue().splitlines()
    for name in ("a", "b"):
        mine = [line.split("] ", 1)[1] for line in lines if line.startswith(f"[{name}]")]
        assert mine == [str(i) for i in range(500)]


@pytest.mark.asyncio
async def test_lines_never_interleave_mid_line(mux, output):
    long_a = b"a" * 10000 + b"\n"
    long_b = b"b" * 10000 + b"\n"
    mux.attach_stream("x", _reader(long_a[:3000], long_a[3000:]))
    mux.attach_stream("y", _reader(long_b[:5000], long_b[5000:]))
    await mux.close()

    lines = output.getvalue().splitlines()
    assert sorted(lines) == ["[x] " + "a" * 10000, "[y] " + "b" * 10000]


@pytest.mark.asyncio
async def test_partial_final_line_is_flushed(mux, output):
    mux.attach_stream("web", _reader(b"no newline"))
    await mux.close()
    assert output.getvalue() == "[web] no newline\n"


@pytest.mark.asyncio
async def test_emit_writes_directly(mux, output):
    mux.start()
    mux.emit("web ERR", "failed to start", color_key="web")
    await mux.close()
    assert output.getvalue() == "[web ERR] failed to start\n"


@pytest.mark.asyncio
async def test_stop_cancels_open_sources(mux, output):
    reader = asyncio.StreamReader()
    reader.feed_data(b"first\nhalf")
    mux.attach_stream("web", reader)
    await asyncio.sleep(0.05)
    await mux.stop()
    assert output.getvalue().splitlines() == ["[web] first", "[web] half"]


@pytest.mark.asyncio
async def test_follows_files(mux, output, tmp_path):
    path = tmp_path / "web.out.log"
    path.write_text("old\n")
    mux.attach_file("web", path, poll_interval=0.02)
    await asyncio.sleep(0.1)
    with open(path, "a") as f:
        f.write("new\n")
    await asyncio.sleep(0.15)
    await mux.stop()
    assert output.getvalue() == "[web] new\n"


@pytest.mark.asyncio
async def test_context_manager_stops(output):
    async with LogMultiplexer(console=make_console(ColorMode.NEVER, file=output)) as mux:
        mux.emit("task", "hi")
    assert output.getvalue() == "[task] hi\n"
