"""Tests for byte-stream line splitting."""

from __future__ import annotations

import asyncio

import pytest

from procyard.logs.lines import LineBuffer, decode_line, pump_lines


def test_complete_lines_are_returned():
    buf = LineBuffer()
    assert buf.feed(b"a\nb\n") == [b"a", b"b"]
    assert buf.flush() is None


def test_partial_line_is_held_back():
    buf = LineBuffer()
    assert buf.feed(b"hel") == []
    assert buf.feed(b"lo\nwor") == [b"hello"]
    assert buf.flush() == b"wor"
    assert buf.flush() is None


def test_empty_lines_are_preserved():
    assert LineBuffer().feed(b"\n\nx\n") == [b"", b"", b"x"]


def test_decode_replaces_invalid_utf8_and_strips_cr():
    assert decode_line(b"ok\r") == "ok"
    assert decode_line(b"\xffbad") == "�bad"


@pytest.mark.asyncio
async def test_pump_delivers_trailing_partial_line():
    reader = asyncio.StreamReader()
    reader.feed_data(b"one\ntwo\nthr")
    reader.feed_data(b"ee")
    reader.feed_eof()

    seen = []
    await pump_lines(reader, seen.append)
    assert seen == [b"one", b"two", b"three"]


@pytest.mark.asyncio
async def test_pump_flushes_partial_line_on_cancel():
    reader = asyncio.StreamReader()
    reader.feed_data(b"done\npart")
    seen = []
    task = asyncio.create_task(pump_lines(reader, seen.append))
    await asyncio.sleep(0.05)
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    assert seen == [b"done", b"part"]
