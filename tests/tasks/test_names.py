"""Tests for task name normalization."""

from procyard.tasks.names import (
    display_task_name,
    has_separator,
    join_task_name,
    normalize_task_name,
    split_task_name,
)


def test_colon_and_dot_are_equivalent():
    assert normalize_task_name("build:frontend") == normalize_task_name("build.frontend")


def test_normalize_strips_whitespace_and_leading_separator():
    assert normalize_task_name("  :build:frontend ") == "build.frontend"


def test_display_uses_colons():
    assert display_task_name("build.frontend") == "build:frontend"


def test_split_and_join():
    assert split_task_name("a:b.c") == ["a", "b", "c"]
    assert split_task_name("") == []
    assert join_task_name("", "a", "b") == "a.b"


def test_has_separator():
    assert has_separator("a:b")
    assert has_separator("a.b")
    assert not has_separator("ab")
