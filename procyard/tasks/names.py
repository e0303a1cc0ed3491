"""Task names: ``build:frontend`` and ``build.frontend`` are the same task."""

from __future__ import annotations

SEPARATOR = "."
ALT_SEPARATOR = ":"


def normalize_task_name(name: str) -> str:
    """Canonical dotted form; a leading separator (absolute marker) is dropped."""
    return name.strip().replace(ALT_SEPARATOR, SEPARATOR).strip(SEPARATOR)


def display_task_name(name: str) -> str:
    return name.replace(SEPARATOR, ALT_SEPARATOR)


def has_separator(name: str) -> bool:
    return SEPARATOR in name or ALT_SEPARATOR in name


def split_task_name(name: str) -> list[str]:
    normalized = normalize_task_name(name)
    return normalized.split(SEPARATOR) if normalized else []


def join_task_name(*fragments: str) -> str:
    return SEPARATOR.join(f for f in fragments if f)
