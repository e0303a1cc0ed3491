"""Tests for environment-driven settings."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

from procyard.config import ColorMode, ProcyardSettings, configure_logging


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("PROCYARD_GRACE_SECONDS", "2.5")
    monkeypatch.setenv("PROCYARD_COLOR", "always")
    s = ProcyardSettings()
    assert s.grace_seconds == 2.5
    assert s.color == ColorMode.ALWAYS


def test_state_home_fallbacks(monkeypatch, tmp_path):
    monkeypatch.delenv("PROCYARD_STATE_HOME", raising=False)
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg"))
    assert ProcyardSettings().resolved_state_home() == tmp_path / "xdg"

    monkeypatch.delenv("XDG_STATE_HOME")
    assert ProcyardSettings().resolved_state_home() == Path.home() / ".local" / "state"

    monkeypatch.setenv("PROCYARD_STATE_HOME", str(tmp_path / "explicit"))
    assert ProcyardSettings().resolved_state_home() == tmp_path / "explicit"


def test_no_color_overrides_auto_only(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    assert ProcyardSettings(color=ColorMode.AUTO).color_mode() == ColorMode.NEVER
    assert ProcyardSettings(color=ColorMode.ALWAYS).color_mode() == ColorMode.ALWAYS


def test_configure_logging_handlers():
    root = logging.getLogger()
    configure_logging("DEBUG")
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0], RichHandler)
    assert root.level == logging.DEBUG

    configure_logging("info", daemon=True)
    assert len(root.handlers) == 1
    assert not isinstance(root.handlers[0], RichHandler)
    assert root.level == logging.INFO
    configure_logging("WARNING")
