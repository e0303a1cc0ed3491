"""Shared test fixtures — isolated state directories and throwaway projects."""

from __future__ import annotations

import textwrap

import pytest

from procyard.config import ColorMode, settings
from procyard.project.loader import load_project


@pytest.fixture(autouse=True)
def state_home(tmp_path, monkeypatch):
    """Every test gets its own state home; nothing touches ~/.local/state."""
    home = tmp_path / "state-home"
    monkeypatch.setattr(settings, "state_home", home)
    monkeypatch.setattr(settings, "color", ColorMode.NEVER)
    monkeypatch.setattr(settings, "grace_seconds", 1.0)
    return home


@pytest.fixture
def project_dir(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def make_project(project_dir):
    """Write a proc.toml (or Procfile) and load it."""

    def _factory(content: str, filename: str = "proc.toml"):
        (project_dir / filename).write_text(textwrap.dedent(content))
        return load_project(project_dir)

    return _factory
