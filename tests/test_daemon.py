"""Tests for the background manager."""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
import textwrap
import time

import pytest

from procyard.daemon import run_manager
from procyard.processes.groups import pid_alive
from procyard.state.store import StateStore
from procyard.types import ConfigSource, ProcessSpec, ProcessState, ProjectConfig


def _config(root, *specs):
    return ProjectConfig(root=root, source=ConfigSource.PROC_TOML, processes=list(specs))


@pytest.mark.asyncio
async def test_run_manager_supervises_until_stopped(project_dir):
    store = StateStore(project_dir)
    config = _config(
        project_dir,
        ProcessSpec(name="web", command="echo serving; sleep 30"),
        ProcessSpec(name="once", command="exit 2"),
    )
    stop = asyncio.Event()
    manager = asyncio.create_task(run_manager(config, store, grace=1.0, stop_event=stop))
    await asyncio.sleep(0.3)

    state = store.load()
    assert state.manager.pid == os.getpid()
    assert state.process("web").state == ProcessState.RUNNING
    assert state.process("once").status_label() == "Exited(2)"
    assert (store.log_dir / "web.out.log").read_text() == "serving\n"

    stop.set()
    assert await manager == []
    assert store.load().process("web").state == ProcessState.STOPPED


def _cli(project_dir, state_home, *args, timeout=20):
    env = {
        **os.environ,
        "PROCYARD_STATE_HOME": str(state_home),
        "PROCYARD_GRACE_SECONDS": "1",
        "COLUMNS": "200",
    }
    return subprocess.run(
        [sys.executable, "-m", "procyard", "--root", str(project_dir), *args],
        env=env,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def test_start_status_stop_round_trip(project_dir, state_home):
    (project_dir / "proc.toml").write_text(
        textwrap.dedent(
            """
            [web]
            cmd = "echo up; sleep 30"
            """
        )
    )

    started = _cli(project_dir, state_home, "start")
    assert started.returncode == 0, started.stderr
    assert "Started 1 process(es)" in started.stdout

    try:
        again = _cli(project_dir, state_home, "start")
        assert again.returncode == 1
        assert "already running" in again.stderr

        status = _cli(project_dir, state_home, "status")
        assert status.returncode == 0
        assert "web" in status.stdout
        assert "Running" in status.stdout

        deadline = time.monotonic() + 5
        logs = _cli(project_dir, state_home, "logs", "--name", "web")
        while "up" not in logs.stdout and time.monotonic() < deadline:
            time.sleep(0.1)
            logs = _cli(project_dir, state_home, "logs", "--name", "web")
        assert "[web] up" in logs.stdout
    finally:
        stopped = _cli(project_dir, state_home, "stop", "--grace", "1")

    assert stopped.returncode == 0, stopped.stderr
    assert "Stopped 1 process(es)" in stopped.stdout

    store_dir = next((state_home / "procyard").iterdir())
    assert not (store_dir / "state.json").exists()

    second = _cli(project_dir, state_home, "stop")
    assert "already stopped" in second.stdout


def test_stale_pid_file_does_not_block_start(project_dir, state_home):
    (project_dir / "proc.toml").write_text('[web]\ncmd = "sleep 30"\n')
    store = StateStore(project_dir)
    dead = subprocess.Popen(["true"])
    dead.wait()
    store.write_pid(dead.pid)
    store.lock_path.touch()

    started = _cli(project_dir, state_home, "start")
    try:
        assert started.returncode == 0, started.stderr
        pid = store.read_pid()
        assert pid is not None and pid != dead.pid
        assert pid_alive(pid)
    finally:
        _cli(project_dir, state_home, "stop", "--grace", "1")
