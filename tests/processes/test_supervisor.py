"""Tests for the process supervisor."""

from __future__ import annotations

import asyncio
import io

import pytest

from procyard.config import ColorMode
from procyard.logs.colors import make_console
from procyard.logs.multiplexer import LogMultiplexer
from procyard.processes.supervisor import SPAWN_FAILED_EXIT, Supervisor
from procyard.state.store import StateStore
from procyard.types import ProcessSpec, ProcessState


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


def _spec(name, command, **kw):
    return ProcessSpec(name=name, command=command, **kw)


@pytest.mark.asyncio
async def test_output_goes_to_log_files(project_dir, log_dir):
    sup = Supervisor(
        [_spec("web", "echo hello; echo oops 1>&2")], root=project_dir, log_dir=log_dir
    )
    assert await sup.run_until_idle() == 0

    assert (log_dir / "web.out.log").read_text() == "hello\n"
    assert (log_dir / "web.err.log").read_text() == "oops\n"
    assert sup.get("web").state == ProcessState.EXITED
    assert sup.get("web").exit_code == 0


@pytest.mark.asyncio
async def test_explicit_log_paths_are_relative_to_root(project_dir, log_dir):
    spec = _spec("web", "echo hi", stdout_path="out/web.log", stderr_path="out/web.err")
    sup = Supervisor([spec], root=project_dir, log_dir=log_dir)
    await sup.run_until_idle()
    assert (project_dir / "out" / "web.log").read_text() == "hi\n"


@pytest.mark.asyncio
async def test_log_files_are_appended(project_dir, log_dir):
    for _ in range(2):
        sup = Supervisor([_spec("web", "echo again")], root=project_dir, log_dir=log_dir)
        await sup.run_until_idle()
    assert (log_dir / "web.out.log").read_text() == "again\nagain\n"


@pytest.mark.asyncio
async def test_partial_last_line_is_kept(project_dir, log_dir):
    sup = Supervisor([_spec("web", "printf 'no newline'")], root=project_dir, log_dir=log_dir)
    await sup.run_until_idle()
    assert (log_dir / "web.out.log").read_text() == "no newline\n"


@pytest.mark.asyncio
async def test_first_failure_is_the_exit_code(project_dir, log_dir):
    sup = Supervisor(
        [_spec("ok", "true"), _spec("bad", "exit 4")], root=project_dir, log_dir=log_dir
    )
    assert await sup.run_until_idle() == 4
    assert sup.get("bad").record().status_label() == "Exited(4)"


@pytest.mark.asyncio
async def test_spawn_failure_does_not_stop_siblings(project_dir, log_dir):
    sup = Supervisor(
        [_spec("broken", "true", cwd="missing"), _spec("fine", "echo fine")],
        root=project_dir,
        log_dir=log_dir,
    )
    code = await sup.run_until_idle()

    assert code == SPAWN_FAILED_EXIT
    broken = sup.get("broken")
    assert broken.state == ProcessState.EXITED
    assert broken.exit_code == SPAWN_FAILED_EXIT
    assert broken.error
    assert (log_dir / "fine.out.log").read_text() == "fine\n"


@pytest.mark.asyncio
async def test_every_transition_is_persisted(project_dir):
    store = StateStore(project_dir)
    sup = Supervisor([_spec("web", "sleep 30")], root=project_dir, store=store, grace=1.0)
    await sup.start()

    state = store.load()
    assert state is not None
    web = state.process("web")
    assert web.state == ProcessState.RUNNING
    assert web.pid == sup.get("web").handle.pid
    assert web.pgid == web.pid
    assert web.stdout_path.endswith("web.out.log")

    await sup.shutdown()
    web = store.load().process("web")
    assert web.state == ProcessState.STOPPED
    assert web.status_label() == "Stopped"
    assert web.stopped_at is not None


@pytest.mark.asyncio
async def test_exit_is_persisted(project_dir):
    store = StateStore(project_dir)
    sup = Supervisor([_spec("job", "exit 2")], root=project_dir, store=store)
    await sup.run_until_idle()
    job = store.load().process("job")
    assert job.state == ProcessState.EXITED
    assert job.exit_code == 2


@pytest.mark.asyncio
async def test_shutdown_is_idempotent(project_dir, log_dir):
    sup = Supervisor([_spec("web", "sleep 30")], root=project_dir, log_dir=log_dir, grace=1.0)
    await sup.start()
    first, second = await asyncio.gather(sup.shutdown(), sup.shutdown())
    assert first == second == []
    assert await sup.shutdown() == []
    assert sup.get("web").state == ProcessState.STOPPED


@pytest.mark.asyncio
async def test_shutdown_escalates_for_stubborn_process(project_dir, log_dir):
    sup = Supervisor(
        [_spec("stubborn", "trap '' TERM; sleep 30 & wait"), _spec("polite", "sleep 30")],
        root=project_dir,
        log_dir=log_dir,
    )
    await sup.start()
    await asyncio.sleep(0.2)

    killed = await sup.shutdown(grace=0.3)

    assert killed == ["stubborn"]
    assert sup.get("stubborn").force_killed
    assert not sup.get("polite").force_killed
    assert all(m.state == ProcessState.STOPPED for m in sup.processes)


@pytest.mark.asyncio
async def test_cancelling_foreground_run_stops_everything(project_dir, log_dir):
    sup = Supervisor([_spec("web", "sleep 30")], root=project_dir, log_dir=log_dir, grace=1.0)
    task = asyncio.create_task(sup.run_until_idle())
    await asyncio.sleep(0.2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert sup.get("web").state == ProcessState.STOPPED
    assert sup.get("web").handle.process.returncode is not None


@pytest.mark.asyncio
async def test_serve_until_stop_event(project_dir):
    store = StateStore(project_dir)
    sup = Supervisor([_spec("web", "sleep 30")], root=project_dir, store=store, grace=1.0)
    stop = asyncio.Event()
    serving = asyncio.create_task(sup.serve(stop))
    await asyncio.sleep(0.2)
    assert store.load().process("web").state == ProcessState.RUNNING

    stop.set()
    assert await serving == []
    assert store.load().process("web").state == ProcessState.STOPPED


@pytest.mark.asyncio
async def test_multiplexed_output(project_dir):
    buf = io.StringIO()
    mux = LogMultiplexer(console=make_console(ColorMode.NEVER, file=buf))
    sup = Supervisor(
        [_spec("web", "echo hello"), _spec("worker", "echo boom 1>&2")],
        root=project_dir,
        mux=mux,
    )
    await sup.run_until_idle()
    await mux.close()

    lines = buf.getvalue().splitlines()
    assert "[web] hello" in lines
    assert "[worker ERR] boom" in lines


@pytest.mark.asyncio
async def test_extra_args_are_appended(project_dir, log_dir):
    sup = Supervisor(
        [_spec("echo", "echo")], root=project_dir, log_dir=log_dir, extra_args=["a b", "c"]
    )
    await sup.run_until_idle()
    assert (log_dir / "echo.out.log").read_text() == "a b c\n"
    assert sup.get("echo").command == "echo 'a b' c"


def test_needs_log_dir_or_mux(project_dir):
    with pytest.raises(ValueError):
        Supervisor([_spec("web", "true")], root=project_dir)
