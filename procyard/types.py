"""Core types shared across all procyard subsystems."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

ProcessName: TypeAlias = str
TaskName: TypeAlias = str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Process definitions ──────────────────────────────────────────────────────


class ProcessSpec(BaseModel):
    """A long-running process as declared by the project."""

    model_config = ConfigDict(frozen=True)

    name: ProcessName
    command: str
    cwd: str | None = None
    stdout_path: str | None = None
    stderr_path: str | None = None

    def working_dir(self, root: Path) -> Path:
        if not self.cwd:
            return root
        path = Path(self.cwd)
        return path if path.is_absolute() else root / path

    def log_paths(self, root: Path, log_dir: Path) -> tuple[Path, Path]:
        """Resolved (stdout, stderr) log file paths.

        Explicit relative paths are anchored at the project root; missing
        ones default to ``<name>.out.log`` / ``<name>.err.log`` in log_dir.
        """
        return (
            _resolve_log(self.stdout_path, root, log_dir / f"{self.name}.out.log"),
            _resolve_log(self.stderr_path, root, log_dir / f"{self.name}.err.log"),
        )


def _resolve_log(explicit: str | None, root: Path, default: Path) -> Path:
    if not explicit:
        return default
    path = Path(explicit)
    return path if path.is_absolute() else root / path


# ── Task definitions ─────────────────────────────────────────────────────────


class TaskKind(str, Enum):
    LEAF = "leaf"
    PROCESSES = "processes"
    GROUP = "group"


class LeafTask(BaseModel):
    """A single shell command."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[TaskKind.LEAF] = TaskKind.LEAF
    name: TaskName
    cmd: str
    cwd: str | None = None


class ProcessRefTask(BaseModel):
    """Runs named long-running processes in the foreground."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[TaskKind.PROCESSES] = TaskKind.PROCESSES
    name: TaskName
    processes: list[ProcessName]


class GroupTask(BaseModel):
    """An ordered (or concurrent) set of other tasks."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[TaskKind.GROUP] = TaskKind.GROUP
    name: TaskName
    children: list[TaskName]
    parallel: bool = False

    @model_validator(mode="before")
    @classmethod
    def _no_cwd(cls, data):
        if isinstance(data, dict) and data.get("cwd") is not None:
            raise ValueError(
                f"group task '{data.get('name', '?')}' cannot set cwd; "
                "its children own their working directories"
            )
        return data


TaskSpec = Annotated[
    Union[LeafTask, ProcessRefTask, GroupTask],
    Field(discriminator="kind"),
]


class ConfigSource(str, Enum):
    PROC_TOML = "proc.toml"
    PROCFILE = "Procfile"


class ProjectConfig(BaseModel):
    """Resolved configuration for one project root."""

    root: Path
    source: ConfigSource
    processes: list[ProcessSpec] = Field(default_factory=list)
    tasks: list[TaskSpec] = Field(default_factory=list)

    def process(self, name: ProcessName) -> ProcessSpec | None:
        for spec in self.processes:
            if spec.name == name:
                return spec
        return None


# ── Daemon state ─────────────────────────────────────────────────────────────


class ProcessState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    EXITED = "exited"


class RunningProcess(BaseModel):
    """A managed process as recorded by the daemon."""

    name: ProcessName
    pid: int
    pgid: int
    command: str
    cwd: str | None = None
    stdout_path: str
    stderr_path: str
    started_at: datetime = Field(default_factory=utcnow)
    state: ProcessState = ProcessState.STARTING
    exit_code: int | None = None
    stopped_at: datetime | None = None
    force_killed: bool = False

    @property
    def is_active(self) -> bool:
        return self.state in (
            ProcessState.STARTING, ProcessState.RUNNING, ProcessState.STOPPING,
        )

    def status_label(self, alive: bool | None = None) -> str:
        """Running / Stopped / Exited(code) / Unknown.

        ``alive`` is an optional external liveness observation; a process
        recorded as active whose pid is gone renders as Unknown.
        """
        if self.state == ProcessState.EXITED:
            return f"Exited({self.exit_code})" if self.exit_code is not None else "Unknown"
        if self.state == ProcessState.STOPPED:
            return "Stopped"
        if alive is False:
            return "Unknown"
        if self.state in (ProcessState.RUNNING, ProcessState.STOPPING):
            return "Running"
        return "Unknown"


class ManagerInfo(BaseModel):
    pid: int
    create_time: float | None = None
    started_at: datetime = Field(default_factory=utcnow)
    log_path: str = ""
    version: int = 1


class DaemonState(BaseModel):
    """Everything a separate invocation needs to know about a daemon."""

    project_id: str
    project_root: str
    manager: ManagerInfo
    processes: list[RunningProcess] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def process(self, name: ProcessName) -> RunningProcess | None:
        for proc in self.processes:
            if proc.name == name:
                return proc
        return None


# ── Task results ─────────────────────────────────────────────────────────────


class TaskResult(BaseModel):
    name: TaskName
    exit_code: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
