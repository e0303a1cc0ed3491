"""Project configuration: ``proc.toml`` (preferred) or ``Procfile``.

proc.toml::

    [web]
    cmd = "python -m http.server"
    cwd = "site"                 # optional
    stdout = "logs/web.out.log"  # optional
    stderr = "logs/web.err.log"  # optional

    [tasks]
    lint = "ruff check ."                         # leaf
    test = { cmd = "pytest", cwd = "backend" }    # leaf with cwd
    ci = { tasks = ["lint", "test"] }             # sequential group
    all = { tasks = ["ci", "build"], parallel = true }
    dev = { processes = ["web"] }                 # foreground processes

    [tasks.frontend.build]                        # namespaced: frontend:build
    cmd = "npm run build"

Procfile: ``name: command`` per line.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from procyard.exceptions import ConfigError
from procyard.tasks.graph import TaskGraph
from procyard.tasks.names import display_task_name, join_task_name
from procyard.types import (
    ConfigSource,
    GroupTask,
    LeafTask,
    ProcessRefTask,
    ProcessSpec,
    ProjectConfig,
    TaskSpec,
)

_logger = logging.getLogger(__name__)

PROC_TOML = "proc.toml"
PROCFILE = "Procfile"

_TASK_KEYS = {"cmd", "tasks", "processes"}


def detect_source(root: Path) -> ConfigSource:
    if (root / PROC_TOML).is_file():
        return ConfigSource.PROC_TOML
    if (root / PROCFILE).is_file():
        return ConfigSource.PROCFILE
    raise ConfigError(f"Neither {PROC_TOML} nor {PROCFILE} found in {root}")


def load_project(root: Path | str) -> ProjectConfig:
    """Load and validate the configuration of the project at ``root``."""
    root = Path(root).expanduser().resolve()
    source = detect_source(root)
    path = root / source.value
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e

    if source == ConfigSource.PROC_TOML:
        processes, tasks = parse_proc_toml(content)
    else:
        processes, tasks = parse_procfile(content), []

    try:
        config = ProjectConfig(root=root, source=source, processes=processes, tasks=tasks)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    TaskGraph(config.tasks, config.processes).validate()
    _logger.debug(
        "Loaded %s: %d process(es), %d task(s)", path, len(processes), len(tasks)
    )
    return config


def parse_procfile(content: str) -> list[ProcessSpec]:
    if not content.strip():
        raise ConfigError("Procfile is empty")
    processes = []
    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, command = line.partition(":")
        if not sep or not name.strip() or not command.strip():
            raise ConfigError(f"Procfile line {lineno}: expected 'name: command'")
        processes.append(ProcessSpec(name=name.strip(), command=command.strip()))
    return processes


def parse_proc_toml(content: str) -> tuple[list[ProcessSpec], list[TaskSpec]]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {PROC_TOML}: {e}") from e

    processes: list[ProcessSpec] = []
    for name, details in data.items():
        if name == "tasks":
            continue
        if not isinstance(details, dict) or not isinstance(details.get("cmd"), str):
            raise ConfigError(f"Process '{name}' needs a 'cmd' string")
        try:
            processes.append(
                ProcessSpec(
                    name=name,
                    command=details["cmd"],
                    cwd=details.get("cwd"),
                    stdout_path=details.get("stdout"),
                    stderr_path=details.get("stderr"),
                )
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid process '{name}': {e}") from e

    tasks_table = data.get("tasks", {})
    if not isinstance(tasks_table, dict):
        raise ConfigError("'tasks' must be a table")
    return processes, _parse_tasks(tasks_table)


def _parse_tasks(table: dict[str, Any]) -> list[TaskSpec]:
    tasks: list[TaskSpec] = []
    pending: list[tuple[str, dict[str, Any]]] = [("", table)]
    while pending:
        namespace, entries = pending.pop()
        for key, value in entries.items():
            name = join_task_name(namespace, key)
            if isinstance(value, str):
                tasks.append(LeafTask(name=name, cmd=value))
                continue
            if not isinstance(value, dict):
                raise ConfigError(f"Task '{display_task_name(name)}' must be a string or table")
            if _TASK_KEYS & value.keys():
                tasks.append(_task_from_table(name, value))
            nested = {k: v for k, v in value.items() if isinstance(v, dict)}
            if nested:
                pending.append((name, nested))
            elif not _TASK_KEYS & value.keys():
                raise ConfigError(
                    f"Task '{display_task_name(name)}' needs one of: cmd, tasks, processes"
                )
    return tasks


def _task_from_table(name: str, value: dict[str, Any]) -> TaskSpec:
    kinds = _TASK_KEYS & value.keys()
    if len(kinds) > 1:
        raise ConfigError(
            f"Task '{display_task_name(name)}' mixes {', '.join(sorted(kinds))}"
        )
    try:
        if "cmd" in value:
            return LeafTask(name=name, cmd=value["cmd"], cwd=value.get("cwd"))
        if "processes" in value:
            return ProcessRefTask(name=name, processes=value["processes"])
        fields = {"name": name, "children": value["tasks"], "parallel": value.get("parallel", False)}
        if "cwd" in value:
            fields["cwd"] = value["cwd"]
        return GroupTask(**fields)
    except ValidationError as e:
        raise ConfigError(f"Invalid task '{display_task_name(name)}': {e}") from e


def check_working_dirs(
    config: ProjectConfig, specs: list[ProcessSpec] | None = None
) -> None:
    """Every process cwd must exist before anything is spawned."""
    for spec in config.processes if specs is None else specs:
        cwd = spec.working_dir(config.root)
        if not cwd.is_dir():
            raise ConfigError(f"Process '{spec.name}' cwd does not exist: {cwd}")
