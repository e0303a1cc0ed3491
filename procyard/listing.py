"""`procyard list` — what a project defines."""

from __future__ import annotations

from typing import Any

import orjson
from pydantic import BaseModel, Field

from procyard.exceptions import TaskNotFoundError
from procyard.tasks.graph import TaskGraph
from procyard.tasks.names import display_task_name
from procyard.types import ConfigSource, GroupTask, LeafTask, ProjectConfig


class TaskInfo(BaseModel):
    name: str
    type: str
    children: list[str] = Field(default_factory=list)
    parallel: bool = False


class ListInfo(BaseModel):
    source: ConfigSource
    processes: list[str] = Field(default_factory=list)
    tasks: list[TaskInfo] = Field(default_factory=list)


def gather_list_info(config: ProjectConfig) -> ListInfo:
    graph = TaskGraph(config.tasks, config.processes)
    tasks = []
    for name in graph.names():
        task = graph.get(name)
        if isinstance(task, LeafTask):
            info = TaskInfo(name=display_task_name(name), type="shell")
        elif isinstance(task, GroupTask):
            info = TaskInfo(
                name=display_task_name(name),
                type="composite",
                children=sorted(
                    (_child_display(graph, child, name) for child in task.children),
                    key=str.lower,
                ),
                parallel=task.parallel,
            )
        else:
            info = TaskInfo(
                name=display_task_name(name),
                type="processes",
                children=sorted(task.processes, key=str.lower),
            )
        tasks.append(info)

    return ListInfo(
        source=config.source,
        processes=sorted((p.name for p in config.processes), key=str.lower),
        tasks=tasks,
    )


def _child_display(graph: TaskGraph, child: str, scope: str) -> str:
    try:
        return display_task_name(graph.resolve(child, scope=scope))
    except TaskNotFoundError:
        return child


def format_list_human(info: ListInfo, processes_only: bool = False, tasks_only: bool = False) -> str:
    lines = [f"Source: {info.source.value}"]

    if not tasks_only:
        lines.append(f"Processes ({len(info.processes)}):")
        if not info.processes:
            lines.append("  (none)")
        lines.extend(f"  {p}" for p in info.processes)

    if not processes_only:
        if info.source == ConfigSource.PROCFILE:
            lines.append("Tasks: (not available with Procfile)")
        else:
            lines.append(f"Tasks ({len(info.tasks)}):")
            if not info.tasks:
                lines.append("  (none)")
            for task in info.tasks:
                lines.append(f"  {task.name}{_describe(task)}")

    return "\n".join(lines) + "\n"


def _describe(task: TaskInfo) -> str:
    if task.type == "composite":
        kind = "parallel group" if task.parallel else "group"
        return f" ({kind}: {', '.join(task.children)})" if task.children else f" ({kind})"
    if task.type == "processes":
        return f" (processes: {', '.join(task.children)})"
    return ""


def format_list_names_only(
    info: ListInfo, processes_only: bool = False, tasks_only: bool = False
) -> str:
    names: list[str] = []
    if not tasks_only:
        names.extend(info.processes)
    if not processes_only and info.source == ConfigSource.PROC_TOML:
        names.extend(t.name for t in info.tasks)
    return "\n".join(names)


def format_list_json(
    info: ListInfo, processes_only: bool = False, tasks_only: bool = False
) -> str:
    data: dict[str, Any] = {"source": info.source.value}
    if not tasks_only:
        data["processes"] = info.processes
    if not processes_only:
        data["tasks"] = [t.model_dump(exclude_defaults=True) for t in info.tasks]
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode()
