"""Task namespace — resolution and expansion of task names.

Tasks live in one mapping keyed by fully-qualified dotted name; the
namespaces are the prefixes of those names. Resolution walks a name
fragment by fragment. Expansion turns a task into a plan tree using an
explicit work stack that carries the chain of ancestors being expanded,
so a group that reaches itself is reported instead of recursing forever.
Everything is resolved before anything runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from procyard.exceptions import ConfigError, DuplicateNameError, TaskCycleError, TaskNotFoundError
from procyard.tasks.names import (
    display_task_name,
    has_separator,
    join_task_name,
    normalize_task_name,
    split_task_name,
)
from procyard.types import GroupTask, ProcessRefTask, ProcessSpec, TaskSpec


@dataclass
class PlanNode:
    """One task in an expanded execution plan."""

    name: str
    task: TaskSpec
    children: list[PlanNode] = field(default_factory=list)
    processes: list[ProcessSpec] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return display_task_name(self.name)

    def walk(self) -> Iterable[PlanNode]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


class TaskGraph:
    """All tasks of a project, addressable by name."""

    def __init__(
        self,
        tasks: Iterable[TaskSpec],
        processes: Iterable[ProcessSpec] = (),
    ) -> None:
        self._tasks: dict[str, TaskSpec] = {}
        for task in tasks:
            name = normalize_task_name(task.name)
            if not name:
                raise ConfigError("Task with an empty name")
            if name in self._tasks:
                raise DuplicateNameError(f"Duplicate task '{display_task_name(name)}'")
            self._tasks[name] = task

        self._namespaces: set[str] = set()
        for name in self._tasks:
            fragments = split_task_name(name)
            for depth in range(1, len(fragments) + 1):
                self._namespaces.add(join_task_name(*fragments[:depth]))

        self._processes: dict[str, ProcessSpec] = {}
        for spec in processes:
            if spec.name in self._processes:
                raise DuplicateNameError(f"Duplicate process '{spec.name}'")
            self._processes[spec.name] = spec

    def names(self) -> list[str]:
        return sorted(self._tasks, key=str.lower)

    def get(self, name: str) -> TaskSpec:
        return self._tasks[self.resolve(name)]

    def __contains__(self, name: str) -> bool:
        return normalize_task_name(name) in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    # ── Resolution ──────────────────────────────────────────────

    def resolve(self, name: str, scope: str = "") -> str:
        """Fully-qualified name of ``name`` as seen from namespace ``scope``.

        A name containing a separator is absolute. A bare fragment inside a
        scope is looked up in the scope, then in each enclosing namespace
        up to the root.
        """
        fragments = split_task_name(name)
        if not fragments:
            raise TaskNotFoundError("Empty task name")

        if has_separator(name) or not scope:
            return self._walk(fragments)

        scope_fragments = split_task_name(scope)
        for depth in range(len(scope_fragments), -1, -1):
            candidate = join_task_name(*scope_fragments[:depth], fragments[0])
            if candidate in self._tasks:
                return candidate
        raise TaskNotFoundError(
            f"Task '{name}' not found in '{display_task_name(scope)}' or any enclosing namespace"
        )

    def _walk(self, fragments: list[str]) -> str:
        path = ""
        for fragment in fragments:
            path = join_task_name(path, fragment)
            if path not in self._namespaces:
                raise TaskNotFoundError(f"Task '{display_task_name(path)}' not found")
        if path not in self._tasks:
            raise TaskNotFoundError(
                f"'{display_task_name(path)}' is a namespace, not a task"
            )
        return path

    # ── Expansion ───────────────────────────────────────────────

    def plan(self, name: str, scope: str = "") -> PlanNode:
        """Expand ``name`` into a plan tree; raise before anything runs."""
        root_name = self.resolve(name, scope)
        root = self._node(root_name)
        stack: list[tuple[PlanNode, tuple[str, ...]]] = [(root, (root_name,))]

        while stack:
            node, chain = stack.pop()
            task = node.task

            if isinstance(task, ProcessRefTask):
                node.processes = [self._process(p, node.name) for p in task.processes]
                continue
            if not isinstance(task, GroupTask):
                continue

            for child_ref in task.children:
                try:
                    child_name = self.resolve(child_ref, scope=node.name)
                except TaskNotFoundError as e:
                    raise TaskNotFoundError(
                        f"{e} (referenced by group '{node.display_name}')"
                    ) from None
                if child_name in chain:
                    raise TaskCycleError(
                        [display_task_name(n) for n in (*chain, child_name)]
                    )
                child = self._node(child_name)
                node.children.append(child)
                stack.append((child, (*chain, child_name)))

        return root

    def _node(self, name: str) -> PlanNode:
        return PlanNode(name=name, task=self._tasks[name])

    def _process(self, name: str, referrer: str) -> ProcessSpec:
        spec = self._processes.get(name)
        if spec is None:
            raise ConfigError(
                f"Task '{display_task_name(referrer)}' references unknown process '{name}'"
            )
        return spec

    def validate(self) -> None:
        """Expand every task once: dangling references and cycles fail here."""
        for name in self._tasks:
            self.plan(name)
