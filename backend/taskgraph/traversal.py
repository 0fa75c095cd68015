"""Read-side queries over the dependency graph.

Contains utilities for:
- direct and transitive prerequisite / dependent lookups,
- start readiness under the hard/soft satisfaction policy,
- reachability checks used before inserting an edge,
- whole-project cycle detection and structural validation,
- shortest dependency chains between two tasks.

Everything here reads; nothing writes.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .conf import get_setting
from .graph import DependencyGraph
from .models import Project, Task, TaskDependency


@dataclass
class DependencyValidationResult:
    valid: bool
    issues: List[str] = field(default_factory=list)
    cycles: List[List[Task]] = field(default_factory=list)


def get_task_dependencies(task: Task) -> List[TaskDependency]:
    """Active edges where ``task`` is the dependent."""
    return list(
        TaskDependency.objects.filter(dependent=task, is_active=True)
        .select_related("dependent", "prerequisite")
        .order_by("pk")
    )


def get_task_dependents(task: Task) -> List[TaskDependency]:
    """Active edges where ``task`` is the prerequisite."""
    return list(
        TaskDependency.objects.filter(prerequisite=task, is_active=True)
        .select_related("dependent", "prerequisite")
        .order_by("pk")
    )


def get_direct_prerequisites(task: Task) -> List[Task]:
    return [edge.prerequisite for edge in get_task_dependencies(task)]


def get_direct_dependents(task: Task) -> List[Task]:
    return [edge.dependent for edge in get_task_dependents(task)]


def get_all_prerequisites(task: Task, graph: Optional[DependencyGraph] = None) -> List[Task]:
    """Every task ``task`` waits on, directly or through a chain."""
    graph = graph or DependencyGraph.for_project(task.project_id)
    return graph.resolve(graph.closure(task.pk, upstream=True))


def get_all_dependents(task: Task, graph: Optional[DependencyGraph] = None) -> List[Task]:
    """Every task waiting on ``task``, directly or through a chain."""
    graph = graph or DependencyGraph.for_project(task.project_id)
    return graph.resolve(graph.closure(task.pk, upstream=False))


def get_blocking_dependencies(task: Task, soft_threshold: Optional[float] = None) -> List[TaskDependency]:
    """Direct prerequisite edges of ``task`` that are not yet satisfied."""
    threshold = get_setting("SOFT_PROGRESS_THRESHOLD", soft_threshold)
    return [edge for edge in get_task_dependencies(task) if not edge.is_satisfied(threshold)]


def can_task_start(task: Task, soft_threshold: Optional[float] = None) -> bool:
    return not get_blocking_dependencies(task, soft_threshold)


def would_create_cycle(dependent: Task, prerequisite: Task, graph: Optional[DependencyGraph] = None) -> bool:
    """True if adding ``dependent`` -> waits on -> ``prerequisite`` closes a loop.

    That happens exactly when ``prerequisite`` already waits on
    ``dependent``, i.e. ``dependent`` is among the transitive prerequisites
    of ``prerequisite``.
    """
    if dependent.pk == prerequisite.pk:
        return True
    graph = graph or DependencyGraph.for_project(dependent.project_id)
    return dependent.pk in graph.closure(prerequisite.pk, upstream=True)


def detect_cycles(project: Project) -> List[List[Task]]:
    """Return every cycle among the project's active edges.

    Each cycle is listed once, as the ordered tasks starting from its
    lowest-id task, the one the walk comes back to (e.g. ``[A, B, C]`` for
    A -> B -> C -> A). Cycles sharing tasks are listed separately.
    """
    graph = DependencyGraph.for_project(project.pk)
    return [graph.resolve(cycle) for cycle in _find_cycles(graph)]


def _find_cycles(graph: DependencyGraph) -> List[List[int]]:
    """Enumerate simple cycles as id lists.

    One walk per root in id order; a walk only enters ids above its root,
    so every cycle is found exactly once, from its lowest id.
    """
    nodes: Set[int] = set(graph.tasks)
    for edge in graph.edges:
        nodes.update((edge.dependent_id, edge.prerequisite_id))

    seen_cycles: Set[Tuple[int, ...]] = set()
    cycles: List[List[int]] = []

    for root in sorted(nodes):
        path = [root]
        on_path = {root}
        pending = [iter(graph.dependent_ids(root))]

        while pending:
            neighbour = next(pending[-1], None)
            if neighbour is None:
                pending.pop()
                on_path.discard(path.pop())
                continue
            if neighbour == root:
                key = _canonical(path)
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    cycles.append(list(path))
            elif neighbour > root and neighbour not in on_path:
                on_path.add(neighbour)
                path.append(neighbour)
                pending.append(iter(graph.dependent_ids(neighbour)))

    return cycles


def _canonical(cycle: List[int]) -> Tuple[int, ...]:
    # rotate to the smallest id so the same loop found from another entry dedupes
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


def find_shortest_dependency_path(from_task: Task, to_task: Task) -> List[Task]:
    """Breadth-first walk along dependent edges; ``[]`` when unreachable."""
    if from_task.pk == to_task.pk:
        return [from_task]

    graph = DependencyGraph.for_project(from_task.project_id)
    predecessors: Dict[int, int] = {}
    visited = {from_task.pk}
    queue = deque([from_task.pk])

    while queue:
        current = queue.popleft()
        for dependent_id in graph.dependent_ids(current):
            if dependent_id in visited:
                continue
            visited.add(dependent_id)
            predecessors[dependent_id] = current
            if dependent_id == to_task.pk:
                path = [dependent_id]
                while path[-1] != from_task.pk:
                    path.append(predecessors[path[-1]])
                path.reverse()
                return graph.resolve(path)
            queue.append(dependent_id)

    return []


def validate_dependency_graph(project: Project) -> DependencyValidationResult:
    """Cycle detection plus structural checks on the project's active rows.

    Problems are reported in ``issues`` rather than raised.
    """
    graph = DependencyGraph.for_project(project.pk)
    issues: List[str] = []

    cycle_ids = _find_cycles(graph)
    if cycle_ids:
        issues.append(f"Found {len(cycle_ids)} circular dependency cycle(s)")

    # read raw ids: a join would silently drop rows whose endpoint is gone
    rows = list(
        TaskDependency.objects.filter(project=project, is_active=True)
        .order_by("pk")
        .values_list("pk", "dependent_id", "prerequisite_id")
    )
    endpoint_ids = {task_id for _, dependent_id, prerequisite_id in rows for task_id in (dependent_id, prerequisite_id)}
    task_projects = dict(Task.objects.filter(pk__in=endpoint_ids).values_list("pk", "project_id"))

    for dependency_id, dependent_id, prerequisite_id in rows:
        missing = [task_id for task_id in (dependent_id, prerequisite_id) if task_id not in task_projects]
        if missing:
            issues.append(f"Dependency {dependency_id} references missing task(s): {missing}")
            continue
        if task_projects[dependent_id] != project.pk or task_projects[prerequisite_id] != project.pk:
            issues.append(f"Found cross-project dependency: {dependency_id}")

    cycles = [graph.resolve(cycle) for cycle in cycle_ids]
    return DependencyValidationResult(valid=not issues, issues=issues, cycles=cycles)
