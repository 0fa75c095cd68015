"""Critical Path Method over one project's active dependency graph.

The computation is a pure function of a ``DependencyGraph`` snapshot:

1. topological order (Kahn's algorithm, in-degree = active prerequisite edges),
2. forward pass:  ES(t) = max(EF(p) + lag(p->t)), floored at 0;  EF = ES + duration,
3. backward pass: LF(t) = min(LS(d) - lag(t->d)), or the project horizon for
   tasks nothing waits on;  LS = LF - duration,
4. float = LS - ES; a task is critical when |float| < epsilon.

Negative lag (lead time) flows through the same formulas.

The graph must be acyclic. A cycle leaves some tasks out of the
topological order; those tasks are left out of the result as well, so
run ``validate_dependency_graph`` first when the graph may have been
written around the dependency manager.

Persisting the result (``calculate_critical_path``) replaces the
critical-path flags of the whole project inside one transaction.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.db import transaction

from .conf import get_setting
from .dependencies import lock_project
from .graph import DependencyGraph
from .models import Project, Task, TaskDependency

logger = logging.getLogger(__name__)


@dataclass
class TaskTiming:
    earliest_start: float
    earliest_finish: float
    latest_start: float
    latest_finish: float
    total_float: float
    is_critical: bool


@dataclass
class CriticalPathResult:
    critical_tasks: List[Task] = field(default_factory=list)
    total_duration: float = 0.0
    float_by_task: Dict[Task, float] = field(default_factory=dict)
    critical_dependencies: List[TaskDependency] = field(default_factory=list)
    timings: Dict[Task, TaskTiming] = field(default_factory=dict)


def task_duration(task: Task, default: Optional[float] = None) -> float:
    if task.estimated_hours is not None:
        return float(task.estimated_hours)
    return float(get_setting("DEFAULT_TASK_DURATION_HOURS", default))


def topological_sort(graph: DependencyGraph) -> List[int]:
    in_degree = {task_id: 0 for task_id in graph.tasks}
    for edge in graph.edges:
        if edge.dependent_id in in_degree and edge.prerequisite_id in in_degree:
            in_degree[edge.dependent_id] += 1

    queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
    order: List[int] = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for edge in graph.dependent_edges.get(current, []):
            if edge.dependent_id not in in_degree:
                continue
            in_degree[edge.dependent_id] -= 1
            if in_degree[edge.dependent_id] == 0:
                queue.append(edge.dependent_id)

    if len(order) < len(graph.tasks):
        logger.warning(
            "Topological order dropped %d of %d tasks; the dependency graph contains a cycle",
            len(graph.tasks) - len(order),
            len(graph.tasks),
        )
    return order


def analyze_graph(
    graph: DependencyGraph,
    default_duration: Optional[float] = None,
    epsilon: Optional[float] = None,
    lag_overrides: Optional[Dict[int, float]] = None,
) -> CriticalPathResult:
    """Run CPM on a snapshot without touching the database.

    ``lag_overrides`` maps dependency ids to a lag to use instead of the
    stored one, for what-if runs.
    """
    epsilon = get_setting("CRITICAL_FLOAT_EPSILON", epsilon)
    lag_overrides = lag_overrides or {}
    order = topological_sort(graph)
    placed = set(order)
    if not order:
        return CriticalPathResult()

    def lag(edge: TaskDependency) -> float:
        return float(lag_overrides.get(edge.pk, edge.lag_hours) or 0)

    durations = {task_id: task_duration(graph.tasks[task_id], default_duration) for task_id in order}

    earliest_start: Dict[int, float] = {}
    earliest_finish: Dict[int, float] = {}
    for task_id in order:
        start = 0.0
        for edge in graph.prerequisite_edges.get(task_id, []):
            if edge.prerequisite_id in placed:
                start = max(start, earliest_finish[edge.prerequisite_id] + lag(edge))
        earliest_start[task_id] = start
        earliest_finish[task_id] = start + durations[task_id]

    horizon = max(earliest_finish.values())
    logger.debug("Forward pass over %d tasks, horizon %.2fh", len(order), horizon)

    latest_start: Dict[int, float] = {}
    latest_finish: Dict[int, float] = {}
    for task_id in reversed(order):
        finish = None
        for edge in graph.dependent_edges.get(task_id, []):
            if edge.dependent_id in placed:
                candidate = latest_start[edge.dependent_id] - lag(edge)
                finish = candidate if finish is None else min(finish, candidate)
        latest_finish[task_id] = horizon if finish is None else finish
        latest_start[task_id] = latest_finish[task_id] - durations[task_id]

    result = CriticalPathResult(total_duration=horizon)
    critical_ids = set()
    for task_id in order:
        task = graph.tasks[task_id]
        total_float = latest_start[task_id] - earliest_start[task_id]
        is_critical = abs(total_float) < epsilon
        result.float_by_task[task] = total_float
        result.timings[task] = TaskTiming(
            earliest_start=earliest_start[task_id],
            earliest_finish=earliest_finish[task_id],
            latest_start=latest_start[task_id],
            latest_finish=latest_finish[task_id],
            total_float=total_float,
            is_critical=is_critical,
        )
        if is_critical:
            critical_ids.add(task_id)
            result.critical_tasks.append(task)

    result.critical_dependencies = [
        edge
        for edge in graph.edges
        if edge.dependent_id in critical_ids and edge.prerequisite_id in critical_ids
    ]
    return result


def compute_critical_path(
    project: Project,
    default_duration: Optional[float] = None,
    epsilon: Optional[float] = None,
) -> CriticalPathResult:
    """CPM for the project's current graph; reads only."""
    return analyze_graph(DependencyGraph.for_project(project.pk), default_duration, epsilon)


def calculate_critical_path(
    project: Project,
    default_duration: Optional[float] = None,
    epsilon: Optional[float] = None,
) -> CriticalPathResult:
    """CPM for the project, then rewrite its critical-path flags to match.

    The graph is read under the project lock, so no edge write can land
    between the snapshot and the marking.
    """
    with transaction.atomic():
        lock_project(project.pk)
        result = compute_critical_path(project, default_duration, epsilon)
        mark_critical_path(project, result)
    return result


def mark_critical_path(project: Project, result: CriticalPathResult) -> int:
    """Replace the project's critical-path flags with ``result`` as one unit.

    Returns the number of dependencies now flagged.
    """
    task_ids = [task.pk for task in result.critical_tasks]
    dependency_ids = [edge.pk for edge in result.critical_dependencies]

    with transaction.atomic():
        lock_project(project.pk)
        Task.objects.filter(project=project, is_critical_path=True).update(is_critical_path=False)
        Task.objects.filter(pk__in=task_ids).update(is_critical_path=True)
        TaskDependency.objects.filter(project=project, is_critical_path=True).update(is_critical_path=False)
        marked = TaskDependency.objects.filter(pk__in=dependency_ids, is_active=True).update(is_critical_path=True)

    logger.info(
        "Marked critical path for project %s: %d tasks, %d dependencies, %.2fh",
        project.pk,
        len(task_ids),
        marked,
        result.total_duration,
    )
    return marked


def update_critical_path_markers(project: Project) -> int:
    with transaction.atomic():
        lock_project(project.pk)
        return mark_critical_path(project, compute_critical_path(project))


def get_critical_path_tasks(project: Project) -> List[Task]:
    """Tasks flagged by the last marking run."""
    return list(Task.objects.filter(project=project, is_critical_path=True).order_by("pk"))


def get_critical_path_dependencies(project: Project) -> List[TaskDependency]:
    return list(
        TaskDependency.objects.filter(project=project, is_critical_path=True, is_active=True)
        .select_related("dependent", "prerequisite")
        .order_by("pk")
    )


def calculate_task_float(task: Task) -> Optional[float]:
    """Total float of ``task`` in its project's current schedule, or None if
    the task could not be placed (cyclic graph)."""
    result = compute_critical_path(task.project)
    return result.float_by_task.get(task)
