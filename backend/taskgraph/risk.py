"""Schedule risk and advisory optimization built on the dependency graph.

Nothing in this module writes to the database: the critical path used
here is computed in memory and never marked.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .conf import get_setting
from .critical_path import CriticalPathResult, analyze_graph
from .graph import DependencyGraph
from .models import Project, Task, TaskDependency
from .traversal import detect_cycles

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class ProjectRiskAssessment:
    level: RiskLevel
    factors: List[str] = field(default_factory=list)
    high_risk_tasks: List[Task] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduleOptimizationResult:
    recommendations: List[str] = field(default_factory=list)
    suggested_adjustments: Dict[Task, float] = field(default_factory=dict)
    potential_time_reduction_hours: float = 0.0


def identify_external_constraints(project: Project, min_lag_hours: Optional[float] = None) -> List[TaskDependency]:
    """Active edges whose lag is strictly above ``min_lag_hours``."""
    threshold = get_setting("EXTERNAL_CONSTRAINT_LAG_HOURS", min_lag_hours)
    return list(
        TaskDependency.objects.filter(project=project, is_active=True, lag_hours__gt=threshold)
        .select_related("dependent", "prerequisite")
        .order_by("pk")
    )


def get_tasks_ready_to_start(project: Project, soft_threshold: Optional[float] = None) -> List[Task]:
    graph = DependencyGraph.for_project(project.pk)
    threshold = get_setting("SOFT_PROGRESS_THRESHOLD", soft_threshold)
    return [
        task
        for task in graph.tasks.values()
        if not task.completed and not _blocking(graph, task.pk, threshold)
    ]


def get_blocked_tasks(project: Project, soft_threshold: Optional[float] = None) -> Dict[Task, List[TaskDependency]]:
    """Every task that cannot start, mapped to the edges holding it back."""
    graph = DependencyGraph.for_project(project.pk)
    threshold = get_setting("SOFT_PROGRESS_THRESHOLD", soft_threshold)
    blocked = {}
    for task in graph.tasks.values():
        blocking = _blocking(graph, task.pk, threshold)
        if blocking:
            blocked[task] = blocking
    return blocked


def get_most_connected_tasks(project: Project, limit: int = 10) -> List[Task]:
    """Tasks ranked by in-degree + out-degree, highest first; ties by id."""
    graph = DependencyGraph.for_project(project.pk)
    ranked = sorted(graph.tasks.values(), key=lambda task: (-graph.degree(task.pk), task.pk))
    return ranked[:limit]


def assess_project_risk(
    project: Project,
    external_lag_hours: Optional[float] = None,
    soft_threshold: Optional[float] = None,
) -> ProjectRiskAssessment:
    """Rate the project's schedule risk.

    Factors:
      - circular dependencies (forces CRITICAL),
      - edges with a lag above the external-constraint threshold,
      - blocked tasks exceeding a share of the critical path length,
      - critical-path tasks that are currently blocked.

    Level: CRITICAL on any cycle, else HIGH at HIGH_RISK_FACTOR_COUNT
    factors or more, MEDIUM with at least one, LOW with none.
    """
    factors: List[str] = []
    high_risk_tasks: List[Task] = []
    metrics: Dict[str, Any] = {}

    cycles = detect_cycles(project)
    metrics["cycle_count"] = len(cycles)
    if cycles:
        factors.append("Circular dependencies detected")
        # CPM output is meaningless on a cyclic graph
        critical = CriticalPathResult()
    else:
        critical = analyze_graph(DependencyGraph.for_project(project.pk))
    metrics["critical_path_length"] = len(critical.critical_tasks)
    metrics["project_duration_hours"] = critical.total_duration

    external = identify_external_constraints(project, external_lag_hours)
    metrics["external_constraint_count"] = len(external)
    if external:
        factors.append(f"{len(external)} external dependencies with significant lead times")
        for edge in external:
            _add_unique(high_risk_tasks, edge.dependent)

    blocked = get_blocked_tasks(project, soft_threshold)
    metrics["blocked_task_count"] = len(blocked)
    ratio = get_setting("BLOCKED_RATIO_THRESHOLD")
    if len(blocked) > len(critical.critical_tasks) * ratio:
        factors.append("High percentage of blocked tasks")

    blocked_critical = [task for task in critical.critical_tasks if task in blocked]
    metrics["blocked_critical_task_count"] = len(blocked_critical)
    if blocked_critical:
        factors.append(f"{len(blocked_critical)} critical path tasks are blocked")
        for task in blocked_critical:
            _add_unique(high_risk_tasks, task)

    if cycles:
        level = RiskLevel.CRITICAL
    elif len(factors) >= get_setting("HIGH_RISK_FACTOR_COUNT"):
        level = RiskLevel.HIGH
    elif factors:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    logger.info("Project %s risk %s (%d factors)", project.pk, level.value, len(factors))
    return ProjectRiskAssessment(level=level, factors=factors, high_risk_tasks=high_risk_tasks, metrics=metrics)


def optimize_schedule(
    project: Project,
    review_lag_hours: Optional[float] = None,
    external_lag_hours: Optional[float] = None,
) -> ScheduleOptimizationResult:
    """Advisory suggestions for shortening the schedule. Never writes.

    The suggested adjustments come from a what-if CPM run where lags above
    the review threshold are capped at it and soft dependencies lose their
    positive lag; each task whose earliest start moves earlier is listed
    with the hours gained.
    """
    graph = DependencyGraph.for_project(project.pk)
    result = ScheduleOptimizationResult()

    cycles = detect_cycles(project)
    if cycles:
        result.recommendations.append(
            f"Resolve {len(cycles)} circular dependency cycle(s) before optimizing the schedule"
        )
        return result

    independent = [task for task in graph.tasks.values() if not task.completed and graph.degree(task.pk) == 0]
    if independent:
        result.recommendations.append(f"Consider parallelizing {len(independent)} independent tasks")

    soft = [edge for edge in graph.edges if edge.type.is_soft]
    if soft:
        dependents = {edge.dependent_id for edge in soft}
        result.recommendations.append(
            f"Review soft dependencies for {len(dependents)} tasks - these could potentially start earlier"
        )

    review_threshold = get_setting("LAG_REVIEW_HOURS", review_lag_hours)
    for edge in graph.edges:
        if edge.lag_hours > review_threshold:
            result.recommendations.append(f"Review lag time for dependency: {edge.description}")

    external_threshold = get_setting("EXTERNAL_CONSTRAINT_LAG_HOURS", external_lag_hours)
    external = [edge for edge in graph.edges if edge.lag_hours > external_threshold]
    if external:
        result.recommendations.append(
            f"Start procurement/ordering early for {len(external)} external dependencies"
        )

    overrides = {}
    for edge in graph.edges:
        lag = min(edge.lag_hours, review_threshold)
        if edge.type.is_soft:
            lag = min(lag, 0)
        if lag != edge.lag_hours:
            overrides[edge.pk] = lag
    if not overrides:
        return result

    baseline = analyze_graph(graph)
    what_if = analyze_graph(graph, lag_overrides=overrides)
    epsilon = get_setting("CRITICAL_FLOAT_EPSILON")
    for task, timing in baseline.timings.items():
        gained = timing.earliest_start - what_if.timings[task].earliest_start
        if gained > epsilon:
            result.suggested_adjustments[task] = gained
    result.potential_time_reduction_hours = max(0.0, baseline.total_duration - what_if.total_duration)
    return result


def _blocking(graph: DependencyGraph, task_id: int, threshold: float) -> List[TaskDependency]:
    return [edge for edge in graph.prerequisite_edges.get(task_id, []) if not edge.is_satisfied(threshold)]


def _add_unique(tasks: List[Task], task: Task) -> None:
    if task not in tasks:
        tasks.append(task)
