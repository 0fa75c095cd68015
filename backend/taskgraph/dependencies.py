"""Validated mutations on dependency edges.

Every check runs inside the same transaction as the write and with the
project row locked, so the reachability test sees exactly the graph the
insert lands in. A failed check raises before anything is saved.
"""
import logging
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import Count, Q

from .exceptions import (
    CrossProjectDependencyError,
    CyclicDependencyError,
    DuplicateDependencyError,
    InvalidDependencyError,
    NotFoundError,
)
from .models import DependencyType, Project, Task, TaskDependency
from .traversal import would_create_cycle

logger = logging.getLogger(__name__)


def create_dependency(
    dependent: Task,
    prerequisite: Task,
    dependency_type=DependencyType.FINISH_TO_START,
    lag_hours: Optional[float] = None,
    notes: Optional[str] = None,
) -> TaskDependency:
    """Make ``dependent`` wait on ``prerequisite``.

    Raises:
        InvalidDependencyError: self-reference or unknown type.
        CrossProjectDependencyError: tasks belong to different projects.
        DuplicateDependencyError: an active edge already links the pair.
        CyclicDependencyError: ``prerequisite`` already waits on ``dependent``.
    """
    dependency_type = _coerce_type(dependency_type)
    _check_endpoints(dependent, prerequisite)

    with transaction.atomic():
        lock_project(dependent.project_id)
        _check_insertable(dependent, prerequisite)
        dependency = TaskDependency.objects.create(
            dependent=dependent,
            prerequisite=prerequisite,
            dependency_type=dependency_type,
            lag_hours=lag_hours or 0,
            notes=notes or "",
            project_id=dependent.project_id,
        )

    logger.info("Created dependency %s", dependency.description)
    return dependency


def update_dependency(
    dependency_id: int,
    dependency_type=None,
    lag_hours: Optional[float] = None,
    notes: Optional[str] = None,
) -> TaskDependency:
    """Change the non-structural fields of an edge; ``None`` leaves a field as is."""
    dependency = get_dependency(dependency_id)
    changed = []
    if dependency_type is not None:
        dependency.dependency_type = _coerce_type(dependency_type)
        changed.append("dependency_type")
    if lag_hours is not None:
        dependency.lag_hours = lag_hours
        changed.append("lag_hours")
    if notes is not None:
        dependency.notes = notes
        changed.append("notes")
    if changed:
        dependency.save(update_fields=changed + ["updated_at"])
        logger.info("Updated dependency %s (%s)", dependency.pk, ", ".join(changed))
    return dependency


def remove_dependency(dependency_id: int) -> bool:
    """Delete an edge for good. Returns False when no such edge exists."""
    deleted, _ = TaskDependency.objects.filter(pk=dependency_id).delete()
    if deleted:
        logger.info("Removed dependency %s", dependency_id)
    return bool(deleted)


def remove_dependency_between(dependent: Task, prerequisite: Task) -> bool:
    deleted, _ = TaskDependency.objects.filter(dependent=dependent, prerequisite=prerequisite).delete()
    if deleted:
        logger.info("Removed dependency %s → %s", prerequisite.title, dependent.title)
    return bool(deleted)


def deactivate_dependency(dependency_id: int) -> TaskDependency:
    """Soft removal: the row stays but no longer takes part in the graph."""
    dependency = get_dependency(dependency_id)
    if dependency.is_active:
        dependency.is_active = False
        dependency.is_critical_path = False
        dependency.save(update_fields=["is_active", "is_critical_path", "updated_at"])
        logger.info("Deactivated dependency %s", dependency.description)
    return dependency


def reactivate_dependency(dependency_id: int) -> TaskDependency:
    """Bring a soft-removed edge back, re-running the insert checks."""
    with transaction.atomic():
        dependency = get_dependency(dependency_id)
        if dependency.is_active:
            return dependency
        lock_project(dependency.project_id)
        _check_insertable(dependency.dependent, dependency.prerequisite)
        dependency.is_active = True
        dependency.save(update_fields=["is_active", "updated_at"])

    logger.info("Reactivated dependency %s", dependency.description)
    return dependency


def find_dependency(dependency_id: int) -> Optional[TaskDependency]:
    return (
        TaskDependency.objects.select_related("dependent", "prerequisite")
        .filter(pk=dependency_id)
        .first()
    )


def get_dependency(dependency_id: int) -> TaskDependency:
    dependency = find_dependency(dependency_id)
    if dependency is None:
        raise NotFoundError(f"Dependency not found: {dependency_id}")
    return dependency


def get_project_dependencies(project: Project, active_only: bool = True) -> List[TaskDependency]:
    queryset = TaskDependency.objects.filter(project=project).select_related("dependent", "prerequisite")
    if active_only:
        queryset = queryset.filter(is_active=True)
    return list(queryset.order_by("pk"))


def remove_all_dependencies_for_task(task: Task) -> int:
    deleted, _ = TaskDependency.objects.filter(Q(dependent=task) | Q(prerequisite=task)).delete()
    logger.info("Removed %d dependencies touching task %s", deleted, task.title)
    return deleted


def deactivate_dependencies_for_task(task: Task) -> int:
    count = TaskDependency.objects.filter(
        Q(dependent=task) | Q(prerequisite=task), is_active=True
    ).update(is_active=False, is_critical_path=False)
    logger.info("Deactivated %d dependencies touching task %s", count, task.title)
    return count


def reactivate_dependencies_for_task(task: Task) -> int:
    """Reactivate the task's inactive edges; edges that would now break an
    invariant stay inactive."""
    inactive = TaskDependency.objects.filter(
        Q(dependent=task) | Q(prerequisite=task), is_active=False
    ).order_by("pk")
    count = 0
    for dependency_id in list(inactive.values_list("pk", flat=True)):
        try:
            reactivate_dependency(dependency_id)
        except (DuplicateDependencyError, CyclicDependencyError) as exc:
            logger.warning("Left dependency %s inactive: %s", dependency_id, exc)
            continue
        count += 1
    return count


def get_dependency_statistics(project: Project) -> Dict[str, int]:
    """Active edge counts per dependency type, plus ``TOTAL``."""
    rows = (
        TaskDependency.objects.filter(project=project, is_active=True)
        .order_by()
        .values("dependency_type")
        .annotate(count=Count("pk"))
    )
    statistics = {row["dependency_type"]: row["count"] for row in rows}
    statistics["TOTAL"] = sum(statistics.values())
    return statistics


def _coerce_type(dependency_type) -> str:
    try:
        return DependencyType(dependency_type).value
    except ValueError:
        raise InvalidDependencyError(f"Unknown dependency type: {dependency_type!r}") from None


def _check_endpoints(dependent: Task, prerequisite: Task) -> None:
    if dependent.pk == prerequisite.pk:
        raise InvalidDependencyError(f"Task '{dependent}' cannot depend on itself")
    if dependent.project_id != prerequisite.project_id:
        raise CrossProjectDependencyError(
            f"Tasks '{dependent}' and '{prerequisite}' belong to different projects"
        )


def _check_insertable(dependent: Task, prerequisite: Task) -> None:
    if TaskDependency.objects.filter(dependent=dependent, prerequisite=prerequisite, is_active=True).exists():
        raise DuplicateDependencyError(
            f"Dependency already exists: '{dependent}' already depends on '{prerequisite}'"
        )
    if would_create_cycle(dependent, prerequisite):
        raise CyclicDependencyError(dependent, prerequisite)


def lock_project(project_id: int) -> None:
    # serializes concurrent edge writes per project; no-op on SQLite
    list(Project.objects.select_for_update().filter(pk=project_id))
