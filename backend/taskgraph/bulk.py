"""Best-effort batch operations over the dependency manager.

Each item is attempted on its own; an item that fails validation is
logged and skipped instead of aborting the batch.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from django.db import IntegrityError

from .dependencies import create_dependency, remove_dependency, update_dependency
from .exceptions import DependencyError
from .models import DependencyType, Task, TaskDependency

logger = logging.getLogger(__name__)


@dataclass
class DependencySpec:
    dependent: Task
    prerequisite: Task
    dependency_type: str = DependencyType.FINISH_TO_START
    lag_hours: Optional[float] = None
    notes: Optional[str] = None


def create_bulk_dependencies(specs: Iterable[DependencySpec]) -> List[TaskDependency]:
    """Create what can be created; returns only the new records."""
    created = []
    for spec in specs:
        try:
            dependency = create_dependency(
                spec.dependent,
                spec.prerequisite,
                spec.dependency_type,
                spec.lag_hours,
                spec.notes,
            )
        except (DependencyError, IntegrityError) as exc:
            logger.warning(
                "Skipped bulk dependency %s → %s: %s", spec.prerequisite, spec.dependent, exc
            )
            continue
        created.append(dependency)
    return created


def update_dependency_types(dependency_ids: Iterable[int], new_type) -> int:
    updated = 0
    for dependency_id in dependency_ids:
        try:
            update_dependency(dependency_id, dependency_type=new_type)
        except DependencyError as exc:
            logger.warning("Failed to update dependency type for %s: %s", dependency_id, exc)
            continue
        updated += 1
    return updated


def remove_bulk_dependencies(dependency_ids: Iterable[int]) -> int:
    return sum(1 for dependency_id in dependency_ids if remove_dependency(dependency_id))
