"""In-memory snapshot of one project's dependency graph.

Tasks are kept by id and edges as a flat list; the adjacency indexes are
built once when the snapshot is taken. Every traversal works on a
snapshot, so a single query pair is issued per operation no matter how
deep the walk goes.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .models import Task, TaskDependency


class DependencyGraph:
    def __init__(self, tasks: Iterable[Task], edges: Iterable[TaskDependency]):
        self.tasks: Dict[int, Task] = {task.pk: task for task in tasks}
        self.edges: List[TaskDependency] = list(edges)
        self.prerequisite_edges: Dict[int, List[TaskDependency]] = defaultdict(list)
        self.dependent_edges: Dict[int, List[TaskDependency]] = defaultdict(list)
        for edge in self.edges:
            self.prerequisite_edges[edge.dependent_id].append(edge)
            self.dependent_edges[edge.prerequisite_id].append(edge)

    @classmethod
    def for_project(cls, project_id: int) -> "DependencyGraph":
        """Snapshot the project's tasks and its active edges."""
        tasks = Task.objects.filter(project_id=project_id).order_by("pk")
        edges = (
            TaskDependency.objects.filter(project_id=project_id, is_active=True)
            .select_related("dependent", "prerequisite")
            .order_by("pk")
        )
        return cls(tasks, edges)

    def task(self, task_id: int) -> Optional[Task]:
        return self.tasks.get(task_id)

    def prerequisite_ids(self, task_id: int) -> List[int]:
        return [edge.prerequisite_id for edge in self.prerequisite_edges.get(task_id, [])]

    def dependent_ids(self, task_id: int) -> List[int]:
        return [edge.dependent_id for edge in self.dependent_edges.get(task_id, [])]

    def degree(self, task_id: int) -> int:
        return len(self.prerequisite_edges.get(task_id, [])) + len(self.dependent_edges.get(task_id, []))

    def closure(self, task_id: int, upstream: bool = True) -> List[int]:
        """Ids reachable from ``task_id`` (prerequisites when ``upstream``,
        dependents otherwise), in depth-first discovery order.

        Iterative with a visited set, so it terminates on a cyclic graph
        and never grows the interpreter stack.
        """
        step = self.prerequisite_ids if upstream else self.dependent_ids
        visited = {task_id}
        found: List[int] = []
        stack = list(reversed(step(task_id)))
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            found.append(current)
            stack.extend(reversed(step(current)))
        return found

    def resolve(self, task_ids: Iterable[int]) -> List[Task]:
        """Map ids back to Task rows, falling back to the edge's own copy for
        endpoints that live outside the snapshot's project."""
        resolved = []
        for task_id in task_ids:
            task = self.tasks.get(task_id) or self._endpoint(task_id)
            if task is not None:
                resolved.append(task)
        return resolved

    def _endpoint(self, task_id: int) -> Optional[Task]:
        for edge in self.edges:
            if edge.dependent_id == task_id:
                return edge.dependent
            if edge.prerequisite_id == task_id:
                return edge.prerequisite
        return None
