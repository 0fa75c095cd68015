from taskgraph.dependencies import create_dependency
from taskgraph.models import DependencyType, Project, Task, TaskDependency


def make_project(name="Build season"):
    return Project.objects.create(name=name)


def make_task(project, title, hours=None, **fields):
    return Task.objects.create(project=project, title=title, estimated_hours=hours, **fields)


def raw_edge(dependent, prerequisite, project=None, **fields):
    """Write an edge straight to the table, skipping every manager check."""
    return TaskDependency.objects.create(
        dependent=dependent,
        prerequisite=prerequisite,
        project=project or dependent.project,
        **fields,
    )


def pks(tasks):
    return [task.pk for task in tasks]


class ChainMixin:
    """T1(8h) -> T2(4h) -> T3(6h); T2 waits on T1 with no lag, T3 waits on T2 with 2h lag."""

    def setUp(self):
        self.project = make_project()
        self.t1 = make_task(self.project, "T1", 8)
        self.t2 = make_task(self.project, "T2", 4)
        self.t3 = make_task(self.project, "T3", 6)
        self.e12 = create_dependency(self.t2, self.t1, DependencyType.FINISH_TO_START, 0)
        self.e23 = create_dependency(self.t3, self.t2, DependencyType.FINISH_TO_START, 2)
