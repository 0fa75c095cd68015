from unittest import mock

from django.test import TestCase, override_settings

from taskgraph import critical_path
from taskgraph.dependencies import create_dependency
from taskgraph.exceptions import CyclicDependencyError
from taskgraph.graph import DependencyGraph
from taskgraph.models import Task, TaskDependency
from taskgraph.traversal import detect_cycles

from .utils import ChainMixin, make_project, make_task, pks, raw_edge


class ChainScheduleTests(ChainMixin, TestCase):
    def test_forward_and_backward_pass(self):
        result = critical_path.compute_critical_path(self.project)
        expected = {self.t1: (0, 8), self.t2: (8, 12), self.t3: (14, 20)}
        for task, (start, finish) in expected.items():
            timing = result.timings[task]
            self.assertEqual((timing.earliest_start, timing.earliest_finish), (start, finish))
            self.assertEqual((timing.latest_start, timing.latest_finish), (start, finish))
        self.assertEqual(result.total_duration, 20)
        self.assertEqual(pks(result.critical_tasks), [self.t1.pk, self.t2.pk, self.t3.pk])
        self.assertEqual(result.float_by_task, {self.t1: 0, self.t2: 0, self.t3: 0})
        self.assertEqual([edge.pk for edge in result.critical_dependencies], [self.e12.pk, self.e23.pk])

    def test_independent_task_has_float(self):
        t4 = make_task(self.project, "T4", 5)
        result = critical_path.compute_critical_path(self.project)
        self.assertEqual(result.total_duration, 20)
        self.assertNotIn(t4, result.critical_tasks)
        self.assertEqual(result.float_by_task[t4], 15)

    def test_total_duration_is_max_earliest_finish(self):
        make_task(self.project, "T4", 5)
        result = critical_path.compute_critical_path(self.project)
        self.assertEqual(
            result.total_duration, max(timing.earliest_finish for timing in result.timings.values())
        )
        for task in result.critical_tasks:
            self.assertLess(abs(result.float_by_task[task]), 0.01)

    def test_rejected_cycle_leaves_schedule_intact(self):
        with self.assertRaises(CyclicDependencyError):
            create_dependency(self.t1, self.t3)
        self.assertEqual(detect_cycles(self.project), [])
        self.assertEqual(critical_path.compute_critical_path(self.project).total_duration, 20)

    def test_compute_does_not_mark(self):
        critical_path.compute_critical_path(self.project)
        self.assertFalse(Task.objects.filter(is_critical_path=True).exists())
        self.assertFalse(TaskDependency.objects.filter(is_critical_path=True).exists())

    def test_task_float(self):
        t4 = make_task(self.project, "T4", 5)
        self.assertEqual(critical_path.calculate_task_float(self.t2), 0)
        self.assertEqual(critical_path.calculate_task_float(t4), 15)


class MarkingTests(ChainMixin, TestCase):
    def test_calculate_marks_tasks_and_edges(self):
        critical_path.calculate_critical_path(self.project)
        self.assertEqual(
            pks(critical_path.get_critical_path_tasks(self.project)), [self.t1.pk, self.t2.pk, self.t3.pk]
        )
        self.assertEqual(
            [edge.pk for edge in critical_path.get_critical_path_dependencies(self.project)],
            [self.e12.pk, self.e23.pk],
        )

    def test_recalculation_replaces_previous_markers(self):
        t4 = make_task(self.project, "T4", 5)
        critical_path.calculate_critical_path(self.project)
        self.assertFalse(Task.objects.get(pk=t4.pk).is_critical_path)

        t4.estimated_hours = 30
        t4.save()
        self.assertEqual(critical_path.update_critical_path_markers(self.project), 0)
        self.assertEqual(pks(critical_path.get_critical_path_tasks(self.project)), [t4.pk])
        self.assertEqual(critical_path.get_critical_path_dependencies(self.project), [])

    def test_update_markers_returns_marked_edge_count(self):
        self.assertEqual(critical_path.update_critical_path_markers(self.project), 2)

    def test_markers_stay_within_project(self):
        other = make_project("Other")
        lone = make_task(other, "Lone", 3)
        critical_path.calculate_critical_path(other)
        critical_path.calculate_critical_path(self.project)
        self.assertTrue(Task.objects.get(pk=lone.pk).is_critical_path)

    def test_graph_is_read_under_project_lock(self):
        calls = []
        real_lock = critical_path.lock_project
        real_compute = critical_path.compute_critical_path

        def lock(project_id):
            calls.append("lock")
            real_lock(project_id)

        def compute(*args, **kwargs):
            calls.append("compute")
            return real_compute(*args, **kwargs)

        with mock.patch.object(critical_path, "lock_project", side_effect=lock), mock.patch.object(
            critical_path, "compute_critical_path", side_effect=compute
        ):
            result = critical_path.calculate_critical_path(self.project)
            self.assertEqual(calls[:2], ["lock", "compute"])

            calls.clear()
            self.assertEqual(critical_path.update_critical_path_markers(self.project), 2)
            self.assertEqual(calls[:2], ["lock", "compute"])

        self.assertEqual(result.total_duration, 20)


class SchedulePolicyTests(TestCase):
    def setUp(self):
        self.project = make_project()

    def test_empty_project(self):
        result = critical_path.calculate_critical_path(self.project)
        self.assertEqual(result.total_duration, 0)
        self.assertEqual(result.critical_tasks, [])
        self.assertEqual(result.float_by_task, {})
        self.assertEqual(result.critical_dependencies, [])

    def test_negative_lag_overlaps_tasks(self):
        cad = make_task(self.project, "CAD", 8)
        cam = make_task(self.project, "CAM", 4)
        create_dependency(cam, cad, lag_hours=-3)
        result = critical_path.compute_critical_path(self.project)
        self.assertEqual(result.timings[cam].earliest_start, 5)
        self.assertEqual(result.total_duration, 9)
        self.assertEqual(pks(result.critical_tasks), [cad.pk, cam.pk])

    def test_missing_estimate_uses_default_duration(self):
        make_task(self.project, "Unsized")
        self.assertEqual(critical_path.compute_critical_path(self.project).total_duration, 8)
        self.assertEqual(critical_path.compute_critical_path(self.project, default_duration=3).total_duration, 3)
        with override_settings(TASKGRAPH={"DEFAULT_TASK_DURATION_HOURS": 12}):
            self.assertEqual(critical_path.compute_critical_path(self.project).total_duration, 12)

    def test_parallel_branches(self):
        kickoff = make_task(self.project, "Kickoff", 2)
        short = make_task(self.project, "Short", 3)
        long = make_task(self.project, "Long", 10)
        review = make_task(self.project, "Review", 1)
        create_dependency(short, kickoff)
        create_dependency(long, kickoff)
        create_dependency(review, short)
        create_dependency(review, long)

        result = critical_path.compute_critical_path(self.project)
        self.assertEqual(result.total_duration, 13)
        self.assertEqual(pks(result.critical_tasks), [kickoff.pk, long.pk, review.pk])
        self.assertEqual(result.float_by_task[short], 7)
        self.assertEqual(len(result.critical_dependencies), 2)

    def test_topological_sort_drops_cyclic_tasks(self):
        a = make_task(self.project, "A", 1)
        b = make_task(self.project, "B", 1)
        free = make_task(self.project, "Free", 1)
        raw_edge(b, a)
        raw_edge(a, b)
        with self.assertLogs("taskgraph.critical_path", level="WARNING"):
            order = critical_path.topological_sort(DependencyGraph.for_project(self.project.pk))
        self.assertEqual(order, [free.pk])
