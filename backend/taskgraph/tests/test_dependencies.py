from django.test import TestCase

from taskgraph import dependencies
from taskgraph.exceptions import (
    CrossProjectDependencyError,
    CyclicDependencyError,
    DuplicateDependencyError,
    InvalidDependencyError,
    NotFoundError,
    ValidationError,
)
from taskgraph.models import DependencyType, TaskDependency
from taskgraph.traversal import can_task_start, detect_cycles

from .utils import ChainMixin, make_project, make_task


def edge_snapshot(project):
    return list(
        TaskDependency.objects.filter(project=project)
        .order_by("pk")
        .values_list("dependent_id", "prerequisite_id", "is_active")
    )


class CreateDependencyTests(ChainMixin, TestCase):
    def test_create_persists_fields(self):
        t4 = make_task(self.project, "T4", 5)
        edge = dependencies.create_dependency(
            t4, self.t3, DependencyType.START_TO_START_SOFT, lag_hours=-2, notes="overlap allowed"
        )
        edge.refresh_from_db()
        self.assertEqual(edge.dependent_id, t4.pk)
        self.assertEqual(edge.prerequisite_id, self.t3.pk)
        self.assertEqual(edge.dependency_type, "SS_SOFT")
        self.assertEqual(edge.lag_hours, -2)
        self.assertEqual(edge.notes, "overlap allowed")
        self.assertEqual(edge.project_id, self.project.pk)
        self.assertTrue(edge.is_active)
        self.assertFalse(edge.is_critical_path)

    def test_self_reference_is_rejected(self):
        with self.assertRaises(InvalidDependencyError):
            dependencies.create_dependency(self.t1, self.t1)

    def test_unknown_type_is_rejected(self):
        t4 = make_task(self.project, "T4")
        with self.assertRaises(InvalidDependencyError):
            dependencies.create_dependency(t4, self.t1, "LATER_THAN")

    def test_cross_project_is_rejected(self):
        other = make_task(make_project("Other"), "Elsewhere")
        with self.assertRaises(CrossProjectDependencyError) as ctx:
            dependencies.create_dependency(other, self.t1)
        self.assertIn("Elsewhere", str(ctx.exception))

    def test_duplicate_active_pair_is_rejected(self):
        with self.assertRaises(DuplicateDependencyError):
            dependencies.create_dependency(self.t2, self.t1, DependencyType.FINISH_TO_FINISH)

    def test_structural_errors_share_validation_base(self):
        for error in (InvalidDependencyError, CrossProjectDependencyError, DuplicateDependencyError):
            self.assertTrue(issubclass(error, ValidationError))
        self.assertFalse(issubclass(CyclicDependencyError, ValidationError))

    def test_pair_can_be_recreated_after_deactivation(self):
        dependencies.deactivate_dependency(self.e12.pk)
        again = dependencies.create_dependency(self.t2, self.t1)
        self.assertNotEqual(again.pk, self.e12.pk)

    def test_direct_reverse_edge_is_cyclic(self):
        """After T1 -> T2, making T1 wait on T2 must fail and leave the graph as it was."""
        before = edge_snapshot(self.project)
        with self.assertRaises(CyclicDependencyError) as ctx:
            dependencies.create_dependency(self.t1, self.t2)
        self.assertEqual(edge_snapshot(self.project), before)
        self.assertIn("T1", str(ctx.exception))
        self.assertIn("T2", str(ctx.exception))

    def test_transitive_reverse_edge_is_cyclic(self):
        before = edge_snapshot(self.project)
        with self.assertRaises(CyclicDependencyError) as ctx:
            dependencies.create_dependency(self.t1, self.t3)
        self.assertEqual(ctx.exception.dependent, self.t1)
        self.assertEqual(ctx.exception.prerequisite, self.t3)
        self.assertEqual(edge_snapshot(self.project), before)
        self.assertEqual(detect_cycles(self.project), [])

    def test_redundant_forward_edge_is_allowed(self):
        shortcut = dependencies.create_dependency(self.t3, self.t1)
        self.assertTrue(shortcut.is_active)
        self.assertEqual(detect_cycles(self.project), [])


class UpdateAndRemoveTests(ChainMixin, TestCase):
    def test_update_changes_only_given_fields(self):
        dependencies.update_dependency(self.e23.pk, lag_hours=5)
        edge = TaskDependency.objects.get(pk=self.e23.pk)
        self.assertEqual(edge.lag_hours, 5)
        self.assertEqual(edge.dependency_type, DependencyType.FINISH_TO_START)
        self.assertEqual((edge.dependent_id, edge.prerequisite_id), (self.t3.pk, self.t2.pk))

        dependencies.update_dependency(self.e23.pk, DependencyType.BLOCKING, notes="vendor part")
        edge.refresh_from_db()
        self.assertEqual(edge.dependency_type, "BLOCKING")
        self.assertEqual(edge.notes, "vendor part")
        self.assertEqual(edge.lag_hours, 5)

    def test_update_unknown_id_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            dependencies.update_dependency(987654, lag_hours=1)

    def test_update_rejects_unknown_type(self):
        with self.assertRaises(InvalidDependencyError):
            dependencies.update_dependency(self.e12.pk, "??")

    def test_remove_by_id_reports_whether_found(self):
        self.assertTrue(dependencies.remove_dependency(self.e12.pk))
        self.assertFalse(dependencies.remove_dependency(self.e12.pk))
        self.assertFalse(TaskDependency.objects.filter(pk=self.e12.pk).exists())

    def test_remove_by_pair(self):
        self.assertTrue(dependencies.remove_dependency_between(self.t3, self.t2))
        self.assertFalse(dependencies.remove_dependency_between(self.t3, self.t2))
        self.assertFalse(dependencies.remove_dependency_between(self.t1, self.t3))

    def test_find_and_get(self):
        self.assertEqual(dependencies.find_dependency(self.e12.pk), self.e12)
        self.assertIsNone(dependencies.find_dependency(987654))
        with self.assertRaises(NotFoundError):
            dependencies.get_dependency(987654)


class ActivationTests(ChainMixin, TestCase):
    def test_deactivated_edge_no_longer_blocks(self):
        self.assertFalse(can_task_start(self.t2))
        dependencies.deactivate_dependency(self.e12.pk)
        self.assertTrue(can_task_start(self.t2))
        self.assertEqual(
            [edge.pk for edge in dependencies.get_project_dependencies(self.project)], [self.e23.pk]
        )
        self.assertEqual(len(dependencies.get_project_dependencies(self.project, active_only=False)), 2)

    def test_reactivate_restores_edge(self):
        dependencies.deactivate_dependency(self.e12.pk)
        edge = dependencies.reactivate_dependency(self.e12.pk)
        self.assertTrue(edge.is_active)
        self.assertFalse(can_task_start(self.t2))

    def test_reactivate_rejects_duplicate(self):
        dependencies.deactivate_dependency(self.e12.pk)
        dependencies.create_dependency(self.t2, self.t1)
        with self.assertRaises(DuplicateDependencyError):
            dependencies.reactivate_dependency(self.e12.pk)

    def test_reactivate_rejects_cycle(self):
        dependencies.deactivate_dependency(self.e12.pk)
        dependencies.create_dependency(self.t1, self.t2)
        with self.assertRaises(CyclicDependencyError):
            dependencies.reactivate_dependency(self.e12.pk)
        self.assertFalse(TaskDependency.objects.get(pk=self.e12.pk).is_active)

    def test_task_level_operations_count_edges(self):
        self.assertEqual(dependencies.deactivate_dependencies_for_task(self.t2), 2)
        self.assertEqual(dependencies.get_project_dependencies(self.project), [])
        self.assertEqual(dependencies.reactivate_dependencies_for_task(self.t2), 2)
        self.assertEqual(dependencies.remove_all_dependencies_for_task(self.t2), 2)
        self.assertFalse(TaskDependency.objects.filter(project=self.project).exists())

    def test_task_level_reactivation_skips_conflicts(self):
        dependencies.deactivate_dependencies_for_task(self.t1)
        dependencies.create_dependency(self.t2, self.t1)
        with self.assertLogs("taskgraph.dependencies", level="WARNING"):
            self.assertEqual(dependencies.reactivate_dependencies_for_task(self.t1), 0)

    def test_statistics_count_active_edges_by_type(self):
        t4 = make_task(self.project, "T4")
        dependencies.create_dependency(t4, self.t3, DependencyType.BLOCKING)
        dependencies.deactivate_dependency(self.e12.pk)
        self.assertEqual(
            dependencies.get_dependency_statistics(self.project),
            {"FS": 1, "BLOCKING": 1, "TOTAL": 2},
        )
