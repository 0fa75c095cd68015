# views.py
import logging
from typing import Any, Dict, List

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import bulk, critical_path, dependencies, risk, traversal
from .conf import get_setting
from .exceptions import DependencyError, NotFoundError
from .models import Project, Task
from .serializers import (
    BulkIdsSerializer,
    BulkTypeUpdateSerializer,
    DependencyInputSerializer,
    DependencyUpdateSerializer,
    ProjectQuerySerializer,
    TaskDependencySerializer,
    TaskSerializer,
)

logger = logging.getLogger(__name__)


def dependency_error_response(exc: DependencyError) -> Response:
    """Map a service error to a Response: 404 for unknown ids, 400 otherwise.

    The message names the offending tasks, so it is passed through as is.
    """
    code = status.HTTP_404_NOT_FOUND if isinstance(exc, NotFoundError) else status.HTTP_400_BAD_REQUEST
    return Response({"error": str(exc), "type": type(exc).__name__}, status=code)


def project_query(request) -> Dict[str, Any]:
    """Validate ``?project_id=`` (plus optional flags) and load the project."""
    # plain dict: a QueryDict makes DRF treat a missing boolean as False
    serializer = ProjectQuerySerializer(data=request.query_params.dict())
    serializer.is_valid(raise_exception=True)
    params = dict(serializer.validated_data)
    params["project"] = get_object_or_404(Project, pk=params["project_id"])
    return params


def tasks_data(tasks: List[Task]) -> List[Dict[str, Any]]:
    return TaskSerializer(tasks, many=True).data


def critical_path_data(project: Project, result: critical_path.CriticalPathResult) -> Dict[str, Any]:
    return {
        "project_id": project.pk,
        "total_duration": result.total_duration,
        "critical_tasks": tasks_data(result.critical_tasks),
        "critical_dependencies": TaskDependencySerializer(result.critical_dependencies, many=True).data,
        "float_by_task": {str(task.pk): value for task, value in result.float_by_task.items()},
        "timings": {
            str(task.pk): {
                "earliest_start": timing.earliest_start,
                "earliest_finish": timing.earliest_finish,
                "latest_start": timing.latest_start,
                "latest_finish": timing.latest_finish,
                "total_float": timing.total_float,
                "is_critical": timing.is_critical,
            }
            for task, timing in result.timings.items()
        },
    }


class DependencyListView(APIView):
    """
    GET  /api/dependencies/?project_id=&active_only=
    POST /api/dependencies/
    """

    def get(self, request):
        params = project_query(request)
        records = dependencies.get_project_dependencies(params["project"], params["active_only"])
        return Response(
            {
                "project_id": params["project_id"],
                "active_only": params["active_only"],
                "dependencies": TaskDependencySerializer(records, many=True).data,
                "total_count": len(records),
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        serializer = DependencyInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dependent = get_object_or_404(Task, pk=data["dependent_id"])
        prerequisite = get_object_or_404(Task, pk=data["prerequisite_id"])
        try:
            dependency = dependencies.create_dependency(
                dependent, prerequisite, data["dependency_type"], data["lag_hours"], data["notes"]
            )
        except DependencyError as exc:
            return dependency_error_response(exc)
        return Response(TaskDependencySerializer(dependency).data, status=status.HTTP_201_CREATED)


class DependencyDetailView(APIView):
    """
    PUT    /api/dependencies/<id>/   type, lag and notes only
    DELETE /api/dependencies/<id>/
    """

    def put(self, request, dependency_id: int):
        serializer = DependencyUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dependency = dependencies.update_dependency(dependency_id, **serializer.validated_data)
        except DependencyError as exc:
            return dependency_error_response(exc)
        return Response(TaskDependencySerializer(dependency).data, status=status.HTTP_200_OK)

    def delete(self, request, dependency_id: int):
        if not dependencies.remove_dependency(dependency_id):
            return Response({"error": f"Dependency not found: {dependency_id}"}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TaskDependenciesView(APIView):
    """GET /api/dependencies/task/<task_id>/ - edges in both directions and start readiness."""

    def get(self, request, task_id: int):
        task = get_object_or_404(Task, pk=task_id)
        return Response(
            {
                "task_id": task.pk,
                "dependencies": TaskDependencySerializer(traversal.get_task_dependencies(task), many=True).data,
                "dependents": TaskDependencySerializer(traversal.get_task_dependents(task), many=True).data,
                "can_start": traversal.can_task_start(task),
                "blocking_dependencies": TaskDependencySerializer(
                    traversal.get_blocking_dependencies(task), many=True
                ).data,
            },
            status=status.HTTP_200_OK,
        )


class TaskFloatView(APIView):
    def get(self, request, task_id: int):
        task = get_object_or_404(Task, pk=task_id)
        task_float = critical_path.calculate_task_float(task)
        return Response(
            {
                "task_id": task.pk,
                "task_float": task_float,
                "is_critical": task_float is not None and abs(task_float) < get_setting("CRITICAL_FLOAT_EPSILON"),
            },
            status=status.HTTP_200_OK,
        )


class CriticalPathView(APIView):
    """
    GET /api/dependencies/critical-path/?project_id=
    Validates the graph, recomputes the critical path and rewrites the
    project's critical-path flags. A cyclic graph is rejected with 409.
    """

    def get(self, request):
        project = project_query(request)["project"]
        validation = traversal.validate_dependency_graph(project)
        if validation.cycles:
            return Response(
                {"error": "Circular dependencies detected", "issues": validation.issues},
                status=status.HTTP_409_CONFLICT,
            )
        logger.info("Calculating critical path for project %s", project.pk)
        result = critical_path.calculate_critical_path(project)
        return Response(critical_path_data(project, result), status=status.HTTP_200_OK)


class BlockedTasksView(APIView):
    def get(self, request):
        project = project_query(request)["project"]
        blocked = risk.get_blocked_tasks(project)
        return Response(
            {
                "project_id": project.pk,
                "blocked_tasks": {
                    str(task.pk): {
                        "task": TaskSerializer(task).data,
                        "blocking_dependencies": TaskDependencySerializer(edges, many=True).data,
                    }
                    for task, edges in blocked.items()
                },
                "total_blocked": len(blocked),
            },
            status=status.HTTP_200_OK,
        )


class ReadyTasksView(APIView):
    def get(self, request):
        project = project_query(request)["project"]
        ready = risk.get_tasks_ready_to_start(project)
        return Response(
            {"project_id": project.pk, "ready_tasks": tasks_data(ready), "total_ready": len(ready)},
            status=status.HTTP_200_OK,
        )


class OptimizeScheduleView(APIView):
    def get(self, request):
        project = project_query(request)["project"]
        result = risk.optimize_schedule(project)
        return Response(
            {
                "project_id": project.pk,
                "recommendations": result.recommendations,
                "suggested_adjustments": {
                    str(task.pk): hours for task, hours in result.suggested_adjustments.items()
                },
                "potential_time_reduction_hours": result.potential_time_reduction_hours,
            },
            status=status.HTTP_200_OK,
        )


class RiskAssessmentView(APIView):
    def get(self, request):
        project = project_query(request)["project"]
        assessment = risk.assess_project_risk(project)
        return Response(
            {
                "project_id": project.pk,
                "level": assessment.level.value,
                "factors": assessment.factors,
                "high_risk_tasks": tasks_data(assessment.high_risk_tasks),
                "metrics": assessment.metrics,
            },
            status=status.HTTP_200_OK,
        )


class ValidateGraphView(APIView):
    def get(self, request):
        project = project_query(request)["project"]
        result = traversal.validate_dependency_graph(project)
        return Response(
            {
                "project_id": project.pk,
                "valid": result.valid,
                "issues": result.issues,
                "cycles": [tasks_data(cycle) for cycle in result.cycles],
            },
            status=status.HTTP_200_OK,
        )


class StatisticsView(APIView):
    def get(self, request):
        project = project_query(request)["project"]
        return Response(
            {"project_id": project.pk, "statistics": dependencies.get_dependency_statistics(project)},
            status=status.HTTP_200_OK,
        )


class MostConnectedView(APIView):
    def get(self, request):
        params = project_query(request)
        tasks = risk.get_most_connected_tasks(params["project"], params["limit"])
        return Response({"project_id": params["project_id"], "tasks": tasks_data(tasks)}, status=status.HTTP_200_OK)


class BulkDependenciesView(APIView):
    """
    POST   /api/dependencies/bulk/   list of dependency specs
    PATCH  /api/dependencies/bulk/   {"ids": [...], "dependency_type": "..."}
    DELETE /api/dependencies/bulk/   {"ids": [...]}
    Individual failures are skipped and counted, never returned as errors.
    """

    def post(self, request):
        if not isinstance(request.data, list):
            return Response({"error": "Expected a list of dependencies"}, status=status.HTTP_400_BAD_REQUEST)

        items = []
        for index, raw in enumerate(request.data):
            serializer = DependencyInputSerializer(data=raw)
            if not serializer.is_valid():
                logger.warning("Skipped invalid bulk item %d: %s", index, serializer.errors)
                continue
            items.append(serializer.validated_data)

        task_ids = {item[key] for item in items for key in ("dependent_id", "prerequisite_id")}
        tasks = Task.objects.in_bulk(task_ids)
        specs = [
            bulk.DependencySpec(
                dependent=tasks[item["dependent_id"]],
                prerequisite=tasks[item["prerequisite_id"]],
                dependency_type=item["dependency_type"],
                lag_hours=item["lag_hours"],
                notes=item["notes"],
            )
            for item in items
            if item["dependent_id"] in tasks and item["prerequisite_id"] in tasks
        ]
        logger.info("Creating %d bulk dependencies (%d requested)", len(specs), len(request.data))

        created = bulk.create_bulk_dependencies(specs)
        return Response(
            {
                "created": TaskDependencySerializer(created, many=True).data,
                "total_created": len(created),
                "requested_count": len(request.data),
            },
            status=status.HTTP_200_OK,
        )

    def patch(self, request):
        serializer = BulkTypeUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ids = serializer.validated_data["ids"]
        updated = bulk.update_dependency_types(ids, serializer.validated_data["dependency_type"])
        return Response({"updated_count": updated, "requested_count": len(ids)}, status=status.HTTP_200_OK)

    def delete(self, request):
        serializer = BulkIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ids = serializer.validated_data["ids"]
        deleted = bulk.remove_bulk_dependencies(ids)
        return Response({"deleted_count": deleted, "requested_count": len(ids)}, status=status.HTTP_200_OK)
