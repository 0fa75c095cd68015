from django.urls import path

from . import views

urlpatterns = [
    path("", views.DependencyListView.as_view(), name="dependency-list"),
    path("<int:dependency_id>/", views.DependencyDetailView.as_view(), name="dependency-detail"),
    path("task/<int:task_id>/", views.TaskDependenciesView.as_view(), name="task-dependencies"),
    path("task/<int:task_id>/float/", views.TaskFloatView.as_view(), name="task-float"),
    path("critical-path/", views.CriticalPathView.as_view(), name="critical-path"),
    path("blocked-tasks/", views.BlockedTasksView.as_view(), name="blocked-tasks"),
    path("ready-tasks/", views.ReadyTasksView.as_view(), name="ready-tasks"),
    path("optimize-schedule/", views.OptimizeScheduleView.as_view(), name="optimize-schedule"),
    path("risk/", views.RiskAssessmentView.as_view(), name="risk-assessment"),
    path("validate/", views.ValidateGraphView.as_view(), name="validate-graph"),
    path("statistics/", views.StatisticsView.as_view(), name="dependency-statistics"),
    path("most-connected/", views.MostConnectedView.as_view(), name="most-connected"),
    path("bulk/", views.BulkDependenciesView.as_view(), name="bulk-dependencies"),
]
