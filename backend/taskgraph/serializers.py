from rest_framework import serializers

from .models import DependencyType, Task, TaskDependency


class TaskSerializer(serializers.ModelSerializer):
    class Meta:
        model = Task
        fields = [
            "id",
            "project",
            "title",
            "estimated_hours",
            "start_date",
            "end_date",
            "completed",
            "progress",
            "is_critical_path",
        ]


class TaskDependencySerializer(serializers.ModelSerializer):
    dependent_title = serializers.CharField(source="dependent.title", read_only=True)
    prerequisite_title = serializers.CharField(source="prerequisite.title", read_only=True)
    description = serializers.CharField(read_only=True)

    class Meta:
        model = TaskDependency
        fields = [
            "id",
            "project",
            "dependent",
            "dependent_title",
            "prerequisite",
            "prerequisite_title",
            "dependency_type",
            "lag_hours",
            "is_active",
            "is_critical_path",
            "notes",
            "description",
        ]


class DependencyInputSerializer(serializers.Serializer):
    dependent_id = serializers.IntegerField()
    prerequisite_id = serializers.IntegerField()
    dependency_type = serializers.ChoiceField(choices=DependencyType.choices, default=DependencyType.FINISH_TO_START)
    lag_hours = serializers.FloatField(required=False, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class DependencyUpdateSerializer(serializers.Serializer):
    dependency_type = serializers.ChoiceField(choices=DependencyType.choices, required=False)
    lag_hours = serializers.FloatField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        # endpoints are immutable; only the fields above may change
        if not attrs:
            raise serializers.ValidationError("Provide at least one of dependency_type, lag_hours, notes")
        return attrs


class ProjectQuerySerializer(serializers.Serializer):
    project_id = serializers.IntegerField()
    active_only = serializers.BooleanField(required=False, default=True)
    limit = serializers.IntegerField(required=False, default=10, min_value=1)


class BulkIdsSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class BulkTypeUpdateSerializer(BulkIdsSerializer):
    dependency_type = serializers.ChoiceField(choices=DependencyType.choices)
