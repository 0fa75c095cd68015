from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Project(models.Model):
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Task(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="tasks")
    title = models.CharField(max_length=255)
    estimated_hours = models.FloatField(null=True, blank=True)  # None means "no estimate"
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    completed = models.BooleanField(default=False)
    progress = models.IntegerField(
        default=0, validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    is_critical_path = models.BooleanField(default=False)

    class Meta:
        ordering = ["pk"]

    def __str__(self):
        return self.title


class DependencyType(models.TextChoices):
    FINISH_TO_START = "FS", "Finish to start"
    START_TO_START = "SS", "Start to start"
    FINISH_TO_FINISH = "FF", "Finish to finish"
    START_TO_FINISH = "SF", "Start to finish"
    FINISH_TO_START_SOFT = "FS_SOFT", "Finish to start (soft)"
    START_TO_START_SOFT = "SS_SOFT", "Start to start (soft)"
    FINISH_TO_FINISH_SOFT = "FF_SOFT", "Finish to finish (soft)"
    START_TO_FINISH_SOFT = "SF_SOFT", "Start to finish (soft)"
    BLOCKING = "BLOCKING", "Blocking"

    @property
    def is_soft(self):
        return self.value.endswith("_SOFT")

    @property
    def short_code(self):
        return self.value.split("_", 1)[0] if self.is_soft else self.value

    @property
    def critical_path_weight(self):
        if self.is_soft:
            return 1.0
        return _CRITICAL_PATH_WEIGHTS[self.value]


_CRITICAL_PATH_WEIGHTS = {
    "BLOCKING": 10.0,
    "FS": 5.0,
    "SS": 3.0,
    "FF": 3.0,
    "SF": 2.0,
}


class TaskDependency(models.Model):
    """Directed edge: ``dependent`` waits on ``prerequisite``.

    Endpoints are fixed once the row exists; only ``dependency_type``,
    ``lag_hours`` and ``notes`` change afterwards. ``is_critical_path`` is
    owned by the critical path analyzer and rewritten for the whole
    project at once.
    """

    dependent = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="prerequisite_links")
    prerequisite = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="dependent_links")
    dependency_type = models.CharField(
        max_length=16, choices=DependencyType.choices, default=DependencyType.FINISH_TO_START
    )
    lag_hours = models.FloatField(default=0)  # negative = lead time
    is_active = models.BooleanField(default=True)
    is_critical_path = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default="")
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="dependencies")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["pk"]
        constraints = [
            models.UniqueConstraint(
                fields=["dependent", "prerequisite"],
                condition=models.Q(is_active=True),
                name="unique_active_dependency_pair",
            ),
            models.CheckConstraint(
                condition=~models.Q(dependent=models.F("prerequisite")),
                name="dependency_not_self_referencing",
            ),
        ]
        indexes = [
            models.Index(fields=["project", "is_active"], name="idx_dependency_project_active"),
            models.Index(fields=["project", "is_critical_path"], name="idx_dependency_critical"),
        ]

    def __str__(self):
        return self.description

    @property
    def type(self):
        return DependencyType(self.dependency_type)

    @property
    def description(self):
        lag = ""
        if self.lag_hours:
            lag = f" (+{self.lag_hours:g}h lag)" if self.lag_hours > 0 else f" ({abs(self.lag_hours):g}h lead)"
        return f"{self.prerequisite.title} → {self.dependent.title} ({self.type.short_code}){lag}"

    def is_satisfied(self, soft_threshold):
        """Hard types need the prerequisite finished; soft types need its
        progress strictly above ``soft_threshold`` percent."""
        if not self.is_active:
            return True
        prerequisite = self.prerequisite
        if prerequisite.completed:
            return True
        if self.type.is_soft:
            return prerequisite.progress > soft_threshold
        return False
