from django.db import models
from django.conf import settings

from .entities import CustomField as CustomFieldEntity
from .entities import Project as ProjectEntity
from .entities import Task as TaskEntity
from .entities import generate_id


class Project(models.Model):
    """
    Schema of the raw-SQL backend. The SQL adapter talks to these tables with
    hand-written statements; the ORM is only used for migrations, the admin
    and principal deletion (which must null the owner, never delete the row).
    """
    id = models.CharField(max_length=36, primary_key=True, default=generate_id)
    name = models.TextField()
    description = models.TextField(null=True, blank=True)
    status = models.CharField(
        max_length=16,
        choices=ProjectEntity.STATUS_CHOICES,
        default=ProjectEntity.STATUS_ACTIVE,
    )
    created_date = models.DateTimeField(auto_now_add=True)
    last_modified = models.DateTimeField(auto_now=True, db_index=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        db_column="created_by",
        related_name="owned_projects",
    )
    # Principal ids as strings; the sole authorization surface beyond ownership
    team_members = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "projects"
        ordering = ["-last_modified"]

    def __str__(self):
        return self.name


class Task(models.Model):
    id = models.CharField(max_length=36, primary_key=True, default=generate_id)
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="tasks",
    )
    name = models.TextField()
    description = models.TextField(null=True, blank=True)
    task_type = models.CharField(
        max_length=16,
        choices=TaskEntity.TYPE_CHOICES,
        default=TaskEntity.TYPE_TASK,
    )
    status = models.CharField(
        max_length=32,
        choices=TaskEntity.STATUS_CHOICES,
        default=TaskEntity.STATUS_NOT_STARTED,
    )
    start_date = models.DateField()
    end_date = models.DateField()
    assignee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        db_column="assignee",
        related_name="assigned_tasks",
    )
    progress = models.IntegerField(default=0)
    dependencies = models.JSONField(default=list, blank=True)
    custom_fields = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tasks"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="end_date_after_start_date",
            ),
            models.CheckConstraint(
                condition=models.Q(progress__gte=0) & models.Q(progress__lte=100),
                name="progress_between_0_and_100",
            ),
        ]

    def __str__(self):
        return self.name


class CustomField(models.Model):
    id = models.CharField(max_length=36, primary_key=True, default=generate_id)
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="custom_fields",
    )
    name = models.TextField()
    field_type = models.CharField(max_length=16, choices=CustomFieldEntity.FIELD_TYPE_CHOICES)
    required = models.BooleanField(default=False)
    options = models.JSONField(null=True, blank=True)
    default_value = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "custom_fields"
        ordering = ["created_at"]

    def __str__(self):
        return f"{self.name} ({self.field_type})"


class ActivityLog(models.Model):
    """
    Immutable audit trail. The project is kept as a plain identifier so the
    trail outlives the project; task and actor references are nulled when
    their rows go away.
    """
    id = models.CharField(max_length=36, primary_key=True, default=generate_id)
    project_id = models.CharField(max_length=36, db_index=True)
    task = models.ForeignKey(
        Task,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity",
    )
    action = models.CharField(max_length=64)
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "activity_log"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.action} on {self.project_id}"
