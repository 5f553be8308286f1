from django.contrib import admin

from .models import ActivityLog, CustomField, Project, Task


class TaskInline(admin.TabularInline):
    model = Task
    extra = 0
    fields = ("name", "task_type", "status", "start_date", "end_date", "progress", "assignee")


class CustomFieldInline(admin.TabularInline):
    model = CustomField
    extra = 0
    fields = ("name", "field_type", "required", "default_value")


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("name", "status", "owner", "last_modified")
    list_filter = ("status",)
    search_fields = ("name", "description")
    inlines = [TaskInline, CustomFieldInline]


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ("name", "project", "status", "progress", "assignee", "end_date")
    list_filter = ("status", "task_type")
    search_fields = ("name",)


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("action", "project_id", "task", "user", "created_at")
    list_filter = ("action",)
    readonly_fields = ("project_id", "task", "user", "action", "changes", "created_at")

    # Audit trail: read-only in the admin as everywhere else
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
