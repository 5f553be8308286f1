from rest_framework import serializers

from .entities import CustomField, Project, Task
from .validation import cast_custom_value


class ProjectInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=Project.STATUS_CHOICES, required=False)
    team_members = serializers.ListField(child=serializers.CharField(), required=False)


class TaskInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    task_type = serializers.ChoiceField(choices=Task.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=Task.STATUS_CHOICES, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    assignee = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    # Out-of-range values are clamped by the service, not rejected
    progress = serializers.IntegerField(required=False)
    dependencies = serializers.ListField(child=serializers.CharField(), required=False)
    custom_fields = serializers.DictField(required=False)


class ProgressSerializer(serializers.Serializer):
    progress = serializers.IntegerField()


class TaskImportSerializer(serializers.Serializer):
    # Items are passed through untouched: per-item validity is decided by the
    # backend's import policy, not rejected up front
    tasks = serializers.ListField(child=serializers.DictField(), allow_empty=False)


class CustomFieldInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    field_type = serializers.ChoiceField(choices=CustomField.FIELD_TYPE_CHOICES)
    required = serializers.BooleanField(required=False)
    options = serializers.ListField(child=serializers.CharField(), required=False, allow_null=True)
    default_value = serializers.JSONField(required=False, allow_null=True)


def custom_field_payload(custom_field: CustomField) -> dict:
    """Custom field as returned by the API, with the default cast to its declared type."""
    data = custom_field.to_dict()
    data["default"] = cast_custom_value(custom_field.field_type, custom_field.default_value)
    return data


def project_payload(project: Project) -> dict:
    data = project.to_dict()
    data["custom_fields"] = [custom_field_payload(cf) for cf in project.custom_fields]
    return data
